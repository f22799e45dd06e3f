"""
Tests for CLI commands
"""
import json
from unittest.mock import patch

import pandas as pd
import pytest
import yaml
from click.testing import CliRunner
from openpyxl import load_workbook

from cloud_cost_analytics.cli import cli


@pytest.fixture(autouse=True)
def setup_logging_mock():
    with patch('cloud_cost_analytics.cli.setup_logging') as mock_setup:
        yield mock_setup


@pytest.fixture
def runner():
    return CliRunner()


def test_commands_registered():
    assert {'efficiency', 'rightsize', 'anomalies', 'analyze'} <= set(cli.commands)


def test_logging_options(runner, costs_csv, setup_logging_mock):
    result = runner.invoke(cli, ['--log-level', 'DEBUG', '--log-format', 'json',
                                 'efficiency', '--costs', costs_csv])

    assert result.exit_code == 0
    setup_logging_mock.assert_called_once_with(log_level='DEBUG', log_file=None, log_format='json')


def test_efficiency_table(runner, costs_csv, usage_csv):
    result = runner.invoke(cli, ['efficiency', '--costs', costs_csv, '--usage', usage_csv])

    assert result.exit_code == 0, result.output
    assert 'Amazon S3' in result.output
    assert 'improving' in result.output
    assert 'load_costs: excluded 1 of 4' in result.output


def test_efficiency_json_for_period(runner, tmp_path, costs_csv, usage_csv):
    output = tmp_path / 'efficiency.json'
    result = runner.invoke(cli, ['efficiency', '--costs', costs_csv, '--usage', usage_csv,
                                 '--period', '2024-02', '--format', 'json', '--output', str(output)])

    assert result.exit_code == 0, result.output
    data = json.loads(output.read_text())
    assert [m['service_name'] for m in data['metrics']] == ['AWS Support', 'Amazon S3']
    s3 = data['metrics'][1]
    assert s3['efficiency'] == '0.02'
    assert s3['trend'] == 'improving'
    assert data['metrics'][0]['status'] == 'no_usage_data'


def test_efficiency_invalid_period(runner, costs_csv):
    result = runner.invoke(cli, ['efficiency', '--costs', costs_csv, '--period', 'January'])
    assert result.exit_code == 1


def test_rightsize(runner, resources_csv, pricing_yaml):
    result = runner.invoke(cli, ['rightsize', '--resources', resources_csv, '--pricing', pricing_yaml])

    assert result.exit_code == 0, result.output
    assert 't3.medium' in result.output
    assert 'Potential monthly savings: $30.00 across 1 recommendations' in result.output


def test_anomalies_csv(runner, tmp_path, observations_csv):
    output = tmp_path / 'anomalies.csv'
    result = runner.invoke(cli, ['anomalies', '--observations', observations_csv,
                                 '--format', 'csv', '--output', str(output)])

    assert result.exit_code == 0, result.output
    df = pd.read_csv(str(output), dtype=str)
    assert list(df['Severity']) == ['high']
    assert list(df['Date']) == ['2024-02-01']


def test_analyze_excel(runner, tmp_path, costs_csv, usage_csv, resources_csv, observations_csv, pricing_yaml):
    output = tmp_path / 'report.xlsx'
    result = runner.invoke(cli, ['analyze', '--costs', costs_csv, '--usage', usage_csv,
                                 '--resources', resources_csv, '--observations', observations_csv,
                                 '--pricing', pricing_yaml, '--format', 'excel', '--output', str(output)])

    assert result.exit_code == 0, result.output
    workbook = load_workbook(str(output))
    assert workbook.sheetnames == ['Efficiency', 'Rightsizing', 'Anomalies', 'Diagnostics']


def test_analyze_requires_input(runner):
    result = runner.invoke(cli, ['analyze'])
    assert result.exit_code == 2


def test_excel_requires_output(runner, resources_csv):
    result = runner.invoke(cli, ['rightsize', '--resources', resources_csv, '--format', 'excel'])
    assert result.exit_code == 2


def test_invalid_config(runner, tmp_path, resources_csv):
    config_path = tmp_path / 'config.yaml'
    config_path.write_text(yaml.safe_dump({'trend': {'trend_threshold_percent': -1}}))

    result = runner.invoke(cli, ['--config', str(config_path), 'rightsize', '--resources', resources_csv])

    assert result.exit_code == 1
    assert 'must not be negative' in result.output


def test_missing_columns(runner, tmp_path):
    path = tmp_path / 'resources.csv'
    path.write_text('resource_id,cpu_percent\ni-1,5\n')

    result = runner.invoke(cli, ['rightsize', '--resources', str(path)])

    assert result.exit_code == 1
    assert 'missing columns' in result.output
