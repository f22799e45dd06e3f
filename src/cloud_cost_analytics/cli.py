"""Command line interface for cost analytics over exported billing data"""
import logging
from typing import Dict, List, Optional

import click
import pandas as pd

from .aggregation.metric_aggregator import GroupBy
from .analysis.anomaly_detector import BaselineStore
from .config import load_config
from .diagnostics import Diagnostics
from .engine import AnalyticsEngine
from .exceptions import CostAnalyticsError
from .loaders import load_cost_records, load_observations, load_resource_records, load_usage_records
from .models import Period
from .optimization.rightsizing_analyzer import StaticPricingCatalog
from .reporting import (
    anomaly_frame,
    diagnostics_frame,
    efficiency_frame,
    export_csv,
    export_excel,
    render_table,
    rightsizing_frame,
    to_json
)
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

FORMATS = click.Choice(['table', 'json', 'csv', 'excel'])


def _engine(ctx, pricing: Optional[str] = None) -> AnalyticsEngine:
    catalog = StaticPricingCatalog.from_yaml(pricing) if pricing else StaticPricingCatalog.default()
    return AnalyticsEngine(ctx.obj['config'], pricing_lookup=catalog)


def _report_diagnostics(summaries: List[Diagnostics]):
    for summary in summaries:
        if summary.has_issues:
            click.echo(f"{summary.operation}: excluded {summary.excluded} of {summary.processed} "
                       f"(coverage {summary.coverage:.1%})", err=True)


def _emit(frames: Dict[str, pd.DataFrame], data: dict, fmt: str, output: Optional[str]):
    """Write results in the requested format"""
    if fmt == 'json':
        text = to_json(data)
        if output:
            with open(output, 'w') as f:
                f.write(text)
            click.echo(f"Results saved to {output}")
        else:
            click.echo(text)
    elif fmt == 'excel':
        if not output:
            raise click.UsageError("--output is required for excel format")
        export_excel(frames, output)
        click.echo(f"Report saved to {output}")
    elif fmt == 'csv':
        df = next(iter(frames.values()))
        if output:
            export_csv(df, output)
            click.echo(f"Results saved to {output}")
        else:
            click.echo(df.to_csv(index=False), nl=False)
    else:
        for title, df in frames.items():
            click.echo(f"\n{title}")
            click.echo(render_table(df))


@click.group()
@click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False),
              help='YAML configuration file')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']),
              default='WARNING', show_default=True)
@click.option('--log-format', type=click.Choice(['console', 'json', 'detailed']), default='console')
@click.option('--log-file', type=click.Path(dir_okay=False), help='Also log to this file')
@click.pass_context
def cli(ctx, config_path, log_level, log_format, log_file):
    """Cloud Cost Analytics - efficiency, rightsizing and anomaly reports"""
    setup_logging(log_level=log_level, log_file=log_file, log_format=log_format)
    ctx.ensure_object(dict)
    try:
        ctx.obj['config'] = load_config(config_path)
    except CostAnalyticsError as e:
        raise click.ClickException(e.message)


@cli.command()
@click.option('--costs', required=True, type=click.Path(exists=True, dir_okay=False), help='Cost records CSV')
@click.option('--usage', type=click.Path(exists=True, dir_okay=False), help='Usage records CSV')
@click.option('--group-by', type=click.Choice([g.value for g in GroupBy]), default='service')
@click.option('--period', help='Report a single period (YYYY-MM)')
@click.option('--format', 'fmt', type=FORMATS, default='table')
@click.option('--output', '-o', help='Output file')
@click.pass_context
def efficiency(ctx, costs, usage, group_by, period, fmt, output):
    """Cost per unit of usage and its trend"""
    try:
        engine = _engine(ctx)
        loaded_costs = load_cost_records(costs)
        loaded_usage = load_usage_records(usage) if usage else None
        report = engine.efficiency_report(
            loaded_costs.records,
            loaded_usage.records if loaded_usage else [],
            GroupBy(group_by),
            Period.parse(period) if period else None
        )
    except (CostAnalyticsError, ValueError) as e:
        raise click.ClickException(getattr(e, 'message', str(e)))

    summaries = [loaded_costs.diagnostics, report.diagnostics]
    if loaded_usage:
        summaries.insert(1, loaded_usage.diagnostics)
    _emit({'Efficiency': efficiency_frame(report), 'Diagnostics': diagnostics_frame(*summaries)},
          report.to_dict(), fmt, output)
    _report_diagnostics(summaries)


@cli.command()
@click.option('--resources', required=True, type=click.Path(exists=True, dir_okay=False),
              help='Resource utilization CSV')
@click.option('--pricing', type=click.Path(exists=True, dir_okay=False),
              help='YAML pricing catalog (defaults to built-in on-demand rates)')
@click.option('--format', 'fmt', type=FORMATS, default='table')
@click.option('--output', '-o', help='Output file')
@click.pass_context
def rightsize(ctx, resources, pricing, fmt, output):
    """Downsize and upsize recommendations"""
    try:
        engine = _engine(ctx, pricing)
        loaded = load_resource_records(resources)
        result = engine.analyze(loaded.records)
    except CostAnalyticsError as e:
        raise click.ClickException(e.message)

    summaries = [loaded.diagnostics, result.diagnostics]
    _emit({'Rightsizing': rightsizing_frame(result), 'Diagnostics': diagnostics_frame(*summaries)},
          result.to_dict(), fmt, output)
    if fmt == 'table':
        click.echo(f"\nPotential monthly savings: ${result.total_potential_savings:,.2f} "
                   f"across {result.recommendation_count} recommendations")
    _report_diagnostics(summaries)


@cli.command()
@click.option('--observations', required=True, type=click.Path(exists=True, dir_okay=False),
              help='Daily cost observations CSV')
@click.option('--format', 'fmt', type=FORMATS, default='table')
@click.option('--output', '-o', help='Output file')
@click.pass_context
def anomalies(ctx, observations, fmt, output):
    """Flag daily costs that deviate from their rolling baseline"""
    try:
        engine = _engine(ctx)
        loaded = load_observations(observations)
        report = engine.detect_anomalies(loaded.records, BaselineStore())
    except CostAnalyticsError as e:
        raise click.ClickException(e.message)

    summaries = [loaded.diagnostics, report.diagnostics]
    _emit({'Anomalies': anomaly_frame(report), 'Diagnostics': diagnostics_frame(*summaries)},
          report.to_dict(), fmt, output)
    _report_diagnostics(summaries)


@cli.command()
@click.option('--costs', type=click.Path(exists=True, dir_okay=False), help='Cost records CSV')
@click.option('--usage', type=click.Path(exists=True, dir_okay=False), help='Usage records CSV')
@click.option('--resources', type=click.Path(exists=True, dir_okay=False), help='Resource utilization CSV')
@click.option('--observations', type=click.Path(exists=True, dir_okay=False), help='Daily cost observations CSV')
@click.option('--pricing', type=click.Path(exists=True, dir_okay=False), help='YAML pricing catalog')
@click.option('--format', 'fmt', type=click.Choice(['table', 'json', 'excel']), default='table')
@click.option('--output', '-o', help='Output file')
@click.pass_context
def analyze(ctx, costs, usage, resources, observations, pricing, fmt, output):
    """Run every analysis the given inputs allow"""
    if not any([costs, resources, observations]):
        raise click.UsageError("Provide at least one of --costs, --resources or --observations")

    load_summaries = []
    try:
        engine = _engine(ctx, pricing)
        inputs = {}
        if costs:
            loaded = load_cost_records(costs)
            load_summaries.append(loaded.diagnostics)
            inputs['cost_records'] = loaded.records
            inputs['usage_records'] = []
        if usage and costs:
            loaded = load_usage_records(usage)
            load_summaries.append(loaded.diagnostics)
            inputs['usage_records'] = loaded.records
        if resources:
            loaded = load_resource_records(resources)
            load_summaries.append(loaded.diagnostics)
            inputs['resource_records'] = loaded.records
        if observations:
            loaded = load_observations(observations)
            load_summaries.append(loaded.diagnostics)
            inputs['observations'] = loaded.records
        result = engine.run(**inputs)
    except CostAnalyticsError as e:
        raise click.ClickException(e.message)

    frames = {}
    if result.efficiency is not None:
        frames['Efficiency'] = efficiency_frame(result.efficiency)
    if result.rightsizing is not None:
        frames['Rightsizing'] = rightsizing_frame(result.rightsizing)
    if result.anomalies is not None:
        frames['Anomalies'] = anomaly_frame(result.anomalies)
    summaries = load_summaries + result.diagnostics
    frames['Diagnostics'] = diagnostics_frame(*summaries)

    _emit(frames, result.to_dict(), fmt, output)
    if fmt == 'table':
        summary = result.summary()
        click.echo("\nSummary")
        for key in sorted(summary):
            click.echo(f"  {key}: {summary[key]}")
    _report_diagnostics(summaries)


if __name__ == '__main__':
    cli()
