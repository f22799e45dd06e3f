"""
Tests for CSV loaders
"""
from datetime import date
from decimal import Decimal

import pytest

from cloud_cost_analytics.exceptions import InputDataError
from cloud_cost_analytics.loaders import (
    load_cost_records,
    load_observations,
    load_resource_records,
    load_usage_records
)
from cloud_cost_analytics.models import Period, UsageUnit


def test_load_cost_records_keeps_exact_digits(costs_csv):
    loaded = load_cost_records(costs_csv)

    assert len(loaded.records) == 3
    assert loaded.records[0].cost == Decimal('450.00')
    assert str(loaded.records[0].cost) == '450.00'
    assert loaded.records[0].period == Period(2024, 1)
    assert loaded.records[0].usage_unit is None


def test_bad_rows_are_reported(costs_csv):
    loaded = load_cost_records(costs_csv)

    assert loaded.diagnostics.processed == 4
    assert loaded.diagnostics.excluded == 1
    assert 'Row 5' in loaded.diagnostics.entries[0].message


def test_load_usage_records(usage_csv):
    loaded = load_usage_records(usage_csv)

    assert [r.unit for r in loaded.records] == [UsageUnit.GB, UsageUnit.GB]
    assert loaded.records[1].quantity == Decimal('18400')


def test_load_resource_records(resources_csv):
    loaded = load_resource_records(resources_csv)

    by_id = {r.resource_id: r for r in loaded.records}
    assert by_id['i-1'].utilization.peak == 8.0
    assert by_id['i-1'].utilization.network_percent is None
    assert by_id['i-3'].utilization is None
    assert by_id['i-2'].monthly_cost == Decimal('60.00')


def test_load_observations(observations_csv):
    loaded = load_observations(observations_csv)

    assert len(loaded.records) == 32
    assert loaded.records[0].day == date(2024, 1, 1)
    assert loaded.records[-1].cost == Decimal('180.00')


def test_missing_columns(tmp_path):
    path = tmp_path / 'costs.csv'
    path.write_text('service_name,cost\nAmazon S3,10\n')

    with pytest.raises(InputDataError) as exc_info:
        load_cost_records(str(path))
    assert 'period' in exc_info.value.message
