"""
Tests for Metric Aggregator
"""
import pytest
from decimal import Decimal

from cloud_cost_analytics.aggregation import GroupBy, MetricAggregator
from cloud_cost_analytics.diagnostics import DiagnosticKind
from cloud_cost_analytics.models import CostRecord, Period, ServiceType, UsageRecord, UsageUnit

JAN = Period(2024, 1)
FEB = Period(2024, 2)


@pytest.fixture
def aggregator():
    return MetricAggregator()


def cost(service, period, amount, account='111', **kwargs):
    return CostRecord(service, period, amount, 'aws', account, **kwargs)


def usage(service, period, quantity, unit, account='111', **kwargs):
    return UsageRecord(service, period, quantity, unit, 'aws', account, **kwargs)


def test_sums_cost_exactly(aggregator):
    records = [cost('Amazon S3', JAN, '0.1') for _ in range(10)]
    result = aggregator.aggregate(records, [])

    assert len(result.buckets) == 1
    assert result.buckets[0].cost == Decimal('1.0')
    assert result.buckets[0].record_count == 10


def test_cost_without_usage_keeps_null_usage(aggregator):
    result = aggregator.aggregate([cost('Amazon S3', JAN, '450.00')], [])

    bucket = result.buckets[0]
    assert bucket.usage is None
    assert bucket.unit is None
    assert not bucket.has_usage
    assert not result.diagnostics.has_issues


def test_usage_joined_to_cost(aggregator):
    result = aggregator.aggregate(
        [cost('Amazon S3', JAN, '450.00')],
        [usage('Amazon S3', JAN, '19000', 'GB-Mo'), usage('Amazon S3', JAN, '500', 'GB')]
    )

    bucket = result.buckets[0]
    assert bucket.usage == Decimal('19500')
    assert bucket.unit == UsageUnit.GB
    assert bucket.service_type == ServiceType.STORAGE


def test_mismatched_units_stay_separate(aggregator):
    result = aggregator.aggregate(
        [cost('Amazon EC2', JAN, '100', usage_unit=UsageUnit.HOUR),
         cost('Amazon EC2', JAN, '20', usage_unit=UsageUnit.GB)],
        [usage('Amazon EC2', JAN, '720', 'Hrs'), usage('Amazon EC2', JAN, '400', 'GB-Mo')]
    )

    units = {b.unit: b for b in result.buckets}
    assert set(units) == {UsageUnit.GB, UsageUnit.HOUR}
    assert units[UsageUnit.HOUR].usage == Decimal('720')
    assert units[UsageUnit.GB].cost == Decimal('20')


def test_ambiguous_unit_is_excluded(aggregator):
    result = aggregator.aggregate(
        [cost('Amazon EC2', JAN, '120')],
        [usage('Amazon EC2', JAN, '720', 'Hrs'), usage('Amazon EC2', JAN, '400', 'GB-Mo')]
    )

    assert result.buckets == []
    errors = result.diagnostics.by_kind(DiagnosticKind.INPUT_DATA_ERROR)
    assert len(errors) == 1
    assert 'several units' in errors[0].message


def test_usage_without_cost_is_reported(aggregator):
    result = aggregator.aggregate(
        [cost('Amazon S3', JAN, '450')],
        [usage('Amazon S3', JAN, '19500', 'GB'), usage('AWS Lambda', JAN, '1000', 'Requests')]
    )

    assert [b.key for b in result.buckets] == ['Amazon S3']
    errors = result.diagnostics.by_kind(DiagnosticKind.INPUT_DATA_ERROR)
    assert len(errors) == 1
    assert errors[0].subject == 'AWS Lambda'
    assert result.diagnostics.processed == 3


def test_invalid_records_do_not_abort_batch(aggregator):
    result = aggregator.aggregate(
        [cost('Amazon S3', JAN, 'NaN'), cost('Amazon EC2', JAN, '50')],
        [usage('Amazon EC2', JAN, '-5', 'Hrs')]
    )

    assert [b.key for b in result.buckets] == ['Amazon EC2']
    assert result.diagnostics.excluded == 2


def test_accounts_never_merge(aggregator):
    result = aggregator.aggregate(
        [cost('Amazon S3', JAN, '10', account='111'), cost('Amazon S3', JAN, '20', account='222')],
        []
    )

    assert [(b.account_id, b.cost) for b in result.buckets] == [
        ('111', Decimal('10')), ('222', Decimal('20'))
    ]


def test_group_by_resource_requires_resource_id(aggregator):
    result = aggregator.aggregate(
        [cost('Amazon EC2', JAN, '10', resource_id='i-1'), cost('Amazon EC2', JAN, '5')],
        [],
        group_by=GroupBy.RESOURCE
    )

    assert [b.key for b in result.buckets] == ['i-1']
    assert result.diagnostics.excluded == 1


def test_group_by_account(aggregator):
    result = aggregator.aggregate(
        [cost('Amazon S3', JAN, '10'), cost('Amazon EC2', JAN, '15')],
        [],
        group_by='account'
    )

    assert len(result.buckets) == 1
    assert result.buckets[0].key == '111'
    assert result.buckets[0].cost == Decimal('25')
    assert result.buckets[0].service_name is None


def test_period_filter(aggregator):
    result = aggregator.aggregate(
        [cost('Amazon S3', JAN, '10'), cost('Amazon S3', FEB, '12')],
        [],
        period=FEB
    )

    assert [b.period for b in result.buckets] == [FEB]


def test_deterministic_ordering(aggregator):
    costs = [
        cost('Amazon S3', FEB, '12'),
        cost('Amazon EC2', JAN, '30'),
        cost('Amazon S3', JAN, '10'),
        cost('Amazon EC2', FEB, '31'),
    ]
    first = aggregator.aggregate(costs, [])
    second = aggregator.aggregate(list(reversed(costs)), [])

    assert [b.sort_key for b in first.buckets] == [b.sort_key for b in second.buckets]
    assert first.to_dict() == second.to_dict()
    assert [(b.key, b.period) for b in first.buckets] == [
        ('Amazon EC2', JAN), ('Amazon EC2', FEB), ('Amazon S3', JAN), ('Amazon S3', FEB)
    ]
