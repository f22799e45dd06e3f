"""
Tests for Rightsizing Analyzer
"""
import pytest
from decimal import Decimal
from pathlib import Path
from unittest.mock import Mock

from cloud_cost_analytics.config import RightsizingConfig
from cloud_cost_analytics.diagnostics import DiagnosticKind
from cloud_cost_analytics.exceptions import ConfigurationError
from cloud_cost_analytics.models import ResourceRecord, Utilization
from cloud_cost_analytics.optimization import (
    InstanceTier,
    Priority,
    RecommendationAction,
    RightsizingAnalyzer,
    StaticPricingCatalog
)

T3_MONTHLY = {
    't3.micro': '7.50',
    't3.small': '15.00',
    't3.medium': '30.00',
    't3.large': '60.00',
    't3.xlarge': '120.00'
}


@pytest.fixture
def catalog():
    return StaticPricingCatalog.from_dict({'monthly': T3_MONTHLY})


@pytest.fixture
def analyzer(catalog):
    return RightsizingAnalyzer(pricing_lookup=catalog)


def resource(resource_id, cpu=None, memory=None, network=None, instance_type='t3.large', cost='60.00'):
    utilization = None
    if any(v is not None for v in (cpu, memory, network)):
        utilization = Utilization(cpu_percent=cpu, memory_percent=memory, network_percent=network)
    return ResourceRecord(
        resource_id=resource_id,
        resource_name=f"{resource_id}-name",
        service_name='Amazon EC2',
        instance_type=instance_type,
        region='us-east-1',
        monthly_cost=cost,
        utilization=utilization
    )


def test_catalog_orders_family_by_size(catalog):
    tiers = catalog('t3.large')
    assert [t.instance_type for t in tiers] == ['t3.micro', 't3.small', 't3.medium', 't3.large', 't3.xlarge']
    assert catalog('x9.large') == []


def test_default_catalog_uses_hourly_rates():
    catalog = StaticPricingCatalog.default()
    medium = [t for t in catalog('t3.medium') if t.instance_type == 't3.medium'][0]
    assert medium.monthly_cost == Decimal('0.0416') * 730


def test_catalog_rejects_malformed_data():
    with pytest.raises(ConfigurationError):
        StaticPricingCatalog.from_dict({'prices': {}})
    with pytest.raises(ConfigurationError):
        StaticPricingCatalog.from_dict({'monthly': {'t3.large': 'cheap'}})
    with pytest.raises(ConfigurationError):
        StaticPricingCatalog.from_dict({'monthly': {'t3.large': 'NaN'}})


def test_downsize_high_priority(analyzer):
    result = analyzer.analyze([resource('i-1', cpu=5.0)])

    rec = result.recommendations[0]
    assert rec.action == RecommendationAction.DOWNSIZE
    assert rec.recommended_instance_type == 't3.medium'
    assert rec.potential_savings == Decimal('30.00')
    assert rec.savings_percent == Decimal('50')
    assert rec.priority == Priority.HIGH
    assert result.total_potential_savings == Decimal('30.00')
    assert result.recommendation_count == 1


@pytest.mark.parametrize('cpu,priority', [
    (5.0, Priority.HIGH),
    (12.0, Priority.MEDIUM),
    (18.0, Priority.LOW),
])
def test_downsize_priority_breakpoints(analyzer, cpu, priority):
    result = analyzer.analyze([resource('i-1', cpu=cpu)])
    assert result.recommendations[0].priority == priority


def test_lower_utilization_never_ranks_lower(analyzer):
    rank = {Priority.HIGH: 3, Priority.MEDIUM: 2, Priority.LOW: 1}
    levels = [1.0, 5.0, 9.9, 10.0, 12.0, 14.9, 15.0, 19.9]
    priorities = [analyzer.analyze([resource('i-1', cpu=cpu)]).recommendations[0].priority for cpu in levels]

    for lower, higher in zip(priorities, priorities[1:]):
        assert rank[lower] >= rank[higher]


def test_peak_uses_highest_dimension(analyzer):
    result = analyzer.analyze([resource('i-1', cpu=5.0, memory=50.0)])
    assert result.recommendations == []


def test_between_thresholds_no_recommendation(analyzer):
    result = analyzer.analyze([resource('i-1', cpu=50.0)])
    assert result.recommendations == []
    assert not result.diagnostics.has_issues


def test_no_smaller_tier(analyzer):
    result = analyzer.analyze([resource('i-1', cpu=2.0, instance_type='t3.micro', cost='7.50')])
    assert result.recommendations == []
    assert not result.diagnostics.has_issues


def test_upsize(analyzer):
    result = analyzer.analyze([resource('i-1', cpu=96.0)])

    rec = result.recommendations[0]
    assert rec.action == RecommendationAction.UPSIZE
    assert rec.recommended_instance_type == 't3.xlarge'
    assert rec.priority == Priority.HIGH
    assert rec.potential_savings == Decimal('0')
    assert rec.cost_increase == Decimal('60.00')
    assert result.total_potential_savings == Decimal('0')


def test_upsize_priorities(analyzer):
    assert analyzer.analyze([resource('i-1', cpu=92.0)]).recommendations[0].priority == Priority.MEDIUM
    assert analyzer.analyze([resource('i-1', cpu=85.0)]).recommendations[0].priority == Priority.LOW


def test_missing_utilization_reported_as_insufficient_data(analyzer):
    result = analyzer.analyze([resource('i-2'), resource('i-1', cpu=5.0)])

    assert result.insufficient_data == ['i-2']
    assert [r.resource_id for r in result.recommendations] == ['i-1']
    assert len(result.diagnostics.by_kind(DiagnosticKind.INSUFFICIENT_DATA)) == 1


def test_negative_savings_is_excluded(analyzer):
    result = analyzer.analyze([resource('i-1', cpu=5.0, cost='20.00'), resource('i-2', cpu=5.0)])

    assert [r.resource_id for r in result.recommendations] == ['i-2']
    assert len(result.diagnostics.by_kind(DiagnosticKind.COMPUTATION_INCONSISTENCY)) == 1


def test_unknown_instance_type_is_input_error(analyzer):
    result = analyzer.analyze([resource('i-1', cpu=5.0, instance_type='x9.large')])

    assert result.recommendations == []
    assert len(result.diagnostics.by_kind(DiagnosticKind.INPUT_DATA_ERROR)) == 1


def test_utilization_out_of_range_is_input_error(analyzer):
    result = analyzer.analyze([resource('i-1', cpu=150.0)])
    assert result.diagnostics.excluded == 1


def test_ordering_is_total(analyzer):
    result = analyzer.analyze([
        resource('i-c', cpu=5.0),
        resource('i-b', cpu=5.0),
        resource('i-a', cpu=18.0),
        resource('i-d', cpu=5.0, instance_type='t3.xlarge', cost='120.00'),
    ])

    assert [r.resource_id for r in result.recommendations] == ['i-d', 'i-b', 'i-c', 'i-a']


def test_cap_keeps_totals(catalog):
    analyzer = RightsizingAnalyzer(RightsizingConfig(max_recommendations=2), catalog)
    result = analyzer.analyze([resource(f"i-{n}", cpu=5.0) for n in range(3)])

    assert len(result.recommendations) == 2
    assert result.recommendation_count == 3
    assert result.total_potential_savings == Decimal('90.00')
    assert result.truncated


def test_pricing_lookup_is_injected():
    lookup = Mock(return_value=[InstanceTier('m5.large', '70'), InstanceTier('m5.xlarge', '140')])
    analyzer = RightsizingAnalyzer()

    result = analyzer.analyze([resource('i-1', cpu=5.0, instance_type='m5.xlarge', cost='140')], lookup)

    lookup.assert_called_once_with('m5.xlarge')
    assert result.recommendations[0].recommended_instance_type == 'm5.large'


def test_missing_pricing_lookup():
    with pytest.raises(ConfigurationError):
        RightsizingAnalyzer().analyze([resource('i-1', cpu=5.0)])


def test_deterministic(analyzer):
    resources = [resource('i-2', cpu=5.0), resource('i-1', cpu=12.0), resource('i-3', cpu=90.0)]
    assert analyzer.analyze(resources).to_dict() == analyzer.analyze(resources[::-1]).to_dict()


def test_shipped_pricing_catalog():
    path = Path(__file__).resolve().parents[1] / 'config' / 'pricing.yaml'
    catalog = StaticPricingCatalog.from_yaml(str(path))

    assert [t.instance_type for t in catalog('c5.large')] == ['c5.large', 'c5.xlarge']
    assert len(catalog) == 9


def test_non_finite_monthly_cost_is_input_error(analyzer):
    result = analyzer.analyze([
        resource('i-nan', cpu=5.0, cost='NaN'),
        resource('i-inf', cpu=96.0, cost='Infinity'),
        resource('i-ok', cpu=5.0),
    ])

    assert [r.resource_id for r in result.recommendations] == ['i-ok']
    assert len(result.diagnostics.by_kind(DiagnosticKind.INPUT_DATA_ERROR)) == 2
    assert result.total_potential_savings == Decimal('30.00')


def test_non_finite_tier_price_is_input_error():
    lookup = Mock(return_value=[InstanceTier('m5.large', 'NaN'), InstanceTier('m5.xlarge', '140')])
    analyzer = RightsizingAnalyzer(pricing_lookup=lookup)

    result = analyzer.analyze([resource('i-1', cpu=5.0, instance_type='m5.xlarge', cost='140')])

    assert result.recommendations == []
    assert len(result.diagnostics.by_kind(DiagnosticKind.INPUT_DATA_ERROR)) == 1
