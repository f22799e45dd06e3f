"""
Efficiency Calculator - cost per unit of usage and its period-over-period trend
"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal, DecimalException
from enum import Enum
from typing import Dict, Iterable, List, Optional

from ..aggregation.metric_aggregator import AggregatedBucket
from ..config import TrendConfig
from ..diagnostics import Diagnostics
from ..exceptions import ComputationInconsistency, CostAnalyticsError, InputDataError
from ..models import Period, ServiceType, UsageUnit, decimal_to_json
from ..utils.logging_config import log_execution_time

logger = logging.getLogger(__name__)

HUNDRED = Decimal(100)


class Trend(Enum):
    """Direction of cost per unit between two periods"""
    IMPROVING = "improving"
    STABLE = "stable"
    DEGRADING = "degrading"


class EfficiencyStatus(Enum):
    """Whether an efficiency value could be computed"""
    COMPUTED = "computed"
    NO_USAGE_DATA = "no_usage_data"


@dataclass(frozen=True)
class EfficiencyMetric:
    """Cost efficiency of one bucket"""
    service_name: str
    service_type: ServiceType
    provider_id: str
    account_id: str
    period: Period
    total_cost: Decimal
    total_usage: Optional[Decimal]
    unit: Optional[UsageUnit]
    efficiency: Optional[Decimal]
    previous_efficiency: Optional[Decimal]
    efficiency_change: Optional[Decimal]
    efficiency_change_percent: Optional[Decimal]
    trend: Trend
    status: EfficiencyStatus
    insufficient_history: bool
    days_with_data: int = 0

    @property
    def is_computable(self) -> bool:
        return self.status == EfficiencyStatus.COMPUTED

    def to_dict(self) -> Dict[str, object]:
        return {
            'service_name': self.service_name,
            'service_type': self.service_type.value,
            'provider_id': self.provider_id,
            'account_id': self.account_id,
            'period': str(self.period),
            'total_cost': decimal_to_json(self.total_cost),
            'total_usage': decimal_to_json(self.total_usage),
            'unit': self.unit.value if self.unit else None,
            'efficiency': decimal_to_json(self.efficiency),
            'previous_efficiency': decimal_to_json(self.previous_efficiency),
            'efficiency_change': decimal_to_json(self.efficiency_change),
            'efficiency_change_percent': decimal_to_json(self.efficiency_change_percent),
            'trend': self.trend.value,
            'status': self.status.value,
            'insufficient_history': self.insufficient_history,
            'days_with_data': self.days_with_data
        }


@dataclass
class EfficiencyReport:
    """Efficiency metrics for a set of buckets"""
    metrics: List[EfficiencyMetric]
    diagnostics: Diagnostics

    def to_dict(self) -> Dict[str, object]:
        return {
            'metrics': [m.to_dict() for m in self.metrics],
            'diagnostics': self.diagnostics.to_dict()
        }


def _divide(numerator: Decimal, denominator: Decimal, subject: str) -> Decimal:
    try:
        result = numerator / denominator
    except DecimalException as e:
        raise ComputationInconsistency(f"Division failed for {subject}: {e}", subject=subject,
                                       numerator=numerator, denominator=denominator)
    if not result.is_finite():
        raise ComputationInconsistency(f"Non-finite result for {subject}", subject=subject,
                                       numerator=numerator, denominator=denominator)
    return result


class EfficiencyCalculator:
    """Derives cost-per-unit metrics and trend classification"""

    def __init__(self, trend_config: Optional[TrendConfig] = None):
        self.trend_config = trend_config or TrendConfig()

    def classify_trend(self, change_percent: Decimal) -> Trend:
        """Classify a relative change in cost per unit"""
        threshold = self.trend_config.trend_threshold_percent
        if change_percent < -threshold:
            return Trend.IMPROVING
        if change_percent > threshold:
            return Trend.DEGRADING
        return Trend.STABLE

    def efficiency_of(self, bucket: AggregatedBucket) -> Optional[Decimal]:
        """Cost per unit, None when the bucket has no usable usage data"""
        if bucket.usage is None or bucket.usage <= 0:
            return None
        return _divide(bucket.cost, bucket.usage, bucket.key)

    def compute_efficiency(self,
                           current_bucket: AggregatedBucket,
                           previous_bucket: Optional[AggregatedBucket] = None) -> EfficiencyMetric:
        """
        Compute the efficiency metric for a bucket

        Args:
            current_bucket: Bucket for the period being reported
            previous_bucket: Same series in an earlier period (None = first period)

        Returns:
            EfficiencyMetric; status NO_USAGE_DATA when efficiency is undefined
        """
        if previous_bucket is not None and previous_bucket.period >= current_bucket.period:
            raise InputDataError(
                f"Previous bucket {previous_bucket.period} is not before {current_bucket.period}",
                subject=current_bucket.key)

        efficiency = self.efficiency_of(current_bucket)
        previous_efficiency = None
        if previous_bucket is not None and previous_bucket.series_key == current_bucket.series_key:
            previous_efficiency = self.efficiency_of(previous_bucket)

        change = None
        change_percent = None
        trend = Trend.STABLE
        # judged on the previous period alone
        insufficient_history = previous_efficiency is None or previous_efficiency <= 0

        if efficiency is not None and previous_efficiency is not None:
            change = efficiency - previous_efficiency
            if previous_efficiency > 0:
                change_percent = _divide(change, previous_efficiency, current_bucket.key) * HUNDRED
                trend = self.classify_trend(change_percent)

        return EfficiencyMetric(
            service_name=current_bucket.service_name or current_bucket.key,
            service_type=current_bucket.service_type,
            provider_id=current_bucket.provider_id,
            account_id=current_bucket.account_id,
            period=current_bucket.period,
            total_cost=current_bucket.cost,
            total_usage=current_bucket.usage,
            unit=current_bucket.unit,
            efficiency=efficiency,
            previous_efficiency=previous_efficiency,
            efficiency_change=change,
            efficiency_change_percent=change_percent,
            trend=trend,
            status=EfficiencyStatus.COMPUTED if efficiency is not None else EfficiencyStatus.NO_USAGE_DATA,
            insufficient_history=insufficient_history,
            days_with_data=current_bucket.record_count
        )

    @log_execution_time
    def compute_all(self, buckets: Iterable[AggregatedBucket]) -> EfficiencyReport:
        """Compute metrics for every bucket against the immediately preceding period"""
        diagnostics = Diagnostics('compute_efficiency')
        series: Dict[tuple, Dict[Period, AggregatedBucket]] = defaultdict(dict)

        for bucket in buckets:
            diagnostics.processed += 1
            periods = series[bucket.series_key]
            if bucket.period in periods:
                diagnostics.record(InputDataError(
                    f"Duplicate bucket for {bucket.key} in {bucket.period}", subject=bucket.key))
                continue
            periods[bucket.period] = bucket

        metrics = []
        for series_key in sorted(series):
            periods = series[series_key]
            for period in sorted(periods):
                current = periods[period]
                try:
                    metrics.append(self.compute_efficiency(current, periods.get(period.previous())))
                except CostAnalyticsError as e:
                    diagnostics.record(e)

        metrics.sort(key=lambda m: (m.service_name, m.period, m.provider_id, m.account_id,
                                    m.unit.value if m.unit else ''))

        no_usage = sum(1 for m in metrics if not m.is_computable)
        logger.info(f"Computed {len(metrics)} efficiency metrics ({no_usage} without usage data)")
        return EfficiencyReport(metrics=metrics, diagnostics=diagnostics)
