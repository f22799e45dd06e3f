"""
Cost Analytics Engine - single entry point over the aggregator, efficiency
calculator, rightsizing analyzer and anomaly detector
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union

from .aggregation.metric_aggregator import AggregatedBucket, AggregationResult, GroupBy, MetricAggregator
from .analysis.anomaly_detector import AnomalyReport, BaselineStore, CostAnomalyDetector
from .analysis.efficiency_calculator import EfficiencyCalculator, EfficiencyMetric, EfficiencyReport
from .config import AnalyticsConfig
from .diagnostics import Diagnostics
from .exceptions import ConfigurationError
from .models import CostObservation, CostRecord, Period, ResourceRecord, UsageRecord
from .optimization.rightsizing_analyzer import PricingLookup, RightsizingAnalyzer, RightsizingResult

logger = logging.getLogger(__name__)


@dataclass
class AnalyticsResult:
    """Consolidated results of one engine run"""
    timestamp: datetime
    efficiency: Optional[EfficiencyReport] = None
    rightsizing: Optional[RightsizingResult] = None
    anomalies: Optional[AnomalyReport] = None
    diagnostics: List[Diagnostics] = field(default_factory=list)

    @property
    def has_issues(self) -> bool:
        return any(d.has_issues for d in self.diagnostics)

    def summary(self) -> Dict[str, Any]:
        summary: Dict[str, Any] = {'timestamp': self.timestamp.isoformat()}
        if self.efficiency is not None:
            summary['efficiency_metrics'] = len(self.efficiency.metrics)
            summary['not_computable'] = sum(1 for m in self.efficiency.metrics if not m.is_computable)
        if self.rightsizing is not None:
            summary['recommendation_count'] = self.rightsizing.recommendation_count
            summary['total_potential_savings'] = str(self.rightsizing.total_potential_savings)
        if self.anomalies is not None:
            summary['anomalies_detected'] = len(self.anomalies.flags)
        summary['excluded'] = sum(d.excluded for d in self.diagnostics)
        return summary

    def to_dict(self) -> Dict[str, Any]:
        return {
            'summary': self.summary(),
            'efficiency': self.efficiency.to_dict() if self.efficiency else None,
            'rightsizing': self.rightsizing.to_dict() if self.rightsizing else None,
            'anomalies': self.anomalies.to_dict() if self.anomalies else None,
            'diagnostics': [d.to_dict() for d in self.diagnostics]
        }


class AnalyticsEngine:
    """Main orchestrator for cost analytics"""

    def __init__(self,
                 config: Union[AnalyticsConfig, Dict[str, Any], None] = None,
                 pricing_lookup: Optional[PricingLookup] = None):
        """
        Initialize the engine

        Args:
            config: AnalyticsConfig or nested dict; validated here, before any data
            pricing_lookup: Pricing catalog used for rightsizing

        Raises:
            ConfigurationError: on invalid thresholds
        """
        if config is None:
            config = AnalyticsConfig()
        elif isinstance(config, dict):
            config = AnalyticsConfig.from_dict(config)
        elif not isinstance(config, AnalyticsConfig):
            raise ConfigurationError(f"Unsupported configuration type {type(config).__name__}")
        self.config = config

        self.aggregator = MetricAggregator()
        self.efficiency_calculator = EfficiencyCalculator(config.trend)
        self.rightsizing_analyzer = RightsizingAnalyzer(config.rightsizing, pricing_lookup)
        self.anomaly_detector = CostAnomalyDetector(config.anomalies)

    def aggregate(self,
                  cost_records: Iterable[CostRecord],
                  usage_records: Iterable[UsageRecord],
                  group_by: GroupBy = GroupBy.SERVICE,
                  period: Optional[Period] = None) -> AggregationResult:
        return self.aggregator.aggregate(cost_records, usage_records, group_by, period)

    def compute_efficiency(self,
                           current_bucket: AggregatedBucket,
                           previous_bucket: Optional[AggregatedBucket] = None) -> EfficiencyMetric:
        return self.efficiency_calculator.compute_efficiency(current_bucket, previous_bucket)

    def efficiency_report(self,
                          cost_records: Iterable[CostRecord],
                          usage_records: Iterable[UsageRecord],
                          group_by: GroupBy = GroupBy.SERVICE,
                          period: Optional[Period] = None) -> EfficiencyReport:
        """
        Aggregate records and compute efficiency for every bucket

        When ``period`` is given, the preceding period is aggregated too so the
        trend can be classified, and only the requested period is reported.
        """
        if period is not None:
            cost_records = [r for r in cost_records if r.period in (period, period.previous())]
            usage_records = [r for r in usage_records if r.period in (period, period.previous())]

        aggregation = self.aggregate(cost_records, usage_records, group_by)
        report = self.efficiency_calculator.compute_all(aggregation.buckets)
        metrics = report.metrics
        if period is not None:
            metrics = [m for m in metrics if m.period == period]

        return EfficiencyReport(metrics=metrics,
                                diagnostics=aggregation.diagnostics.merge(report.diagnostics))

    def analyze(self,
                resource_records: Iterable[ResourceRecord],
                pricing_lookup: Optional[PricingLookup] = None) -> RightsizingResult:
        return self.rightsizing_analyzer.analyze(resource_records, pricing_lookup)

    def detect_anomalies(self,
                         observations: Iterable[CostObservation],
                         store: Optional[BaselineStore] = None) -> AnomalyReport:
        """Run anomaly detection; a fresh in-memory store is used when none is given"""
        return self.anomaly_detector.detect(observations, store if store is not None else BaselineStore())

    def run(self,
            cost_records: Optional[Iterable[CostRecord]] = None,
            usage_records: Optional[Iterable[UsageRecord]] = None,
            resource_records: Optional[Iterable[ResourceRecord]] = None,
            observations: Optional[Iterable[CostObservation]] = None,
            store: Optional[BaselineStore] = None,
            group_by: GroupBy = GroupBy.SERVICE,
            period: Optional[Period] = None) -> AnalyticsResult:
        """
        Run every analysis the supplied inputs allow

        Returns:
            AnalyticsResult with one diagnostics summary per analysis
        """
        logger.info("Starting cost analytics run")
        result = AnalyticsResult(timestamp=datetime.now())

        if cost_records is not None:
            result.efficiency = self.efficiency_report(cost_records, usage_records or [], group_by, period)
            result.diagnostics.append(result.efficiency.diagnostics)

        if resource_records is not None:
            result.rightsizing = self.analyze(resource_records)
            result.diagnostics.append(result.rightsizing.diagnostics)

        if observations is not None:
            result.anomalies = self.detect_anomalies(observations, store)
            result.diagnostics.append(result.anomalies.diagnostics)

        logger.info(f"Analytics run complete: {result.summary()}")
        return result
