__version__ = "0.1.0"

# Records and configuration
from .models import (
    CostObservation,
    CostRecord,
    Period,
    ResourceRecord,
    ServiceType,
    UsageRecord,
    UsageUnit,
    Utilization,
    BaselineKey,
    BaselineWindow,
    classify_service
)
from .config import AnalyticsConfig, AnomalyConfig, RightsizingConfig, TrendConfig, load_config
from .exceptions import (
    CostAnalyticsError,
    ConfigurationError,
    InputDataError,
    OutOfOrderObservationError,
    InsufficientHistoryError,
    ComputationInconsistency
)
from .diagnostics import Diagnostics, DiagnosticEntry, DiagnosticKind

# Analytics components
from .aggregation import MetricAggregator, AggregatedBucket, AggregationResult, GroupBy
from .analysis import (
    EfficiencyCalculator,
    EfficiencyMetric,
    EfficiencyReport,
    EfficiencyStatus,
    Trend,
    CostAnomalyDetector,
    AnomalyCheck,
    AnomalyFlag,
    AnomalyReport,
    BaselineState,
    BaselineStore,
    CheckStatus,
    ContributingSubject,
    Severity
)
from .optimization import (
    RightsizingAnalyzer,
    RightsizingRecommendation,
    RightsizingResult,
    RecommendationAction,
    Priority,
    InstanceTier,
    StaticPricingCatalog
)

from .engine import AnalyticsEngine, AnalyticsResult

__all__ = [
    # Version
    '__version__',

    # Records
    'CostObservation',
    'CostRecord',
    'Period',
    'ResourceRecord',
    'ServiceType',
    'UsageRecord',
    'UsageUnit',
    'Utilization',
    'BaselineKey',
    'BaselineWindow',
    'classify_service',

    # Configuration
    'AnalyticsConfig',
    'AnomalyConfig',
    'RightsizingConfig',
    'TrendConfig',
    'load_config',

    # Errors and diagnostics
    'CostAnalyticsError',
    'ConfigurationError',
    'InputDataError',
    'OutOfOrderObservationError',
    'InsufficientHistoryError',
    'ComputationInconsistency',
    'Diagnostics',
    'DiagnosticEntry',
    'DiagnosticKind',

    # Aggregation
    'MetricAggregator',
    'AggregatedBucket',
    'AggregationResult',
    'GroupBy',

    # Analysis
    'EfficiencyCalculator',
    'EfficiencyMetric',
    'EfficiencyReport',
    'EfficiencyStatus',
    'Trend',
    'CostAnomalyDetector',
    'AnomalyCheck',
    'AnomalyFlag',
    'AnomalyReport',
    'BaselineState',
    'BaselineStore',
    'CheckStatus',
    'ContributingSubject',
    'Severity',

    # Optimization
    'RightsizingAnalyzer',
    'RightsizingRecommendation',
    'RightsizingResult',
    'RecommendationAction',
    'Priority',
    'InstanceTier',
    'StaticPricingCatalog',

    # Orchestrator
    'AnalyticsEngine',
    'AnalyticsResult'
]
