"""Analysis module for efficiency trends and cost anomalies"""

from .efficiency_calculator import (
    EfficiencyCalculator,
    EfficiencyMetric,
    EfficiencyReport,
    EfficiencyStatus,
    Trend
)
from .anomaly_detector import (
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

__all__ = [
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
    'Severity'
]
