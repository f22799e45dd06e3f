"""
Engine configuration - every threshold the algorithms use lives here.

Invalid values raise ConfigurationError when the configuration is built,
before any data is processed.
"""
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from decimal import Decimal
from typing import Any, Dict, Optional

import yaml

from .exceptions import ConfigurationError
from .models import to_decimal

logger = logging.getLogger(__name__)


def _as_decimal(name: str, value: Any) -> Decimal:
    try:
        number = to_decimal(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be numeric", field=name, value=value)
    if not number.is_finite():
        raise ConfigurationError(f"{name} must be a finite number", field=name, value=value)
    return number


def _require_non_negative(name: str, value: Decimal):
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative", field=name, value=value)


def _require_percent(name: str, value: Decimal):
    if not Decimal(0) <= value <= Decimal(100):
        raise ConfigurationError(f"{name} must be between 0 and 100", field=name, value=value)


@dataclass(frozen=True)
class TrendConfig:
    """Efficiency trend classification"""
    trend_threshold_percent: Decimal = Decimal('2')

    def __post_init__(self):
        value = _as_decimal('trend_threshold_percent', self.trend_threshold_percent)
        _require_non_negative('trend_threshold_percent', value)
        object.__setattr__(self, 'trend_threshold_percent', value)


@dataclass(frozen=True)
class RightsizingConfig:
    """Utilization bounds and priority breakpoints for rightsizing"""
    low_utilization_percent: Decimal = Decimal('20')
    high_utilization_percent: Decimal = Decimal('80')
    high_priority_utilization_percent: Decimal = Decimal('10')
    high_priority_savings_percent: Decimal = Decimal('30')
    medium_priority_utilization_percent: Decimal = Decimal('15')
    medium_priority_savings_percent: Decimal = Decimal('15')
    upsize_high_priority_utilization_percent: Decimal = Decimal('95')
    upsize_medium_priority_utilization_percent: Decimal = Decimal('90')
    max_recommendations: Optional[int] = 20

    def __post_init__(self):
        for f in fields(self):
            if f.name == 'max_recommendations':
                continue
            value = _as_decimal(f.name, getattr(self, f.name))
            _require_percent(f.name, value)
            object.__setattr__(self, f.name, value)

        if self.low_utilization_percent >= self.high_utilization_percent:
            raise ConfigurationError(
                "low_utilization_percent must be below high_utilization_percent",
                field='low_utilization_percent', value=self.low_utilization_percent)
        if self.high_priority_utilization_percent > self.medium_priority_utilization_percent:
            raise ConfigurationError(
                "high priority utilization breakpoint must not exceed the medium one",
                field='high_priority_utilization_percent',
                value=self.high_priority_utilization_percent)
        if self.medium_priority_utilization_percent > self.low_utilization_percent:
            raise ConfigurationError(
                "medium priority utilization breakpoint must not exceed low_utilization_percent",
                field='medium_priority_utilization_percent',
                value=self.medium_priority_utilization_percent)
        if self.upsize_medium_priority_utilization_percent > self.upsize_high_priority_utilization_percent:
            raise ConfigurationError(
                "upsize medium priority breakpoint must not exceed the high one",
                field='upsize_medium_priority_utilization_percent',
                value=self.upsize_medium_priority_utilization_percent)
        if self.max_recommendations is not None:
            limit = self.max_recommendations
            try:
                limit = int(limit) if not isinstance(limit, bool) else None
            except (TypeError, ValueError, OverflowError):
                limit = None
            if limit is None:
                raise ConfigurationError("max_recommendations must be an integer or null",
                                         field='max_recommendations', value=self.max_recommendations)
            if limit < 1:
                raise ConfigurationError("max_recommendations must be positive or null",
                                         field='max_recommendations', value=self.max_recommendations)
            object.__setattr__(self, 'max_recommendations', limit)


@dataclass(frozen=True)
class AnomalyConfig:
    """Rolling baseline and severity thresholds"""
    window_days: int = 30
    min_history_days: int = 30
    min_observations: int = 7
    medium_deviation: Decimal = Decimal('2')
    high_deviation: Decimal = Decimal('3')
    spread_floor_ratio: Decimal = Decimal('0.01')
    min_spread: Decimal = Decimal('0.01')
    contributor_change_percent: Decimal = Decimal('10')
    max_contributors: int = 5

    def __post_init__(self):
        for name in ('window_days', 'min_history_days', 'min_observations'):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ConfigurationError(f"{name} must be a positive integer", field=name, value=value)
        if self.min_observations < 2:
            raise ConfigurationError("min_observations must be at least 2 to measure spread",
                                     field='min_observations', value=self.min_observations)

        if not isinstance(self.max_contributors, int) or isinstance(self.max_contributors, bool) \
                or self.max_contributors < 0:
            raise ConfigurationError("max_contributors must be a non-negative integer",
                                     field='max_contributors', value=self.max_contributors)

        for name in ('medium_deviation', 'high_deviation', 'spread_floor_ratio', 'min_spread',
                     'contributor_change_percent'):
            value = _as_decimal(name, getattr(self, name))
            _require_non_negative(name, value)
            object.__setattr__(self, name, value)

        if self.medium_deviation == 0:
            raise ConfigurationError("medium_deviation must be positive",
                                     field='medium_deviation', value=self.medium_deviation)
        if self.medium_deviation > self.high_deviation:
            raise ConfigurationError("medium_deviation must not exceed high_deviation",
                                     field='medium_deviation', value=self.medium_deviation)
        if self.min_spread == 0:
            raise ConfigurationError("min_spread must be positive",
                                     field='min_spread', value=self.min_spread)


@dataclass(frozen=True)
class AnalyticsConfig:
    """Complete engine configuration"""
    trend: TrendConfig = field(default_factory=TrendConfig)
    rightsizing: RightsizingConfig = field(default_factory=RightsizingConfig)
    anomalies: AnomalyConfig = field(default_factory=AnomalyConfig)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'AnalyticsConfig':
        """Build a configuration from a nested dict, unknown keys are rejected"""
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigurationError("configuration root must be a mapping")

        sections = {'trend': TrendConfig, 'rightsizing': RightsizingConfig, 'anomalies': AnomalyConfig}
        unknown = set(data) - set(sections)
        if unknown:
            raise ConfigurationError(f"Unknown configuration sections: {', '.join(sorted(unknown))}")

        built = {}
        for name, section_cls in sections.items():
            section = data.get(name) or {}
            if not isinstance(section, dict):
                raise ConfigurationError(f"Section '{name}' must be a mapping", field=name)
            allowed = {f.name for f in fields(section_cls)}
            unknown_keys = set(section) - allowed
            if unknown_keys:
                raise ConfigurationError(
                    f"Unknown keys in '{name}': {', '.join(sorted(unknown_keys))}", field=name)
            built[name] = section_cls(**section)
        return cls(**built)

    def to_dict(self) -> Dict[str, Any]:
        def plain(value):
            return str(value) if isinstance(value, Decimal) else value

        return {
            name: {key: plain(value) for key, value in asdict(getattr(self, name)).items()}
            for name in ('trend', 'rightsizing', 'anomalies')
        }


def get_default_config() -> Dict[str, Any]:
    """Get default configuration"""
    return AnalyticsConfig().to_dict()


def load_config(config_path: Optional[str] = None) -> AnalyticsConfig:
    """Load configuration from a YAML file, defaults when no path is given"""
    if not config_path:
        return AnalyticsConfig()

    if not os.path.exists(config_path):
        raise ConfigurationError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}")

    config = AnalyticsConfig.from_dict(data)
    logger.info(f"Configuration loaded from {config_path}")
    return config


def save_config(config: AnalyticsConfig, config_path: str = 'config/config.yaml'):
    """Save configuration to YAML file"""
    directory = os.path.dirname(config_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(config_path, 'w') as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False, indent=2)
    logger.info(f"Configuration saved to {config_path}")
