"""
Rightsizing Analyzer - matches provisioned size to observed utilization

Resources whose peak utilization sits below the low threshold are moved one tier
down their instance family, resources above the high threshold one tier up.
Tier ordering and prices come from a pricing lookup supplied by the caller.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence

import yaml

from ..config import RightsizingConfig
from ..diagnostics import Diagnostics
from ..exceptions import ComputationInconsistency, ConfigurationError, CostAnalyticsError, InputDataError
from ..models import ResourceRecord, to_decimal, decimal_to_json
from ..utils.logging_config import log_execution_time

logger = logging.getLogger(__name__)

HUNDRED = Decimal(100)
HOURS_PER_MONTH = Decimal(730)

# Size hierarchy within an instance family, smallest first
INSTANCE_SIZES = ['nano', 'micro', 'small', 'medium', 'large', 'xlarge', '2xlarge',
                  '4xlarge', '8xlarge', '12xlarge', '16xlarge', '24xlarge']

# On-demand hourly prices used when no catalog is supplied
DEFAULT_HOURLY_RATES = {
    't2.micro': '0.0116',
    't2.small': '0.023',
    't2.medium': '0.0464',
    't2.large': '0.0928',
    't3.micro': '0.0104',
    't3.small': '0.0208',
    't3.medium': '0.0416',
    't3.large': '0.0832',
    'm5.large': '0.096',
    'm5.xlarge': '0.192',
    'm5.2xlarge': '0.384',
    'c5.large': '0.085',
    'c5.xlarge': '0.17',
    'r5.large': '0.126',
    'r5.xlarge': '0.252'
}


class RecommendationAction(Enum):
    DOWNSIZE = "downsize"
    UPSIZE = "upsize"


class Priority(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


PRIORITY_RANK = {Priority.HIGH: 3, Priority.MEDIUM: 2, Priority.LOW: 1}


@dataclass(frozen=True)
class InstanceTier:
    """One size of an instance family and its monthly price"""
    instance_type: str
    monthly_cost: Decimal

    def __post_init__(self):
        object.__setattr__(self, 'monthly_cost', to_decimal(self.monthly_cost))


PricingLookup = Callable[[str], Optional[Sequence[InstanceTier]]]


def _size_rank(instance_type: str) -> int:
    size = instance_type.split('.', 1)[-1]
    return INSTANCE_SIZES.index(size) if size in INSTANCE_SIZES else len(INSTANCE_SIZES)


class StaticPricingCatalog:
    """
    In-memory pricing lookup

    Instance types are grouped into families by the prefix before the dot and
    ordered by size, then by price. Calling the catalog with an instance type
    returns its family's tiers, smallest first, or an empty list when unknown.
    """

    def __init__(self, tiers: Iterable[InstanceTier]):
        self._families: Dict[str, List[InstanceTier]] = {}
        for tier in tiers:
            family = tier.instance_type.split('.', 1)[0]
            self._families.setdefault(family, []).append(tier)
        for family_tiers in self._families.values():
            family_tiers.sort(key=lambda t: (_size_rank(t.instance_type), t.monthly_cost, t.instance_type))

    @classmethod
    def from_hourly_rates(cls, rates: Dict[str, object]) -> 'StaticPricingCatalog':
        """Build a catalog from hourly on-demand rates"""
        return cls(InstanceTier(name, to_decimal(rate) * HOURS_PER_MONTH) for name, rate in rates.items())

    @classmethod
    def default(cls) -> 'StaticPricingCatalog':
        return cls.from_hourly_rates(DEFAULT_HOURLY_RATES)

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> 'StaticPricingCatalog':
        """
        Build a catalog from ``{'monthly': {...}}`` and/or ``{'hourly': {...}}`` mappings

        Raises:
            ConfigurationError: when the mapping is malformed
        """
        if not isinstance(data, dict) or not set(data) & {'monthly', 'hourly'}:
            raise ConfigurationError("Pricing catalog needs a 'monthly' or 'hourly' mapping")

        tiers = []
        try:
            for name, cost in (data.get('monthly') or {}).items():
                tiers.append(InstanceTier(str(name), to_decimal(cost)))
            for name, rate in (data.get('hourly') or {}).items():
                tiers.append(InstanceTier(str(name), to_decimal(rate) * HOURS_PER_MONTH))
        except (AttributeError, ValueError) as e:
            raise ConfigurationError(f"Invalid pricing catalog: {e}")

        for tier in tiers:
            if not tier.monthly_cost.is_finite() or tier.monthly_cost < 0:
                raise ConfigurationError(f"Invalid price for {tier.instance_type}",
                                         field=tier.instance_type, value=tier.monthly_cost)
        return cls(tiers)

    @classmethod
    def from_yaml(cls, path: str) -> 'StaticPricingCatalog':
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read pricing catalog {path}: {e}")
        return cls.from_dict(data)

    def __call__(self, instance_type: str) -> List[InstanceTier]:
        family = instance_type.split('.', 1)[0]
        return list(self._families.get(family, []))

    def __len__(self) -> int:
        return sum(len(tiers) for tiers in self._families.values())


@dataclass(frozen=True)
class RightsizingRecommendation:
    """Represents a rightsizing recommendation"""
    resource_id: str
    resource_name: str
    service_name: str
    region: str
    action: RecommendationAction
    current_instance_type: str
    recommended_instance_type: str
    current_cost: Decimal
    recommended_cost: Decimal
    utilization: float  # peak percent
    potential_savings: Decimal
    savings_percent: Decimal
    priority: Priority
    reason: str
    cost_increase: Decimal = Decimal(0)

    @property
    def annual_savings(self) -> Decimal:
        return self.potential_savings * 12

    def to_dict(self) -> Dict[str, object]:
        return {
            'resource_id': self.resource_id,
            'resource_name': self.resource_name,
            'service_name': self.service_name,
            'region': self.region,
            'action': self.action.value,
            'current_instance_type': self.current_instance_type,
            'recommended_instance_type': self.recommended_instance_type,
            'current_cost': decimal_to_json(self.current_cost),
            'recommended_cost': decimal_to_json(self.recommended_cost),
            'utilization': self.utilization,
            'potential_savings': decimal_to_json(self.potential_savings),
            'savings_percent': decimal_to_json(self.savings_percent),
            'cost_increase': decimal_to_json(self.cost_increase),
            'priority': self.priority.value,
            'reason': self.reason
        }


@dataclass
class RightsizingResult:
    recommendations: List[RightsizingRecommendation]
    insufficient_data: List[str]
    total_potential_savings: Decimal
    recommendation_count: int
    diagnostics: Diagnostics
    truncated: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            'recommendations': [r.to_dict() for r in self.recommendations],
            'insufficient_data': list(self.insufficient_data),
            'total_potential_savings': decimal_to_json(self.total_potential_savings),
            'recommendation_count': self.recommendation_count,
            'truncated': self.truncated,
            'diagnostics': self.diagnostics.to_dict()
        }


class RightsizingAnalyzer:
    """Produces downsize/upsize recommendations from utilization and pricing"""

    def __init__(self,
                 config: Optional[RightsizingConfig] = None,
                 pricing_lookup: Optional[PricingLookup] = None):
        """
        Initialize Rightsizing Analyzer

        Args:
            config: Utilization thresholds and priority breakpoints
            pricing_lookup: Callable mapping an instance type to its ordered tiers
        """
        self.config = config or RightsizingConfig()
        self.pricing_lookup = pricing_lookup

    @log_execution_time
    def analyze(self,
                resource_records: Iterable[ResourceRecord],
                pricing_lookup: Optional[PricingLookup] = None) -> RightsizingResult:
        """
        Analyze resources for rightsizing opportunities

        Args:
            resource_records: Provisioned resources with utilization samples
            pricing_lookup: Overrides the lookup given at construction

        Returns:
            RightsizingResult ordered by priority, savings, then resource id
        """
        lookup = pricing_lookup or self.pricing_lookup
        if lookup is None:
            raise ConfigurationError("A pricing lookup is required for rightsizing")

        diagnostics = Diagnostics('analyze_rightsizing')
        recommendations: List[RightsizingRecommendation] = []
        insufficient: List[str] = []

        for resource in resource_records:
            diagnostics.processed += 1
            peak = resource.utilization.peak if resource.utilization else None
            if peak is None:
                insufficient.append(resource.resource_id)
                diagnostics.insufficient_data(resource.resource_id,
                                              f"No utilization data for {resource.resource_id}")
                continue
            try:
                recommendation = self.evaluate(resource, lookup)
            except CostAnalyticsError as e:
                diagnostics.record(e)
                continue
            if recommendation is not None:
                recommendations.append(recommendation)

        recommendations.sort(key=lambda r: (-PRIORITY_RANK[r.priority], -r.potential_savings, r.resource_id))
        total_savings = sum((r.potential_savings for r in recommendations), Decimal(0))
        count = len(recommendations)

        limit = self.config.max_recommendations
        truncated = limit is not None and count > limit
        if truncated:
            recommendations = recommendations[:limit]

        logger.info(f"Found {count} rightsizing recommendations with ${total_savings:.2f}/month "
                    f"potential savings ({len(insufficient)} resources without utilization data)")
        return RightsizingResult(
            recommendations=recommendations,
            insufficient_data=sorted(insufficient),
            total_potential_savings=total_savings,
            recommendation_count=count,
            diagnostics=diagnostics,
            truncated=truncated
        )

    def evaluate(self, resource: ResourceRecord, lookup: PricingLookup) -> Optional[RightsizingRecommendation]:
        """Recommendation for one resource, None when it is sized correctly"""
        if not resource.monthly_cost.is_finite():
            raise InputDataError(f"Resource {resource.resource_id} has non-finite monthly cost "
                                 f"{resource.monthly_cost}",
                                 subject=resource.resource_id, record=resource)
        peak = self._peak_percent(resource)
        if peak < self.config.low_utilization_percent:
            action = RecommendationAction.DOWNSIZE
        elif peak > self.config.high_utilization_percent:
            action = RecommendationAction.UPSIZE
        else:
            return None

        tiers = list(lookup(resource.instance_type) or [])
        names = [t.instance_type for t in tiers]
        if resource.instance_type not in names:
            raise InputDataError(f"Instance type {resource.instance_type} is not in the pricing catalog",
                                 subject=resource.resource_id, record=resource)

        index = names.index(resource.instance_type)
        target_index = index - 1 if action == RecommendationAction.DOWNSIZE else index + 1
        if not 0 <= target_index < len(tiers):
            logger.debug(f"No {action.value} tier for {resource.resource_id} ({resource.instance_type})")
            return None

        target = tiers[target_index]
        if not target.monthly_cost.is_finite():
            raise InputDataError(f"Pricing for {target.instance_type} is not a finite amount",
                                 subject=resource.resource_id, record=resource)
        current_cost = resource.monthly_cost
        if action == RecommendationAction.DOWNSIZE:
            return self._downsize(resource, peak, target, current_cost)
        return self._upsize(resource, peak, target, current_cost)

    def _peak_percent(self, resource: ResourceRecord) -> Decimal:
        utilization = resource.utilization
        for name, value in utilization.to_dict().items():
            if value is not None and not 0 <= value <= 100:
                raise InputDataError(f"{name} of {value} is outside 0-100 for {resource.resource_id}",
                                     subject=resource.resource_id, record=resource)
        return to_decimal(utilization.peak)

    def _downsize(self, resource: ResourceRecord, peak: Decimal,
                  target: InstanceTier, current_cost: Decimal) -> RightsizingRecommendation:
        savings = current_cost - target.monthly_cost
        if current_cost <= 0 or savings < 0:
            raise ComputationInconsistency(
                f"Downsizing {resource.resource_id} to {target.instance_type} does not save money",
                subject=resource.resource_id, current_cost=current_cost,
                recommended_cost=target.monthly_cost)

        savings_percent = savings / current_cost * HUNDRED
        cfg = self.config
        if peak < cfg.high_priority_utilization_percent and savings_percent >= cfg.high_priority_savings_percent:
            priority = Priority.HIGH
        elif peak < cfg.medium_priority_utilization_percent and savings_percent >= cfg.medium_priority_savings_percent:
            priority = Priority.MEDIUM
        else:
            priority = Priority.LOW

        return RightsizingRecommendation(
            resource_id=resource.resource_id,
            resource_name=resource.resource_name,
            service_name=resource.service_name,
            region=resource.region,
            action=RecommendationAction.DOWNSIZE,
            current_instance_type=resource.instance_type,
            recommended_instance_type=target.instance_type,
            current_cost=current_cost,
            recommended_cost=target.monthly_cost,
            utilization=float(peak),
            potential_savings=savings,
            savings_percent=savings_percent,
            priority=priority,
            reason=(f"Peak utilization {peak:.1f}% is below {cfg.low_utilization_percent}%; "
                    f"{target.instance_type} saves {savings_percent:.1f}%")
        )

    def _upsize(self, resource: ResourceRecord, peak: Decimal,
                target: InstanceTier, current_cost: Decimal) -> RightsizingRecommendation:
        cfg = self.config
        if peak >= cfg.upsize_high_priority_utilization_percent:
            priority = Priority.HIGH
        elif peak >= cfg.upsize_medium_priority_utilization_percent:
            priority = Priority.MEDIUM
        else:
            priority = Priority.LOW

        return RightsizingRecommendation(
            resource_id=resource.resource_id,
            resource_name=resource.resource_name,
            service_name=resource.service_name,
            region=resource.region,
            action=RecommendationAction.UPSIZE,
            current_instance_type=resource.instance_type,
            recommended_instance_type=target.instance_type,
            current_cost=current_cost,
            recommended_cost=target.monthly_cost,
            utilization=float(peak),
            potential_savings=Decimal(0),
            savings_percent=Decimal(0),
            priority=priority,
            reason=(f"Peak utilization {peak:.1f}% is above {cfg.high_utilization_percent}%; "
                    f"move to {target.instance_type}"),
            cost_increase=max(target.monthly_cost - current_cost, Decimal(0))
        )
