"""
Core record types for the cost analytics engine.

Raw inputs (cost, usage and resource records) are immutable dataclasses.
Monetary amounts and usage quantities are carried as ``Decimal`` so that
aggregation over many small line items never accumulates binary rounding drift.
"""
import calendar
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from dateutil.relativedelta import relativedelta


def to_decimal(value: Any) -> Decimal:
    """Convert a number or numeric string to Decimal without float artifacts"""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a numeric value: {value!r}")
    if isinstance(value, float):
        return Decimal(repr(value))
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Not a numeric value: {value!r}") from e


def decimal_to_json(value: Optional[Decimal]) -> Optional[str]:
    """Render a Decimal for JSON output, keeping its exact digits"""
    return None if value is None else str(value)


class ServiceType(Enum):
    """Closed set of service categories"""
    STORAGE = "storage"
    COMPUTE = "compute"
    API = "api"
    TRANSACTIONAL = "transactional"
    OTHER = "other"


class UsageUnit(Enum):
    """Closed set of usage units that efficiency can be expressed in"""
    GB = "GB"
    HOUR = "hour"
    REQUEST = "request"
    TRANSACTION = "transaction"

    @classmethod
    def parse(cls, value: Any) -> 'UsageUnit':
        """Parse provider unit spellings such as 'GB-Mo', 'Hrs' or 'Requests'"""
        if isinstance(value, UsageUnit):
            return value
        text = str(value or '').strip().lower()
        if not text:
            raise ValueError("Usage unit is empty")
        if 'gb' in text or 'byte' in text:
            return cls.GB
        if 'hour' in text or text.startswith('hr'):
            return cls.HOUR
        if 'request' in text or 'call' in text:
            return cls.REQUEST
        if 'transaction' in text:
            return cls.TRANSACTION
        raise ValueError(f"Unknown usage unit: {value!r}")


# Unit is the strongest signal, service name keywords are the fallback
UNIT_SERVICE_TYPES = {
    UsageUnit.GB: ServiceType.STORAGE,
    UsageUnit.HOUR: ServiceType.COMPUTE,
    UsageUnit.REQUEST: ServiceType.API,
    UsageUnit.TRANSACTION: ServiceType.TRANSACTIONAL,
}

SERVICE_NAME_KEYWORDS = [
    (ServiceType.STORAGE, ('s3', 'storage', 'ebs', 'blob', 'glacier', 'disk', 'bucket')),
    (ServiceType.COMPUTE, ('ec2', 'compute', 'instance', 'vm', 'droplet', 'lambda', 'kubernetes')),
    (ServiceType.API, ('api', 'gateway', 'cloudfront', 'cdn')),
    (ServiceType.TRANSACTIONAL, ('transaction', 'dynamodb', 'queue', 'sqs', 'sns')),
]


def classify_service(service_name: Optional[str], unit: Optional[UsageUnit] = None) -> ServiceType:
    """
    Classify a service into a ServiceType.

    Args:
        service_name: Provider service name, e.g. 'Amazon S3'
        unit: Usage unit the service is billed in, when known

    Returns:
        The matching ServiceType, OTHER when nothing matches
    """
    if unit is not None:
        return UNIT_SERVICE_TYPES[unit]

    name = (service_name or '').lower()
    for service_type, keywords in SERVICE_NAME_KEYWORDS:
        if any(keyword in name for keyword in keywords):
            return service_type
    return ServiceType.OTHER


@dataclass(frozen=True, order=True)
class Period:
    """A billing month"""
    year: int
    month: int

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise ValueError(f"Invalid month: {self.month}")

    @classmethod
    def parse(cls, value: Any) -> 'Period':
        """Parse 'YYYY-MM' (or a date/'YYYY-MM-DD') into a Period"""
        if isinstance(value, Period):
            return value
        if isinstance(value, date):
            return cls(value.year, value.month)
        parts = str(value).strip().split('-')
        if len(parts) < 2:
            raise ValueError(f"Invalid period: {value!r}")
        return cls(int(parts[0]), int(parts[1]))

    @classmethod
    def of(cls, day: date) -> 'Period':
        return cls(day.year, day.month)

    @property
    def start_date(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def end_date(self) -> date:
        return date(self.year, self.month, self.days)

    @property
    def days(self) -> int:
        return calendar.monthrange(self.year, self.month)[1]

    def previous(self) -> 'Period':
        return Period.of(self.start_date - relativedelta(months=1))

    def next(self) -> 'Period':
        return Period.of(self.start_date + relativedelta(months=1))

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


@dataclass(frozen=True)
class CostRecord:
    """A single billed cost line, immutable once ingested"""
    service_name: str
    period: Period
    cost: Decimal
    provider_id: str
    account_id: str
    service_type: Optional[ServiceType] = None
    resource_id: Optional[str] = None
    usage_unit: Optional[UsageUnit] = None  # unit hint when the bill line names one

    def __post_init__(self):
        # frozen: normalise through object.__setattr__
        object.__setattr__(self, 'cost', to_decimal(self.cost))
        if self.service_type is None:
            object.__setattr__(self, 'service_type',
                               classify_service(self.service_name, self.usage_unit))


@dataclass(frozen=True)
class UsageRecord:
    """Usage quantity for a service in a period"""
    service_name: str
    period: Period
    quantity: Decimal
    unit: UsageUnit
    provider_id: str
    account_id: str
    resource_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'quantity', to_decimal(self.quantity))
        object.__setattr__(self, 'unit', UsageUnit.parse(self.unit))


@dataclass(frozen=True)
class Utilization:
    """Averaged utilization sample, each dimension in percent"""
    cpu_percent: Optional[float] = None
    memory_percent: Optional[float] = None
    network_percent: Optional[float] = None

    @property
    def peak(self) -> Optional[float]:
        """Highest utilization across the dimensions that were sampled"""
        values = [v for v in (self.cpu_percent, self.memory_percent, self.network_percent)
                  if v is not None]
        return max(values) if values else None

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {
            'cpu_percent': self.cpu_percent,
            'memory_percent': self.memory_percent,
            'network_percent': self.network_percent
        }


@dataclass(frozen=True)
class ResourceRecord:
    """A single provisioned unit and its utilization"""
    resource_id: str
    resource_name: str
    service_name: str
    instance_type: str
    region: str
    monthly_cost: Decimal
    utilization: Optional[Utilization] = None
    provider_id: Optional[str] = None
    account_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'monthly_cost', to_decimal(self.monthly_cost))


@dataclass(frozen=True)
class CostObservation:
    """Daily cost of one service or resource, fed to the anomaly detector"""
    subject: str  # service name or resource id
    provider_id: str
    account_id: str
    day: date
    cost: Decimal

    def __post_init__(self):
        object.__setattr__(self, 'cost', to_decimal(self.cost))

    @property
    def key(self) -> 'BaselineKey':
        return BaselineKey(self.subject, self.provider_id, self.account_id)


@dataclass(frozen=True, order=True)
class BaselineKey:
    """Identity of a baseline window, never shared across provider/account"""
    subject: str
    provider_id: str
    account_id: str

    def __str__(self) -> str:
        return f"{self.provider_id}/{self.account_id}/{self.subject}"


@dataclass(frozen=True)
class BaselineWindow:
    """
    Rolling cost baseline for one subject.

    ``observations`` holds the (day, cost) pairs inside the trailing window,
    sorted by day. Days without data are simply absent.
    """
    key: BaselineKey
    first_observed: date
    last_updated: date
    observations: Tuple[Tuple[date, Decimal], ...] = field(default_factory=tuple)
    rolling_average: Optional[Decimal] = None
    rolling_std_dev: Optional[Decimal] = None
    window_length_days: int = 30

    @property
    def observation_count(self) -> int:
        return len(self.observations)

    def cost_on(self, day: date) -> Optional[Decimal]:
        for observed_day, cost in self.observations:
            if observed_day == day:
                return cost
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'subject': self.key.subject,
            'provider_id': self.key.provider_id,
            'account_id': self.key.account_id,
            'first_observed': self.first_observed.isoformat(),
            'last_updated': self.last_updated.isoformat(),
            'rolling_average': decimal_to_json(self.rolling_average),
            'rolling_std_dev': decimal_to_json(self.rolling_std_dev),
            'window_length_days': self.window_length_days,
            'observations': [[day.isoformat(), str(cost)] for day, cost in self.observations]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BaselineWindow':
        average = data.get('rolling_average')
        std_dev = data.get('rolling_std_dev')
        return cls(
            key=BaselineKey(data['subject'], data['provider_id'], data['account_id']),
            first_observed=date.fromisoformat(data['first_observed']),
            last_updated=date.fromisoformat(data['last_updated']),
            observations=tuple(
                (date.fromisoformat(day), to_decimal(cost))
                for day, cost in data.get('observations', [])
            ),
            rolling_average=to_decimal(average) if average is not None else None,
            rolling_std_dev=to_decimal(std_dev) if std_dev is not None else None,
            window_length_days=int(data.get('window_length_days', 30))
        )
