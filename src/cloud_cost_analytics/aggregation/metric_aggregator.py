"""
Metric Aggregator - groups raw cost and usage records into per-period buckets
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, NamedTuple, Optional, Set, Tuple

from ..diagnostics import Diagnostics
from ..exceptions import InputDataError
from ..models import (
    CostRecord,
    Period,
    ServiceType,
    UsageRecord,
    UsageUnit,
    classify_service,
    decimal_to_json
)
from ..utils.logging_config import log_execution_time

logger = logging.getLogger(__name__)


class GroupBy(Enum):
    """Grouping key for aggregation"""
    SERVICE = "service"
    RESOURCE = "resource"
    ACCOUNT = "account"


@dataclass(frozen=True)
class AggregatedBucket:
    """Records sharing a grouping key, period and usage unit"""
    group_by: GroupBy
    key: str
    period: Period
    provider_id: str
    account_id: str
    cost: Decimal
    usage: Optional[Decimal]  # None means no usage data, never zero
    unit: Optional[UsageUnit]
    service_type: ServiceType
    service_name: Optional[str] = None
    record_count: int = 0

    @property
    def has_usage(self) -> bool:
        return self.usage is not None

    @property
    def series_key(self) -> Tuple[str, str, str, str]:
        """Identity of the bucket across periods"""
        return (self.key, self.provider_id, self.account_id, self.unit.value if self.unit else '')

    @property
    def sort_key(self):
        return (self.key, self.period, self.provider_id, self.account_id,
                self.unit.value if self.unit else '')

    def to_dict(self) -> Dict[str, object]:
        return {
            'group_by': self.group_by.value,
            'key': self.key,
            'service_name': self.service_name,
            'service_type': self.service_type.value,
            'period': str(self.period),
            'provider_id': self.provider_id,
            'account_id': self.account_id,
            'cost': decimal_to_json(self.cost),
            'usage': decimal_to_json(self.usage),
            'unit': self.unit.value if self.unit else None,
            'record_count': self.record_count
        }


@dataclass
class AggregationResult:
    """Buckets plus the diagnostics for everything that was excluded"""
    buckets: List[AggregatedBucket]
    diagnostics: Diagnostics

    def to_dict(self) -> Dict[str, object]:
        return {
            'buckets': [b.to_dict() for b in self.buckets],
            'diagnostics': self.diagnostics.to_dict()
        }


class _JoinKey(NamedTuple):
    provider_id: str
    account_id: str
    service_name: str
    resource_id: str  # '' when the record is not resource-scoped
    period: Period


@dataclass
class _Accumulator:
    amount: Decimal = Decimal(0)
    count: int = 0
    service_types: Set[ServiceType] = field(default_factory=set)

    def add(self, amount: Decimal, service_type: Optional[ServiceType] = None):
        self.amount += amount
        self.count += 1
        if service_type is not None:
            self.service_types.add(service_type)


@dataclass
class _Line:
    """Cost joined with its usage at record granularity"""
    join_key: _JoinKey
    unit: Optional[UsageUnit]
    cost: _Accumulator
    usage: Optional[Decimal]


class MetricAggregator:
    """Groups cost and usage records by service, resource or account and period"""

    def __init__(self):
        self._operation = 'aggregate'

    @log_execution_time
    def aggregate(self,
                  cost_records: Iterable[CostRecord],
                  usage_records: Iterable[UsageRecord],
                  group_by: GroupBy = GroupBy.SERVICE,
                  period: Optional[Period] = None) -> AggregationResult:
        """
        Aggregate cost and usage records into buckets

        Args:
            cost_records: Billed cost lines
            usage_records: Usage quantities joined to the cost lines
            group_by: Grouping key (service, resource or account)
            period: Restrict aggregation to one period (None = all periods)

        Returns:
            AggregationResult with buckets sorted by key, then period
        """
        group_by = GroupBy(group_by)
        diagnostics = Diagnostics(self._operation)

        cost_lines: Dict[_JoinKey, Dict[Optional[UsageUnit], _Accumulator]] = defaultdict(dict)
        usage_lines: Dict[_JoinKey, Dict[UsageUnit, _Accumulator]] = defaultdict(dict)

        for record in cost_records:
            if period is not None and record.period != period:
                continue
            diagnostics.processed += 1
            try:
                self._validate_cost(record, group_by)
            except InputDataError as e:
                diagnostics.record(e)
                continue
            accumulators = cost_lines[self._join_key(record)]
            accumulators.setdefault(record.usage_unit, _Accumulator()).add(record.cost, record.service_type)

        for record in usage_records:
            if period is not None and record.period != period:
                continue
            diagnostics.processed += 1
            try:
                self._validate_usage(record)
            except InputDataError as e:
                diagnostics.record(e)
                continue
            accumulators = usage_lines[self._join_key(record)]
            accumulators.setdefault(record.unit, _Accumulator()).add(record.quantity)

        lines = self._join(cost_lines, usage_lines, diagnostics)
        buckets = self._build_buckets(lines, group_by)

        logger.info(f"Aggregated {diagnostics.processed} records into {len(buckets)} "
                    f"{group_by.value} buckets ({diagnostics.excluded} excluded)")
        return AggregationResult(buckets=buckets, diagnostics=diagnostics)

    def _validate_cost(self, record: CostRecord, group_by: GroupBy):
        if not record.service_name:
            raise InputDataError("Cost record has no service name", record=record)
        if not record.cost.is_finite():
            raise InputDataError(f"Cost record has non-finite cost {record.cost}",
                                 subject=record.service_name, record=record)
        if group_by == GroupBy.RESOURCE and not record.resource_id:
            raise InputDataError("Cost record has no resource id to group by",
                                 subject=record.service_name, record=record)

    def _validate_usage(self, record: UsageRecord):
        if not record.service_name:
            raise InputDataError("Usage record has no service name", record=record)
        if not record.quantity.is_finite() or record.quantity < 0:
            raise InputDataError(f"Usage record has invalid quantity {record.quantity}",
                                 subject=record.service_name, record=record)

    @staticmethod
    def _join_key(record) -> _JoinKey:
        return _JoinKey(record.provider_id, record.account_id, record.service_name,
                        record.resource_id or '', record.period)

    def _join(self,
              cost_lines: Dict[_JoinKey, Dict[Optional[UsageUnit], _Accumulator]],
              usage_lines: Dict[_JoinKey, Dict[UsageUnit, _Accumulator]],
              diagnostics: Diagnostics) -> List[_Line]:
        """Attach usage to cost at record granularity, one line per unit"""
        lines: List[_Line] = []

        for join_key in sorted(cost_lines):
            by_hint = cost_lines[join_key]
            available = dict(usage_lines.pop(join_key, {}))
            subject = self._subject(join_key)

            hinted = sorted((u for u in by_hint if u is not None), key=lambda u: u.value)
            for unit in hinted:
                usage = available.pop(unit, None)
                if usage is None:
                    lines.append(_Line(join_key, None, by_hint[unit], None))
                else:
                    lines.append(_Line(join_key, unit, by_hint[unit], usage.amount))

            if None in by_hint:
                if not available:
                    lines.append(_Line(join_key, None, by_hint[None], None))
                elif len(available) == 1:
                    unit, usage = available.popitem()
                    lines.append(_Line(join_key, unit, by_hint[None], usage.amount))
                else:
                    units = ', '.join(sorted(u.value for u in available))
                    diagnostics.record(InputDataError(
                        f"Cost for {subject} in {join_key.period} has no unit but usage is "
                        f"reported in several units ({units})",
                        subject=subject))
                    available.clear()

            for unit in sorted(available, key=lambda u: u.value):
                diagnostics.record(InputDataError(
                    f"Usage in {unit.value} for {subject} in {join_key.period} "
                    f"has no matching cost record",
                    subject=subject))

        for join_key in sorted(usage_lines):
            subject = self._subject(join_key)
            for unit in sorted(usage_lines[join_key], key=lambda u: u.value):
                diagnostics.record(InputDataError(
                    f"Usage in {unit.value} for {subject} in {join_key.period} "
                    f"has no matching cost record",
                    subject=subject))

        return lines

    @staticmethod
    def _subject(join_key: _JoinKey) -> str:
        if join_key.resource_id:
            return f"{join_key.service_name}:{join_key.resource_id}"
        return join_key.service_name

    def _build_buckets(self, lines: List[_Line], group_by: GroupBy) -> List[AggregatedBucket]:
        grouped: Dict[tuple, List[_Line]] = defaultdict(list)
        for line in lines:
            jk = line.join_key
            if group_by == GroupBy.SERVICE:
                value = jk.service_name
            elif group_by == GroupBy.RESOURCE:
                value = jk.resource_id
            else:
                value = jk.account_id
            grouped[(value, jk.period, jk.provider_id, jk.account_id, line.unit)].append(line)

        buckets = []
        for (value, period, provider_id, account_id, unit), members in grouped.items():
            cost = sum((m.cost.amount for m in members), Decimal(0))
            usage = None
            if unit is not None:
                usage = sum((m.usage for m in members), Decimal(0))

            service_names = {m.join_key.service_name for m in members}
            service_types = set()
            for m in members:
                service_types |= m.cost.service_types

            buckets.append(AggregatedBucket(
                group_by=group_by,
                key=value,
                period=period,
                provider_id=provider_id,
                account_id=account_id,
                cost=cost,
                usage=usage,
                unit=unit,
                service_type=self._service_type(service_types, unit),
                service_name=service_names.pop() if (group_by != GroupBy.ACCOUNT
                                                     and len(service_names) == 1) else None,
                record_count=sum(m.cost.count for m in members)
            ))

        buckets.sort(key=lambda b: b.sort_key)
        return buckets

    @staticmethod
    def _service_type(declared: Set[ServiceType], unit: Optional[UsageUnit]) -> ServiceType:
        if len(declared) == 1:
            return next(iter(declared))
        if unit is not None:
            return classify_service(None, unit)
        return ServiceType.OTHER
