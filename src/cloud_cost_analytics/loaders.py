"""
CSV loaders that turn exported billing data into engine records.

Every column is read as text and converted explicitly, so monetary values go
straight from their CSV digits to ``Decimal``. Rows that cannot be converted are
excluded and accounted for in the returned diagnostics.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, Generic, List, Optional, Sequence, TypeVar

import pandas as pd
from dateutil import parser as date_parser

from .diagnostics import Diagnostics
from .exceptions import InputDataError
from .models import (
    CostObservation,
    CostRecord,
    Period,
    ResourceRecord,
    ServiceType,
    UsageRecord,
    UsageUnit,
    Utilization
)

logger = logging.getLogger(__name__)

T = TypeVar('T')

COST_COLUMNS = ['service_name', 'period', 'cost', 'provider_id', 'account_id']
USAGE_COLUMNS = ['service_name', 'period', 'quantity', 'unit', 'provider_id', 'account_id']
RESOURCE_COLUMNS = ['resource_id', 'instance_type', 'monthly_cost']
OBSERVATION_COLUMNS = ['subject', 'provider_id', 'account_id', 'date', 'cost']


@dataclass
class LoadedRecords(Generic[T]):
    records: List[T]
    diagnostics: Diagnostics


def read_frame(path: str, required: Sequence[str]) -> pd.DataFrame:
    """Read a CSV file as text columns and check the required columns exist"""
    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise InputDataError(f"Cannot read {path}: {e}", subject=path)

    df.columns = [str(c).strip().lower() for c in df.columns]
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise InputDataError(f"{path} is missing columns: {', '.join(missing)}", subject=path)
    return df


def _optional(row: Dict[str, str], column: str) -> Optional[str]:
    value = (row.get(column) or '').strip()
    return value or None


def _optional_percent(row: Dict[str, str], column: str) -> Optional[float]:
    value = _optional(row, column)
    return float(value) if value is not None else None


def _build_records(df: pd.DataFrame, operation: str,
                   builder: Callable[[Dict[str, str]], T]) -> LoadedRecords:
    diagnostics = Diagnostics(operation)
    records = []
    for index, row in enumerate(df.to_dict(orient='records')):
        diagnostics.processed += 1
        try:
            records.append(builder(row))
        except (KeyError, TypeError, ValueError) as e:
            # +2: header line and 1-based numbering
            diagnostics.record(InputDataError(f"Row {index + 2}: {e}", subject=row.get(df.columns[0]),
                                              record=row))
    logger.info(f"Loaded {len(records)} rows for {operation} ({diagnostics.excluded} rejected)")
    return LoadedRecords(records=records, diagnostics=diagnostics)


def _cost_record(row: Dict[str, str]) -> CostRecord:
    service_type = _optional(row, 'service_type')
    unit = _optional(row, 'usage_unit')
    return CostRecord(
        service_name=row['service_name'].strip(),
        period=Period.parse(row['period']),
        cost=row['cost'],
        provider_id=row['provider_id'].strip(),
        account_id=row['account_id'].strip(),
        service_type=ServiceType(service_type.lower()) if service_type else None,
        resource_id=_optional(row, 'resource_id'),
        usage_unit=UsageUnit.parse(unit) if unit else None
    )


def _usage_record(row: Dict[str, str]) -> UsageRecord:
    return UsageRecord(
        service_name=row['service_name'].strip(),
        period=Period.parse(row['period']),
        quantity=row['quantity'],
        unit=row['unit'],
        provider_id=row['provider_id'].strip(),
        account_id=row['account_id'].strip(),
        resource_id=_optional(row, 'resource_id')
    )


def _resource_record(row: Dict[str, str]) -> ResourceRecord:
    utilization = Utilization(
        cpu_percent=_optional_percent(row, 'cpu_percent'),
        memory_percent=_optional_percent(row, 'memory_percent'),
        network_percent=_optional_percent(row, 'network_percent')
    )
    return ResourceRecord(
        resource_id=row['resource_id'].strip(),
        resource_name=_optional(row, 'resource_name') or row['resource_id'].strip(),
        service_name=_optional(row, 'service_name') or 'unknown',
        instance_type=row['instance_type'].strip(),
        region=_optional(row, 'region') or '',
        monthly_cost=row['monthly_cost'],
        utilization=utilization if utilization.peak is not None else None,
        provider_id=_optional(row, 'provider_id'),
        account_id=_optional(row, 'account_id')
    )


def _observation(row: Dict[str, str]) -> CostObservation:
    day: date = date_parser.parse(row['date']).date()
    return CostObservation(
        subject=row['subject'].strip(),
        provider_id=row['provider_id'].strip(),
        account_id=row['account_id'].strip(),
        day=day,
        cost=row['cost']
    )


def load_cost_records(path: str) -> LoadedRecords:
    return _build_records(read_frame(path, COST_COLUMNS), 'load_costs', _cost_record)


def load_usage_records(path: str) -> LoadedRecords:
    return _build_records(read_frame(path, USAGE_COLUMNS), 'load_usage', _usage_record)


def load_resource_records(path: str) -> LoadedRecords:
    return _build_records(read_frame(path, RESOURCE_COLUMNS), 'load_resources', _resource_record)


def load_observations(path: str) -> LoadedRecords:
    """Daily cost observations; ``date`` accepts any format dateutil understands"""
    return _build_records(read_frame(path, OBSERVATION_COLUMNS), 'load_observations', _observation)
