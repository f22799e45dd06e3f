"""
Diagnostics summary returned alongside every batch result.

Each excluded record or bucket is accounted for here so callers can report
exact coverage instead of silently losing data.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .exceptions import (
    CostAnalyticsError,
    ComputationInconsistency,
    InputDataError,
    InsufficientHistoryError
)
from .utils.logging_config import log_diagnostic


class DiagnosticKind(Enum):
    """Why a record was excluded or flagged"""
    INPUT_DATA_ERROR = "input_data_error"
    INSUFFICIENT_HISTORY = "insufficient_history"
    INSUFFICIENT_DATA = "insufficient_data"
    COMPUTATION_INCONSISTENCY = "computation_inconsistency"


@dataclass
class DiagnosticEntry:
    """One excluded record, bucket or resource"""
    kind: DiagnosticKind
    subject: Optional[str]
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'subject': self.subject,
            'message': self.message,
            'details': self.details
        }


def kind_for(error: CostAnalyticsError) -> DiagnosticKind:
    if isinstance(error, ComputationInconsistency):
        return DiagnosticKind.COMPUTATION_INCONSISTENCY
    if isinstance(error, InsufficientHistoryError):
        return DiagnosticKind.INSUFFICIENT_HISTORY
    if isinstance(error, InputDataError):
        return DiagnosticKind.INPUT_DATA_ERROR
    raise TypeError(f"{type(error).__name__} is not a per-record condition")


@dataclass
class Diagnostics:
    """Coverage accounting for one engine invocation"""
    operation: str
    processed: int = 0
    entries: List[DiagnosticEntry] = field(default_factory=list)

    @property
    def excluded(self) -> int:
        return sum(1 for e in self.entries if e.kind != DiagnosticKind.INSUFFICIENT_HISTORY)

    @property
    def coverage(self) -> float:
        """Share of processed items that made it into the results"""
        if self.processed == 0:
            return 1.0
        return max(0.0, (self.processed - self.excluded) / self.processed)

    @property
    def has_issues(self) -> bool:
        return bool(self.entries)

    def record(self, error: CostAnalyticsError) -> DiagnosticEntry:
        """Account for a per-record error and forward it to the diagnostics log"""
        entry = DiagnosticEntry(
            kind=kind_for(error),
            subject=getattr(error, 'subject', None),
            message=error.message,
            details=error.details
        )
        self.entries.append(entry)
        log_diagnostic(self.operation, entry.kind.value, entry.subject, entry.message,
                       inconsistency=entry.kind == DiagnosticKind.COMPUTATION_INCONSISTENCY)
        return entry

    def insufficient_data(self, subject: str, message: str) -> DiagnosticEntry:
        entry = DiagnosticEntry(DiagnosticKind.INSUFFICIENT_DATA, subject, message)
        self.entries.append(entry)
        log_diagnostic(self.operation, entry.kind.value, subject, message)
        return entry

    def by_kind(self, kind: DiagnosticKind) -> List[DiagnosticEntry]:
        return [e for e in self.entries if e.kind == kind]

    def merge(self, other: 'Diagnostics') -> 'Diagnostics':
        """Combine two summaries into a new one"""
        return Diagnostics(
            operation=self.operation,
            processed=self.processed + other.processed,
            entries=list(self.entries) + list(other.entries)
        )

    def to_dict(self) -> Dict[str, Any]:
        counts: Dict[str, int] = {}
        for entry in self.entries:
            counts[entry.kind.value] = counts.get(entry.kind.value, 0) + 1
        return {
            'operation': self.operation,
            'processed': self.processed,
            'excluded': self.excluded,
            'coverage': round(self.coverage, 4),
            'counts': counts,
            'entries': [e.to_dict() for e in self.entries]
        }
