"""Exception taxonomy for the cost analytics engine"""

from typing import Any, Dict, Optional


class CostAnalyticsError(Exception):
    """Base exception for the cost analytics engine"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON serialization"""
        return {
            'error': self.__class__.__name__,
            'message': self.message,
            **self.details
        }


class ConfigurationError(CostAnalyticsError):
    """Raised when threshold or window configuration is invalid"""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        details = {}
        if field:
            details['field'] = field
        if value is not None:
            details['value'] = str(value)
        super().__init__(message, details)


class InputDataError(CostAnalyticsError):
    """Raised for a malformed or inconsistent input record or bucket"""

    def __init__(self, message: str, subject: Optional[str] = None, record: Any = None):
        details = {}
        if subject:
            details['subject'] = subject
        if record is not None:
            details['record'] = repr(record)
        super().__init__(message, details)
        self.subject = subject
        self.record = record


class OutOfOrderObservationError(InputDataError):
    """Raised when an observation predates the last update of its baseline window"""


class InsufficientHistoryError(CostAnalyticsError):
    """Raised when a baseline has not observed enough history to be trusted"""

    def __init__(self, message: str, subject: Optional[str] = None,
                 observed_days: int = 0, required_days: int = 0):
        super().__init__(message, {
            'subject': subject,
            'observed_days': observed_days,
            'required_days': required_days
        })
        self.subject = subject
        self.observed_days = observed_days
        self.required_days = required_days


class ComputationInconsistency(CostAnalyticsError):
    """Raised when a computed value violates an engine invariant"""

    def __init__(self, message: str, subject: Optional[str] = None, **values: Any):
        details = {'subject': subject}
        details.update({key: str(value) for key, value in values.items()})
        super().__init__(message, details)
        self.subject = subject
