"""Logging helpers shared across the engine"""

from .logging_config import (
    StructuredFormatter,
    setup_logging,
    get_logger,
    log_execution_time,
    log_diagnostic
)

__all__ = [
    'StructuredFormatter',
    'setup_logging',
    'get_logger',
    'log_execution_time',
    'log_diagnostic'
]
