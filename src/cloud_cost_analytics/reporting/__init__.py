"""Reporting module for tables, CSV, JSON and Excel exports"""

from .report_builder import (
    anomaly_frame,
    diagnostics_frame,
    efficiency_frame,
    export_csv,
    export_excel,
    render_table,
    rightsizing_frame,
    to_json
)

__all__ = [
    'anomaly_frame',
    'diagnostics_frame',
    'efficiency_frame',
    'export_csv',
    'export_excel',
    'render_table',
    'rightsizing_frame',
    'to_json'
]
