"""
Report builder - tabular views of engine results

DataFrames are built from each result's ``to_dict`` output so the exact Decimal
digits survive into CSV and Excel exports. Numeric columns stay as text.
"""
import json
import logging
from typing import Any, Dict, List, Optional

import pandas as pd
from tabulate import tabulate

from ..analysis.anomaly_detector import AnomalyReport
from ..analysis.efficiency_calculator import EfficiencyReport
from ..diagnostics import Diagnostics
from ..optimization.rightsizing_analyzer import RightsizingResult

logger = logging.getLogger(__name__)

EFFICIENCY_COLUMNS = {
    'service_name': 'Service',
    'service_type': 'Type',
    'provider_id': 'Provider',
    'account_id': 'Account',
    'period': 'Period',
    'total_cost': 'Cost',
    'total_usage': 'Usage',
    'unit': 'Unit',
    'efficiency': 'Cost/Unit',
    'previous_efficiency': 'Previous',
    'efficiency_change_percent': 'Change %',
    'trend': 'Trend',
    'status': 'Status'
}

RIGHTSIZING_COLUMNS = {
    'resource_id': 'Resource',
    'resource_name': 'Name',
    'region': 'Region',
    'action': 'Action',
    'current_instance_type': 'Current Type',
    'recommended_instance_type': 'Recommended Type',
    'current_cost': 'Current Cost',
    'recommended_cost': 'Recommended Cost',
    'utilization': 'Peak Utilization %',
    'potential_savings': 'Monthly Savings',
    'savings_percent': 'Savings %',
    'priority': 'Priority',
    'reason': 'Reason'
}

ANOMALY_COLUMNS = {
    'subject': 'Subject',
    'provider_id': 'Provider',
    'account_id': 'Account',
    'period': 'Date',
    'observed_cost': 'Observed',
    'baseline_mean': 'Baseline',
    'deviation': 'Deviation',
    'severity': 'Severity',
    'direction': 'Direction',
    'contributors': 'Contributors',
    'message': 'Message'
}

DIAGNOSTIC_COLUMNS = {
    'operation': 'Operation',
    'kind': 'Kind',
    'subject': 'Subject',
    'message': 'Message'
}


def _frame(rows: List[Dict[str, Any]], columns: Dict[str, str]) -> pd.DataFrame:
    df = pd.DataFrame(rows, columns=list(columns))
    return df.rename(columns=columns)


def efficiency_frame(report: EfficiencyReport) -> pd.DataFrame:
    return _frame([m.to_dict() for m in report.metrics], EFFICIENCY_COLUMNS)


def rightsizing_frame(result: RightsizingResult) -> pd.DataFrame:
    return _frame([r.to_dict() for r in result.recommendations], RIGHTSIZING_COLUMNS)


def anomaly_frame(report: AnomalyReport) -> pd.DataFrame:
    rows = []
    for flag in report.flags:
        row = flag.to_dict()
        row['contributors'] = ', '.join(c.subject for c in flag.contributing_subjects)
        rows.append(row)
    return _frame(rows, ANOMALY_COLUMNS)


def diagnostics_frame(*summaries: Diagnostics) -> pd.DataFrame:
    """One row per excluded or flagged item across the given summaries"""
    rows = []
    for summary in summaries:
        for entry in summary.entries:
            row = entry.to_dict()
            row['operation'] = summary.operation
            rows.append(row)
    return _frame(rows, DIAGNOSTIC_COLUMNS)


def render_table(df: pd.DataFrame, max_rows: Optional[int] = None) -> str:
    """Render a frame as a console table"""
    if df.empty:
        return "(no rows)"
    if max_rows is not None:
        df = df.head(max_rows)
    return tabulate(df.fillna('').values.tolist(), headers=list(df.columns), tablefmt='simple')


def export_excel(frames: Dict[str, pd.DataFrame], output_file: str):
    """
    Write one sheet per frame

    Args:
        frames: Sheet name to DataFrame, in sheet order
        output_file: Target .xlsx path
    """
    with pd.ExcelWriter(output_file, engine='openpyxl') as writer:
        for sheet_name, df in frames.items():
            # Excel limits sheet names to 31 characters
            df.to_excel(writer, sheet_name=sheet_name[:31], index=False)

    logger.info(f"Exported {len(frames)} sheets to {output_file}")


def export_csv(df: pd.DataFrame, output_file: str):
    df.to_csv(output_file, index=False)
    logger.info(f"Exported {len(df)} rows to {output_file}")


def to_json(data: Dict[str, Any]) -> str:
    return json.dumps(data, indent=2, default=str)
