"""
Pass report generation and formatting.

Turns a PassResult into a report dictionary (status, totals, failed
members, recommendations) and renders it as JSON, CSV or console text.
"""

from .formatters import (
    export_report_csv,
    export_report_json,
    format_report_console,
    load_report_json,
)
from .generator import calculate_severity, generate_pass_report

__all__ = [
    "generate_pass_report",
    "calculate_severity",
    "export_report_json",
    "export_report_csv",
    "load_report_json",
    "format_report_console",
]
