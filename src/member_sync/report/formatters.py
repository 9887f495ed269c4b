"""
Report formatting and export utilities.

Exports pass reports as JSON (the format the scheduler writes), CSV of
per-member outcomes, or text for the terminal.
"""

import csv
import json
from pathlib import Path
from typing import Any


def export_report_json(report: dict[str, Any], output_path: str) -> None:
    """
    Export report to JSON file, creating parent directories

    Args:
        report: Report dictionary
        output_path: Path to output file
    """
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(report, f, indent=2, default=str)


def load_report_json(input_path: str) -> dict[str, Any]:
    """
    Load a report previously written by export_report_json

    Raises:
        ValueError: If the file is not a pass report
    """
    with open(input_path, encoding="utf-8") as f:
        report = json.load(f)

    if not isinstance(report, dict) or "status" not in report or "totals" not in report:
        raise ValueError(f"{input_path} is not a member sync pass report")
    return report


def export_report_csv(report: dict[str, Any], output_path: str) -> None:
    """
    Export per-member outcomes to CSV file

    Args:
        report: Report dictionary
        output_path: Path to output file
    """
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow([
            "Code",
            "Action",
            "Success",
            "Member ID",
            "Transactions Inserted",
            "Transactions Deleted",
            "Error Type",
            "Error",
        ])

        for member in report.get("members", []):
            transactions = member.get("transactions", {})
            writer.writerow([
                member.get("code", ""),
                member.get("action", ""),
                member.get("success", False),
                member.get("member_id") or "",
                transactions.get("inserted", 0),
                transactions.get("deleted", 0),
                member.get("error_type") or "",
                member.get("error") or "",
            ])


def format_report_console(report: dict[str, Any], max_failures: int = 20) -> str:
    """
    Format report for console output

    Args:
        report: Report dictionary
        max_failures: Failed members listed before truncating

    Returns:
        Formatted string for console display
    """
    totals = report["totals"]
    lines = []

    lines.append("=" * 80)
    lines.append("MEMBER SYNC REPORT")
    lines.append("=" * 80)
    lines.append(f"Status: {report['status']}")
    lines.append(f"Pass ID: {report['pass_id']}")
    lines.append(f"Started: {report['started_at']}")
    lines.append(f"Duration: {report['duration_seconds']:.2f}s")
    lines.append(f"Legacy Rows: {totals['source_rows']:,}")
    lines.append(f"Members Created: {totals['created']:,}")
    lines.append(f"Members Updated: {totals['updated']:,}")
    lines.append(f"Members Failed: {totals['failed']:,}")
    lines.append(f"Transactions Inserted: {totals['transactions_inserted']:,}")
    lines.append(f"Transactions Deleted: {totals['transactions_deleted']:,}")
    lines.append("")

    lines.append("SUMMARY")
    lines.append("-" * 80)
    lines.append(report["summary"])
    lines.append("")

    failures = report.get("failures", [])
    if failures:
        lines.append(f"FAILED MEMBERS (severity: {report['severity']})")
        lines.append("-" * 80)
        for failure in failures[:max_failures]:
            lines.append(f"{failure['code']} ({failure['action']})")
            lines.append(f"  {failure['error_type']}: {failure['error']}")
        if len(failures) > max_failures:
            lines.append(f"... and {len(failures) - max_failures} more")
        lines.append("")

    if report.get("recommendations"):
        lines.append("RECOMMENDATIONS")
        lines.append("-" * 80)
        for i, rec in enumerate(report["recommendations"], 1):
            lines.append(f"{i}. {rec}")
        lines.append("")

    lines.append("=" * 80)

    return "\n".join(lines)
