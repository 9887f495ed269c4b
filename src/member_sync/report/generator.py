"""
Report generation for reconciliation passes.

The report is a plain dictionary so it can be written as JSON by the
scheduler, rendered by the CLI, and read back later with `member-sync report`.
"""

from datetime import UTC, datetime
from typing import Any

from ..models import MemberSyncResult, PassResult, PassStatus

REPORT_VERSION = 1


def calculate_severity(total_members: int, failed: int) -> str:
    """
    Severity of member failures relative to the members attempted

    Args:
        total_members: Members attempted in the pass
        failed: Members that failed

    Returns:
        Severity level: NONE, LOW, MEDIUM, HIGH, or CRITICAL
    """
    if failed == 0:
        return "NONE"
    if total_members == 0:
        return "CRITICAL"

    percentage = failed / total_members * 100
    if percentage < 1.0:
        return "LOW"
    elif percentage < 10.0:
        return "MEDIUM"
    elif percentage < 50.0:
        return "HIGH"
    return "CRITICAL"


def _failure_entry(member: MemberSyncResult) -> dict[str, Any]:
    return {
        "code": member.code,
        "action": member.action.value,
        "member_id": member.member_id,
        "error_type": member.error_type,
        "error": member.error,
    }


def _generate_summary(result: PassResult) -> str:
    if result.status is PassStatus.SKIPPED:
        return "Pass skipped because the previous pass was still running."
    if result.status is PassStatus.FAILED:
        return f"Pass aborted before any member was synced: {result.error}"
    if not result.members:
        return "No eligible legacy members found. Nothing to sync."

    summary = (
        f"Synced {result.created + result.updated} of {len(result.members)} members "
        f"({result.created} created, {result.updated} updated); "
        f"{result.transactions_inserted} transaction(s) inserted, "
        f"{result.transactions_deleted} deleted."
    )
    if result.failed:
        summary += f" {result.failed} member(s) failed and will be retried next pass."
    return summary


def _generate_recommendations(result: PassResult, failures: list[dict[str, Any]]) -> list[str]:
    recommendations = []

    if result.status is PassStatus.SKIPPED:
        recommendations.append(
            "Passes are overlapping. Increase the schedule interval or set a "
            "per-member timeout (SYNC_MEMBER_TIMEOUT_SECONDS)."
        )
        return recommendations

    if result.status is PassStatus.FAILED:
        recommendations.append(
            "Check connectivity and credentials for the legacy source and the store."
        )
        return recommendations

    if not failures:
        return recommendations

    error_types = {f["error_type"] for f in failures}
    if "MemberTimeoutError" in error_types:
        recommendations.append(
            "Some members exceeded their time budget. Check legacy query latency "
            "for members with many documents."
        )
    if {"SourceUnavailableError", "TargetStoreError"} & error_types:
        recommendations.append(
            "Database errors occurred for individual members. Review the error "
            "details; transient failures resolve on the next pass."
        )
    if "ValueError" in error_types:
        recommendations.append(
            "Some legacy rows could not be mapped. Review the member data in the legacy system."
        )
    if len(failures) == len(result.members):
        recommendations.append(
            "Every member failed. The store schema or permissions may have changed."
        )

    return recommendations


def generate_pass_report(result: PassResult) -> dict[str, Any]:
    """
    Generate a report from a pass result

    Args:
        result: Outcome of one reconciliation pass

    Returns:
        Dictionary containing:
        - status: SUCCESS, PARTIAL, FAILED, or SKIPPED
        - pass_id, started_at, finished_at, duration_seconds
        - totals: source_rows, members, created, updated, failed,
          transactions_inserted, transactions_deleted
        - severity: failure severity (NONE..CRITICAL)
        - failures: failed members with error type and message
        - summary: Human-readable summary
        - recommendations: List of recommended actions
        - members: per-member results
        - generated_at: Report generation timestamp
    """
    failures = [_failure_entry(m) for m in result.members if not m.success]
    severity = (
        "CRITICAL"
        if result.status is PassStatus.FAILED
        else calculate_severity(len(result.members), len(failures))
    )

    return {
        "report_version": REPORT_VERSION,
        "status": result.status.value,
        "pass_id": result.pass_id,
        "started_at": result.started_at.isoformat(),
        "finished_at": result.finished_at.isoformat() if result.finished_at else None,
        "duration_seconds": round(result.duration_seconds, 3),
        "totals": {
            "source_rows": result.source_rows,
            "members": len(result.members),
            "created": result.created,
            "updated": result.updated,
            "failed": result.failed,
            "transactions_inserted": result.transactions_inserted,
            "transactions_deleted": result.transactions_deleted,
        },
        "severity": severity,
        "error": result.error,
        "failures": failures,
        "summary": _generate_summary(result),
        "recommendations": _generate_recommendations(result, failures),
        "members": [m.to_dict() for m in result.members],
        "generated_at": datetime.now(UTC).isoformat(),
    }
