"""
Job function executed by the scheduler for each reconciliation pass.
"""

import logging
from pathlib import Path
from typing import Any

from src.utils.tracing import trace_function

from ..models import PassResult, PassStatus
from ..report import export_report_json, generate_pass_report

logger = logging.getLogger(__name__)


def report_filename(result: PassResult) -> str:
    timestamp = result.started_at.strftime("%Y%m%d_%H%M%S")
    return f"member_sync_{timestamp}_{result.pass_id}.json"


@trace_function("scheduled_sync_pass")
def run_sync_job(engine: Any, report_dir: str | None = None) -> PassResult | None:
    """
    Run one pass and save its report

    Never raises: the scheduler must keep firing even when a pass or the
    report write fails.

    Args:
        engine: ReconciliationEngine to run
        report_dir: Directory for JSON pass reports (None disables reports)

    Returns:
        The pass result, or None if the pass itself raised
    """
    try:
        result = engine.run_pass()
    except Exception as e:
        logger.error(f"Scheduled sync pass crashed: {type(e).__name__}: {e}", exc_info=True)
        return None

    if result.status is PassStatus.SKIPPED:
        logger.warning("Scheduled sync pass skipped: previous pass still running")
        return result

    if report_dir:
        output_path = Path(report_dir) / report_filename(result)
        try:
            export_report_json(generate_pass_report(result), str(output_path))
            logger.info(f"Pass report saved to {output_path}")
        except OSError as e:
            logger.error(f"Failed to save pass report to {output_path}: {e}")

    return result
