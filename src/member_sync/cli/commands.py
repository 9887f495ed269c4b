"""
CLI command implementations.

Each command returns the process exit code:
0 on success, 1 when a pass failed or partially failed (or the command
could not complete), 2 on invalid configuration.
"""

import argparse
import logging
import signal
from typing import Any

from src.utils.metrics import initialize_metrics
from src.utils.tracing import initialize_tracing, shutdown_tracing

from ..bootstrap import open_engine
from ..exceptions import ConfigurationError
from ..models import PassStatus
from ..report import (
    export_report_csv,
    export_report_json,
    format_report_console,
    generate_pass_report,
    load_report_json,
)
from ..scheduler import SyncScheduler, run_sync_job
from .credentials import load_settings

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2

SYNC_JOB_ID = "member_sync"


def _write_report(report: dict[str, Any], output_format: str, output: str | None) -> None:
    if output_format == "json" and output:
        export_report_json(report, output)
        logger.info(f"Report saved to {output}")
    elif output_format == "csv" and output:
        export_report_csv(report, output)
        logger.info(f"Report saved to {output}")
    else:
        print(format_report_console(report))


def cmd_run(args: argparse.Namespace) -> int:
    """
    Run one reconciliation pass

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code: 0 if every member synced, 1 otherwise
    """
    try:
        settings = load_settings(args)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_CONFIG

    if args.format in ("json", "csv") and not args.output:
        logger.error(f"--output is required for {args.format} format")
        return EXIT_CONFIG

    initialize_tracing()
    try:
        with open_engine(settings) as engine:
            result = engine.run_pass()
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_CONFIG
    finally:
        shutdown_tracing()

    report = generate_pass_report(result)
    try:
        _write_report(report, args.format, args.output)
    except OSError as e:
        logger.error(f"Failed to write report: {e}")
        return EXIT_FAILED

    if result.status is PassStatus.SUCCESS:
        logger.info("Member sync completed successfully")
        return EXIT_OK

    logger.warning(f"Member sync finished with status {result.status.value}")
    return EXIT_FAILED


def _install_signal_handlers(scheduler: SyncScheduler) -> None:
    def handle(signum, frame):
        logger.info(f"Received signal {signum}, stopping scheduler")
        scheduler.stop(wait=True)

    signal.signal(signal.SIGTERM, handle)


def cmd_schedule(args: argparse.Namespace) -> int:
    """
    Run reconciliation passes on an interval or cron schedule (blocking)

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code once the scheduler stops
    """
    try:
        settings = load_settings(args)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_CONFIG

    if settings.cron:
        schedule = f"cron {settings.cron}"
    else:
        schedule = f"interval {settings.interval_seconds}s"

    if settings.metrics_port:
        try:
            initialize_metrics(
                port=settings.metrics_port,
                schedule=schedule,
                batch_size=settings.batch_size,
            )
        except RuntimeError as e:
            logger.error(str(e))
            return EXIT_FAILED

    initialize_tracing()
    run_immediately = not args.no_run_on_start

    try:
        with open_engine(settings) as engine:
            scheduler = SyncScheduler()
            job_kwargs = {"engine": engine, "report_dir": settings.report_dir}

            if settings.cron:
                scheduler.add_cron_job(
                    run_sync_job,
                    settings.cron,
                    SYNC_JOB_ID,
                    run_immediately=run_immediately,
                    **job_kwargs,
                )
                logger.info(f"Scheduled member sync: {schedule}")
            else:
                scheduler.add_interval_job(
                    run_sync_job,
                    settings.interval_seconds,
                    SYNC_JOB_ID,
                    run_immediately=run_immediately,
                    **job_kwargs,
                )
                logger.info(f"Scheduled member sync: {schedule}")

            _install_signal_handlers(scheduler)
            logger.info("Starting scheduler (press Ctrl+C to stop)")
            scheduler.start()
    except (ConfigurationError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_CONFIG
    finally:
        shutdown_tracing()

    return EXIT_OK


def cmd_report(args: argparse.Namespace) -> int:
    """
    Render a saved pass report

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code
    """
    logger.info(f"Loading pass report from {args.input}")

    if args.format in ("json", "csv") and not args.output:
        logger.error(f"--output is required for {args.format} format")
        return EXIT_CONFIG

    try:
        report = load_report_json(args.input)
        _write_report(report, args.format, args.output)
    except (OSError, ValueError) as e:
        logger.error(f"Failed to process report: {e}")
        return EXIT_FAILED

    return EXIT_OK
