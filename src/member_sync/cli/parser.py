"""
Command-line argument parser configuration.
"""

import argparse


def _add_connection_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--use-vault',
        action='store_true',
        help='Fetch database credentials from HashiCorp Vault'
    )
    # Source database options
    parser.add_argument('--source-host', help='Legacy SQL Server host')
    parser.add_argument('--source-port', type=int, help='Legacy SQL Server port')
    parser.add_argument('--source-database', help='Legacy SQL Server database name')
    parser.add_argument('--source-user', help='Legacy SQL Server username')
    parser.add_argument('--source-password', help='Legacy SQL Server password')
    # Target database options
    parser.add_argument('--target-host', help='PostgreSQL host')
    parser.add_argument('--target-port', type=int, help='PostgreSQL port')
    parser.add_argument('--target-database', help='PostgreSQL database name')
    parser.add_argument('--target-user', help='PostgreSQL username')
    parser.add_argument('--target-password', help='PostgreSQL password')
    # Pass options
    parser.add_argument(
        '--batch-size',
        type=int,
        help='Legacy members fetched per page (default: SYNC_BATCH_SIZE or 1000)'
    )
    parser.add_argument(
        '--member-timeout',
        type=float,
        help='Seconds allowed per member before it is abandoned (default: no limit)'
    )


def create_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="member-sync",
        description="Reconcile legacy SQL Server members into the application store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run one pass now and print the report
  member-sync run

  # Run one pass with credentials from Vault and save the JSON report
  member-sync run --use-vault --format json --output reports/pass.json

  # Sync every 60 seconds, starting immediately
  member-sync schedule --interval 60

  # Sync every 5 minutes on the clock, waiting for the first tick
  member-sync schedule --cron "*/5 * * * *" --no-run-on-start

  # Render a saved report
  member-sync report --input reports/pass.json
        """
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: LOG_LEVEL or INFO)'
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # ========== Run command ==========
    run_parser = subparsers.add_parser('run', help='Run one reconciliation pass now')
    _add_connection_args(run_parser)
    run_parser.add_argument(
        '--output',
        help='Output file path for the report'
    )
    run_parser.add_argument(
        '--format',
        choices=['console', 'json', 'csv'],
        default='console',
        help='Output format (default: console)'
    )

    # ========== Schedule command ==========
    schedule_parser = subparsers.add_parser('schedule', help='Run passes periodically')
    _add_connection_args(schedule_parser)
    trigger = schedule_parser.add_mutually_exclusive_group()
    trigger.add_argument(
        '--interval',
        type=int,
        help='Interval in seconds (default: SYNC_INTERVAL_SECONDS or 60)'
    )
    trigger.add_argument(
        '--cron',
        help='Cron expression (e.g., "*/5 * * * *"); overrides SYNC_CRON'
    )
    schedule_parser.add_argument(
        '--no-run-on-start',
        action='store_true',
        help='Wait for the first trigger instead of running a pass immediately'
    )
    schedule_parser.add_argument(
        '--output-dir',
        help='Directory to save pass reports (default: SYNC_REPORT_DIR)'
    )

    # ========== Report command ==========
    report_parser = subparsers.add_parser('report', help='Render a saved pass report')
    report_parser.add_argument(
        '--input',
        required=True,
        help='Input JSON report file'
    )
    report_parser.add_argument(
        '--format',
        choices=['console', 'json', 'csv'],
        default='console',
        help='Output format (default: console)'
    )
    report_parser.add_argument(
        '--output',
        help='Output file path (required for json and csv formats)'
    )

    return parser
