"""
Command-line interface for the member sync service.

Available commands:
- run: Execute one reconciliation pass now
- schedule: Run passes periodically (interval or cron)
- report: Render a saved pass report
"""

import sys

from src.utils.logging import configure_from_env, shutdown_logging

from .commands import cmd_report, cmd_run, cmd_schedule
from .credentials import load_settings
from .parser import create_parser

COMMANDS = {
    'run': cmd_run,
    'schedule': cmd_schedule,
    'report': cmd_report,
}


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the member-sync CLI"""
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_from_env(level=args.log_level)

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    try:
        exit_code = handler(args)
    finally:
        shutdown_logging()
    sys.exit(exit_code)


__all__ = [
    'main',
    'load_settings',
    'cmd_run',
    'cmd_schedule',
    'cmd_report',
    'create_parser',
]


if __name__ == '__main__':
    main()
