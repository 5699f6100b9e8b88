#!/usr/bin/env python3
"""
vwsetup CLI entry point.

Exit status: 0 on success, 1 on any provisioning failure, 130 when the
operator interrupts the run.
"""

from __future__ import annotations

import argparse
from dataclasses import replace
from pathlib import Path
from typing import Optional

from . import __version__, console
from .errors import SetupError
from .installer import run_commands_only, run_setup
from .settings import load_settings

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def parse_arguments(argv: Optional[list] = None) -> argparse.Namespace:
    """
    Parse command-line arguments for vwsetup.

    Supports arguments:
    1. --config <path> - TOML file overriding default paths and tunables
    2. --log-file <path> - Persistent run log (default from settings)
    3. --log-level <level> - DEBUG, INFO, WARNING or ERROR
    4. --poll-interval <seconds> - Pause between signed-certificate re-checks
    5. --commands-only - Only refresh the alias block and the backup schedule
    6. --version
    """
    parser = argparse.ArgumentParser(
        prog='vwsetup',
        description='Interactive Vaultwarden provisioning (Docker + Nginx + TLS + systemd)',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  # Full interactive setup
  %(prog)s

  # Custom paths, verbose log
  %(prog)s --config /etc/vwsetup.toml --log-level DEBUG

  # Refresh vw-* aliases and the backup cron entry only
  %(prog)s --commands-only
        '''
    )

    parser.add_argument(
        '--config',
        type=Path,
        metavar='PATH',
        help='TOML settings file ([paths], [service], [wait], [backup])'
    )

    parser.add_argument(
        '--log-file',
        type=Path,
        metavar='PATH',
        help='Persistent log file (default: /var/log/vaultwarden-setup.log)'
    )

    parser.add_argument(
        '--log-level',
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        type=str.upper,
        help='Log file verbosity (default: INFO)'
    )

    parser.add_argument(
        '--poll-interval',
        type=float,
        metavar='SECONDS',
        help='Seconds to wait between checks for the signed wildcard certificate'
    )

    parser.add_argument(
        '--commands-only',
        action='store_true',
        help='Skip setup; only (re)install management aliases and the backup schedule'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    return parser.parse_args(argv)


def main(argv: Optional[list] = None) -> int:
    args = parse_arguments(argv)
    try:
        settings = load_settings(args.config)
        if args.log_file is not None:
            settings = replace(settings, log_file=args.log_file)
        if args.poll_interval is not None:
            settings = replace(settings, poll_interval=args.poll_interval)

        console.configure_logging(settings.log_file, args.log_level)

        if args.commands_only:
            run_commands_only(settings)
        else:
            run_setup(settings)
    except KeyboardInterrupt:
        print("")
        console.error("Interrupted by user")
        return EXIT_INTERRUPTED
    except SetupError as e:
        console.error(str(e))
        return EXIT_FAILURE
    except OSError as e:
        console.error(f"System error: {e}")
        return EXIT_FAILURE
    return EXIT_OK


def main_entry() -> None:
    raise SystemExit(main())


if __name__ == '__main__':
    main_entry()
