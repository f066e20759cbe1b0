"""
Argument parsing for the torrent-trench command
"""

import os
import argparse
from pathlib import Path

from torrent_trench.__version__ import __version__, __description__
from torrent_trench.logging import get_logger


def smart_config_default() -> str:
    """
    Determine smart default for config directory

    Returns ./config if it exists (bare metal), otherwise /data (Docker)
    """
    local_config = Path('./config')
    if local_config.exists() and local_config.is_dir():
        return './config'
    return '/data'


def create_parser() -> argparse.ArgumentParser:
    """
    Create the argument parser

    Returns:
        Configured ArgumentParser
    """
    parser = argparse.ArgumentParser(
        prog='torrent-trench',
        description=f'Torrent Trench - {__description__}',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        '--config-dir',
        type=Path,
        default=None,
        help=f'Path to configuration directory (default: TT_CONFIG_PATH env var or {smart_config_default()})'
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Log actions without sending them to the torrent clients'
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Set logging verbosity (default: from config or INFO)'
    )

    parser.add_argument(
        '--trace',
        action='store_true',
        help='Enable trace mode with detailed logging (module/function/line)'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'Torrent Trench v{__version__}'
    )

    # Modes
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        '--validate',
        action='store_true',
        help='Validate the configuration file without running'
    )

    mode.add_argument(
        '--list-trenches',
        action='store_true',
        help='List all trenches and exit'
    )

    mode.add_argument(
        '--run-once',
        action='store_true',
        help='Run every enabled trench once and exit'
    )

    parser.epilog = '''
Examples:
  # Run as a service, trenches fire on their cron schedules
  torrent-trench --config-dir /data

  # Try a configuration without touching any torrent
  torrent-trench --run-once --dry-run

  # Validate configuration before deploying
  torrent-trench --validate
    '''

    return parser


def process_args(args: argparse.Namespace) -> Path:
    """
    Process parsed arguments and set environment variables

    Args:
        args: Parsed arguments from argparse

    Returns:
        Path to configuration directory
    """
    if args.dry_run:
        os.environ['DRY_RUN'] = 'true'

    if args.log_level:
        os.environ['LOG_LEVEL'] = args.log_level

    if args.trace:
        os.environ['TRACE_MODE'] = 'true'

    if args.config_dir:
        return args.config_dir
    if 'TT_CONFIG_PATH' in os.environ:
        return Path(os.environ['TT_CONFIG_PATH'])
    return Path(smart_config_default())


def handle_utility_args(args: argparse.Namespace, config) -> bool:
    """
    Handle utility arguments (--validate, --list-trenches)

    Loading the config already validated it, so these only report.

    Args:
        args: Parsed arguments
        config: Loaded configuration object

    Returns:
        True if a utility argument was handled (should exit), False otherwise
    """
    logger = get_logger(__name__)
    trench_config = config.trench_config

    if args.validate:
        logger.info(f"Validating {config.config_file}...")

        for connection in trench_config.connections:
            logger.info(f"✓ {connection.client} connection configured: {connection.url}")

        if not trench_config.trenches:
            logger.warning("No trenches defined")
        else:
            logger.info(f"✓ Loaded {len(trench_config.trenches)} trenches "
                        f"({len(trench_config.enabled_trenches())} enabled)")
            for trench in trench_config.trenches:
                if not trench.steps:
                    logger.warning(f"  ⚠ '{trench.name}': No steps defined")
                else:
                    logger.info(f"  ✓ '{trench.name}'")

        logger.info("Validation complete! Configuration is valid.")
        return True

    if args.list_trenches:
        trenches = trench_config.trenches

        if not trenches:
            logger.info("No trenches defined")
            return True

        logger.info(f"Trenches ({len(trenches)} total):")
        logger.info(f"{'#':<5} {'Enabled':<10} {'Schedule':<18} {'Steps':<7} {'Name':<25} {'Forks'}")
        logger.info("-" * 80)

        for index, trench in enumerate(trenches, 1):
            enabled = '✓' if trench.enabled else '✗'
            forks = ', '.join(trench.forks()) or '-'
            logger.info(f"{index:<5} {enabled:<10} {trench.schedule:<18} {len(trench.steps):<7} {trench.name:<25} {forks}")

        return True

    return False
