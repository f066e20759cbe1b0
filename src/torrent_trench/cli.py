#!/usr/bin/env python3
"""
torrent-trench CLI

Default mode tests every client connection, schedules the enabled trenches
and runs until interrupted. --run-once ticks every enabled trench once.
"""

import sys
import asyncio

from torrent_trench.__version__ import __version__
from torrent_trench.arguments import create_parser, process_args, handle_utility_args
from torrent_trench.clients import TorrentClientManager
from torrent_trench.config import Config, load_config
from torrent_trench.errors import handle_errors
from torrent_trench.logging import setup_logging, get_logger
from torrent_trench.runner import TrenchRunner
from torrent_trench.scheduler import TrenchScheduler

logger = get_logger(__name__)


def build_scheduler(config: Config) -> TrenchScheduler:
    """Wire clients, runner and scheduler for a loaded config"""
    trench_config = config.trench_config
    dry_run = config.is_dry_run()
    if dry_run:
        logger.info("Dry-run mode: actions are logged, not sent")

    client_manager = TorrentClientManager(trench_config.connections)
    runner = TrenchRunner(trench_config, dry_run=dry_run)
    return TrenchScheduler(trench_config, client_manager, runner)


async def run_service(config: Config, run_once: bool = False) -> None:
    """
    Run trenches until interrupted, or a single pass with run_once

    Raises:
        ClientError: If a client cannot be logged in to at startup
    """
    trench_scheduler = build_scheduler(config)

    if run_once:
        await trench_scheduler.run_once()
        return

    await trench_scheduler.schedule_trenches()
    trench_scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        trench_scheduler.shutdown()


@handle_errors
def main(argv=None):
    """Main entry point for torrent-trench"""
    parser = create_parser()
    args = parser.parse_args(argv)

    config_dir = process_args(args)
    config = load_config(config_dir)

    setup_logging(config, config.get_trace_mode())
    logger.info(f"Torrent Trench v{__version__}")
    for trench in config.trench_config.trenches:
        logger.debug(f"Loaded trench {trench.name} "
                     f"(enabled={trench.enabled}, schedule={trench.schedule}, steps={len(trench.steps)})")

    if handle_utility_args(args, config):
        sys.exit(0)

    asyncio.run(run_service(config, run_once=args.run_once))
    sys.exit(0)


if __name__ == '__main__':
    main()
