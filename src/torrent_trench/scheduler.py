"""
Cron scheduling of trenches

CronScheduler adapts APScheduler's AsyncIOScheduler to the single call the
service needs. TrenchScheduler registers one job per enabled trench; every
tick fetches torrents from all clients and runs the trench once per torrent.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from torrent_trench.clients import TorrentClientManager
from torrent_trench.errors import ClientError
from torrent_trench.logging import get_logger
from torrent_trench.rules import Trench, TrenchConfig, cron_trigger
from torrent_trench.runner import RunOutcome, TrenchRunner

logger = get_logger(__name__)


class CronScheduler:
    """Runs coroutine callbacks on cron expressions (optional leading seconds field)"""

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None):
        self.scheduler = scheduler or AsyncIOScheduler()

    def schedule(self, cron_expression: str, on_tick: Callable, name: str,
                 args: Optional[Sequence[Any]] = None):
        """
        Register a cron job

        A tick still running when the next one fires makes that firing be
        skipped.

        Args:
            cron_expression: Five- or six-field cron expression
            on_tick: Callback (coroutine functions are awaited on the loop)
            name: Job id and name
            args: Positional arguments for on_tick

        Returns:
            APScheduler job

        Raises:
            ValueError: If the cron expression is invalid
        """
        return self.scheduler.add_job(
            on_tick,
            trigger=cron_trigger(cron_expression),
            args=list(args or []),
            id=name,
            name=name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def get_jobs(self) -> list:
        return self.scheduler.get_jobs()

    def start(self) -> None:
        """Start firing jobs; needs a running event loop"""
        self.scheduler.start()

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)


@dataclass
class TickSummary:
    """Outcome counts of one tick of one trench"""
    trench: str
    completed: int = 0
    skipped: int = 0
    failed: int = 0
    aborted: bool = False

    @property
    def total(self) -> int:
        return self.completed + self.skipped + self.failed

    def record(self, outcome: str) -> None:
        if outcome == RunOutcome.COMPLETED:
            self.completed += 1
        elif outcome == RunOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1


class TrenchScheduler:
    """Schedules enabled trenches and runs their ticks"""

    def __init__(self, trench_config: TrenchConfig, client_manager: TorrentClientManager,
                 runner: TrenchRunner, scheduler: Optional[CronScheduler] = None):
        self.trench_config = trench_config
        self.client_manager = client_manager
        self.runner = runner
        self.scheduler = scheduler or CronScheduler()

    async def schedule_trenches(self) -> List[Any]:
        """
        Test every client connection, then register a job per enabled trench

        Returns:
            Scheduled jobs

        Raises:
            ClientError: If a client cannot be logged in to
        """
        await self.client_manager.test_client_connections()

        jobs = []
        for trench in self.trench_config.trenches:
            if not trench.enabled:
                logger.debug(f"Trench {trench.name} is disabled, not scheduling")
                continue

            jobs.append(self.scheduler.schedule(trench.schedule, self.run_tick, trench.name, args=[trench]))
            logger.info(f"Scheduled trench {trench.name} ({trench.schedule})")

        logger.info(f"Scheduled {len(jobs)} of {len(self.trench_config.trenches)} trench(es)")
        return jobs

    async def run_tick(self, trench: Trench) -> TickSummary:
        """
        Run a trench against every torrent of every client

        A failed torrent fetch aborts this tick only; the trench stays enabled.
        """
        summary = TickSummary(trench.name)

        if not trench.enabled:
            logger.debug(f"Trench {trench.name} is disabled, skipping tick")
            summary.aborted = True
            return summary

        clients = self.client_manager.get_clients()
        try:
            torrent_lists = await asyncio.gather(*(client.list_torrents() for client in clients))
        except ClientError as e:
            logger.error(f"Unable to fetch torrents for trench {trench.name}\n{e}")
            summary.aborted = True
            return summary

        tasks = [
            asyncio.create_task(self.runner.execute(trench, torrent, client))
            for client, torrents in zip(clients, torrent_lists)
            for torrent in torrents
        ]
        for outcome in await asyncio.gather(*tasks):
            summary.record(outcome)

        logger.info(
            f"Trench {trench.name} tick finished on {summary.total} torrent(s): {summary.completed} completed, "
            f"{summary.skipped} skipped, {summary.failed} failed"
        )
        return summary

    async def run_once(self) -> List[TickSummary]:
        """Test connections and tick every enabled trench once, in config order"""
        await self.client_manager.test_client_connections()

        summaries = []
        for trench in self.trench_config.enabled_trenches():
            summaries.append(await self.run_tick(trench))
        return summaries

    def start(self) -> None:
        self.scheduler.start()

    def shutdown(self) -> None:
        self.scheduler.shutdown()
