"""
Trench runner - walks a trench's steps for one torrent on one client

Steps run strictly in order:
- filter: evaluated against the torrent snapshot, a skip ends the run
- action: the verb is sent to the client (logged only in dry-run mode)
- fork: the named trench runs for the same torrent, then the parent carries on

Anything escaping a top-level run disables the owning trench until restart.
"""

from torrent_trench.clients import TorrentClient
from torrent_trench.conditions import evaluate_filter
from torrent_trench.logging import get_logger, get_trench_logger
from torrent_trench.rules import ActionStep, FilterStep, ForkStep, Trench, TrenchConfig
from torrent_trench.torrent import Torrent

logger = get_logger(__name__)


class RunOutcome:
    """Terminal states of a single run"""
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


class TrenchRunner:
    """Executes trenches against torrents"""

    def __init__(self, trench_config: TrenchConfig, dry_run: bool = False):
        """
        Args:
            trench_config: Validated configuration, used to resolve fork targets
            dry_run: Log actions instead of sending them to the client
        """
        self.trench_config = trench_config
        self.dry_run = dry_run

    async def run_trench(self, trench: Trench, torrent: Torrent, client: TorrentClient,
                         is_fork: bool = False) -> str:
        """
        Run a trench for one torrent

        Forked runs ignore the target's enabled flag. Errors from actions and
        from forked runs propagate to the caller.

        Args:
            trench: Trench to run
            torrent: Torrent snapshot
            client: Client the torrent belongs to
            is_fork: True when reached through a fork step

        Returns:
            RunOutcome.COMPLETED or RunOutcome.SKIPPED
        """
        log = get_trench_logger(trench.name, client.identity, is_fork)

        if not is_fork and not trench.enabled:
            log.debug("Trench is disabled")
            return RunOutcome.SKIPPED

        for step in trench.steps:
            if isinstance(step, FilterStep):
                result = evaluate_filter(step, torrent, log)
                if result.skipped:
                    log.debug(f"Skipped trench: {result.reason} - {torrent.name}")
                    return RunOutcome.SKIPPED

            elif isinstance(step, ActionStep):
                if self.dry_run:
                    log.info(f"[DRY-RUN] Would run action {step.verb} on torrent {torrent.name}")
                    continue
                log.info(f"Running action {step.verb} on torrent {torrent.name}")
                await client.perform(step, torrent.id)

            elif isinstance(step, ForkStep):
                target = self.trench_config.get_trench(step.target)
                if target is None:
                    raise ValueError(f"Fork target '{step.target}' is not a defined trench")
                log.info(f"Forking trench {target.name} for torrent {torrent.name}")
                await self.run_trench(target, torrent, client, is_fork=True)

        return RunOutcome.COMPLETED

    async def execute(self, trench: Trench, torrent: Torrent, client: TorrentClient) -> str:
        """
        Top-level run of a scheduled trench; never raises

        Returns:
            RunOutcome
        """
        try:
            return await self.run_trench(trench, torrent, client)
        except Exception as e:
            logger.error(f"Uncaught error running trench {trench.name} on client {client.identity}\n{e}")
            logger.debug("Full stack trace:", exc_info=True)
            trench.disable()
            logger.warning(f"Trench {trench.name} has been disabled due to a previous error")
            return RunOutcome.FAILED
