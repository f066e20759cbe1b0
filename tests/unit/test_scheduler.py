"""Tests for scheduler.py - cron registration and tick execution."""

import logging
from unittest.mock import Mock

import pytest
from apscheduler.triggers.cron import CronTrigger

from torrent_trench.clients import TorrentClientManager
from torrent_trench.errors import AuthenticationError
from torrent_trench.rules import (
    ActionStep,
    ActionVerb,
    FilterKind,
    FilterStep,
    Trench,
    TrenchConfig,
)
from torrent_trench.runner import TrenchRunner
from torrent_trench.scheduler import CronScheduler, TickSummary, TrenchScheduler
from torrent_trench.torrent import Torrent

pytestmark = pytest.mark.asyncio

COMPLETE = FilterStep(FilterKind.COMPLETE, True)
PAUSE = ActionStep(ActionVerb.PAUSE)


def make_manager(*clients):
    manager = TorrentClientManager([])
    manager.clients = list(clients)
    return manager


def make_scheduler(trenches, clients, cron=None):
    config = TrenchConfig(connections=[], trenches=trenches)
    return TrenchScheduler(config, make_manager(*clients), TrenchRunner(config), scheduler=cron or Mock())


# ============================================================================
# CronScheduler
# ============================================================================

async def test_cron_scheduler_registers_cron_job():
    backend = Mock()
    cron = CronScheduler(backend)

    async def tick(trench):
        return None

    cron.schedule('*/5 * * * *', tick, 'sweep', args=['x'])

    args, kwargs = backend.add_job.call_args
    assert args == (tick,)
    assert isinstance(kwargs['trigger'], CronTrigger)
    assert kwargs['id'] == 'sweep'
    assert kwargs['name'] == 'sweep'
    assert kwargs['args'] == ['x']
    assert kwargs['max_instances'] == 1


async def test_cron_scheduler_rejects_invalid_expression():
    cron = CronScheduler(Mock())
    with pytest.raises(ValueError):
        cron.schedule('not a cron', lambda: None, 'bad')


async def test_cron_scheduler_accepts_leading_seconds_field():
    backend = Mock()
    cron = CronScheduler(backend)

    cron.schedule('*/10 * * * * *', lambda: None, 'fast')
    cron.schedule('*/5 * * * *', lambda: None, 'slow')

    fast, slow = [
        {field.name: str(field) for field in call[1]['trigger'].fields}
        for call in backend.add_job.call_args_list
    ]
    assert fast['second'] == '*/10'
    assert fast['minute'] == '*'
    assert slow['second'] == '0'
    assert slow['minute'] == '*/5'


async def test_cron_scheduler_starts_and_stops_apscheduler():
    cron = CronScheduler()
    cron.schedule('0 0 * * *', lambda: None, 'nightly')
    cron.start()
    assert cron.scheduler.running
    assert [job.id for job in cron.get_jobs()] == ['nightly']
    cron.shutdown()


# ============================================================================
# schedule_trenches
# ============================================================================

async def test_only_enabled_trenches_are_scheduled(make_client):
    cron = Mock()
    client = make_client()
    enabled = Trench('on', [PAUSE], enabled=True, schedule='0 * * * *')
    disabled = Trench('off', [PAUSE], enabled=False)
    scheduler = make_scheduler([enabled, disabled], [client], cron)

    jobs = await scheduler.schedule_trenches()

    assert len(jobs) == 1
    cron.schedule.assert_called_once_with('0 * * * *', scheduler.run_tick, 'on', args=[enabled])
    assert client.logins == 1


async def test_failed_login_schedules_nothing(make_client):
    cron = Mock()
    client = make_client()
    client.login_error = AuthenticationError(client.identity)
    scheduler = make_scheduler([Trench('on', [PAUSE], enabled=True)], [client], cron)

    with pytest.raises(AuthenticationError):
        await scheduler.schedule_trenches()

    cron.schedule.assert_not_called()


# ============================================================================
# run_tick
# ============================================================================

async def test_tick_runs_every_torrent_on_every_client(make_client, caplog):
    first = make_client([Torrent(id='a', name='a', is_completed=True),
                       Torrent(id='b', name='b', is_completed=False)], identity='http://one')
    second = make_client([Torrent(id='c', name='c', is_completed=True)], identity='http://two')
    trench = Trench('pause-complete', [COMPLETE, PAUSE], enabled=True)

    with caplog.at_level(logging.INFO):
        summary = await make_scheduler([trench], [first, second]).run_tick(trench)

    assert summary == TickSummary('pause-complete', completed=2, skipped=1, failed=0)
    assert summary.total == 3
    assert "tick finished on 3 torrent(s): 2 completed, 1 skipped, 0 failed" in caplog.text
    assert first.calls == [('pause', 'a')]
    assert second.calls == [('pause', 'c')]


async def test_fetch_failure_aborts_tick_without_disabling(make_client, client_error):
    healthy = make_client([Torrent(id='a', name='a')], identity='http://one')
    broken = make_client(identity='http://two')
    broken.list_error = client_error
    trench = Trench('a', [PAUSE], enabled=True)

    summary = await make_scheduler([trench], [healthy, broken]).run_tick(trench)

    assert summary.aborted is True
    assert summary.total == 0
    assert healthy.calls == []
    assert trench.enabled is True


async def test_disabled_trench_tick_is_skipped(make_client):
    client = make_client([Torrent(id='a', name='a')])
    trench = Trench('a', [PAUSE], enabled=False)

    summary = await make_scheduler([trench], [client]).run_tick(trench)

    assert summary.aborted is True
    assert client.calls == []


async def test_failure_is_contained_per_torrent(make_client):
    client = make_client([Torrent(id='a', name='a'), Torrent(id='b', name='b')])
    client.fail_on.add('pause')
    trench = Trench('a', [PAUSE], enabled=True)

    summary = await make_scheduler([trench], [client]).run_tick(trench)

    assert summary.failed >= 1
    assert summary.total == 2
    assert trench.enabled is False


async def test_run_once_ticks_enabled_trenches(make_client):
    client = make_client([Torrent(id='a', name='a', is_completed=True)])
    first = Trench('first', [PAUSE], enabled=True)
    second = Trench('second', [ActionStep(ActionVerb.RESUME)], enabled=True)
    off = Trench('off', [ActionStep(ActionVerb.RECHECK)], enabled=False)

    summaries = await make_scheduler([first, second, off], [client]).run_once()

    assert [s.trench for s in summaries] == ['first', 'second']
    assert client.verbs() == ['pause', 'resume']
    assert client.logins == 1
