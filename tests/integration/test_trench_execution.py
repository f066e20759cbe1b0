"""Integration tests: config document to qBittorrent Web API calls."""

import json
from unittest.mock import patch

import pytest

from torrent_trench.cli import build_scheduler
from torrent_trench.config import Config

pytestmark = pytest.mark.asyncio


@pytest.fixture
def qbit():
    """Patched qbittorrentapi.Client instance shared by every connection."""
    with patch('torrent_trench.api.qbittorrentapi.Client') as mock_client_class:
        yield mock_client_class.return_value


def write_config(tmp_path, trenches, **extra):
    document = {
        "connections": [{"client": "qbit", "url": "http://qbit.test:8080", "username": "admin", "password": "pw"}],
        "trenches": trenches,
    }
    document.update(extra)
    (tmp_path / 'torrent-trench.json').write_text(json.dumps(document))
    return Config(tmp_path)


async def test_seed_cleanup_deletes_only_high_ratio(tmp_path, qbit, seeding_torrent_data, downloading_torrent_data):
    """ratio >= 2 then delete keeping files."""
    config = write_config(tmp_path, [{
        "name": "seed-cleanup",
        "enabled": True,
        "trench": [
            {"type": "filter", "filter": "ratio", "condition": {"gte": 2}},
            {"type": "action", "action": "delete", "options": {"deleteFiles": False}},
        ],
    }])
    qbit.torrents_info.return_value = [seeding_torrent_data, downloading_torrent_data]

    summaries = await build_scheduler(config).run_once()

    qbit.torrents_delete.assert_called_once_with(delete_files=False, torrent_hashes=['abc123def456'])
    assert (summaries[0].completed, summaries[0].skipped, summaries[0].failed) == (1, 1, 0)


async def test_fork_into_disabled_trench(tmp_path, qbit, seeding_torrent_data, downloading_torrent_data):
    config = write_config(tmp_path, [
        {
            "name": "finished",
            "enabled": True,
            "trench": [
                {"type": "filter", "filter": "progress", "condition": {"gte": 100}},
                {"type": "fork", "fork": "movies-to-bottom"},
                {"type": "action", "action": "reannounce"},
            ],
        },
        {
            "name": "movies-to-bottom",
            "enabled": False,
            "trench": [
                {"type": "filter", "filter": "savePath", "condition": {"startsWith": "/downloads/MOVIES", "caseInsensitive": True}},
                {"type": "action", "action": "minimisePriority"},
            ],
        },
    ])
    qbit.torrents_info.return_value = [seeding_torrent_data, downloading_torrent_data]

    summaries = await build_scheduler(config).run_once()

    assert [s.trench for s in summaries] == ['finished']
    qbit.torrents_bottom_priority.assert_called_once_with(torrent_hashes=['abc123def456'])
    qbit.torrents_reannounce.assert_called_once_with(torrent_hashes=['abc123def456'])


async def test_tracker_and_seed_time_filters(tmp_path, qbit, seeding_torrent_data, sparse_torrent_data):
    config = write_config(tmp_path, [{
        "name": "private-tracker",
        "enabled": True,
        "trench": [
            {"type": "filter", "filter": "tracker", "condition": {"includes": "tracker.example.com"}},
            {"type": "filter", "filter": "seedTime", "condition": {"gte": 604800}},
            {"type": "action", "action": "pause"},
        ],
    }])
    qbit.torrents_info.return_value = [seeding_torrent_data, sparse_torrent_data]

    summaries = await build_scheduler(config).run_once()

    qbit.torrents_pause.assert_called_once_with(torrent_hashes=['abc123def456'])
    assert summaries[0].skipped == 1


async def test_rejected_action_disables_trench(tmp_path, qbit, seeding_torrent_data):
    import qbittorrentapi

    config = write_config(tmp_path, [{
        "name": "recheck-all",
        "enabled": True,
        "trench": [{"type": "action", "action": "recheck"}],
    }])
    qbit.torrents_info.return_value = [seeding_torrent_data]
    qbit.torrents_recheck.side_effect = qbittorrentapi.Conflict409Error("conflict")

    scheduler = build_scheduler(config)
    first = await scheduler.run_once()
    second = await scheduler.run_tick(config.trench_config.get_trench('recheck-all'))

    assert first[0].failed == 1
    assert config.trench_config.get_trench('recheck-all').enabled is False
    assert second.aborted is True
    assert qbit.torrents_recheck.call_count == 1


async def test_dry_run_sends_nothing(tmp_path, qbit, seeding_torrent_data):
    config = write_config(tmp_path, [{
        "name": "pause-all",
        "enabled": True,
        "trench": [{"type": "action", "action": "pause"}],
    }], dryRun=True)
    qbit.torrents_info.return_value = [seeding_torrent_data]

    summaries = await build_scheduler(config).run_once()

    assert summaries[0].completed == 1
    qbit.torrents_pause.assert_not_called()


async def test_unreachable_client_aborts_tick(tmp_path, qbit, seeding_torrent_data):
    import qbittorrentapi

    config = write_config(tmp_path, [{
        "name": "pause-all",
        "enabled": True,
        "trench": [{"type": "action", "action": "pause"}],
    }])
    scheduler = build_scheduler(config)
    await scheduler.client_manager.test_client_connections()
    qbit.torrents_info.side_effect = qbittorrentapi.APIConnectionError("connection reset")

    summary = await scheduler.run_tick(config.trench_config.get_trench('pause-all'))

    assert summary.aborted is True
    assert config.trench_config.get_trench('pause-all').enabled is True
    qbit.torrents_pause.assert_not_called()
