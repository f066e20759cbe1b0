"""Pytest configuration and shared fixtures for the torrent-trench test suite."""

import json
import os
import pytest
from typing import Any, Dict, List, Optional

from torrent_trench.clients import TorrentClient
from torrent_trench.errors import ActionError, ClientError
from torrent_trench.rules import parse_trench_config
from torrent_trench.torrent import Torrent


ENV_VARS = ('DRY_RUN', 'LOG_LEVEL', 'LOG_FILE', 'TRACE_MODE', 'TT_CONFIG_PATH')


@pytest.fixture(autouse=True)
def clean_environment_variables():
    """Clean up environment variables before and after each test."""
    original = {name: os.environ.get(name) for name in ENV_VARS}

    for name in ENV_VARS:
        os.environ.pop(name, None)

    yield

    for name in ENV_VARS:
        os.environ.pop(name, None)
        if original[name] is not None:
            os.environ[name] = original[name]


# ============================================================================
# Mock torrent client
# ============================================================================

class MockTorrentClient(TorrentClient):
    """In-memory TorrentClient that records every action it receives."""

    def __init__(self, torrents: Optional[List[Torrent]] = None, identity: str = 'http://qbit.test:8080'):
        self.torrents = list(torrents or [])
        self._identity = identity
        self.calls: List[tuple] = []
        self.fail_on = set()
        self.list_error: Optional[Exception] = None
        self.login_error: Optional[Exception] = None
        self.logins = 0

    @property
    def identity(self) -> str:
        return self._identity

    async def login(self) -> None:
        self.logins += 1
        if self.login_error is not None:
            raise self.login_error

    async def list_torrents(self) -> List[Torrent]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.torrents)

    async def _record(self, verb: str, torrent_id: str, *args) -> None:
        if verb in self.fail_on:
            raise ActionError(torrent_id, verb, self.identity, RuntimeError(f"{verb} rejected"))
        self.calls.append((verb, torrent_id) + args)

    async def pause(self, torrent_id):
        await self._record('pause', torrent_id)

    async def resume(self, torrent_id):
        await self._record('resume', torrent_id)

    async def recheck(self, torrent_id):
        await self._record('recheck', torrent_id)

    async def reannounce(self, torrent_id):
        await self._record('reannounce', torrent_id)

    async def increase_priority(self, torrent_id):
        await self._record('increasePriority', torrent_id)

    async def decrease_priority(self, torrent_id):
        await self._record('decreasePriority', torrent_id)

    async def maximise_priority(self, torrent_id):
        await self._record('maximisePriority', torrent_id)

    async def minimise_priority(self, torrent_id):
        await self._record('minimisePriority', torrent_id)

    async def delete(self, torrent_id, delete_files=False):
        await self._record('delete', torrent_id, delete_files)

    def verbs(self) -> List[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def mock_client():
    """Create an empty MockTorrentClient."""
    return MockTorrentClient()


@pytest.fixture
def make_client():
    """Factory for MockTorrentClient instances holding torrents."""
    return MockTorrentClient


@pytest.fixture
def client_error():
    """ClientError as raised by a failed torrent fetch."""
    return ClientError('http://qbit.test:8080', 'Connection refused')


# ============================================================================
# Torrent Fixtures - qBittorrent /torrents/info entries
# ============================================================================

@pytest.fixture
def seeding_torrent_data() -> Dict[str, Any]:
    """Completed torrent seeding with a good ratio."""
    return {
        "hash": "abc123def456",
        "name": "Example.Torrent.1080p",
        "size": 1073741824,  # 1 GB
        "progress": 1.0,
        "ratio": 2.5,
        "state": "uploading",
        "category": "movies",
        "save_path": "/downloads/movies",
        "tracker": "https://tracker.example.com/announce",
        "seeding_time": 864000,  # 10 days
        "time_active": 900000,
    }


@pytest.fixture
def downloading_torrent_data() -> Dict[str, Any]:
    """Torrent currently downloading."""
    return {
        "hash": "download123",
        "name": "Downloading.Movie.2160p",
        "size": 5368709120,  # 5 GB
        "progress": 0.4,
        "ratio": 0.0,
        "state": "downloading",
        "category": "tv",
        "save_path": "/downloads/tv",
        "tracker": "udp://open.tracker.test:6969/announce",
        "seeding_time": 0,
        "time_active": 3600,
    }


@pytest.fixture
def sparse_torrent_data() -> Dict[str, Any]:
    """Entry from a client that only reports the basics."""
    return {
        "hash": "sparse000",
        "name": "Sparse.Entry",
        "progress": 0.5,
        "ratio": 1.0,
    }


@pytest.fixture
def seeding_torrent(seeding_torrent_data) -> Torrent:
    return Torrent.from_qbittorrent(seeding_torrent_data)


@pytest.fixture
def downloading_torrent(downloading_torrent_data) -> Torrent:
    return Torrent.from_qbittorrent(downloading_torrent_data)


@pytest.fixture
def sparse_torrent(sparse_torrent_data) -> Torrent:
    return Torrent.from_qbittorrent(sparse_torrent_data)


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def config_document() -> Dict[str, Any]:
    """A valid trench document with a fork between two trenches."""
    return {
        "version": 1,
        "connections": [
            {"client": "qbit", "url": "http://qbit.test:8080", "username": "admin", "password": "adminadmin"}
        ],
        "trenches": [
            {
                "name": "seed-cleanup",
                "enabled": True,
                "schedule": "*/30 * * * *",
                "trench": [
                    {"type": "filter", "filter": "complete", "condition": True},
                    {"type": "filter", "filter": "ratio", "condition": {"gte": 2}},
                    {"type": "fork", "fork": "tidy-queue"},
                    {"type": "action", "action": "delete", "options": {"deleteFiles": False}},
                ],
            },
            {
                "name": "tidy-queue",
                "enabled": False,
                "trench": [
                    {"type": "filter", "filter": "label", "condition": {"includes": "MOVIES", "caseInsensitive": True}},
                    {"type": "action", "action": "minimisePriority"},
                ],
            },
        ],
    }


@pytest.fixture
def trench_config(config_document):
    """Parsed TrenchConfig from config_document."""
    return parse_trench_config(config_document)


@pytest.fixture
def config_dir(tmp_path, config_document):
    """Config directory holding torrent-trench.json."""
    (tmp_path / 'torrent-trench.json').write_text(json.dumps(config_document))
    return tmp_path
