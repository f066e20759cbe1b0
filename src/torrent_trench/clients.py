"""
Torrent client capability used by trench runs

TorrentClient is the async interface the runner and scheduler depend on:
list the torrents, apply an action verb to one torrent, identify the client in
logs. QBittorrentClient implements it on top of QBittorrentAPI, and
TorrentClientManager owns every configured client for the process lifetime.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import qbittorrentapi

from torrent_trench.api import QBittorrentAPI
from torrent_trench.errors import ActionError, ClientError
from torrent_trench.logging import get_logger
from torrent_trench.rules import ActionStep, ActionVerb, Connection
from torrent_trench.torrent import Torrent

logger = get_logger(__name__)

# Action verb -> TorrentClient coroutine method
ACTION_METHODS: Dict[str, str] = {
    ActionVerb.PAUSE: 'pause',
    ActionVerb.RESUME: 'resume',
    ActionVerb.RECHECK: 'recheck',
    ActionVerb.REANNOUNCE: 'reannounce',
    ActionVerb.INCREASE_PRIORITY: 'increase_priority',
    ActionVerb.DECREASE_PRIORITY: 'decrease_priority',
    ActionVerb.MAXIMISE_PRIORITY: 'maximise_priority',
    ActionVerb.MINIMISE_PRIORITY: 'minimise_priority',
    ActionVerb.DELETE: 'delete',
}


class TorrentClient(ABC):
    """
    Abstract torrent client capability

    Implementations must raise ClientError from login() and list_torrents(),
    and ActionError from every action verb.
    """

    @property
    @abstractmethod
    def identity(self) -> str:
        """Opaque identity used in logs (e.g. endpoint URL)"""

    @abstractmethod
    async def login(self) -> None:
        pass

    @abstractmethod
    async def list_torrents(self) -> List[Torrent]:
        pass

    @abstractmethod
    async def pause(self, torrent_id: str) -> None:
        pass

    @abstractmethod
    async def resume(self, torrent_id: str) -> None:
        pass

    @abstractmethod
    async def recheck(self, torrent_id: str) -> None:
        pass

    @abstractmethod
    async def reannounce(self, torrent_id: str) -> None:
        pass

    @abstractmethod
    async def increase_priority(self, torrent_id: str) -> None:
        pass

    @abstractmethod
    async def decrease_priority(self, torrent_id: str) -> None:
        pass

    @abstractmethod
    async def maximise_priority(self, torrent_id: str) -> None:
        pass

    @abstractmethod
    async def minimise_priority(self, torrent_id: str) -> None:
        pass

    @abstractmethod
    async def delete(self, torrent_id: str, delete_files: bool = False) -> None:
        pass

    async def perform(self, step: ActionStep, torrent_id: str) -> None:
        """
        Apply an action step to a torrent

        Args:
            step: Action step to apply
            torrent_id: Torrent to apply it to

        Raises:
            ActionError: If the client rejects the action
        """
        method = getattr(self, ACTION_METHODS[step.verb])
        if step.verb == ActionVerb.DELETE:
            await method(torrent_id, step.delete_files)
        else:
            await method(torrent_id)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.identity}>"


class QBittorrentClient(TorrentClient):
    """qBittorrent implementation of the client capability"""

    def __init__(self, connection: Connection, api: Optional[QBittorrentAPI] = None):
        """
        Args:
            connection: Validated connection settings
            api: Pre-built API wrapper (tests); built lazily from connection otherwise
        """
        self.connection = connection
        self.api = api or QBittorrentAPI(
            host=connection.url,
            username=connection.username or '',
            password=connection.password or '',
            connect_now=False
        )

    @property
    def identity(self) -> str:
        return self.api.host

    async def login(self) -> None:
        await asyncio.to_thread(self.api.login)

    async def list_torrents(self) -> List[Torrent]:
        data = await asyncio.to_thread(self.api.get_torrents)
        return [Torrent.from_qbittorrent(entry) for entry in data]

    async def _act(self, action: str, func, torrent_id: str, *args) -> None:
        try:
            await asyncio.to_thread(func, [torrent_id], *args)
        except (qbittorrentapi.APIError, ClientError) as e:
            raise ActionError(torrent_id, action, self.identity, e) from e

    async def pause(self, torrent_id: str) -> None:
        await self._act(ActionVerb.PAUSE, self.api.stop_torrents, torrent_id)

    async def resume(self, torrent_id: str) -> None:
        await self._act(ActionVerb.RESUME, self.api.start_torrents, torrent_id)

    async def recheck(self, torrent_id: str) -> None:
        await self._act(ActionVerb.RECHECK, self.api.recheck_torrents, torrent_id)

    async def reannounce(self, torrent_id: str) -> None:
        await self._act(ActionVerb.REANNOUNCE, self.api.reannounce_torrents, torrent_id)

    async def increase_priority(self, torrent_id: str) -> None:
        await self._act(ActionVerb.INCREASE_PRIORITY, self.api.increase_priority, torrent_id)

    async def decrease_priority(self, torrent_id: str) -> None:
        await self._act(ActionVerb.DECREASE_PRIORITY, self.api.decrease_priority, torrent_id)

    async def maximise_priority(self, torrent_id: str) -> None:
        await self._act(ActionVerb.MAXIMISE_PRIORITY, self.api.set_top_priority, torrent_id)

    async def minimise_priority(self, torrent_id: str) -> None:
        await self._act(ActionVerb.MINIMISE_PRIORITY, self.api.set_bottom_priority, torrent_id)

    async def delete(self, torrent_id: str, delete_files: bool = False) -> None:
        await self._act(ActionVerb.DELETE, self.api.delete_torrents, torrent_id, delete_files)


def create_client(connection: Connection) -> TorrentClient:
    """Build the client implementation for a connection"""
    if connection.client == 'qbit':
        return QBittorrentClient(connection)
    raise ValueError(f"Unsupported torrent client: {connection.client}")


class TorrentClientManager:
    """Owns the client of every configured connection"""

    def __init__(self, connections: List[Connection]):
        self.clients: List[TorrentClient] = [create_client(connection) for connection in connections]
        logger.info(f"Detected {len(self.clients)} qBittorrent client connection(s)")

    def get_clients(self) -> List[TorrentClient]:
        return self.clients

    async def test_client_connections(self) -> None:
        """
        Log in to every client

        Raises:
            ClientError: If any client cannot be reached or rejects the login
        """
        logger.debug("Testing client connections")

        for client in self.clients:
            try:
                await client.login()
            except ClientError:
                logger.error(f"Unable to login to client {client.identity}")
                raise

        logger.debug("All clients connected successfully")
