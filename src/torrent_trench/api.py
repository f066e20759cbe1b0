"""
qBittorrent Web API client - qbittorrent-api wrapper

Wraps the qbittorrent-api package (qBittorrent v4.1+ through v5.x) behind the
small set of calls trenches need. Calls are blocking; the async client
capability in torrent_trench.clients runs them in worker threads.
"""

import threading
from typing import Dict, List

import qbittorrentapi

from torrent_trench.errors import AuthenticationError, ClientError, ConnectionError
from torrent_trench.logging import get_logger

logger = get_logger(__name__)


class QBittorrentAPI:
    """
    One qBittorrent connection as seen by the trench runner

    Lists torrents for a tick and applies trench actions to single torrent
    hashes. Login failures are raised as TrenchError subclasses so startup can
    report them; action failures surface as qbittorrent-api errors for the
    caller to wrap.

    The instance is shared by every worker thread of a tick, so the first
    login is serialised.
    """

    def __init__(self, host: str, username: str, password: str, connect_now: bool = True):
        """
        Args:
            host: Web UI URL from the connection entry, e.g. 'http://qbit.lan:8080'
            username: Web UI username
            password: Web UI password
            connect_now: Log in now instead of on the first call

        Raises:
            AuthenticationError: Credentials were rejected (connect_now only)
            ConnectionError: Web UI unreachable (connect_now only)
        """
        self.host = host.rstrip('/')
        self.username = username
        self.password = password
        self._connected = False
        self._login_lock = threading.Lock()

        # qbittorrent-api does not talk to the server until the first request
        self.client = qbittorrentapi.Client(
            host=self.host,
            username=self.username,
            password=self.password
        )

        if connect_now:
            self._ensure_connected()

    def _log_in(self):
        try:
            self.client.auth_log_in()
        except qbittorrentapi.LoginFailed as e:
            raise AuthenticationError(self.host, str(e))
        except qbittorrentapi.APIConnectionError as e:
            raise ConnectionError(self.host, str(e))
        except qbittorrentapi.APIError as e:
            raise ClientError(self.host, f"{type(e).__name__}: {e}")

        self._connected = True
        logger.info(f"Logged in to qBittorrent at {self.host}")
        logger.debug(f"{self.host} runs qBittorrent {self.client.app_version()} "
                     f"(Web API {self.client.app_web_api_version()})")

    def _ensure_connected(self):
        """Log in once; concurrent callers wait for the first login"""
        if self._connected:
            return

        with self._login_lock:
            if not self._connected:
                self._log_in()

    def login(self):
        """Log in again, dropping any earlier session"""
        with self._login_lock:
            self._connected = False
            self._log_in()

    def get_torrents(self) -> List[Dict]:
        """
        Fetch every torrent for a tick

        Returns:
            Plain /torrents/info entries

        Raises:
            ClientError: The list could not be fetched (ConnectionError when unreachable)
        """
        self._ensure_connected()

        try:
            torrents = self.client.torrents_info()
        except qbittorrentapi.APIConnectionError as e:
            raise ConnectionError(self.host, str(e))
        except qbittorrentapi.APIError as e:
            raise ClientError(self.host, f"{type(e).__name__}: {e}")

        return [dict(t) for t in torrents]

    def _apply(self, endpoint: str, hashes: List[str], **options) -> bool:
        self._ensure_connected()
        getattr(self.client, endpoint)(torrent_hashes=hashes, **options)
        return True

    # Trench actions; each maps to one qbittorrent-api torrents_* call

    def stop_torrents(self, hashes: List[str]) -> bool:
        """pause"""
        return self._apply('torrents_pause', hashes)

    def start_torrents(self, hashes: List[str]) -> bool:
        """resume"""
        return self._apply('torrents_resume', hashes)

    def recheck_torrents(self, hashes: List[str]) -> bool:
        return self._apply('torrents_recheck', hashes)

    def reannounce_torrents(self, hashes: List[str]) -> bool:
        return self._apply('torrents_reannounce', hashes)

    def delete_torrents(self, hashes: List[str], delete_files: bool) -> bool:
        """delete, removing downloaded data only when delete_files is set"""
        return self._apply('torrents_delete', hashes, delete_files=delete_files)

    def increase_priority(self, hashes: List[str]) -> bool:
        """increasePriority"""
        return self._apply('torrents_increase_priority', hashes)

    def decrease_priority(self, hashes: List[str]) -> bool:
        """decreasePriority"""
        return self._apply('torrents_decrease_priority', hashes)

    def set_top_priority(self, hashes: List[str]) -> bool:
        """maximisePriority"""
        return self._apply('torrents_top_priority', hashes)

    def set_bottom_priority(self, hashes: List[str]) -> bool:
        """minimisePriority"""
        return self._apply('torrents_bottom_priority', hashes)
