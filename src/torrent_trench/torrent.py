"""
Normalized torrent snapshot

Trenches filter on a small, client independent view of a torrent. Anything
client specific stays available through `raw`, which may be missing entries.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional


@dataclass(frozen=True)
class Torrent:
    """Read-only torrent snapshot, refreshed on every scheduler tick"""
    id: str
    name: str
    label: Optional[str] = None
    save_path: Optional[str] = None
    progress: float = 0.0
    ratio: float = 0.0
    is_completed: bool = False
    raw: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_qbittorrent(cls, data: Dict[str, Any]) -> 'Torrent':
        """
        Build a snapshot from a qBittorrent /torrents/info entry

        Args:
            data: Torrent dictionary as returned by the Web API

        Returns:
            Torrent snapshot; `raw` keeps the full dictionary
        """
        progress = float(data.get('progress') or 0.0)
        return cls(
            id=data['hash'],
            name=data.get('name', ''),
            label=data.get('category'),
            save_path=data.get('save_path'),
            progress=progress,
            ratio=float(data.get('ratio') or 0.0),
            is_completed=progress >= 1,
            raw=MappingProxyType(dict(data)),
        )
