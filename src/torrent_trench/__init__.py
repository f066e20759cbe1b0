"""
torrent-trench - scheduled housekeeping pipelines for torrent clients
"""

from torrent_trench.__version__ import __version__, __description__

__all__ = ['__version__', '__description__']
