"""Version information for torrent-trench"""

__version__ = '1.2.0'
__description__ = 'Scheduled filter/action pipelines for torrent client housekeeping'
