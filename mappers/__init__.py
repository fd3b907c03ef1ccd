"""
Data mappers package.
Transforms raw API data into playback snapshots.
"""
from .playback_mapper import PlaybackMapper

__all__ = [
    'PlaybackMapper'
]
