"""
Playback sources package.
Interchangeable backends that report what is currently playing.
"""
from .base import PlaybackSource
from .remote_source import RemoteApiSource
from .local_source import LocalSessionSource, thumbnail_path_for
from .media_session import (
    MediaSessionProvider,
    MediaSessionHandle,
    MediaSessionProperties,
    WindowsMediaSessionProvider
)
from .track_change import TrackChangeDetector, TrackChange

__all__ = [
    'PlaybackSource',
    'RemoteApiSource',
    'LocalSessionSource',
    'thumbnail_path_for',
    'MediaSessionProvider',
    'MediaSessionHandle',
    'MediaSessionProperties',
    'WindowsMediaSessionProvider',
    'TrackChangeDetector',
    'TrackChange'
]
