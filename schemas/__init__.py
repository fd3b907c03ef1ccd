"""
Playback schemas package.
Defines data structures shared by the auth, source and polling layers.
"""
from .playback_models import (
    TokenRecord,
    AuthSession,
    TrackSnapshot,
    PlaybackConnectivity,
    track_key,
    EPOCH
)

__all__ = [
    'TokenRecord',
    'AuthSession',
    'TrackSnapshot',
    'PlaybackConnectivity',
    'track_key',
    'EPOCH'
]
