"""
Playback data model definitions.
Token record, authorization session, track snapshot and connectivity state.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Tuple


# Earliest representable expiry; an empty record is always expired
EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class TokenRecord:
    """
    OAuth token record.
    The user is authenticated iff refresh_token is non-empty.
    """
    access_token: str = ''
    refresh_token: str = ''
    expires_at: datetime = EPOCH

    @property
    def is_authenticated(self) -> bool:
        return bool(self.refresh_token)


@dataclass(frozen=True)
class AuthSession:
    """State of one authorization attempt, discarded once it ends."""
    client_id: str
    code_verifier: str
    code_challenge: str
    redirect_uri: str


@dataclass(frozen=True)
class TrackSnapshot:
    """
    One observation of current playback.

    album_art_ref is a remote image URL for the Web API source and a
    local file path for the media-session source (empty when unknown).
    """
    track_name: str = ''
    artist_name: str = ''
    album_name: str = ''
    album_art_ref: str = ''
    duration_ms: int = 0
    progress_ms: int = 0
    is_playing: bool = False

    @property
    def track_key(self) -> Tuple[str, str, str]:
        """Identity of the track, independent of playback position."""
        return track_key(self.track_name, self.artist_name, self.album_name)


def track_key(track_name: str, artist_name: str, album_name: str) -> Tuple[str, str, str]:
    """Composite identity key for a track."""
    return (track_name, artist_name, album_name)


class PlaybackConnectivity(Enum):
    """Connectivity of a playback source as seen by the scheduler."""
    UNKNOWN = 'unknown'
    CONNECTED = 'connected'
    STOPPED = 'stopped'
