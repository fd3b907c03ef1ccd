"""
Local media-session playback source.
"""
import hashlib
from pathlib import Path
from typing import Iterable, Optional, Tuple

from schemas import TrackSnapshot, track_key
from utils import setup_logger
from utils.api_utils import NoSessionError
from .base import PlaybackSource
from .media_session import MediaSessionHandle, MediaSessionProvider
from .track_change import TrackChangeDetector


logger = setup_logger(__name__)

UNKNOWN_TRACK = "Unknown Track"
THUMBNAIL_PREFIX = "nowplaying_"


def thumbnail_path_for(thumbnail_dir: Path, key: Tuple[str, str, str]) -> Path:
    """Content-addressed thumbnail location for a track key."""
    digest = hashlib.md5("|".join(key).encode('utf-8')).hexdigest().upper()
    return Path(thumbnail_dir) / f"{THUMBNAIL_PREFIX}{digest}.png"


class LocalSessionSource(PlaybackSource):
    """
    Reads current playback from a local media session.

    Only sessions whose app id contains app_identifier (case-insensitive)
    are considered, so other players such as browsers are ignored.
    """

    name = 'local'

    def __init__(
        self,
        provider: MediaSessionProvider,
        thumbnail_dir: Path,
        app_identifier: str = 'spotify'
    ):
        self.provider = provider
        self.thumbnail_dir = Path(thumbnail_dir)
        self.app_identifier = app_identifier.lower()
        self._artwork = TrackChangeDetector()

    def find_session(self, sessions: Iterable[MediaSessionHandle]) -> Optional[MediaSessionHandle]:
        for session in sessions:
            if self.app_identifier in (session.source_app_id or '').lower():
                return session
        return None

    def poll(self) -> TrackSnapshot:
        """
        Fetch one snapshot from the matching session.

        Raises:
            NoSessionError: No matching session, or it reports no media
            TransientPlaybackError: The provider failed
        """
        session = self.find_session(self.provider.get_sessions())
        if session is None:
            raise NoSessionError(f"No '{self.app_identifier}' media session found")

        props = session.read_properties()
        if props is None:
            raise NoSessionError("Media session reported no properties")

        track_name = props.title or UNKNOWN_TRACK
        artist_name = props.artist or ''
        album_name = props.album or ''
        key = track_key(track_name, artist_name, album_name)

        album_art_ref = self._artwork.artifact_for(key, lambda: self._extract_thumbnail(session, key))

        return TrackSnapshot(
            track_name=track_name,
            artist_name=artist_name,
            album_name=album_name,
            album_art_ref=album_art_ref,
            duration_ms=props.duration_ms,
            progress_ms=props.position_ms,
            is_playing=props.is_playing
        )

    def _extract_thumbnail(self, session: MediaSessionHandle, key: Tuple[str, str, str]) -> str:
        data = session.read_thumbnail()
        if not data:
            return ''

        path = thumbnail_path_for(self.thumbnail_dir, key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            logger.warning(f"Failed to extract thumbnail: {e}")
            return ''

        logger.debug(f"Thumbnail written to {path}")
        return str(path)
