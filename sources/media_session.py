"""
Local media-session providers.
Read-only access to the OS media sessions (Windows GSMTC via winsdk).
"""
import asyncio
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional

from utils import setup_logger
from utils.api_utils import TransientPlaybackError


logger = setup_logger(__name__)

# GlobalSystemMediaTransportControlsSessionPlaybackStatus.Playing
PLAYBACK_STATUS_PLAYING = 4


@dataclass(frozen=True)
class MediaSessionProperties:
    """What a media session reports about its current item."""
    title: Optional[str]
    artist: Optional[str]
    album: Optional[str]
    is_playing: bool
    duration_ms: int
    position_ms: int


class MediaSessionHandle(ABC):
    """One media session published by a local app."""

    @property
    @abstractmethod
    def source_app_id(self) -> str:
        """Identifier of the app that owns the session."""

    @abstractmethod
    def read_properties(self) -> Optional[MediaSessionProperties]:
        """Current media properties, or None if the session has none."""

    @abstractmethod
    def read_thumbnail(self) -> Optional[bytes]:
        """Raw thumbnail image bytes, or None if there is no thumbnail."""


class MediaSessionProvider(ABC):
    """Enumerates the media sessions active on this machine."""

    @abstractmethod
    def get_sessions(self) -> List[MediaSessionHandle]:
        pass


async def _await(operation: Any) -> Any:
    return await operation


def _run(operation: Any) -> Any:
    # Polls run on a worker thread with no event loop of its own
    return asyncio.run(_await(operation))


class WindowsMediaSession(MediaSessionHandle):
    """GlobalSystemMediaTransportControlsSession wrapper."""

    def __init__(self, session: Any, data_reader_cls: Any):
        self._session = session
        self._data_reader_cls = data_reader_cls
        self._media_properties: Any = None

    @property
    def source_app_id(self) -> str:
        return self._session.source_app_user_model_id or ''

    def read_properties(self) -> Optional[MediaSessionProperties]:
        try:
            props = _run(self._session.try_get_media_properties_async())
            playback_info = self._session.get_playback_info()
            timeline = self._session.get_timeline_properties()
        except OSError as e:
            raise TransientPlaybackError(f"Media session read failed: {e}") from e

        if props is None:
            return None
        self._media_properties = props

        is_playing = (
            playback_info is not None
            and playback_info.playback_status == PLAYBACK_STATUS_PLAYING
        )

        duration_ms = 0
        position_ms = 0
        if timeline is not None:
            if timeline.end_time:
                duration_ms = int(timeline.end_time.total_seconds() * 1000)
            if timeline.position:
                position_ms = int(timeline.position.total_seconds() * 1000)

        return MediaSessionProperties(
            title=props.title,
            artist=props.artist,
            album=props.album_title,
            is_playing=is_playing,
            duration_ms=duration_ms,
            position_ms=position_ms
        )

    def read_thumbnail(self) -> Optional[bytes]:
        if self._media_properties is None:
            self.read_properties()

        props = self._media_properties
        if props is None or not props.thumbnail:
            return None

        async def _read() -> Optional[bytes]:
            stream = await props.thumbnail.open_read_async()
            if not stream or not stream.size:
                return None
            reader = self._data_reader_cls(stream)
            await reader.load_async(stream.size)
            buffer = bytearray(stream.size)
            reader.read_bytes(buffer)
            return bytes(buffer)

        try:
            return asyncio.run(_read())
        except OSError as e:
            logger.debug(f"Failed to read thumbnail stream: {e}")
            return None


class WindowsMediaSessionProvider(MediaSessionProvider):
    """Media sessions from the Windows System Media Transport Controls."""

    def __init__(self):
        if sys.platform != 'win32':
            raise RuntimeError("Local playback mode requires Windows media sessions; use PLAYER_MODE=webapi")

        try:
            from winsdk.windows.media.control import (
                GlobalSystemMediaTransportControlsSessionManager as MediaManager
            )
            from winsdk.windows.storage.streams import DataReader
        except ImportError as e:
            raise RuntimeError("winsdk is not installed, Windows media integration is unavailable") from e

        self._manager_cls = MediaManager
        self._data_reader_cls = DataReader

    def get_sessions(self) -> List[MediaSessionHandle]:
        try:
            manager = _run(self._manager_cls.request_async())
            sessions = list(manager.get_sessions()) if manager else []
        except OSError as e:
            raise TransientPlaybackError(f"Media session manager unavailable: {e}") from e

        return [WindowsMediaSession(session, self._data_reader_cls) for session in sessions]
