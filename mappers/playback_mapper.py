"""
Currently-playing mapper.
Transforms raw Web API responses into TrackSnapshot objects.
"""
from typing import Any, Dict, List, Optional

from schemas import TrackSnapshot
from utils import setup_logger
from utils.api_utils import MalformedResponseError


logger = setup_logger(__name__)

UNKNOWN_TRACK = "Unknown Track"


class PlaybackMapper:
    """
    Maps currently-playing responses to TrackSnapshot.

    Responsibilities:
    - Extract the fields the display needs from API JSON
    - Default missing optional fields to empty/zero
    - Reject responses whose track object has the wrong shape
    """

    @staticmethod
    def map_currently_playing(data: Optional[Dict[str, Any]]) -> Optional[TrackSnapshot]:
        """
        Map a currently-playing response.

        Args:
            data: Parsed response JSON (None for 204)

        Returns:
            TrackSnapshot, or None when no item is playing

        Raises:
            MalformedResponseError: The track object is not usable
        """
        if not data or data.get('item') is None:
            return None

        item = data['item']
        if not isinstance(item, dict):
            raise MalformedResponseError(f"Unexpected 'item' type: {type(item).__name__}")

        try:
            album = item.get('album') or {}

            return TrackSnapshot(
                track_name=item.get('name') or UNKNOWN_TRACK,
                artist_name=", ".join(PlaybackMapper._artist_names(item.get('artists') or [])),
                album_name=album.get('name') or '',
                album_art_ref=PlaybackMapper._first_image_url(album.get('images') or []),
                duration_ms=int(item.get('duration_ms') or 0),
                progress_ms=int(data.get('progress_ms') or 0),
                is_playing=bool(data.get('is_playing', False))
            )
        except (AttributeError, TypeError, ValueError) as e:
            logger.warning(f"Failed to parse track data: {e}")
            raise MalformedResponseError(f"Failed to parse track data: {e}") from e

    @staticmethod
    def _artist_names(artists: List[Dict[str, Any]]) -> List[str]:
        return [artist.get('name') for artist in artists if artist.get('name')]

    @staticmethod
    def _first_image_url(images: List[Dict[str, Any]]) -> str:
        # Spotify lists album images largest first
        for image in images:
            return image.get('url') or ''
        return ''
