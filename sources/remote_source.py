"""
Web API playback source.
"""
from typing import Optional

from clients import SpotifyAPIClient
from mappers import PlaybackMapper
from schemas import TrackSnapshot
from .base import PlaybackSource


class RemoteApiSource(PlaybackSource):
    """Reads current playback from the Spotify Web API."""

    name = 'webapi'

    def __init__(self, api_client: SpotifyAPIClient):
        self.api_client = api_client

    def poll(self) -> Optional[TrackSnapshot]:
        """
        Fetch one snapshot.

        Returns:
            TrackSnapshot, or None when nothing is playing (204 or no item)

        Raises:
            AuthRequiredError, TransientPlaybackError and subclasses
        """
        data = self.api_client.fetch_currently_playing()
        return PlaybackMapper.map_currently_playing(data)

    def close(self) -> None:
        self.api_client.close()
