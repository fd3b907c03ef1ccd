"""
Spotify Web API client.
Fetches the user's currently playing track.
"""
from typing import Any, Dict, Optional

import requests

from config import SpotifyConfig
from utils import setup_logger
from utils.api_utils import AuthRequiredError, NetworkFailureError, validate_response
from .auth import TokenLifecycleManager


logger = setup_logger(__name__)


class SpotifyAPIClient:
    """
    Spotify Web API client for playback state.

    Responsibilities:
    - Make sure the access token is valid before each call
    - Retry exactly once after a 401, with a freshly refreshed token
    - Translate transport and HTTP failures into playback errors
    """

    BASE_URL = "https://api.spotify.com/v1"
    CURRENTLY_PLAYING = "/me/player/currently-playing"

    def __init__(
        self,
        config: SpotifyConfig,
        auth: TokenLifecycleManager,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize API client.

        Args:
            config: Spotify configuration
            auth: Token lifecycle manager supplying access tokens
            session: HTTP session (defaults to a new requests.Session)
        """
        self.config = config
        self.auth = auth
        self.session = session or requests.Session()

    def _get(self, endpoint: str) -> requests.Response:
        url = f"{self.BASE_URL}{endpoint}"
        headers = {
            'Authorization': f'Bearer {self.auth.access_token}',
            'Accept': 'application/json'
        }

        try:
            return self.session.get(url, headers=headers, timeout=self.config.request_timeout)
        except requests.exceptions.RequestException as e:
            raise NetworkFailureError(f"Network error: {e}") from e

    def fetch_currently_playing(self) -> Optional[Dict[str, Any]]:
        """
        Fetch the currently playing object.

        Returns:
            Parsed response JSON, or None on 204 (nothing playing)

        Raises:
            AuthRequiredError: Token invalid and refresh failed
            NetworkFailureError: Transport failure
            TransientPlaybackError: Any other non-2xx response
            MalformedResponseError: Body is not a JSON object
        """
        if not self.auth.ensure_valid():
            raise AuthRequiredError("Failed to refresh Spotify token. Please reconnect.")

        response = self._get(self.CURRENTLY_PLAYING)

        if response.status_code == 401:
            logger.info("Access token rejected, refreshing once...")
            if not self.auth.refresh():
                raise AuthRequiredError("Authentication expired. Please reconnect.")
            response = self._get(self.CURRENTLY_PLAYING)

        return validate_response(response)

    def close(self) -> None:
        self.session.close()
