"""
API Utilities Module

Single Responsibility: Classify playback failures
- Define the failure kinds a playback source can report
- Turn HTTP responses into parsed JSON or one of those failures

Sources raise these; the polling scheduler catches them.
"""

from typing import Optional

import requests


class PlaybackError(Exception):
    """Base class for playback source failures."""
    pass


class NoSessionError(PlaybackError):
    """No matching media session is active. Counts toward the stop debounce."""
    pass


class AuthRequiredError(PlaybackError):
    """Credentials are missing or expired and could not be refreshed."""
    pass


class TransientPlaybackError(PlaybackError):
    """A source-side failure worth retrying on the next poll."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NetworkFailureError(TransientPlaybackError):
    """Transport-level failure talking to the remote API."""
    pass


class MalformedResponseError(TransientPlaybackError):
    """Response did not have the expected shape."""
    pass


def validate_response(response: requests.Response) -> Optional[dict]:
    """
    Validate and parse API response.

    Args:
        response: requests.Response object

    Returns:
        Parsed JSON response, or None for 204 No Content

    Raises:
        TransientPlaybackError: If the status is not 2xx
        MalformedResponseError: If the body is not a JSON object
    """
    if response.status_code == 204:
        return None

    if not 200 <= response.status_code < 300:
        raise TransientPlaybackError(
            f"Spotify API error: {response.status_code}",
            status_code=response.status_code
        )

    # An empty body carries no playback, same as 204
    if not response.content:
        return None

    try:
        data = response.json()
    except ValueError as e:
        raise MalformedResponseError(
            f"Invalid JSON response: {e}",
            status_code=response.status_code
        ) from e

    if not isinstance(data, dict):
        raise MalformedResponseError(
            f"Expected a JSON object, got {type(data).__name__}",
            status_code=response.status_code
        )

    return data
