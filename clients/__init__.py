"""
API clients package.
Handles authentication and communication with Spotify API.
"""
from .spotify_api import SpotifyAPIClient

__all__ = [
    'SpotifyAPIClient'
]
