"""
Configuration package for the now-playing companion.
Centralized configuration management using environment variables.
"""
from .settings import (
    SpotifyConfig,
    PlayerConfig,
    AppConfig,
    PLAYER_MODES,
    get_config,
    reset_config
)

__all__ = [
    'SpotifyConfig',
    'PlayerConfig',
    'AppConfig',
    'PLAYER_MODES',
    'get_config',
    'reset_config'
]
