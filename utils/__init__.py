"""
Utilities package for the now-playing companion.
Provides common utilities for logging and API error handling.
"""
from .logger import setup_logger, set_log_level, ColoredFormatter
from .api_utils import (
    PlaybackError,
    NoSessionError,
    AuthRequiredError,
    TransientPlaybackError,
    NetworkFailureError,
    MalformedResponseError,
    validate_response
)

__all__ = [
    'setup_logger',
    'set_log_level',
    'ColoredFormatter',
    'PlaybackError',
    'NoSessionError',
    'AuthRequiredError',
    'TransientPlaybackError',
    'NetworkFailureError',
    'MalformedResponseError',
    'validate_response'
]
