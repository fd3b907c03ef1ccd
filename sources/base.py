"""
Playback source interface.
"""
from abc import ABC, abstractmethod
from typing import Optional

from schemas import TrackSnapshot


class PlaybackSource(ABC):
    """
    Something that can report what is playing right now.

    poll() returns a TrackSnapshot, or None when the source says
    definitively that nothing is playing. Failures are raised as the
    PlaybackError subclasses in utils.api_utils.
    """

    name = 'source'

    @abstractmethod
    def poll(self) -> Optional[TrackSnapshot]:
        """Fetch one snapshot of current playback."""

    def close(self) -> None:
        """Release resources held by the source."""
        pass
