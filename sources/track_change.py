"""
Track change detection.
Deduplicates consecutive snapshots and caches per-track artifacts.
"""
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from schemas import TrackSnapshot


@dataclass(frozen=True)
class TrackChange:
    """Result of observing one snapshot."""
    snapshot: TrackSnapshot
    is_new_track: bool
    changed: bool


class TrackChangeDetector:
    """
    Compares each snapshot with the previous one.

    A different {track, artist, album} key is a new track. Play/pause
    state, progress and artwork changes on the same track still count as a
    change, so only an identical repeat is suppressed. The artifact cache
    runs its resolver once per key and reuses the result for repeats.
    """

    def __init__(self):
        self._last: Optional[TrackSnapshot] = None
        self._artifact_key: Optional[Tuple[str, str, str]] = None
        self._artifact_ref = ''

    @property
    def last_snapshot(self) -> Optional[TrackSnapshot]:
        return self._last

    def observe(self, snapshot: TrackSnapshot) -> TrackChange:
        previous = self._last
        self._last = snapshot

        is_new_track = previous is None or previous.track_key != snapshot.track_key
        changed = is_new_track or previous != snapshot

        return TrackChange(snapshot=snapshot, is_new_track=is_new_track, changed=changed)

    def artifact_for(self, key: Tuple[str, str, str], resolve: Callable[[], str]) -> str:
        """
        Return the artifact reference for a track key.

        Args:
            key: Track identity key
            resolve: Produces the artifact; called only when the key changed

        Returns:
            Cached or freshly resolved artifact reference
        """
        if key != self._artifact_key:
            self._artifact_ref = resolve()
            self._artifact_key = key
        return self._artifact_ref

    def reset(self) -> None:
        """Forget the previous snapshot so the next one is reported again."""
        self._last = None
