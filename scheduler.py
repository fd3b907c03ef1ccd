"""
Polling scheduler for playback sources.
Drives a source on a fixed interval and turns poll results into events.
"""
import threading
from typing import Callable, List, Optional

import schedule

from schemas import PlaybackConnectivity, TrackSnapshot
from sources import PlaybackSource, TrackChangeDetector
from utils import setup_logger
from utils.api_utils import AuthRequiredError, NoSessionError, TransientPlaybackError


logger = setup_logger(__name__)

DEFAULT_MISS_THRESHOLD = 3


class EventChannel:
    """Ordered list of callbacks for one kind of event."""

    def __init__(self, name: str):
        self.name = name
        self._callbacks: List[Callable] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Callable) -> Callable[[], None]:
        """
        Register a callback.

        Returns:
            Function that removes the callback again
        """
        with self._lock:
            self._callbacks.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return unsubscribe

    def emit(self, *args) -> None:
        with self._lock:
            callbacks = list(self._callbacks)

        for callback in callbacks:
            try:
                callback(*args)
            except Exception:
                logger.exception(f"Listener for '{self.name}' raised")


class PollingScheduler:
    """
    Polls one playback source on a single worker thread.

    Events are emitted on the worker thread in poll order; listeners may
    call stop() but not start():
    - track_updated(snapshot, is_new_track): playback changed
    - playback_stopped(): nothing is playing
    - error(message): advisory failure, connectivity unchanged
    - connectivity_changed(connectivity): Unknown/Connected/Stopped transition

    A missing local session only counts as stopped after miss_threshold
    consecutive misses; a definitive "nothing playing" answer from the
    source stops immediately.
    """

    def __init__(self, source: PlaybackSource, miss_threshold: int = DEFAULT_MISS_THRESHOLD):
        """
        Initialize scheduler.

        Args:
            source: Playback source to poll
            miss_threshold: Consecutive missing-session polls before stopping
        """
        if miss_threshold < 1:
            raise ValueError("miss_threshold must be at least 1")

        self.source = source
        self.miss_threshold = miss_threshold

        self.track_updated = EventChannel('track_updated')
        self.playback_stopped = EventChannel('playback_stopped')
        self.error = EventChannel('error')
        self.connectivity_changed = EventChannel('connectivity_changed')

        self._jobs = schedule.Scheduler()
        self._detector = TrackChangeDetector()
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self._consecutive_misses = 0
        self._connectivity = PlaybackConnectivity.UNKNOWN

    # Subscription shortcuts

    def on_track_updated(self, callback: Callable[[TrackSnapshot, bool], None]) -> Callable[[], None]:
        return self.track_updated.subscribe(callback)

    def on_playback_stopped(self, callback: Callable[[], None]) -> Callable[[], None]:
        return self.playback_stopped.subscribe(callback)

    def on_error(self, callback: Callable[[str], None]) -> Callable[[], None]:
        return self.error.subscribe(callback)

    def on_connectivity_changed(self, callback: Callable[[PlaybackConnectivity], None]) -> Callable[[], None]:
        return self.connectivity_changed.subscribe(callback)

    @property
    def connectivity(self) -> PlaybackConnectivity:
        return self._connectivity

    @property
    def is_connected(self) -> bool:
        return self._connectivity is PlaybackConnectivity.CONNECTED

    @property
    def consecutive_misses(self) -> int:
        return self._consecutive_misses

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, interval_ms: int = 3000) -> None:
        """
        Start polling, replacing any previous run.
        Polls once immediately, then every interval_ms.
        Must not be called from an event listener.

        Args:
            interval_ms: Polling interval in milliseconds

        Raises:
            ValueError: interval_ms is not positive
            RuntimeError: Called on the polling thread
        """
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")

        if self._thread is not None and self._thread is threading.current_thread():
            # A worker cannot join itself
            raise RuntimeError("start() cannot be called from an event listener")

        with self._state_lock:
            self._stop_locked()

            self._consecutive_misses = 0
            self._connectivity = PlaybackConnectivity.UNKNOWN
            self._detector.reset()

            self._stop_event = threading.Event()
            self._jobs.every(interval_ms / 1000).seconds.do(self.poll_once)

            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event,),
                name=f"poll-{self.source.name}",
                daemon=True
            )
            self._thread.start()

        logger.info(f"Polling {self.source.name} source every {interval_ms}ms")

    def stop(self) -> None:
        """
        Stop polling. Returns once no further poll can run.
        Idempotent; safe to call from an event listener.
        """
        thread = self._thread
        if thread is not None and thread is threading.current_thread():
            # Called from a listener: the worker exits after this poll
            self._stop_event.set()
            self._jobs.clear()
            return

        with self._state_lock:
            self._stop_locked()

    def _stop_locked(self) -> None:
        thread = self._thread
        if thread is None:
            return

        self._stop_event.set()
        if thread is not threading.current_thread():
            thread.join()

        self._thread = None
        self._jobs.clear()
        self._connectivity = PlaybackConnectivity.UNKNOWN
        logger.info(f"Stopped polling {self.source.name} source")

    def close(self) -> None:
        """Stop polling and release the source."""
        self.stop()
        self.source.close()

    def _run(self, stop_event: threading.Event) -> None:
        self.poll_once()

        while not stop_event.is_set():
            idle = self._jobs.idle_seconds
            if idle is None:
                break
            if idle > 0:
                stop_event.wait(idle)
                continue
            self._jobs.run_pending()

    def poll_once(self) -> None:
        """Run one poll and emit the resulting events."""
        try:
            snapshot = self.source.poll()
        except NoSessionError as e:
            self._handle_missing_session(e)
        except AuthRequiredError as e:
            logger.warning(f"Authentication required: {e}")
            self.error.emit(str(e))
        except TransientPlaybackError as e:
            logger.warning(f"Poll failed: {e}")
            self.error.emit(str(e))
        except Exception as e:
            logger.exception("Polling error")
            self.error.emit(f"Polling error: {e}")
        else:
            if snapshot is None:
                self._handle_nothing_playing()
            else:
                self._handle_snapshot(snapshot)

    def _handle_snapshot(self, snapshot: TrackSnapshot) -> None:
        self._consecutive_misses = 0
        self._set_connectivity(PlaybackConnectivity.CONNECTED)

        change = self._detector.observe(snapshot)
        if change.is_new_track:
            logger.info(f"Now playing: {snapshot.track_name} - {snapshot.artist_name}")
        if change.changed:
            self.track_updated.emit(snapshot, change.is_new_track)

    def _handle_nothing_playing(self) -> None:
        self._consecutive_misses = 0
        self._set_connectivity(PlaybackConnectivity.STOPPED)
        self._detector.reset()
        self.playback_stopped.emit()

    def _handle_missing_session(self, error: NoSessionError) -> None:
        self._consecutive_misses += 1
        logger.debug(f"{error} (miss {self._consecutive_misses}/{self.miss_threshold})")

        if self._consecutive_misses < self.miss_threshold:
            return

        self._set_connectivity(PlaybackConnectivity.STOPPED)
        self._detector.reset()
        self.playback_stopped.emit()

    def _set_connectivity(self, connectivity: PlaybackConnectivity) -> None:
        if connectivity is self._connectivity:
            return
        self._connectivity = connectivity
        logger.debug(f"Connectivity -> {connectivity.value}")
        self.connectivity_changed.emit(connectivity)
