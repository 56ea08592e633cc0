"""
Watch Loop

Continuous monitoring of a root directory. Filesystem notifications from a
watchdog observer are fed into a queue consumed by a single control thread
that runs an explicit state machine:

    IDLE -> WATCHING -> DEBOUNCING -> COMPARING -> WATCHING ...
    any state -> STOPPED (cancellation or unrecoverable failure)

Bursts of events are coalesced by the debounce window: every new event resets
the deadline, so one comparison runs ``debounce_seconds`` after the last event
of a burst.
"""
import os
import time
import queue
import logging
import threading
from enum import Enum, auto
from typing import Any, Callable, Dict, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .baseline import ManifestBuilder
from .core import (
    DriftReport,
    GuardianError,
    InputError,
    Manifest,
    OperationCancelled,
    WatchError,
)
from .diff import diff_manifests
from .handlers import ReportSink
from .store import ManifestStore
from .utils import is_within, normalize_path, should_ignore_path, to_relative

logger = logging.getLogger(__name__)

# Reading files while hashing produces opened/closed_no_write notifications on
# some platforms; only these event types indicate a possible change.
CHANGE_EVENT_TYPES = frozenset({'created', 'deleted', 'modified', 'moved', 'closed'})

_STOP = object()


class WatchState(Enum):
    """States of the watch loop."""
    IDLE = auto()
    WATCHING = auto()
    DEBOUNCING = auto()
    COMPARING = auto()
    STOPPED = auto()


class ChangeHandler(FileSystemEventHandler):
    """Forwards relevant watchdog events to the watch loop."""

    def __init__(self, loop: 'WatchLoop'):
        super().__init__()
        self.loop = loop

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in CHANGE_EVENT_TYPES:
            return
        # Directory mtime updates duplicate the events of their children
        if event.is_directory and event.event_type == 'modified':
            return

        paths = [event.src_path]
        if event.event_type == 'moved':
            paths.append(getattr(event, 'dest_path', None))
        for path in paths:
            if path and self.loop.is_relevant(os.fsdecode(path)):
                self.loop.notify(os.fsdecode(path))
                return


class WatchLoop:
    """
    Re-runs the drift comparison whenever the monitored tree changes.

    The baseline is loaded once when the loop starts and is never modified.
    """

    def __init__(
        self,
        root_path: str,
        store: ManifestStore,
        builder: ManifestBuilder,
        sink: ReportSink,
        config: Optional[Dict[str, Any]] = None,
        observer_factory: Callable[[], Any] = Observer,
        on_state_change: Optional[Callable[[WatchState, WatchState], None]] = None,
    ) -> None:
        """
        Initialize the watch loop.

        Args:
            root_path: Directory to monitor
            store: Store holding the baseline of ``root_path``
            builder: Builds the current manifest on each cycle
            sink: Receives drift reports and warnings
            config: Configuration dictionary with the following keys:
                - debounce_seconds: Quiet period before a comparison (default: 1.0)
                - poll_interval: Cancellation and health-check tick (default: 0.5)
                - retry_interval: Minimum delay between recovery attempts
                  while the root or the observer is unavailable (default: 2.0)
                - max_consecutive_failures: Failures tolerated before the loop
                  stops with a WatchError (default: 5)
            observer_factory: Creates watchdog observers
            on_state_change: Called with (old_state, new_state) on each transition
        """
        self.root_path = normalize_path(root_path)
        self.store = store
        self.builder = builder
        self.sink = sink
        self.config = config or {}
        self.debounce_seconds = float(self.config.get('debounce_seconds', 1.0))
        self.poll_interval = float(self.config.get('poll_interval', 0.5))
        self.retry_interval = float(self.config.get('retry_interval', 2.0))
        self.max_consecutive_failures = int(self.config.get('max_consecutive_failures', 5))
        self.observer_factory = observer_factory
        self.on_state_change = on_state_change

        self.state = WatchState.IDLE
        self.baseline: Optional[Manifest] = None
        self.cycles = 0
        self.reports_emitted = 0
        self.consecutive_failures = 0

        self._events: 'queue.Queue[Any]' = queue.Queue()
        self._stop_event = threading.Event()
        self._lock = threading.RLock()
        self._observer = None
        self._last_retry = 0.0
        self._fatal: Optional[WatchError] = None

    # -- public API ---------------------------------------------------------

    def notify(self, path: Optional[str] = None) -> None:
        """Signal that something under the root may have changed."""
        self._events.put(path)

    def stop(self) -> None:
        """Request cancellation. Safe to call from any thread or signal handler."""
        self._stop_event.set()
        self._events.put(_STOP)
        with self._lock:
            if self.state is WatchState.IDLE:
                self._transition(WatchState.STOPPED)

    @property
    def stopped(self) -> bool:
        return self.state is WatchState.STOPPED

    def is_relevant(self, path: str) -> bool:
        """Check whether an event path belongs to the monitored tree.

        Only the parent directory is resolved. The entry itself may be a
        symlink whose target lies anywhere.
        """
        normalized = normalize_path(path)
        if normalized == self.root_path:
            return True
        root = normalize_path(os.path.realpath(self.root_path))
        parent = normalize_path(os.path.realpath(os.path.dirname(normalized)))
        if not is_within(parent, root):
            return False
        rel = to_relative(os.path.join(parent, os.path.basename(normalized)), root)
        return not should_ignore_path(rel, self.builder.exclude_patterns)

    def run(self) -> None:
        """
        Run the loop until stopped.

        Raises:
            StoreError: if the baseline cannot be loaded
            InputError: if the root is not a usable directory
            WatchError: if subscribing fails at startup, or if the loop gave up
                after too many consecutive failures
        """
        with self._lock:
            if self.state is not WatchState.IDLE:
                if self.state is WatchState.STOPPED:
                    return
                raise RuntimeError("Watch loop is already running")
            self._transition(WatchState.WATCHING)

        try:
            self.baseline = self.store.load(self.root_path)
            self._subscribe()
            logger.info(
                f"Monitoring {self.root_path} for changes "
                f"(debounce {self.debounce_seconds:.2f}s, baseline of {len(self.baseline)} files)"
            )

            while not self._stop_event.is_set():
                if self.state is WatchState.WATCHING:
                    self._wait_for_event()
                elif self.state is WatchState.DEBOUNCING:
                    self._debounce()
                elif self.state is WatchState.COMPARING:
                    self._compare()
        finally:
            self._unsubscribe()
            with self._lock:
                self._transition(WatchState.STOPPED)
            logger.info(
                f"Stopped monitoring {self.root_path} after {self.cycles} comparison cycles"
            )

        if self._fatal is not None:
            raise self._fatal

    # -- states ---------------------------------------------------------------

    def _wait_for_event(self) -> None:
        try:
            item = self._events.get(timeout=self.poll_interval)
        except queue.Empty:
            self._check_health()
            return
        if item is _STOP:
            return
        logger.debug(f"Change notification: {item}")
        self._transition(WatchState.DEBOUNCING)

    def _debounce(self) -> None:
        deadline = time.monotonic() + self.debounce_seconds
        coalesced = 0
        while not self._stop_event.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                item = self._events.get(timeout=remaining)
            except queue.Empty:
                break
            if item is _STOP:
                return
            # Reset, not extend: fire one window after the last event
            coalesced += 1
            deadline = time.monotonic() + self.debounce_seconds

        if coalesced:
            logger.debug(f"Coalesced {coalesced} additional notifications")
        if not self._stop_event.is_set():
            self._transition(WatchState.COMPARING)

    def _compare(self) -> None:
        self.cycles += 1
        try:
            current = self.builder.build(self.root_path, cancel_event=self._stop_event)
        except OperationCancelled:
            logger.debug("Comparison abandoned by cancellation")
            return
        except (GuardianError, OSError) as e:
            self._record_failure(f"rebuild failed: {e}")
            self._transition(WatchState.WATCHING)
            return

        report = diff_manifests(self.baseline, current)
        if self._stop_event.is_set():
            logger.debug("Discarding comparison result after cancellation")
            return

        self.consecutive_failures = 0
        self._emit(report)
        self._transition(WatchState.WATCHING)
        self._ensure_subscribed()

    # -- helpers --------------------------------------------------------------

    def _emit(self, report: DriftReport) -> None:
        if report.has_drift:
            self.reports_emitted += 1
            self.sink(report, self.root_path)
        else:
            logger.info(f"Comparison cycle {self.cycles}: no drift")

    def _transition(self, new_state: WatchState) -> None:
        old_state = self.state
        if old_state is new_state:
            return
        self.state = new_state
        logger.debug(f"Watch loop: {old_state.name} -> {new_state.name}")
        if self.on_state_change is not None:
            try:
                self.on_state_change(old_state, new_state)
            except Exception as e:
                logger.error(f"Error in state change callback: {e}", exc_info=True)

    def _record_failure(self, reason: str) -> None:
        self.consecutive_failures += 1
        logger.error(
            f"Monitoring {self.root_path}: {reason} "
            f"({self.consecutive_failures}/{self.max_consecutive_failures})"
        )
        if self.consecutive_failures >= self.max_consecutive_failures:
            self._fatal = WatchError(
                f"Giving up on {self.root_path} after {self.consecutive_failures} "
                f"consecutive failures; last: {reason}"
            )
            self._stop_event.set()

    def _check_health(self) -> None:
        """Detect a vanished root or a dead observer between events."""
        healthy = os.path.isdir(self.root_path) and self._observer_alive()
        if healthy:
            return

        now = time.monotonic()
        if now - self._last_retry < self.retry_interval:
            return
        self._last_retry = now

        if not os.path.isdir(self.root_path):
            self._unsubscribe()
            self._record_failure("root path is missing")
            return

        if self._ensure_subscribed():
            # Changes may have been missed while unsubscribed
            self.notify()
        else:
            self._record_failure("could not re-subscribe to filesystem events")

    def _observer_alive(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def _ensure_subscribed(self) -> bool:
        if self._observer_alive():
            return True
        logger.warning(f"Filesystem observer for {self.root_path} is not running; re-subscribing")
        self._unsubscribe()
        try:
            self._subscribe()
        except (WatchError, InputError) as e:
            logger.error(f"Could not re-subscribe: {e}")
            return False
        return True

    def _subscribe(self) -> None:
        if not os.path.isdir(self.root_path):
            raise WatchError(f"Cannot watch {self.root_path}: not a directory")
        try:
            observer = self.observer_factory()
            observer.schedule(ChangeHandler(self), self.root_path, recursive=True)
            observer.start()
        except Exception as e:
            raise WatchError(f"Failed to watch {self.root_path}: {e}") from e
        self._observer = observer
        logger.debug(f"Subscribed to filesystem events under {self.root_path}")

    def _unsubscribe(self) -> None:
        observer, self._observer = self._observer, None
        if observer is None:
            return
        try:
            observer.unschedule_all()
            observer.stop()
            if observer.is_alive():
                observer.join(timeout=5)
        except Exception as e:
            logger.warning(f"Error releasing filesystem observer: {e}")
