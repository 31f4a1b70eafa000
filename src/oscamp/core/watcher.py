"""File watcher for the current exercise.

Observes the directory that holds the current exercise's file and posts a
single FileChanged event on the sink once edits have been quiet for the
debounce period. Only one subscription is live at a time: watching a new
exercise cancels the previous one first, and a cancelled debouncer never
fires.

The watcher never touches session state; it only produces immutable events.
"""

from __future__ import annotations

import queue
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

logger = structlog.get_logger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.3


class WatchError(Exception):
    """A path could not be observed."""

    def __init__(self, path: Path, cause: Exception | None = None):
        self.path = path
        self.cause = cause
        reason = f": {cause}" if cause else ""
        super().__init__(f"cannot watch {path}{reason}")


@dataclass(frozen=True)
class FileChanged:
    """An exercise's files were modified (after debounce)."""

    exercise_id: str
    path: str


class Debouncer:
    """Coalesces bursts of triggers into one callback after a quiet period."""

    def __init__(self, quiet_seconds: float, callback: Callable[[], None]):
        self.quiet_seconds = quiet_seconds
        self._callback = callback
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._cancelled = False

    def trigger(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.quiet_seconds, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._timer = None
        self._callback()

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None


class _ExerciseEventHandler(FileSystemEventHandler):
    """Forwards file writes under the watched directory to a debouncer."""

    RELEVANT = (EVENT_TYPE_CREATED, EVENT_TYPE_MODIFIED, EVENT_TYPE_MOVED)

    def __init__(self, debouncer: Debouncer):
        super().__init__()
        self.debouncer = debouncer

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in self.RELEVANT:
            return
        self.debouncer.trigger()


class FileWatcher:
    """Watches one exercise at a time and posts FileChanged events."""

    def __init__(
        self,
        sink: queue.Queue,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        observer: Any | None = None,
    ):
        self.sink = sink
        self.debounce_seconds = debounce_seconds
        self._observer = observer if observer is not None else Observer()
        self._started = False
        self._watch: Any | None = None
        self._debouncer: Debouncer | None = None
        self.exercise_id: str | None = None
        self.path: Path | None = None

    def _ensure_started(self) -> None:
        if not self._started:
            self._observer.daemon = True
            self._observer.start()
            self._started = True

    def watch(self, exercise_id: str, path: Path) -> None:
        """Replace the current subscription with one for exercise_id.

        Raises:
            WatchError: If the path does not exist or cannot be observed
        """
        self.stop()

        path = Path(path)
        if not path.exists():
            raise WatchError(path, FileNotFoundError(f"{path} does not exist"))

        debouncer = Debouncer(
            self.debounce_seconds,
            lambda: self.sink.put(FileChanged(exercise_id=exercise_id, path=str(path))),
        )
        try:
            self._ensure_started()
            self._watch = self._observer.schedule(
                _ExerciseEventHandler(debouncer), str(path), recursive=True
            )
        except OSError as e:
            debouncer.cancel()
            raise WatchError(path, e) from e

        self._debouncer = debouncer
        self.exercise_id = exercise_id
        self.path = path
        logger.debug("watch_started", exercise_id=exercise_id, path=str(path))

    def stop(self) -> None:
        """Cancel the current subscription, if any."""
        if self._debouncer is not None:
            self._debouncer.cancel()
            self._debouncer = None
        if self._watch is not None:
            try:
                self._observer.unschedule(self._watch)
            except (KeyError, OSError) as e:
                logger.debug("unschedule_failed", error=str(e))
            self._watch = None
            logger.debug("watch_stopped", exercise_id=self.exercise_id)
        self.exercise_id = None
        self.path = None

    def close(self) -> None:
        """Stop watching and shut the observer thread down."""
        self.stop()
        if self._started:
            self._observer.stop()
            self._observer.join(timeout=2)
            self._started = False

    def events(self, timeout: float | None = None) -> Iterator[FileChanged]:
        """Lazy, unbounded view of FileChanged events on the sink.

        Stops when nothing arrives within timeout (None blocks forever).
        Other event types found on the sink are skipped.
        """
        while True:
            try:
                event = self.sink.get(timeout=timeout)
            except queue.Empty:
                return
            if isinstance(event, FileChanged):
                yield event
