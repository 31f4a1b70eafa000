"""Interactive session loop.

Two producers feed one queue of immutable events:
- the file watcher (FileChanged, after debounce)
- the keyboard reader (CommandIssued)

Test runs execute on a single worker thread and report back through the
same queue (RunFinished), so only the loop thread ever mutates
SessionState or the ProgressTracker, and at most one run is in flight.

A run requested while another is in flight is queued and started once the
current one finishes. A result that arrives after the selection has moved
on is still recorded, but never triggers an auto-advance.
"""

from __future__ import annotations

import queue
from collections.abc import Callable
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum, auto

import structlog

from oscamp.core.navigation import Navigator
from oscamp.core.progress import Outcome, ProgressStore, ProgressTracker
from oscamp.core.registry import Exercise, Registry
from oscamp.core.runner import FailureKind, TestResult, TestRunner
from oscamp.core.watcher import FileChanged, FileWatcher, WatchError

logger = structlog.get_logger(__name__)


# =============================================================================
# EVENTS
# =============================================================================


class Command(Enum):
    """User commands, one per keyboard shortcut."""

    TOGGLE_HINT = auto()
    TOGGLE_LIST = auto()
    NEXT = auto()
    PREVIOUS = auto()
    RERUN = auto()
    QUIT = auto()


@dataclass(frozen=True)
class CommandIssued:
    command: Command


@dataclass(frozen=True)
class RunFinished:
    """A test run completed; generation is the selection it started under."""

    exercise_id: str
    generation: int
    result: TestResult


@dataclass(frozen=True)
class WatchFailed:
    exercise_id: str
    message: str


SessionEvent = FileChanged | CommandIssued | RunFinished | WatchFailed


# =============================================================================
# STATE
# =============================================================================


class ViewMode(Enum):
    NORMAL = auto()
    HINT = auto()
    LIST = auto()


@dataclass
class SessionState:
    """Everything the interactive view is derived from (besides progress)."""

    current_index: int = 0
    mode: ViewMode = ViewMode.NORMAL
    generation: int = 0
    running: str | None = None  # exercise id of the run in flight
    pending_run: bool = False
    last_result: TestResult | None = None
    notice: str | None = None
    watch_warning: str | None = None
    quit: bool = False


# =============================================================================
# SESSION
# =============================================================================


class Session:
    """Owns the session state and applies events to it."""

    def __init__(
        self,
        registry: Registry,
        tracker: ProgressTracker,
        runner: TestRunner,
        watcher: FileWatcher | None = None,
        events: queue.Queue | None = None,
        executor: Executor | None = None,
        store: ProgressStore | None = None,
    ):
        self.registry = registry
        self.tracker = tracker
        self.runner = runner
        self.watcher = watcher
        self.events: queue.Queue = events if events is not None else queue.Queue()
        self.state = SessionState()
        self.navigator = Navigator(registry, tracker)
        self.store = store
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="oscamp-run"
        )

    @property
    def current(self) -> Exercise:
        return self.registry.exercise_at(self.state.current_index)

    def start(self) -> bool:
        """Position on the first incomplete exercise, watch it and test it.

        Returns:
            False if every exercise is already PASS or SKIP.
        """
        if not self.navigator.jump_to_first_incomplete(self.state):
            logger.info("session_already_complete")
            return False
        self._watch_current()
        self.request_run()
        logger.info("session_started", exercise_id=self.current.id)
        return True

    # -------------------------------------------------------------------------
    # runs
    # -------------------------------------------------------------------------

    def request_run(self) -> None:
        """Test the current exercise, or queue the request if busy."""
        state = self.state
        if state.running is not None:
            state.pending_run = True
            state.notice = f"Busy testing {state.running}, re-run queued"
            logger.debug("run_queued", running=state.running)
            return

        exercise = self.current
        state.running = exercise.id
        state.mode = ViewMode.NORMAL
        self._executor.submit(self._run_job, exercise, state.generation)

    def _run_job(self, exercise: Exercise, generation: int) -> None:
        """Worker-thread body: run the tests and post the result."""
        try:
            result = self.runner.run(exercise)
        except Exception as e:
            logger.exception("run_crashed", exercise_id=exercise.id)
            result = TestResult(
                exercise_id=exercise.id,
                outcome=Outcome.FAIL,
                output=str(e),
                failure=FailureKind.LAUNCH_FAILED,
                detail=f"runner error: {e}",
            )
        self.events.put(RunFinished(exercise.id, generation, result))

    # -------------------------------------------------------------------------
    # event handling
    # -------------------------------------------------------------------------

    def dispatch(self, event: SessionEvent) -> None:
        """Apply one event to the session state."""
        if isinstance(event, RunFinished):
            self._on_run_finished(event)
        elif isinstance(event, FileChanged):
            self._on_file_changed(event)
        elif isinstance(event, CommandIssued):
            self._on_command(event.command)
        elif isinstance(event, WatchFailed):
            if event.exercise_id == self.current.id:
                self.state.watch_warning = event.message
        else:
            logger.warning("unknown_event", received=repr(event))

    def _on_file_changed(self, event: FileChanged) -> None:
        if event.exercise_id != self.current.id:
            logger.debug("stale_file_event_dropped", exercise_id=event.exercise_id)
            return
        self.state.notice = None
        self.request_run()

    def _on_command(self, command: Command) -> None:
        state = self.state
        if command == Command.QUIT:
            state.quit = True
        elif command == Command.TOGGLE_HINT:
            state.mode = ViewMode.NORMAL if state.mode == ViewMode.HINT else ViewMode.HINT
        elif command == Command.TOGGLE_LIST:
            state.mode = ViewMode.NORMAL if state.mode == ViewMode.LIST else ViewMode.LIST
        elif command == Command.NEXT:
            self.navigator.next(state)
            self._selection_changed()
        elif command == Command.PREVIOUS:
            self.navigator.previous(state)
            self._selection_changed()
        elif command == Command.RERUN:
            state.notice = None
            self.request_run()

    def _selection_changed(self) -> None:
        self.state.mode = ViewMode.NORMAL
        self.state.notice = None
        self._watch_current()
        self.request_run()

    def _watch_current(self) -> None:
        if self.watcher is None:
            return
        exercise = self.current
        try:
            self.watcher.watch(exercise.id, exercise.watch_dir)
            self.state.watch_warning = None
        except WatchError as e:
            logger.warning("watch_failed", exercise_id=exercise.id, error=str(e))
            self.state.watch_warning = str(e)

    def _on_run_finished(self, event: RunFinished) -> None:
        state = self.state
        self.tracker.record_outcome(event.exercise_id, event.result.outcome)
        state.running = None
        state.notice = None
        rerun = state.pending_run
        state.pending_run = False

        is_current = (
            event.generation == state.generation
            and event.exercise_id == self.current.id
        )
        if not is_current:
            logger.info(
                "stale_result_recorded",
                exercise_id=event.exercise_id,
                outcome=event.result.outcome.value,
            )
        else:
            state.last_result = event.result
            if event.result.passed:
                passed_name = self.current.name
                if self.navigator.auto_advance(state):
                    state.notice = (
                        f"Exercise '{passed_name}' passed! Auto-jump: {self.current.name}"
                    )
                    self._watch_current()
                    rerun = True
                else:
                    logger.info("curriculum_complete")

        if rerun:
            self.request_run()

    # -------------------------------------------------------------------------
    # loop
    # -------------------------------------------------------------------------

    def pump(self) -> int:
        """Dispatch every queued event without blocking.

        Returns:
            Number of events dispatched.
        """
        count = 0
        while True:
            try:
                event = self.events.get_nowait()
            except queue.Empty:
                return count
            self.dispatch(event)
            count += 1

    def run(self, render: Callable[[], None], poll_interval: float = 0.2) -> None:
        """Block on the event queue until a QUIT command arrives."""
        render()
        while not self.state.quit:
            try:
                event = self.events.get(timeout=poll_interval)
            except queue.Empty:
                continue
            self.dispatch(event)
            render()

    def close(self) -> None:
        """Stop watching and save progress.

        An in-flight test process is left to finish; its result is not saved.
        """
        if self.watcher is not None:
            self.watcher.close()
        self._executor.shutdown(wait=False, cancel_futures=True)
        if self.store is not None:
            self.store.save(self.tracker.snapshot())
