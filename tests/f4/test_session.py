"""Tests for the interactive session loop (F4)."""

from structlog.testing import capture_logs

from oscamp.core.progress import JsonProgressStore, Outcome, ProgressTracker
from oscamp.core.runner import FailureKind
from oscamp.core.session import (
    Command,
    CommandIssued,
    Session,
    ViewMode,
    WatchFailed,
)
from oscamp.core.watcher import FileChanged


def finish_run(session, executor):
    """Let the worker finish the oldest job and apply its result."""
    executor.run_next()
    return session.pump()


class TestStart:
    def test_starts_on_first_incomplete(self, session, fake_watcher, fake_executor):
        session.tracker.record_outcome("alpha", Outcome.PASS)
        assert session.start() is True
        assert session.current.id == "beta"
        assert fake_watcher.watched == ["beta"]
        assert session.state.running == "beta"
        assert len(fake_executor.jobs) == 1

    def test_start_when_complete(self, session, fake_executor):
        for exercise_id in ("alpha", "beta", "gamma"):
            session.tracker.record_outcome(exercise_id, Outcome.PASS)
        assert session.start() is False
        assert fake_executor.jobs == []


class TestRunResults:
    """Results coming back from the worker."""

    def test_failure_stays_on_exercise(self, session, fake_executor):
        session.start()
        assert finish_run(session, fake_executor) == 1

        state = session.state
        assert state.current_index == 0
        assert state.running is None
        assert state.last_result.failure == FailureKind.TESTS_FAILED
        assert session.tracker.outcome_of("alpha") == Outcome.FAIL
        assert fake_executor.jobs == []

    def test_pass_auto_advances_and_reruns(self, session, fake_runner, fake_executor, fake_watcher):
        fake_runner.outcomes["alpha"] = Outcome.PASS
        session.start()
        finish_run(session, fake_executor)

        state = session.state
        assert session.tracker.outcome_of("alpha") == Outcome.PASS
        assert session.current.id == "beta"
        assert state.notice == "Exercise 'Alpha' passed! Auto-jump: Beta"
        assert fake_watcher.watched == ["alpha", "beta"]
        assert state.running == "beta"

        finish_run(session, fake_executor)
        assert fake_runner.calls == ["alpha", "beta"]
        assert session.current.id == "beta"

    def test_auto_advance_wraps_to_earlier_failure(self, session, fake_runner, fake_executor):
        session.tracker.record_outcome("alpha", Outcome.FAIL)
        session.navigator.jump_to(session.state, 2)
        fake_runner.outcomes["gamma"] = Outcome.PASS
        session.request_run()
        finish_run(session, fake_executor)
        assert session.current.id == "alpha"

    def test_last_pass_completes_curriculum(self, session, fake_runner, fake_executor):
        session.tracker.record_outcome("alpha", Outcome.PASS)
        session.tracker.record_outcome("beta", Outcome.PASS)
        fake_runner.outcomes["gamma"] = Outcome.PASS
        session.start()
        finish_run(session, fake_executor)

        assert session.current.id == "gamma"
        assert session.tracker.aggregate().is_complete
        assert session.state.last_result.passed
        assert fake_executor.jobs == []

    def test_stale_result_recorded_without_advancing(self, session, fake_runner, fake_executor):
        fake_runner.outcomes["alpha"] = Outcome.PASS
        session.start()
        session.dispatch(CommandIssued(Command.NEXT))
        assert session.state.pending_run is True

        finish_run(session, fake_executor)

        assert session.tracker.outcome_of("alpha") == Outcome.PASS
        assert session.current.id == "beta"
        assert session.state.last_result is None
        # the run queued by the move starts once the stale one is done
        assert session.state.running == "beta"
        finish_run(session, fake_executor)
        assert fake_runner.calls == ["alpha", "beta"]

    def test_runner_exception_becomes_failure(self, session, fake_runner, fake_executor):
        fake_runner.outcomes["alpha"] = RuntimeError("boom")
        session.start()
        finish_run(session, fake_executor)

        result = session.state.last_result
        assert result.outcome == Outcome.FAIL
        assert result.failure == FailureKind.LAUNCH_FAILED
        assert "boom" in result.detail


class TestFileChanges:
    def test_change_triggers_run(self, session, fake_executor):
        session.start()
        finish_run(session, fake_executor)

        session.events.put(FileChanged("alpha", "/ex/alpha/src"))
        session.pump()
        assert session.state.running == "alpha"
        assert len(fake_executor.jobs) == 1

    def test_changes_during_run_queue_one_rerun(self, session, fake_runner, fake_executor):
        session.start()
        for _ in range(3):
            session.events.put(FileChanged("alpha", "/ex/alpha/src"))
        session.pump()

        assert len(fake_executor.jobs) == 1
        assert session.state.pending_run is True
        assert session.state.notice == "Busy testing alpha, re-run queued"

        finish_run(session, fake_executor)
        assert len(fake_executor.jobs) == 1
        finish_run(session, fake_executor)
        assert fake_runner.calls == ["alpha", "alpha"]
        assert fake_executor.jobs == []

    def test_change_for_other_exercise_dropped(self, session, fake_executor):
        session.start()
        finish_run(session, fake_executor)

        session.dispatch(FileChanged("beta", "/ex/beta/src"))
        assert fake_executor.jobs == []


class TestCommands:
    """Keyboard commands."""

    def test_toggle_hint_and_list(self, session):
        session.dispatch(CommandIssued(Command.TOGGLE_HINT))
        assert session.state.mode == ViewMode.HINT
        session.dispatch(CommandIssued(Command.TOGGLE_LIST))
        assert session.state.mode == ViewMode.LIST
        session.dispatch(CommandIssued(Command.TOGGLE_LIST))
        assert session.state.mode == ViewMode.NORMAL

    def test_previous_wraps_and_runs(self, session, fake_executor, fake_watcher):
        session.dispatch(CommandIssued(Command.PREVIOUS))
        assert session.current.id == "gamma"
        assert fake_watcher.watched == ["gamma"]
        assert session.state.running == "gamma"

    def test_rerun(self, session, fake_runner, fake_executor):
        session.start()
        finish_run(session, fake_executor)
        session.dispatch(CommandIssued(Command.TOGGLE_HINT))
        session.dispatch(CommandIssued(Command.RERUN))
        assert session.state.mode == ViewMode.NORMAL
        finish_run(session, fake_executor)
        assert fake_runner.calls == ["alpha", "alpha"]

    def test_quit(self, session):
        session.dispatch(CommandIssued(Command.QUIT))
        assert session.state.quit is True


class TestWatchFailures:
    def test_watch_error_becomes_warning(self, session, fake_watcher):
        fake_watcher.fail_for.add("alpha")
        session.start()
        assert "cannot watch" in session.state.watch_warning
        # tests still run without a watcher
        assert session.state.running == "alpha"

    def test_warning_cleared_on_next_watch(self, session, fake_watcher):
        fake_watcher.fail_for.add("alpha")
        session.start()
        session.dispatch(CommandIssued(Command.NEXT))
        assert session.state.watch_warning is None

    def test_watch_failed_event(self, session):
        session.dispatch(WatchFailed("alpha", "observer died"))
        assert session.state.watch_warning == "observer died"
        session.dispatch(WatchFailed("beta", "ignored"))
        assert session.state.watch_warning == "observer died"


class TestLoop:
    def test_run_until_quit(self, session):
        frames = []
        session.events.put(CommandIssued(Command.TOGGLE_HINT))
        session.events.put(CommandIssued(Command.QUIT))
        session.run(lambda: frames.append(session.state.mode), poll_interval=0.01)
        assert frames == [ViewMode.NORMAL, ViewMode.HINT, ViewMode.HINT]

    def test_unknown_event_ignored(self, session):
        session.dispatch(object())
        assert session.state.quit is False

    def test_unknown_event_logged(self, session):
        with capture_logs() as logs:
            session.dispatch(object())
        assert [entry["event"] for entry in logs] == ["unknown_event"]
        assert logs[0]["log_level"] == "warning"
        assert "object" in logs[0]["received"]

    def test_close(self, session, fake_watcher, fake_executor):
        session.close()
        assert fake_watcher.closed
        assert fake_executor.shutdown_called

    def test_close_saves_progress(self, plain_registry, fake_runner, fake_executor, tmp_path):
        store = JsonProgressStore(tmp_path / ".oscamp" / "progress_v1.json")
        session = Session(
            plain_registry,
            ProgressTracker(plain_registry),
            fake_runner,
            executor=fake_executor,
            store=store,
        )
        session.tracker.record_outcome("alpha", Outcome.PASS)
        session.close()
        assert store.load() == {"alpha": Outcome.PASS}
