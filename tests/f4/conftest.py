"""Fixtures for session tests: deterministic runner, executor and watcher."""

import queue

import pytest

from oscamp.core.progress import Outcome, ProgressTracker
from oscamp.core.runner import FailureKind, TestResult
from oscamp.core.session import Session
from oscamp.core.watcher import WatchError


class FakeExecutor:
    """Holds submitted jobs until the test runs them explicitly."""

    def __init__(self):
        self.jobs = []
        self.shutdown_called = False

    def submit(self, fn, *args, **kwargs):
        self.jobs.append((fn, args, kwargs))

    def run_next(self):
        fn, args, kwargs = self.jobs.pop(0)
        fn(*args, **kwargs)

    def shutdown(self, wait=True, cancel_futures=False):
        self.shutdown_called = True


class FakeRunner:
    """Returns scripted outcomes per exercise id (FAIL by default)."""

    def __init__(self):
        self.outcomes = {}
        self.calls = []

    def run(self, exercise, quiet=False):
        self.calls.append(exercise.id)
        outcome = self.outcomes.get(exercise.id, Outcome.FAIL)
        if isinstance(outcome, Exception):
            raise outcome
        return TestResult(
            exercise_id=exercise.id,
            outcome=outcome,
            output="" if outcome == Outcome.PASS else "assertion failed",
            failure=None if outcome == Outcome.PASS else FailureKind.TESTS_FAILED,
        )


class FakeWatcher:
    def __init__(self):
        self.watched = []
        self.fail_for = set()
        self.closed = False

    def watch(self, exercise_id, path):
        if exercise_id in self.fail_for:
            raise WatchError(path, OSError("watch limit reached"))
        self.watched.append(exercise_id)

    def close(self):
        self.closed = True


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def fake_executor():
    return FakeExecutor()


@pytest.fixture
def fake_watcher():
    return FakeWatcher()


@pytest.fixture
def session(plain_registry, fake_runner, fake_watcher, fake_executor):
    return Session(
        plain_registry,
        ProgressTracker(plain_registry),
        fake_runner,
        watcher=fake_watcher,
        events=queue.Queue(),
        executor=fake_executor,
    )
