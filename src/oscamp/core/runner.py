"""Test runner.

Runs the test command of one exercise as a child process and classifies
the result:
- unmet platform constraints -> SKIP, no process spawned
- exit status 0              -> PASS
- non-zero exit status       -> FAIL (TESTS_FAILED)
- command cannot be launched -> FAIL (LAUNCH_FAILED)
- command exceeds timeout    -> FAIL (TIMED_OUT)

One process per call, no retries.
"""

from __future__ import annotations

import os
import subprocess
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import structlog

from oscamp.config.app_config import RunnerConfig
from oscamp.core.platform import HostInfo, runner_env
from oscamp.core.progress import Outcome, ProgressTracker
from oscamp.core.registry import Exercise, Registry

logger = structlog.get_logger(__name__)


class LaunchError(Exception):
    """The test command could not be started."""

    def __init__(self, command: list[str], cause: OSError):
        self.command = command
        self.cause = cause
        super().__init__(f"could not launch '{command[0]}': {cause.strerror or cause}")


class RunTimeoutError(Exception):
    """The test command did not finish within the configured timeout."""

    def __init__(self, timeout: float, output: str = ""):
        self.timeout = timeout
        self.output = output
        super().__init__(f"timed out after {timeout:g}s")


class FailureKind(Enum):
    TESTS_FAILED = "tests_failed"
    LAUNCH_FAILED = "launch_failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class TestResult:
    """Result of one test run."""

    __test__ = False  # not a pytest class

    exercise_id: str
    outcome: Outcome
    output: str = ""
    failure: FailureKind | None = None
    detail: str = ""
    command: str = ""
    duration: float = 0.0

    @property
    def passed(self) -> bool:
        return self.outcome == Outcome.PASS


def _decode(data: bytes | str | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


class TestRunner:
    """Builds and runs the test command for an exercise."""

    __test__ = False

    def __init__(
        self,
        config: RunnerConfig,
        host: HostInfo,
        sysroots: dict[str, str] | None = None,
    ):
        self.config = config
        self.host = host
        self.sysroots = sysroots or {}

    def build_command(self, exercise: Exercise, quiet: bool = False) -> list[str]:
        """Command line for one exercise.

        Layout: <command> [target args] [quiet args] [-- harness args]
        """
        fields = {"package": exercise.package, "target": exercise.target or ""}
        cmd = [part.format(**fields) for part in self.config.command]
        if exercise.target:
            cmd.extend(part.format(**fields) for part in self.config.target_args)
        if quiet:
            cmd.extend(self.config.quiet_args)

        harness: list[str] = []
        if not quiet:
            harness.extend(self.config.color_args)
        if exercise.target:
            harness.extend(self.config.target_harness_args)
        if harness:
            cmd.append("--")
            cmd.extend(harness)
        return cmd

    def build_env(self, exercise: Exercise) -> dict[str, str] | None:
        extra = runner_env(exercise, self.host, self.sysroots)
        if not extra:
            return None
        return {**os.environ, **extra}

    def _execute(self, cmd: list[str], env: dict[str, str] | None) -> subprocess.CompletedProcess:
        """Spawn the child process.

        Raises:
            LaunchError: If the binary is missing or not executable
            RunTimeoutError: If the process exceeds the timeout
        """
        try:
            return subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                env=env,
                timeout=self.config.timeout_seconds,
            )
        except subprocess.TimeoutExpired as e:
            output = _decode(e.stderr) + _decode(e.stdout)
            raise RunTimeoutError(e.timeout, output) from e
        except OSError as e:
            raise LaunchError(cmd, e) from e

    def run(self, exercise: Exercise, quiet: bool = False) -> TestResult:
        """Run the tests of one exercise.

        Args:
            exercise: Exercise to test
            quiet: Pass the quiet flags (used for batch scans)

        Returns:
            TestResult; launch failures and timeouts are FAIL results.
        """
        if not exercise.runnable:
            logger.debug("run_skipped", exercise_id=exercise.id, reason=exercise.skip_reason)
            return TestResult(
                exercise_id=exercise.id,
                outcome=Outcome.SKIP,
                detail=exercise.skip_reason or "",
            )

        cmd = self.build_command(exercise, quiet=quiet)
        cmd_string = " ".join(cmd)
        start_time = time.monotonic()
        logger.debug("run_started", exercise_id=exercise.id, command=cmd_string)

        try:
            completed = self._execute(cmd, self.build_env(exercise))
        except LaunchError as e:
            logger.warning("run_launch_failed", exercise_id=exercise.id, error=str(e))
            return TestResult(
                exercise_id=exercise.id,
                outcome=Outcome.FAIL,
                output=str(e),
                failure=FailureKind.LAUNCH_FAILED,
                detail=str(e),
                command=cmd_string,
                duration=time.monotonic() - start_time,
            )
        except RunTimeoutError as e:
            logger.warning("run_timed_out", exercise_id=exercise.id, timeout=e.timeout)
            return TestResult(
                exercise_id=exercise.id,
                outcome=Outcome.FAIL,
                output=e.output,
                failure=FailureKind.TIMED_OUT,
                detail=str(e),
                command=cmd_string,
                duration=time.monotonic() - start_time,
            )

        duration = time.monotonic() - start_time
        passed = completed.returncode == 0
        logger.debug(
            "run_finished",
            exercise_id=exercise.id,
            returncode=completed.returncode,
            duration=round(duration, 3),
        )
        return TestResult(
            exercise_id=exercise.id,
            outcome=Outcome.PASS if passed else Outcome.FAIL,
            output=(completed.stderr or "") + (completed.stdout or ""),
            failure=None if passed else FailureKind.TESTS_FAILED,
            detail="" if passed else f"exit status {completed.returncode}",
            command=cmd_string,
            duration=duration,
        )


def run_all(
    registry: Registry,
    runner: TestRunner,
    tracker: ProgressTracker,
    on_result: Callable[[Exercise, TestResult], None] | None = None,
    on_start: Callable[[Exercise], None] | None = None,
) -> list[TestResult]:
    """Run every exercise once, quietly, in curriculum order.

    Each outcome is recorded in the tracker as soon as its run completes.
    """
    results = []
    for exercise in registry:
        if on_start is not None:
            on_start(exercise)
        result = runner.run(exercise, quiet=True)
        tracker.record_outcome(exercise.id, result.outcome)
        results.append(result)
        if on_result is not None:
            on_result(exercise, result)
    summary = tracker.aggregate()
    logger.info(
        "run_all_finished",
        passed=summary.passed,
        failed=summary.failed,
        skipped=summary.skipped,
        total=summary.total,
    )
    return results
