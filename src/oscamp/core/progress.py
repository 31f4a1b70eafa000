"""Progress tracking.

Responsibilities:
- Own the outcome of every exercise (NOT_RUN / PASS / FAIL / SKIP)
- Derive aggregate statistics over the whole curriculum
- Find the next exercise still to be done, wrapping around the list
- Optionally load/save outcomes through a ProgressStore

State persistence (optional, off by default):
- .oscamp/progress_v1.json
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

import structlog

from oscamp.core.registry import Registry, RegistryLookupError

logger = structlog.get_logger(__name__)

STATE_SCHEMA = "progress_v1"


class Outcome(Enum):
    """Classification of an exercise's latest attempt."""

    NOT_RUN = "not_run"
    PASS = "pass"
    FAIL = "fail"
    SKIP = "skip"

    @property
    def is_done(self) -> bool:
        """PASS and SKIP both count as nothing left to do."""
        return self in (Outcome.PASS, Outcome.SKIP)


@dataclass(frozen=True)
class ProgressSummary:
    """Aggregate counts over the full curriculum."""

    passed: int
    failed: int
    skipped: int
    total: int

    @property
    def not_run(self) -> int:
        return self.total - self.passed - self.failed - self.skipped

    @property
    def done(self) -> int:
        return self.passed + self.skipped

    @property
    def percent(self) -> int:
        if self.total == 0:
            return 0
        return self.passed * 100 // self.total

    @property
    def is_complete(self) -> bool:
        return self.done == self.total


class ProgressTracker:
    """Per-exercise outcomes for one session.

    Exercises whose platform constraints are unmet are recorded as SKIP on
    construction.
    """

    def __init__(self, registry: Registry):
        self._registry = registry
        self._outcomes: dict[str, Outcome] = {}
        for exercise in registry:
            if not exercise.runnable:
                self._outcomes[exercise.id] = Outcome.SKIP

    @property
    def registry(self) -> Registry:
        return self._registry

    def record_outcome(self, exercise_id: str, outcome: Outcome) -> None:
        """Overwrite the outcome for an exercise.

        Raises:
            RegistryLookupError: If exercise_id is not in the registry
        """
        self._registry.index_of(exercise_id)
        previous = self._outcomes.get(exercise_id, Outcome.NOT_RUN)
        self._outcomes[exercise_id] = outcome
        if previous != outcome:
            logger.debug(
                "outcome_changed",
                exercise_id=exercise_id,
                previous=previous.value,
                outcome=outcome.value,
            )

    def outcome_of(self, exercise_id: str) -> Outcome:
        return self._outcomes.get(exercise_id, Outcome.NOT_RUN)

    def outcome_at(self, index: int) -> Outcome:
        return self.outcome_of(self._registry.exercise_at(index).id)

    def aggregate(self) -> ProgressSummary:
        outcomes = [self.outcome_of(ex.id) for ex in self._registry]
        return ProgressSummary(
            passed=outcomes.count(Outcome.PASS),
            failed=outcomes.count(Outcome.FAIL),
            skipped=outcomes.count(Outcome.SKIP),
            total=len(self._registry),
        )

    def next_incomplete(self, from_index: int) -> int | None:
        """First index after from_index (wrapping) that is not PASS or SKIP.

        from_index itself is checked last. Returns None when every exercise
        is PASS or SKIP.
        """
        total = len(self._registry)
        for step in range(1, total + 1):
            index = (from_index + step) % total
            if not self.outcome_at(index).is_done:
                return index
        return None

    def first_incomplete(self) -> int | None:
        """First index from the start of the curriculum that is not done."""
        return self.next_incomplete(len(self._registry) - 1)

    def snapshot(self) -> dict[str, Outcome]:
        return dict(self._outcomes)

    def restore(self, outcomes: dict[str, Outcome]) -> int:
        """Apply stored outcomes; unknown ids and SKIP entries are ignored.

        Returns:
            Number of outcomes applied.
        """
        applied = 0
        for exercise_id, outcome in outcomes.items():
            if outcome == Outcome.SKIP:
                continue
            try:
                exercise = self._registry.get(exercise_id)
            except RegistryLookupError:
                logger.warning("stored_outcome_unknown_exercise", exercise_id=exercise_id)
                continue
            if not exercise.runnable:
                continue
            self._outcomes[exercise_id] = outcome
            applied += 1
        return applied


# =============================================================================
# PERSISTENCE
# =============================================================================


class ProgressStore(Protocol):
    """Load-at-start / save-at-exit collaborator."""

    def load(self) -> dict[str, Outcome]: ...

    def save(self, outcomes: dict[str, Outcome]) -> None: ...


class JsonProgressStore:
    """Stores outcomes as JSON on disk."""

    def __init__(self, path: Path):
        self.path = path

    def load(self) -> dict[str, Outcome]:
        """Load outcomes, or an empty mapping if the file is missing or invalid."""
        if not self.path.exists():
            logger.debug("progress_state_not_found", path=str(self.path))
            return {}

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.error("progress_state_load_failed", error=str(e))
            return {}

        if not isinstance(data, dict) or data.get("$schema") != STATE_SCHEMA:
            logger.warning(
                "progress_state_invalid_schema",
                expected=STATE_SCHEMA,
                got=data.get("$schema") if isinstance(data, dict) else None,
            )
            return {}

        stored = data.get("outcomes", {})
        if not isinstance(stored, dict):
            logger.warning("progress_state_bad_outcomes", got=type(stored).__name__)
            return {}

        outcomes: dict[str, Outcome] = {}
        for exercise_id, value in stored.items():
            try:
                outcomes[str(exercise_id)] = Outcome(value)
            except (ValueError, TypeError):
                logger.warning("progress_state_bad_outcome", exercise_id=exercise_id, value=value)
        return outcomes

    def save(self, outcomes: dict[str, Outcome]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "$schema": STATE_SCHEMA,
            "outcomes": {
                exercise_id: outcome.value
                for exercise_id, outcome in outcomes.items()
                if outcome != Outcome.SKIP
            },
        }
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
        logger.info("progress_state_saved", path=str(self.path))
