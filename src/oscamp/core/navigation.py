"""Navigation over the flattened exercise list.

The Navigator is the only writer of SessionState.current_index. Every move
bumps SessionState.generation so results started under an older selection
can be told apart.

Moves wrap at both ends of the list.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from oscamp.core.progress import ProgressTracker
from oscamp.core.registry import Registry, RegistryLookupError

if TYPE_CHECKING:
    from oscamp.core.session import SessionState

logger = structlog.get_logger(__name__)


class Navigator:
    """Moves the current position of a session."""

    def __init__(self, registry: Registry, tracker: ProgressTracker):
        self.registry = registry
        self.tracker = tracker

    def _move(self, state: SessionState, index: int, reason: str) -> None:
        if not 0 <= index < len(self.registry):
            raise RegistryLookupError(index)
        previous = state.current_index
        state.current_index = index
        state.generation += 1
        logger.debug(
            "navigated",
            reason=reason,
            previous=previous,
            current=index,
            generation=state.generation,
        )

    def next(self, state: SessionState) -> None:
        self._move(state, (state.current_index + 1) % len(self.registry), "next")

    def previous(self, state: SessionState) -> None:
        self._move(state, (state.current_index - 1) % len(self.registry), "previous")

    def jump_to(self, state: SessionState, index: int) -> None:
        self._move(state, index, "jump")

    def jump_to_first_incomplete(self, state: SessionState) -> bool:
        """Move to the first exercise that is neither PASS nor SKIP.

        Returns:
            False (position unchanged) if every exercise is done.
        """
        index = self.tracker.first_incomplete()
        if index is None:
            return False
        self._move(state, index, "first_incomplete")
        return True

    def auto_advance(self, state: SessionState) -> bool:
        """After a PASS, move to the next incomplete exercise.

        Returns:
            False (position unchanged) if the curriculum is complete.
        """
        index = self.tracker.next_incomplete(state.current_index)
        if index is None:
            return False
        self._move(state, index, "auto_advance")
        return True
