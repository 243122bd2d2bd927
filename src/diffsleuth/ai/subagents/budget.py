"""Session-wide ceiling on sub-investigation spawns."""

from __future__ import annotations

import logging

__all__ = [
    "SubagentBudgetManager",
    "DEFAULT_MAX_SUBAGENTS",
    "MIN_SUBAGENTS",
    "MAX_SUBAGENTS",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_SUBAGENTS = 10
MIN_SUBAGENTS = 1
MAX_SUBAGENTS = 50


class SubagentBudgetManager:
    """Counter with a ceiling, shared by every orchestration in one session.

    One instance belongs to a top-level analysis session and is passed by
    reference to nested orchestrations, so the ceiling applies to the whole
    session. :meth:`reset` is only called when a new top-level session starts.
    """

    def __init__(self, max_per_session: int = DEFAULT_MAX_SUBAGENTS) -> None:
        self._max_per_session = max(MIN_SUBAGENTS, min(MAX_SUBAGENTS, int(max_per_session)))
        self._count = 0

    @property
    def max_per_session(self) -> int:
        return self._max_per_session

    @property
    def spawn_count(self) -> int:
        return self._count

    def can_spawn(self) -> bool:
        return self._count < self._max_per_session

    def record_spawn(self) -> int:
        """Count a spawn and return its 1-based ordinal in this session."""
        self._count += 1
        return self._count

    def remaining_budget(self) -> int:
        return max(0, self._max_per_session - self._count)

    def reset(self) -> None:
        if self._count:
            LOGGER.debug("Resetting subagent budget after %d spawn(s)", self._count)
        self._count = 0
