from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional, Sequence

logger = logging.getLogger(__name__)


class InterpreterState:
    """Ambient state threaded through every evaluator call.

    Failures are recorded, not raised: an evaluator that hits one calls
    ``add_failure`` and still returns its best-effort result. Whoever drives
    the evaluators checks ``has_failure`` afterwards.
    """

    def __init__(self) -> None:
        self.failures: List[str] = []
        self.depth = 0

    def add_failure(self, message: str) -> None:
        logger.warning("interpreter failure: %s", message)
        self.failures.append(str(message))

    @property
    def has_failure(self) -> bool:
        return bool(self.failures)

    @property
    def failure_message(self) -> Optional[str]:
        return self.failures[0] if self.failures else None

    def clear_failure(self) -> None:
        self.failures.clear()


SubProgram = Callable[[InterpreterState, Sequence[int]], Sequence[Any]]


def pack_index_args(indices: Sequence[int]) -> List[int]:
    return [int(i) for i in indices]


def interpret(state: InterpreterState, region: SubProgram, args: Sequence[int]) -> List[Any]:
    """Evaluate a sub-program with positional index arguments.

    When the call records a new failure the returned values must not be used.
    """
    state.depth += 1
    try:
        return list(region(state, pack_index_args(args)))
    finally:
        state.depth -= 1
