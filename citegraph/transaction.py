"""
CITEGRAPH TRANSACTIONS - Explicit Undo Logs for All-or-Nothing Mutations

Every multi-step mutation of the citation graph records each sub-step it
has applied, together with the inverse of that sub-step. If a later step
raises, the recorded inverses run in reverse order and the exception
propagates: the caller observes either the whole mutation or nothing.

Usage:
    with UndoLog("create") as undo:
        idx = graph.add_node(payload)
        undo.record("add node", lambda: graph.remove_node(idx))
        ...

Inverse steps must be operations that cannot fail on a consistent arena
(removing an element known to be present, re-adding one just removed).
A failing inverse is a bug; it is reported as RollbackError after every
remaining inverse has still been attempted.
"""
import logging
from typing import Callable, List, Optional, Tuple


logger = logging.getLogger("citegraph.transaction")


class RollbackError(RuntimeError):
    """Raised when an undo step itself fails during unwinding."""

    def __init__(self, operation: str, step: str, original: Optional[BaseException]):
        self.operation = operation
        self.step = step
        self.original = original
        super().__init__(
            f"Rollback of {operation!r} failed at step {step!r} "
            f"(original error: {original!r})"
        )


class UndoLog:
    """Ordered record of applied sub-steps and their inverses."""

    def __init__(self, operation: str):
        self.operation = operation
        self._steps: List[Tuple[str, Callable[[], None]]] = []
        self._committed = False

    def record(self, step: str, undo: Callable[[], None]) -> None:
        """Record an applied sub-step. Call only after the step succeeded."""
        self._steps.append((step, undo))

    def commit(self) -> None:
        """Discard the log; the mutation is now permanent."""
        self._steps.clear()
        self._committed = True

    def unwind(self, original: Optional[BaseException] = None) -> None:
        """Run every recorded inverse, newest first."""
        first_failure: Optional[Tuple[str, BaseException]] = None

        while self._steps:
            step, undo = self._steps.pop()
            try:
                undo()
            except Exception as e:
                logger.critical(
                    f"Undo step {step!r} of {self.operation!r} failed: {e}",
                    exc_info=True,
                )
                if first_failure is None:
                    first_failure = (step, e)

        if first_failure is not None:
            step, error = first_failure
            raise RollbackError(self.operation, step, original) from error

    @property
    def pending(self) -> int:
        """Number of recorded steps not yet committed or unwound."""
        return len(self._steps)

    @property
    def committed(self) -> bool:
        return self._committed

    def __enter__(self) -> "UndoLog":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            self.commit()
            return False

        if self._steps:
            logger.warning(
                f"Unwinding {len(self._steps)} step(s) of {self.operation!r} "
                f"after {exc_type.__name__}"
            )
        self.unwind(exc_val)
        return False
