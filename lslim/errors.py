"""Stage-tagged failures of a participation refinement round.

Every failure inside a round is fatal: nothing is retried and no partial result
is returned. The stage name tells the operator which part of the round gave up.
"""

from __future__ import annotations


class RefinementError(RuntimeError):
    stage: str = "round"

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        if stage is not None:
            self.stage = stage
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.stage}] {super().__str__()}"


class PartitionError(RefinementError):
    stage = "partition"


class OptimizationError(RefinementError):
    stage = "optimization"


class SynchronizationError(RefinementError):
    stage = "synchronization"
