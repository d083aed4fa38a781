"""Per-user cluster reassignment with incumbent-favouring tie-breaks."""

from __future__ import annotations

import logging
import math
import numbers
from dataclasses import dataclass

import numpy as np

from ..errors import OptimizationError
from .error import ErrorOracle
from .partition import WorkRange


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserAssignment:
    cluster: int
    indifferent: bool


@dataclass(frozen=True)
class PartialResult:
    """Assignments and indifference flags for the users of one worker's range."""

    work_range: WorkRange
    participation: np.ndarray
    indifference: np.ndarray

    @property
    def size(self) -> int:
        return int(self.participation.shape[0])


def _checked_error(oracle: ErrorOracle, user: int, cluster: int) -> float:
    try:
        value = oracle(user, cluster)
    except MemoryError:
        raise
    except Exception as exc:
        raise OptimizationError(f"error oracle failed for user={user} cluster={cluster}: {exc}") from exc

    if isinstance(value, (bool, np.bool_)) or not isinstance(value, numbers.Real):
        raise OptimizationError(
            f"error oracle returned non-numeric {type(value).__name__} for user={user} cluster={cluster}"
        )
    value = float(value)
    if math.isnan(value) or value < 0.0:
        raise OptimizationError(f"error oracle returned invalid error {value!r} for user={user} cluster={cluster}")
    return value


def optimize_user(oracle: ErrorOracle, user: int, current_cluster: int, num_clusters: int) -> UserAssignment:
    """Pick the cluster with the lowest training error for `user`.

    The incumbent only loses to a strictly smaller error, and among improving
    clusters the lowest id reaching the minimum wins. When the user stays put,
    `indifferent` tells whether another cluster ties the incumbent exactly.
    """
    current_cluster = int(current_cluster)
    if not 0 <= current_cluster < int(num_clusters):
        raise OptimizationError(f"user={user} has cluster {current_cluster} outside [0, {num_clusters})")

    errors = [_checked_error(oracle, user, c) for c in range(int(num_clusters))]

    best_cluster = current_cluster
    best_error = errors[current_cluster]
    for c, err in enumerate(errors):
        if err < best_error:
            best_cluster = c
            best_error = err

    indifferent = False
    if best_cluster == current_cluster:
        indifferent = any(err == best_error for c, err in enumerate(errors) if c != current_cluster)

    return UserAssignment(cluster=best_cluster, indifferent=indifferent)


def optimize_range(
    oracle: ErrorOracle,
    participation: np.ndarray,
    work_range: WorkRange,
    num_clusters: int,
) -> PartialResult:
    """Run `optimize_user` over every user in `work_range`."""
    part = np.empty(work_range.size, dtype=np.int64)
    indiff = np.zeros(work_range.size, dtype=bool)

    for offset, user in enumerate(work_range.users()):
        assignment = optimize_user(oracle, user, int(participation[user]), num_clusters)
        part[offset] = assignment.cluster
        indiff[offset] = assignment.indifferent

    logger.debug(
        "Worker %d optimized users [%d, %d): changed=%d indifferent=%d",
        work_range.worker_id,
        work_range.start,
        work_range.end,
        int((part != participation[work_range.start : work_range.end]).sum()),
        int(indiff.sum()),
    )
    return PartialResult(work_range=work_range, participation=part, indifference=indiff)
