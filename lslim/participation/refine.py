"""One LSLIM participation refinement round.

Each worker recomputes the best cluster for the users it owns, then the partial
results are merged at the coordinator and broadcast back, so that every worker
starts the next round from the same participation vector.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

import numpy as np
import scipy.sparse as sp

from ..comm.base import Communicator
from ..config import ControlConfig
from ..errors import PartitionError, RefinementError
from .error import ErrorOracle, SlimErrorOracle
from .optimizer import optimize_range
from .partition import block_range
from .sync import synchronize


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefinementResult:
    participation: np.ndarray
    indifference: np.ndarray

    def n_changed(self, previous: np.ndarray) -> int:
        return int((self.participation != np.asarray(previous)).sum())

    @property
    def n_indifferent(self) -> int:
        return int(self.indifference.sum())


def prepare_model(model: sp.spmatrix, cfg: ControlConfig) -> sp.csc_matrix:
    """Widen the model to `num_clusters * cluster_block_width` columns and index it by column.

    Columns past the populated range are empty, so slicing any cluster block
    yields exactly `cluster_block_width` columns. Returns a new matrix; calling
    it again on the result is a no-op.
    """
    n_rows, n_cols = (int(x) for x in model.shape)
    width = max(n_cols, cfg.model_width)

    prepared = sp.csc_matrix(model, copy=True)
    if width > n_cols:
        logger.debug("Widening model columns from %d to %d", n_cols, width)
        prepared.resize((n_rows, width))
    prepared.sort_indices()
    return prepared


def _validate_participation(participation: np.ndarray, num_users: int, num_clusters: int) -> np.ndarray:
    arr = np.asarray(participation)
    if arr.ndim != 1 or arr.shape[0] != int(num_users):
        raise ValueError(f"participation must be a vector of length {num_users}, got shape={arr.shape}")
    if arr.size and not np.issubdtype(arr.dtype, np.integer):
        raise ValueError(f"participation must hold integer cluster ids, got dtype={arr.dtype}")
    if arr.size and (int(arr.min()) < 0 or int(arr.max()) >= int(num_clusters)):
        raise ValueError(f"participation holds cluster ids outside [0, {num_clusters})")
    return arr.astype(np.int64, copy=False)


def refine_participation(
    cfg: ControlConfig,
    train: sp.spmatrix,
    model: sp.spmatrix,
    participation: np.ndarray,
    comm: Communicator,
    *,
    oracle: Optional[ErrorOracle] = None,
) -> RefinementResult:
    """Run one refinement round on this worker and return the merged global vectors.

    Must be called by every worker of `comm` with identical inputs. When
    `oracle` is None, errors come from the SLIM training error over `model`.
    """
    if int(comm.size) != int(cfg.num_workers) or int(comm.rank) != int(cfg.worker_id):
        raise ValueError(
            f"communicator rank={comm.rank} size={comm.size} does not match "
            f"worker_id={cfg.worker_id} num_workers={cfg.num_workers}"
        )

    t0 = time.perf_counter()
    num_users = int(train.shape[0])
    current = _validate_participation(participation, num_users, cfg.num_clusters)

    prepared = prepare_model(model, cfg)
    if oracle is None:
        oracle = SlimErrorOracle(cfg, train, prepared)

    try:
        work_range = block_range(num_users, cfg.num_workers, cfg.worker_id)
    except ValueError as exc:
        raise PartitionError(str(exc)) from exc
    logger.debug("Worker %d owns users [%d, %d)", cfg.worker_id, work_range.start, work_range.end)

    partial = optimize_range(oracle, current, work_range, cfg.num_clusters)
    new_participation, indifference = synchronize(comm, partial, num_users, coordinator=cfg.coordinator)

    if new_participation.shape[0] != num_users:
        raise RefinementError(f"round produced {new_participation.shape[0]} assignments for {num_users} users")

    result = RefinementResult(participation=new_participation, indifference=indifference)
    if cfg.is_coordinator:
        logger.info(
            "Refinement round: users=%d workers=%d clusters=%d changed=%d indifferent=%d elapsed=%.3fs",
            num_users,
            cfg.num_workers,
            cfg.num_clusters,
            result.n_changed(current),
            result.n_indifferent,
            time.perf_counter() - t0,
        )
    return result
