"""Training error of a user under a cluster's SLIM model."""

from __future__ import annotations

from typing import Protocol

import numpy as np
import scipy.sparse as sp

from ..config import ControlConfig


class ErrorOracle(Protocol):
    def __call__(self, user: int, cluster: int) -> float: ...


def cluster_columns(cfg: ControlConfig, cluster: int) -> slice:
    width = int(cfg.cluster_block_width)
    return slice(int(cluster) * width, (int(cluster) + 1) * width)


def slim_training_error(
    cfg: ControlConfig,
    model_slice: sp.spmatrix,
    train_row: sp.spmatrix,
    user: int,
    cluster: int,
) -> float:
    """Squared reconstruction error `||r_u - r_u W_c||^2` of one user.

    `model_slice` is the `n_items x cluster_block_width` block of cluster `cluster`
    and `train_row` the user's `1 x n_items` rating row.
    """
    if model_slice.shape[1] != int(cfg.cluster_block_width):
        raise ValueError(
            f"model slice for cluster {cluster} has {model_slice.shape[1]} columns, "
            f"expected {cfg.cluster_block_width}"
        )
    pred = train_row @ model_slice
    diff = np.asarray((train_row - pred).todense(), dtype=np.float64).reshape(-1)
    return float(np.dot(diff, diff))


class SlimErrorOracle:
    """Bind a prepared model and the training matrix into `error(user, cluster)`."""

    def __init__(self, cfg: ControlConfig, train: sp.spmatrix, model: sp.csc_matrix) -> None:
        if int(train.shape[1]) != int(cfg.cluster_block_width):
            raise ValueError(
                f"cluster_block_width={cfg.cluster_block_width} must equal the number of "
                f"items in the training matrix ({train.shape[1]})"
            )
        if int(model.shape[0]) != int(train.shape[1]):
            raise ValueError(f"model has {model.shape[0]} rows, expected {train.shape[1]} (one per item)")
        if int(model.shape[1]) < cfg.model_width:
            raise ValueError(f"model has {model.shape[1]} columns, expected at least {cfg.model_width}")
        self.cfg = cfg
        self.train = sp.csr_matrix(train)
        self.model = model

    def __call__(self, user: int, cluster: int) -> float:
        model_slice = self.model[:, cluster_columns(self.cfg, cluster)]
        train_row = self.train[int(user)]
        return slim_training_error(self.cfg, model_slice, train_row, int(user), int(cluster))
