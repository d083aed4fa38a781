from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import numpy as np
import scipy.sparse as sp


@dataclass(frozen=True)
class RoundInputs:
    train: sp.csr_matrix
    model: sp.spmatrix
    participation: np.ndarray

    @property
    def n_users(self) -> int:
        return int(self.train.shape[0])

    @property
    def n_items(self) -> int:
        return int(self.train.shape[1])


def load_round_inputs(train_path: Path, model_path: Path, participation_path: Path) -> RoundInputs:
    """Load the training matrix, model and current participation from disk.

    Notes
    -----
    Matrices are scipy `.npz` files (`scipy.sparse.save_npz`); the participation
    vector is a plain `.npy` integer array with one cluster id per training row.
    """
    paths = {"train": train_path, "model": model_path, "participation": participation_path}
    missing = [f"{name}={p}" for name, p in paths.items() if not Path(p).is_file()]
    if missing:
        raise FileNotFoundError(f"Missing refinement inputs: {missing}")

    train = sp.csr_matrix(sp.load_npz(train_path))
    model = sp.load_npz(model_path)
    participation = np.load(participation_path, allow_pickle=False)

    inputs = RoundInputs(train=train, model=model, participation=participation)
    validate_round_inputs(inputs)
    return inputs


def validate_round_inputs(inputs: RoundInputs) -> None:
    """Validate shapes and dtypes that every worker relies on."""
    part = inputs.participation
    if part.ndim != 1:
        raise ValueError(f"participation must be 1-D, got shape={part.shape}")
    if not np.issubdtype(part.dtype, np.integer):
        raise ValueError(f"participation must be an integer array, got dtype={part.dtype}")
    if part.shape[0] != inputs.n_users:
        raise ValueError(
            f"participation has {part.shape[0]} entries but the training matrix has {inputs.n_users} users"
        )
    if part.size and int(part.min()) < 0:
        raise ValueError("participation contains negative cluster ids")

    if int(inputs.model.shape[0]) != inputs.n_items:
        raise ValueError(
            f"model has {inputs.model.shape[0]} rows but the training matrix has {inputs.n_items} items"
        )
