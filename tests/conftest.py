from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest
import scipy.sparse as sp

# Ensure `import lslim...` works when pytest uses importlib import mode.
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))


class TableOracle:
    """Error oracle backed by a fixed `errors[user][cluster]` table; records every call."""

    def __init__(self, errors: list[list[float]]) -> None:
        self.errors = errors
        self.calls: list[tuple[int, int]] = []

    def __call__(self, user: int, cluster: int) -> float:
        self.calls.append((int(user), int(cluster)))
        return self.errors[int(user)][int(cluster)]


@pytest.fixture
def table_oracle() -> type[TableOracle]:
    return TableOracle


@pytest.fixture
def slim_problem() -> tuple[sp.csr_matrix, sp.csr_matrix, np.ndarray, int]:
    """Small binary ratings matrix, a random 3-cluster SLIM model and a starting assignment."""
    rng = np.random.default_rng(7)
    n_users, n_items, n_clusters = 23, 6, 3

    train = sp.random(n_users, n_items, density=0.4, random_state=11, format="csr")
    train.data[:] = 1.0

    blocks = []
    for _ in range(n_clusters):
        w = rng.random((n_items, n_items)) * (rng.random((n_items, n_items)) < 0.5)
        np.fill_diagonal(w, 0.0)
        blocks.append(w)
    model = sp.csr_matrix(np.hstack(blocks))

    participation = rng.integers(0, n_clusters, size=n_users).astype(np.int64)
    return train, model, participation, n_clusters
