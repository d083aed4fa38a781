from __future__ import annotations

import numpy as np
import pytest
import scipy.sparse as sp

from lslim.comm.local import LocalGroup, run_local_workers
from lslim.config import ControlConfig
from lslim.errors import OptimizationError, RefinementError
from lslim.participation.error import SlimErrorOracle, slim_training_error
from lslim.participation.refine import prepare_model, refine_participation


SCENARIO_ERRORS = [[1.0, 2.0], [2.0, 1.0], [1.0, 1.0], [3.0, 3.0]]


def _run_round(num_workers, train, model, participation, num_clusters, *, width, oracle_factory=None):
    def worker(comm):
        cfg = ControlConfig.for_communicator(comm, num_clusters=num_clusters, cluster_block_width=width)
        oracle = oracle_factory() if oracle_factory is not None else None
        return refine_participation(cfg, train, model, participation, comm, oracle=oracle)

    return run_local_workers(num_workers, worker)


def test_four_users_two_clusters_two_workers(table_oracle) -> None:
    train = sp.csr_matrix((4, 1))
    model = sp.csr_matrix((1, 1))
    participation = np.array([0, 0, 1, 0], dtype=np.int64)

    results = _run_round(
        2, train, model, participation, 2, width=1, oracle_factory=lambda: table_oracle(SCENARIO_ERRORS)
    )

    for res in results:
        assert res.participation.tolist() == [0, 1, 1, 0]
        # Users 2 and 3 both tie their incumbent exactly.
        assert res.indifference.tolist() == [False, False, True, True]
        assert res.n_changed(participation) == 1
        assert res.n_indifferent == 2
    assert participation.tolist() == [0, 0, 1, 0]


def test_no_change_when_everyone_is_already_optimal(table_oracle) -> None:
    errors = [[0.0, 1.0, 2.0], [5.0, 5.0, 1.0], [2.0, 2.0, 9.0], [4.0, 1.0, 4.0], [1.0, 1.0, 1.0]]
    participation = np.array([0, 2, 1, 1, 2], dtype=np.int64)
    train = sp.csr_matrix((5, 1))

    results = _run_round(
        3, train, sp.csr_matrix((1, 3)), participation, 3, width=1, oracle_factory=lambda: table_oracle(errors)
    )

    for res in results:
        np.testing.assert_array_equal(res.participation, participation)
        assert res.indifference.tolist() == [False, False, True, False, True]


@pytest.mark.parametrize("num_workers", [1, 2, 3, 5, 30])
def test_slim_round_is_identical_across_worker_counts(slim_problem, num_workers: int) -> None:
    train, model, participation, k = slim_problem
    width = train.shape[1]

    (expected, *_) = _run_round(1, train, model, participation, k, width=width)
    results = _run_round(num_workers, train, model, participation, k, width=width)

    for res in results:
        np.testing.assert_array_equal(res.participation, expected.participation)
        np.testing.assert_array_equal(res.indifference, expected.indifference)


def test_second_round_with_same_model_changes_nothing(slim_problem) -> None:
    train, model, participation, k = slim_problem
    width = train.shape[1]

    (first, *_) = _run_round(2, train, model, participation, k, width=width)
    (second, *_) = _run_round(3, train, model, first.participation, k, width=width)

    np.testing.assert_array_equal(second.participation, first.participation)
    assert second.n_changed(first.participation) == 0


def test_slim_round_matches_dense_argmin(slim_problem) -> None:
    train, model, participation, k = slim_problem
    n_items = train.shape[1]
    dense_r = train.toarray()
    dense_w = model.toarray()

    errors = np.stack(
        [((dense_r - dense_r @ dense_w[:, c * n_items : (c + 1) * n_items]) ** 2).sum(axis=1) for c in range(k)],
        axis=1,
    )

    (res, *_) = _run_round(2, train, model, participation, k, width=n_items)

    for u in range(train.shape[0]):
        cur = participation[u]
        best = int(np.argmin(errors[u])) if errors[u].min() < errors[u, cur] else cur
        assert res.participation[u] == best


def test_prepare_model_widens_and_is_idempotent() -> None:
    cfg = ControlConfig(num_workers=1, worker_id=0, num_clusters=3, cluster_block_width=3)
    model = sp.csr_matrix(np.array([[1.0, 0.0, 0.0, 2.0], [0.0, 0.0, 3.0, 0.0], [0.0, 4.0, 0.0, 0.0]]))

    prepared = prepare_model(model, cfg)

    assert prepared.shape == (3, 9)
    assert sp.isspmatrix_csc(prepared)
    assert prepared[:, 6:9].shape == (3, 3)
    assert prepared[:, 6:9].nnz == 0
    np.testing.assert_array_equal(prepared[:, :4].toarray(), model.toarray())
    assert model.shape == (3, 4)

    again = prepare_model(prepared, cfg)
    assert again.shape == prepared.shape
    assert (again != prepared).nnz == 0


def test_prepare_model_never_narrows() -> None:
    cfg = ControlConfig(num_workers=1, worker_id=0, num_clusters=1, cluster_block_width=2)

    assert prepare_model(sp.csr_matrix((2, 5)), cfg).shape == (2, 5)


def test_slim_training_error_of_identity_free_model() -> None:
    cfg = ControlConfig(num_workers=1, worker_id=0, num_clusters=1, cluster_block_width=3)
    row = sp.csr_matrix(np.array([[1.0, 0.0, 1.0]]))
    w = sp.csc_matrix(np.array([[0.0, 0.5, 1.0], [0.0, 0.0, 0.0], [1.0, 0.0, 0.0]]))

    # r W = [1, 0.5, 1] -> residual [0, -0.5, 0]
    assert slim_training_error(cfg, w, row, 0, 0) == pytest.approx(0.25)


def test_slim_oracle_requires_matching_item_count() -> None:
    cfg = ControlConfig(num_workers=1, worker_id=0, num_clusters=2, cluster_block_width=4)

    with pytest.raises(ValueError, match="cluster_block_width"):
        SlimErrorOracle(cfg, sp.csr_matrix((3, 5)), sp.csc_matrix((5, 10)))


def test_participation_outside_cluster_range_is_rejected() -> None:
    train = sp.csr_matrix((2, 1))

    with pytest.raises(ValueError, match="outside"):
        _run_round(1, train, sp.csr_matrix((1, 2)), np.array([0, 2]), 2, width=1)


def test_oracle_failure_aborts_the_round_on_every_worker() -> None:
    def failing(user: int, cluster: int) -> float:
        if user == 5:
            raise ZeroDivisionError("bad row")
        return 1.0

    train = sp.csr_matrix((8, 1))

    with pytest.raises(OptimizationError) as excinfo:
        _run_round(4, train, sp.csr_matrix((1, 2)), np.zeros(8, dtype=np.int64), 2, width=1, oracle_factory=lambda: failing)

    assert isinstance(excinfo.value, RefinementError)
    assert excinfo.value.stage == "optimization"


def test_communicator_must_match_control_config() -> None:
    comm = LocalGroup(2).communicator(1)
    cfg = ControlConfig(num_workers=2, worker_id=0, num_clusters=1, cluster_block_width=1)

    with pytest.raises(ValueError, match="does not match"):
        refine_participation(cfg, sp.csr_matrix((2, 1)), sp.csr_matrix((1, 1)), np.zeros(2, dtype=np.int64), comm)
