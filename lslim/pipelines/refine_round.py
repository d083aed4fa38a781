"""Run one participation refinement round from files on disk.

Under MPI (one process per worker):

    mpirun -n 4 python -m mpi4py -m lslim.pipelines.refine_round --config config.yaml

A failure on any rank aborts the whole MPI job instead of leaving peers blocked
in a collective.

On a single machine, simulating the workers with threads:

    python -m lslim.pipelines.refine_round --local-workers 4
"""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd

from ..comm.base import Communicator
from ..comm.local import run_local_workers
from ..comm.mpi import MPICommunicator
from ..config import ControlConfig, RefinementConfig, load_refinement_config
from ..data import RoundInputs, load_round_inputs
from ..participation.refine import RefinementResult, refine_participation
from ..paths import get_repo_root, resolve_path
from ..utils import setup_logging


logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Run one LSLIM participation refinement round.")
    p.add_argument("--config", type=Path, default=Path("config.yaml"), help="Path to config YAML.")
    p.add_argument("--train", type=Path, default=None, help="Override training matrix (.npz)")
    p.add_argument("--model", type=Path, default=None, help="Override model matrix (.npz)")
    p.add_argument("--participation", type=Path, default=None, help="Override participation vector (.npy)")
    p.add_argument("--out-dir", type=Path, default=None, help="Output directory for the refined vectors")
    p.add_argument("--num-clusters", type=int, default=None, help="Override number of clusters")
    p.add_argument("--cluster-block-width", type=int, default=None, help="Override model columns per cluster")
    p.add_argument("--coordinator", type=int, default=None, help="Override coordinator worker id")
    p.add_argument(
        "--local-workers",
        type=int,
        default=None,
        help="Simulate this many workers with in-process threads instead of MPI",
    )
    return p


def resolve_config(args: argparse.Namespace, repo_root: Path) -> RefinementConfig:
    config_path = resolve_path(repo_root, args.config)
    if config_path.is_file():
        cfg = load_refinement_config(config_path)
    elif args.num_clusters is not None:
        cfg = RefinementConfig(num_clusters=int(args.num_clusters))
    else:
        raise FileNotFoundError(f"Config file not found: {config_path} (or pass --num-clusters)")

    overrides = {
        "num_clusters": args.num_clusters,
        "cluster_block_width": args.cluster_block_width,
        "coordinator": args.coordinator,
        "train_path": args.train,
        "model_path": args.model,
        "participation_path": args.participation,
        "out_dir": args.out_dir,
    }
    cfg = replace(cfg, **{k: v for k, v in overrides.items() if v is not None})
    return replace(
        cfg,
        train_path=resolve_path(repo_root, cfg.train_path),
        model_path=resolve_path(repo_root, cfg.model_path),
        participation_path=resolve_path(repo_root, cfg.participation_path),
        out_dir=resolve_path(repo_root, cfg.out_dir),
    )


def run_worker(comm: Communicator, cfg: RefinementConfig, inputs: RoundInputs) -> RefinementResult:
    ctrl = ControlConfig.for_communicator(
        comm,
        num_clusters=cfg.num_clusters,
        cluster_block_width=inputs.n_items if cfg.cluster_block_width is None else int(cfg.cluster_block_width),
        coordinator=cfg.coordinator,
    )
    return refine_participation(ctrl, inputs.train, inputs.model, inputs.participation, comm)


def cluster_summary(previous: np.ndarray, result: RefinementResult, num_clusters: int) -> pd.DataFrame:
    """Users per cluster before and after the round."""
    df = pd.DataFrame(
        {
            "cluster": np.arange(int(num_clusters)),
            "users_before": np.bincount(previous, minlength=int(num_clusters))[: int(num_clusters)],
            "users_after": np.bincount(result.participation, minlength=int(num_clusters))[: int(num_clusters)],
            "indifferent": np.bincount(
                result.participation[result.indifference], minlength=int(num_clusters)
            )[: int(num_clusters)],
        }
    )
    df["delta"] = df["users_after"] - df["users_before"]
    return df


def save_outputs(out_dir: Path, cfg: RefinementConfig, previous: np.ndarray, result: RefinementResult, num_workers: int) -> dict[str, str]:
    out_dir = out_dir.resolve()
    out_dir.mkdir(parents=True, exist_ok=True)

    participation_path = out_dir / "participation.npy"
    indifference_path = out_dir / "indifference.npy"
    meta_path = out_dir / "refinement_meta.json"

    np.save(participation_path, result.participation.astype(np.int64), allow_pickle=False)
    np.save(indifference_path, result.indifference.astype(bool), allow_pickle=False)

    meta = {
        "created_at": datetime.now(timezone.utc).isoformat(),
        "n_users": int(result.participation.shape[0]),
        "num_clusters": int(cfg.num_clusters),
        "num_workers": int(num_workers),
        "coordinator": int(cfg.coordinator),
        "n_changed": result.n_changed(previous),
        "n_indifferent": result.n_indifferent,
        "inputs": {
            "train": str(cfg.train_path),
            "model": str(cfg.model_path),
            "participation": str(cfg.participation_path),
        },
    }
    meta_path.write_text(json.dumps(meta, indent=2, sort_keys=True) + "\n")

    return {
        "participation": str(participation_path),
        "indifference": str(indifference_path),
        "meta": str(meta_path),
    }


def main(argv: Optional[list[str]] = None) -> Optional[RefinementResult]:
    args = build_arg_parser().parse_args(argv)
    repo_root = get_repo_root()
    cfg = resolve_config(args, repo_root)

    comm: Optional[MPICommunicator] = None
    if args.local_workers is None:
        comm = MPICommunicator()
        setup_logging(cfg.log_level, rank=comm.rank)
    else:
        setup_logging(cfg.log_level)

    inputs = load_round_inputs(cfg.train_path, cfg.model_path, cfg.participation_path)

    if comm is None:
        num_workers = int(args.local_workers)
        logger.info("Running refinement with %d local workers", num_workers)
        results = run_local_workers(num_workers, lambda c: run_worker(c, cfg, inputs))
        result = results[int(cfg.coordinator)]
    else:
        num_workers = comm.size
        try:
            result = run_worker(comm, cfg, inputs)
        except Exception:
            # Peers may be blocked in a collective; take the whole job down.
            logger.exception("Refinement failed on rank %d, aborting all ranks", comm.rank)
            comm.abort(1)
            raise
        if comm.rank != int(cfg.coordinator):
            return result

    out = save_outputs(cfg.out_dir, cfg, inputs.participation, result, num_workers)
    logger.info("Wrote refinement outputs to %s", cfg.out_dir)

    print("\n=== Cluster Sizes ===")
    print(cluster_summary(inputs.participation, result, cfg.num_clusters).to_string(index=False))
    print("\n=== Outputs ===")
    for name, path in out.items():
        print(f"{name}: {path}")
    return result


if __name__ == "__main__":
    main()
