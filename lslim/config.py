from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

import yaml

if TYPE_CHECKING:  # pragma: no cover
    from .comm.base import Communicator


@dataclass(frozen=True)
class ControlConfig:
    """Per-worker control values for one refinement round.

    `cluster_block_width` is the number of model columns owned by each cluster;
    cluster `c` occupies columns `[c * width, (c + 1) * width)`.
    """

    num_workers: int
    worker_id: int
    num_clusters: int
    cluster_block_width: int
    coordinator: int = 0

    def __post_init__(self) -> None:
        if int(self.num_workers) < 1:
            raise ValueError(f"num_workers must be >= 1, got {self.num_workers}")
        if not 0 <= int(self.worker_id) < int(self.num_workers):
            raise ValueError(f"worker_id must be in [0, {self.num_workers}), got {self.worker_id}")
        if int(self.num_clusters) < 1:
            raise ValueError(f"num_clusters must be >= 1, got {self.num_clusters}")
        if int(self.cluster_block_width) < 1:
            raise ValueError(f"cluster_block_width must be >= 1, got {self.cluster_block_width}")
        if not 0 <= int(self.coordinator) < int(self.num_workers):
            raise ValueError(f"coordinator must be in [0, {self.num_workers}), got {self.coordinator}")

    @property
    def model_width(self) -> int:
        return int(self.num_clusters) * int(self.cluster_block_width)

    @property
    def is_coordinator(self) -> bool:
        return int(self.worker_id) == int(self.coordinator)

    @classmethod
    def for_communicator(
        cls,
        comm: "Communicator",
        *,
        num_clusters: int,
        cluster_block_width: int,
        coordinator: int = 0,
    ) -> "ControlConfig":
        return cls(
            num_workers=int(comm.size),
            worker_id=int(comm.rank),
            num_clusters=int(num_clusters),
            cluster_block_width=int(cluster_block_width),
            coordinator=int(coordinator),
        )


@dataclass(frozen=True)
class RefinementConfig:
    num_clusters: int
    cluster_block_width: Optional[int] = None
    coordinator: int = 0
    train_path: Path = Path("data/train.npz")
    model_path: Path = Path("data/model.npz")
    participation_path: Path = Path("data/participation.npy")
    out_dir: Path = Path("artifacts/refinement")
    log_level: str = "INFO"


def load_refinement_config(config_path: Path) -> RefinementConfig:
    """Read the `refinement` section of a YAML config file."""
    if not config_path.is_file():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    cfg_yaml = yaml.safe_load(config_path.read_text())
    if not isinstance(cfg_yaml, dict):
        raise ValueError("config.yaml must be a mapping")

    raw: dict[str, Any] = cfg_yaml.get("refinement", {}) if isinstance(cfg_yaml.get("refinement"), dict) else {}
    if "num_clusters" not in raw:
        raise ValueError("config.yaml `refinement` section must set num_clusters")

    width = raw.get("cluster_block_width")
    return RefinementConfig(
        num_clusters=int(raw["num_clusters"]),
        cluster_block_width=(None if width is None else int(width)),
        coordinator=int(raw.get("coordinator", 0)),
        train_path=Path(str(raw.get("train_path", "data/train.npz"))),
        model_path=Path(str(raw.get("model_path", "data/model.npz"))),
        participation_path=Path(str(raw.get("participation_path", "data/participation.npy"))),
        out_dir=Path(str(raw.get("out_dir", "artifacts/refinement"))),
        log_level=str(raw.get("log_level", "INFO")),
    )
