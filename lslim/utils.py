from __future__ import annotations

import logging
from typing import Optional


def setup_logging(level: int | str = "INFO", *, rank: Optional[int] = None) -> None:
    """Configure stdlib logging with a consistent, project-wide format.

    When `rank` is given, every record is prefixed with the worker id so that
    interleaved output from an SPMD launch stays readable.
    """
    root_logger = logging.getLogger()
    if root_logger.handlers:
        # Avoid duplicate handlers if called multiple times (e.g., notebooks + CLI).
        root_logger.setLevel(level)
        return

    fmt = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    if rank is not None:
        fmt = f"%(asctime)s | %(levelname)s | rank={int(rank)} | %(name)s | %(message)s"

    logging.basicConfig(
        level=level,
        format=fmt,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
