"""Gather per-worker partial results at the coordinator and broadcast the global vectors."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..comm.base import Communicator
from ..errors import SynchronizationError
from .optimizer import PartialResult


logger = logging.getLogger(__name__)


def displacements(sizes: Sequence[int]) -> List[int]:
    """Offset of every worker's slice: exclusive prefix sum of `sizes`."""
    out: List[int] = []
    total = 0
    for s in sizes:
        out.append(total)
        total += int(s)
    return out


def assemble(
    parts: Sequence[np.ndarray],
    sizes: Sequence[int],
    num_users: int,
    dtype: type,
    *,
    starts: Optional[Sequence[int]] = None,
) -> np.ndarray:
    """Place each worker's slice at its displacement in a length-`num_users` vector.

    `sizes` are the sizes of the ranges the workers own. When `starts` is given,
    every range must begin exactly at its displacement.
    """
    if len(parts) != len(sizes):
        raise SynchronizationError(f"received {len(parts)} slices for {len(sizes)} announced sizes")
    if sum(int(s) for s in sizes) != int(num_users):
        raise SynchronizationError(f"worker sizes {list(sizes)} do not cover {num_users} users")

    offsets = displacements(sizes)
    if starts is not None and [int(s) for s in starts] != offsets:
        raise SynchronizationError(f"worker ranges start at {list(starts)}, expected {offsets}")

    out = np.empty(int(num_users), dtype=dtype)
    for worker, (offset, size, part) in enumerate(zip(offsets, sizes, parts)):
        part = np.asarray(part)
        if part.shape != (int(size),):
            raise SynchronizationError(
                f"worker {worker} sent a slice of shape {part.shape}, announced size {size}"
            )
        out[offset : offset + int(size)] = part
    return out


def synchronize(
    comm: Communicator,
    partial: PartialResult,
    num_users: int,
    *,
    coordinator: int = 0,
) -> Tuple[np.ndarray, np.ndarray]:
    """Barrier, gather to `coordinator`, then broadcast the assembled vectors.

    Every worker returns the same `(participation, indifference)` pair, ordered by
    user index.
    """
    failure = None
    try:
        comm.barrier()

        ranges = comm.gather((partial.work_range.start, partial.work_range.size), root=coordinator)
        parts = comm.gather(partial.participation, root=coordinator)
        flags = comm.gather(partial.indifference, root=coordinator)

        assembled = None
        if comm.rank == coordinator:
            try:
                if ranges is None or parts is None or flags is None:
                    raise SynchronizationError("coordinator received no gathered results")
                starts = [int(start) for start, _ in ranges]
                sizes = [int(size) for _, size in ranges]
                logger.debug("Coordinator received sizes=%s displacements=%s", sizes, displacements(sizes))
                assembled = (
                    assemble(parts, sizes, num_users, np.int64, starts=starts),
                    assemble(flags, sizes, num_users, bool, starts=starts),
                )
            except SynchronizationError as exc:
                failure = exc
            except MemoryError:
                raise
            except Exception as exc:
                failure = SynchronizationError(f"coordinator failed to assemble: {exc!r}")
                failure.__cause__ = exc
        # A failed assembly is broadcast too, so no worker waits on a result that never comes.
        payload = comm.bcast(assembled if failure is None else str(failure), root=coordinator)
    except MemoryError:
        raise
    except Exception as exc:
        raise SynchronizationError(f"collective step failed on worker {comm.rank}: {exc!r}") from exc

    if failure is not None:
        raise failure
    if isinstance(payload, str):
        raise SynchronizationError(f"coordinator {coordinator} failed to assemble: {payload}")

    participation, indifference = payload
    return np.asarray(participation, dtype=np.int64), np.asarray(indifference, dtype=bool)
