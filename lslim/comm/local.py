"""In-process communicator: one thread per worker, collectives over a shared barrier.

Useful for tests and for running a round on a single machine without MPI.
"""

from __future__ import annotations

import copy
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LocalGroup:
    """Shared state for `size` cooperating thread workers."""

    def __init__(self, size: int) -> None:
        if int(size) < 1:
            raise ValueError(f"LocalGroup size must be >= 1, got {size}")
        self.size = int(size)
        self._barrier = threading.Barrier(self.size)
        self._slots: List[Any] = [None] * self.size
        self._lock = threading.Lock()
        self._first_failure: Optional[BaseException] = None

    def communicator(self, rank: int) -> "LocalCommunicator":
        if not 0 <= int(rank) < self.size:
            raise ValueError(f"rank must be in [0, {self.size}), got {rank}")
        return LocalCommunicator(self, int(rank))

    def abort(self) -> None:
        """Break the barrier so that waiting peers raise instead of hanging."""
        self._barrier.abort()

    def record_failure(self, exc: BaseException) -> None:
        with self._lock:
            if self._first_failure is None:
                self._first_failure = exc
        self.abort()

    @property
    def first_failure(self) -> Optional[BaseException]:
        return self._first_failure


class LocalCommunicator:
    def __init__(self, group: LocalGroup, rank: int) -> None:
        self._group = group
        self._rank = rank

    @property
    def rank(self) -> int:
        return self._rank

    @property
    def size(self) -> int:
        return self._group.size

    def barrier(self) -> None:
        self._group._barrier.wait()

    def gather(self, obj: Any, root: int = 0) -> Optional[List[Any]]:
        group = self._group
        group._slots[self._rank] = obj
        self.barrier()
        out = None
        if self._rank == root:
            out = [copy.deepcopy(v) for v in group._slots]
        # Slots stay untouched until root has read them.
        self.barrier()
        return out

    def bcast(self, obj: Any, root: int = 0) -> Any:
        group = self._group
        if self._rank == root:
            group._slots[root] = obj
        self.barrier()
        out = copy.deepcopy(group._slots[root])
        self.barrier()
        return out


def run_local_workers(size: int, fn: Callable[[LocalCommunicator], T]) -> List[T]:
    """Run `fn(comm)` on `size` thread workers and return the results ordered by rank.

    If any worker raises, the group is aborted and the first failure is re-raised.
    """
    group = LocalGroup(size)

    def _run(rank: int) -> T:
        try:
            return fn(group.communicator(rank))
        except BaseException as exc:
            group.record_failure(exc)
            raise

    with ThreadPoolExecutor(max_workers=group.size, thread_name_prefix="lslim-worker") as pool:
        futures = [pool.submit(_run, rank) for rank in range(group.size)]
        results: List[T] = []
        for fut in futures:
            try:
                results.append(fut.result())
            except BaseException:
                # Peers fail with the aborted barrier; report the root cause.
                continue

    if group.first_failure is not None:
        logger.debug("Local worker group failed: %r", group.first_failure)
        raise group.first_failure
    return results
