"""Balanced block distribution of users across workers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class WorkRange:
    """Half-open user range `[start, end)` owned by one worker."""

    worker_id: int
    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start

    def users(self) -> range:
        return range(self.start, self.end)


def block_range(num_users: int, num_workers: int, worker_id: int) -> WorkRange:
    """Range of users owned by `worker_id`.

    The first `num_users % num_workers` workers own one extra user.
    """
    num_users = int(num_users)
    num_workers = int(num_workers)
    worker_id = int(worker_id)
    if num_users < 0:
        raise ValueError(f"num_users must be >= 0, got {num_users}")
    if num_workers < 1:
        raise ValueError(f"num_workers must be >= 1, got {num_workers}")
    if not 0 <= worker_id < num_workers:
        raise ValueError(f"worker_id must be in [0, {num_workers}), got {worker_id}")

    base, rem = divmod(num_users, num_workers)
    start = base * worker_id + min(worker_id, rem)
    end = start + base + (1 if worker_id < rem else 0)

    # The last worker always owns every trailing user.
    if worker_id == num_workers - 1 and end < num_users:
        end = num_users

    return WorkRange(worker_id=worker_id, start=start, end=end)


def partition_users(num_users: int, num_workers: int) -> List[WorkRange]:
    return [block_range(num_users, num_workers, w) for w in range(int(num_workers))]
