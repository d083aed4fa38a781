from __future__ import annotations

from typing import Any, List, Optional, Protocol, runtime_checkable


@runtime_checkable
class Communicator(Protocol):
    """Blocking collectives shared by every worker of a round.

    All calls must be entered by every worker in the same order. There is no
    timeout: a worker that never arrives stalls its peers.
    """

    @property
    def rank(self) -> int: ...

    @property
    def size(self) -> int: ...

    def barrier(self) -> None: ...

    def gather(self, obj: Any, root: int = 0) -> Optional[List[Any]]:
        """Return the objects of all workers ordered by rank on `root`, None elsewhere."""
        ...

    def bcast(self, obj: Any, root: int = 0) -> Any:
        """Return `root`'s object on every worker."""
        ...
