"""mpi4py-backed communicator (one MPI process per worker)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Optional

if TYPE_CHECKING:  # pragma: no cover
    from mpi4py import MPI  # type: ignore[import-not-found]


def _world() -> "MPI.Comm":
    try:
        from mpi4py import MPI  # type: ignore[import-not-found]
    except Exception as exc:  # pragma: no cover
        raise ImportError("`mpi4py` is required for MPI-backed refinement rounds.") from exc
    return MPI.COMM_WORLD


class MPICommunicator:
    """Thin wrapper over the pickle-based collectives of an mpi4py communicator."""

    def __init__(self, comm: Optional["MPI.Comm"] = None) -> None:
        self._comm = comm if comm is not None else _world()

    @property
    def rank(self) -> int:
        return int(self._comm.Get_rank())

    @property
    def size(self) -> int:
        return int(self._comm.Get_size())

    def barrier(self) -> None:
        self._comm.barrier()

    def gather(self, obj: Any, root: int = 0) -> Optional[List[Any]]:
        return self._comm.gather(obj, root=root)

    def bcast(self, obj: Any, root: int = 0) -> Any:
        return self._comm.bcast(obj, root=root)

    def abort(self, errorcode: int = 1) -> None:
        """Terminate every process of the communicator."""
        self._comm.Abort(int(errorcode))
