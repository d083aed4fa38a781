"""Collective communication backends for refinement rounds."""

from .base import Communicator
from .local import LocalCommunicator, LocalGroup, run_local_workers
from .mpi import MPICommunicator

__all__ = [
    "Communicator",
    "LocalCommunicator",
    "LocalGroup",
    "MPICommunicator",
    "run_local_workers",
]
