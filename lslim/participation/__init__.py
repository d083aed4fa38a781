"""LSLIM user participation refinement.

Core idea:
- Split users into one contiguous block per worker
- Each worker moves its users to the cluster with the lowest training error
- Partial results are gathered at the coordinator and broadcast back to everyone
"""

from .error import ErrorOracle, SlimErrorOracle, slim_training_error
from .optimizer import PartialResult, UserAssignment, optimize_range, optimize_user
from .partition import WorkRange, block_range, partition_users
from .refine import RefinementResult, prepare_model, refine_participation
from .sync import assemble, displacements, synchronize

__all__ = [
    "ErrorOracle",
    "PartialResult",
    "RefinementResult",
    "SlimErrorOracle",
    "UserAssignment",
    "WorkRange",
    "assemble",
    "block_range",
    "displacements",
    "optimize_range",
    "optimize_user",
    "partition_users",
    "prepare_model",
    "refine_participation",
    "slim_training_error",
    "synchronize",
]
