"""Closure resolution, pruning and load-order synthesis for kernel module sets."""

from .errors import Diagnostics, FatalGenerationError, FatalInputError, KmodPrepError
from .load_order import InsertionResult, TopologicalResult, insert_order, topological_order
from .oracle import DependencyOracle, MappingOracle, ModinfoOracle
from .pruner import PruneResult, partition, prune
from .resolver import ClosureResolver, ClosureResult
from .staging import StagingIndex, to_module_id

__all__ = [
    "ClosureResolver",
    "ClosureResult",
    "DependencyOracle",
    "Diagnostics",
    "FatalGenerationError",
    "FatalInputError",
    "InsertionResult",
    "KmodPrepError",
    "MappingOracle",
    "ModinfoOracle",
    "PruneResult",
    "StagingIndex",
    "TopologicalResult",
    "insert_order",
    "partition",
    "prune",
    "to_module_id",
    "topological_order",
]
