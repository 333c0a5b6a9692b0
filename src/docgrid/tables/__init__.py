"""Table detection and refinement."""

from .boundary import TableBoundaryDetector
from .refinement import InvalidTableDeletionError, TableRefinementPipeline, refine_tables
from .scratchpad import KeyContract, Scratchpad, ScratchpadContractError, ScratchpadKey

__all__ = [
    "InvalidTableDeletionError",
    "KeyContract",
    "Scratchpad",
    "ScratchpadContractError",
    "ScratchpadKey",
    "TableBoundaryDetector",
    "TableRefinementPipeline",
    "refine_tables",
]
