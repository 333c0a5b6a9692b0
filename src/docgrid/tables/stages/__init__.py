"""Refinement stages applied, in order, to each detected table."""

from .base import RefinementStage
from .column_merge import InternalColumnMerging
from .column_split import ColumnSplitting
from .header_confidence import HeaderConfidenceCalculation
from .header_expansion import ColumnHeaderExpansion
from .header_merge import ColumnHeaderMerging
from .row_merge import InternalRowMerging
from .table_split import TableSplitting
from .total_row import TotalRowDetection

__all__ = [
    "RefinementStage",
    "ColumnHeaderMerging",
    "ColumnHeaderExpansion",
    "HeaderConfidenceCalculation",
    "InternalRowMerging",
    "TableSplitting",
    "InternalColumnMerging",
    "ColumnSplitting",
    "TotalRowDetection",
]
