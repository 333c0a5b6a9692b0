"""Geometry-first page layout and table inference for positioned document elements.

Frequently-used symbols are re-exported here for convenience.
For specialised imports (polygon building, refinement stages,
scratchpad keys, etc.) import directly from the relevant
submodule, e.g.::

    from docgrid.polygon import PolygonDetector
    from docgrid.tables.stages import TableSplitting
    from docgrid.tables import Scratchpad, ScratchpadKey
"""

# ── Core models & config ──────────────────────────────────────────────

from .config import ConfigValidationError, GridType, LayoutConfig
from .grouping.engine import GroupingEngine, PageLayout
from .ingest import IngestError, PdfMeta, ingest_pdf, load_document
from .layout import PositionalElementList
from .models import (
    BoundingRect,
    Element,
    ElementGroup,
    HorizontalLine,
    Image,
    PageBreak,
    PagePartitionType,
    PositionalContext,
    Rectangle,
    TextElement,
    TextStyle,
    VerticalLine,
)
from .pipeline import (
    DocumentResult,
    PageResult,
    SkipReason,
    StageResult,
    run_document,
    run_page,
)
from .spatial_index import SpatialIndex
from .tables import InvalidTableDeletionError, TableRefinementPipeline, refine_tables
from .tabular import (
    ConfidenceFeature,
    TableType,
    TabularCellElementGroup,
    TabularElementGroup,
    VectorTag,
)

__all__ = [
    # Models & config
    "LayoutConfig",
    "GridType",
    "ConfigValidationError",
    "BoundingRect",
    "Element",
    "ElementGroup",
    "HorizontalLine",
    "Image",
    "PageBreak",
    "PagePartitionType",
    "PositionalContext",
    "Rectangle",
    "TextElement",
    "TextStyle",
    "VerticalLine",
    "PositionalElementList",
    "SpatialIndex",
    # Tables
    "ConfidenceFeature",
    "TableType",
    "TabularCellElementGroup",
    "TabularElementGroup",
    "VectorTag",
    "TableRefinementPipeline",
    "InvalidTableDeletionError",
    "refine_tables",
    # Grouping
    "GroupingEngine",
    "PageLayout",
    # Pipeline
    "DocumentResult",
    "PageResult",
    "SkipReason",
    "StageResult",
    "run_document",
    "run_page",
    # Ingest
    "IngestError",
    "PdfMeta",
    "ingest_pdf",
    "load_document",
]
