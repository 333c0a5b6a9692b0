"""Pipeline stage infrastructure: gating, timing, and stage-result recording.

Provides the canonical contract for the per-page flow:

    index → alignment → polygons → context → vertical_groups → tables → refinement

Every stage produces a :class:`StageResult`. Gating logic is centralised
in :func:`gate` so that every runner behaves identically.

:func:`run_page` processes one page of positioned elements and returns
structured results without performing any file I/O, making it suitable
for embedding in scripts or tests. :func:`run_document` reads a PDF
through :mod:`docgrid.ingest` and runs every page.
"""

from __future__ import annotations

import logging
import time
import traceback
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Generator, Iterable, List, Optional, Sequence, Union

from .config import LayoutConfig
from .grouping.engine import GroupingEngine, PageLayout
from .layout import PositionalElementList
from .models import Element
from .tables.refinement import InvalidTableDeletionError, TableRefinementPipeline
from .tables.scratchpad import ScratchpadContractError
from .tabular import BackReferenceError

logger = logging.getLogger("docgrid.pipeline")

# ── Skip reasons (exhaustive enumeration) ──────────────────────────────


class SkipReason(str, Enum):
    """Why a pipeline stage was skipped."""

    disabled_by_config = "disabled_by_config"
    no_elements = "no_elements"
    no_tables = "no_tables"
    upstream_failed = "upstream_failed"
    not_applicable = "not_applicable"


# ── Stage result ───────────────────────────────────────────────────────


@dataclass
class StageResult:
    """Outcome record for a single pipeline stage."""

    stage: str
    enabled: bool = False
    ran: bool = False
    status: str = "skipped"  # "success" | "skipped" | "failed"
    skip_reason: Optional[str] = None
    duration_ms: int = 0
    counts: Dict[str, Any] = field(default_factory=dict)
    inputs: Dict[str, Any] = field(default_factory=dict)
    outputs: Dict[str, Any] = field(default_factory=dict)
    error: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize stage result to a JSON-compatible dict."""
        d: Dict[str, Any] = {
            "stage": self.stage,
            "enabled": self.enabled,
            "ran": self.ran,
            "status": self.status,
        }
        if self.skip_reason is not None:
            d["skip_reason"] = self.skip_reason
        d["duration_ms"] = self.duration_ms
        if self.counts:
            d["counts"] = self.counts
        if self.inputs:
            d["inputs"] = self.inputs
        if self.outputs:
            d["outputs"] = self.outputs
        if self.error is not None:
            d["error"] = self.error
        return d


# ── Canonical gating function ──────────────────────────────────────────

# Ordered stage names: the canonical per-page sequence.
STAGE_ORDER: List[str] = [
    "index",
    "alignment",
    "polygons",
    "context",
    "vertical_groups",
    "tables",
    "refinement",
]

# Stages switched off together with table detection.
_TABLE_STAGES = ("polygons", "tables", "refinement")


def gate(
    stage: str,
    cfg: LayoutConfig,
    inputs: Dict[str, Any] | None = None,
) -> tuple[bool, Optional[str]]:
    """Decide whether *stage* should run.

    Parameters
    ----------
    stage : str
        One of :data:`STAGE_ORDER`.
    cfg : LayoutConfig
        Effective configuration for the run.
    inputs : dict, optional
        Lightweight metadata about upstream outputs (e.g.
        ``{"elements": 1500, "tabular_groups": 3}``).

    Returns
    -------
    (should_run, skip_reason)
        *should_run* is ``True`` when the stage should execute.
        When ``False``, *skip_reason* explains why.
    """
    if inputs is None:
        inputs = {}

    if stage not in STAGE_ORDER:
        return False, SkipReason.not_applicable.value

    if stage in _TABLE_STAGES and cfg.disable_table_detection:
        return False, SkipReason.disabled_by_config.value

    if inputs.get("upstream_failed"):
        return False, SkipReason.upstream_failed.value

    if stage != "index" and inputs.get("elements", 1) == 0:
        return False, SkipReason.no_elements.value

    if stage == "refinement" and inputs.get("tabular_groups", 1) == 0:
        return False, SkipReason.no_tables.value

    return True, None


# ── Stage context manager ──────────────────────────────────────────────


@contextmanager
def run_stage(
    stage: str,
    cfg: LayoutConfig,
    inputs: Dict[str, Any] | None = None,
) -> Generator[StageResult, None, None]:
    """Context manager that wraps a pipeline stage with gating + timing.

    Usage::

        with run_stage("tables", cfg) as sr:
            if sr.ran:
                # … do the work …
                sr.counts["tabular_groups"] = 3
                sr.status = "success"

    The yielded :class:`StageResult` has ``ran=True`` only when
    :func:`gate` approves the stage. Timing is handled automatically.
    A failing stage records its error and the exception propagates.
    """
    should_run, skip_reason = gate(stage, cfg, inputs)

    sr = StageResult(stage=stage)
    sr.enabled = not (stage in _TABLE_STAGES and cfg.disable_table_detection)
    if inputs:
        sr.inputs = inputs

    if not should_run:
        sr.ran = False
        sr.status = "skipped"
        sr.skip_reason = skip_reason
        yield sr
        return

    sr.ran = True
    t0 = time.perf_counter()
    try:
        yield sr
        if sr.status not in ("success", "failed"):
            sr.status = "success"
    except Exception as exc:
        sr.status = "failed"
        sr.error = {
            "type": type(exc).__name__,
            "message": str(exc),
            "stack": traceback.format_exc(),
        }
        raise
    finally:
        elapsed = time.perf_counter() - t0
        sr.duration_ms = int(elapsed * 1000)


# ── Page-level result container ────────────────────────────────────────


@dataclass
class PageResult:
    """Structured result from :func:`run_page` for a single page."""

    page: int = 0
    page_width: float = 0.0
    page_height: float = 0.0

    stages: Dict[str, StageResult] = field(default_factory=dict)

    element_list: Optional[PositionalElementList] = None
    layout: Optional[PageLayout] = None

    @property
    def vertical_groups(self) -> list:
        return self.element_list.vertical_groups if self.element_list is not None else []

    @property
    def tabular_groups(self) -> list:
        return self.element_list.tabular_groups if self.element_list is not None else []

    def to_summary_dict(self) -> Dict[str, Any]:
        """Return a lightweight summary suitable for JSON serialisation."""
        return {
            "page": self.page,
            "page_width": self.page_width,
            "page_height": self.page_height,
            "stages": {n: sr.to_dict() for n, sr in self.stages.items()},
            "counts": {
                "elements": len(self.element_list) if self.element_list is not None else 0,
                "vertical_groups": len(self.vertical_groups),
                "tabular_groups": len(self.tabular_groups),
            },
            "tables": [t.to_dict() for t in self.tabular_groups],
        }


def _page_extent(elements: Iterable[Element]) -> tuple[float, float]:
    width = height = 0.0
    for e in elements:
        width = max(width, e.right)
        height = max(height, e.bottom)
    return width, height


# ── Page runner ────────────────────────────────────────────────────────


def run_page(
    elements: Union[PositionalElementList, Sequence[Element]],
    cfg: LayoutConfig | None = None,
    page: int = 0,
    page_width: float | None = None,
    page_height: float | None = None,
    document_source: str = "",
    engine: GroupingEngine | None = None,
    refinement: TableRefinementPipeline | None = None,
) -> PageResult:
    """Run the grouping and table stages on one page of positioned elements.

    Parameters
    ----------
    elements : PositionalElementList or sequence of Element
        The page content; a plain sequence is sorted into reading order.
    cfg : LayoutConfig, optional
        Configuration; defaults apply when omitted.
    page : int
        0-based page number, used in log messages.
    page_width, page_height : float, optional
        Page size; derived from the element extent when omitted.
    engine, refinement : optional
        Shared across the pages of one document by :func:`run_document`.

    Returns
    -------
    PageResult
        Stage records plus the annotated element list.
    """
    if cfg is None:
        cfg = LayoutConfig()
    engine = engine or GroupingEngine(cfg)
    refinement = refinement or TableRefinementPipeline(cfg)

    element_list = elements if isinstance(elements, PositionalElementList) else PositionalElementList(elements)
    if page_width is None or page_height is None:
        width, height = _page_extent(element_list)
        page_width = width if page_width is None else page_width
        page_height = height if page_height is None else page_height

    pr = PageResult(page=page, page_width=page_width, page_height=page_height, element_list=element_list)
    inputs = {"elements": len(element_list)}

    with run_stage("index", cfg) as sr:
        if sr.ran:
            pr.layout = engine.index_page(element_list, page_width, page_height)
            sr.counts = {
                "elements": len(element_list),
                "partitions": len(pr.layout.partitions),
                "boxes": len(pr.layout.boxes),
            }
    pr.stages["index"] = sr
    layout = pr.layout

    with run_stage("alignment", cfg, inputs) as sr:
        if sr.ran:
            sr.counts = {"alignment_groups": engine.find_alignment_groups(layout)}
    pr.stages["alignment"] = sr

    with run_stage("polygons", cfg, inputs) as sr:
        if sr.ran:
            sr.counts = {"polygons": len(engine.find_polygons(layout))}
    pr.stages["polygons"] = sr

    with run_stage("context", cfg, inputs) as sr:
        if sr.ran:
            engine.populate_contexts(layout)
            sr.counts = {"contexts": sum(1 for e in element_list if e.context is not None)}
    pr.stages["context"] = sr

    with run_stage("vertical_groups", cfg, inputs) as sr:
        if sr.ran:
            sr.counts = {"vertical_groups": engine.find_vertical_groups(layout)}
    pr.stages["vertical_groups"] = sr

    with run_stage("tables", cfg, inputs) as sr:
        if sr.ran:
            sr.counts = {"tabular_groups": engine.find_tables(layout)}
    pr.stages["tables"] = sr

    refine_inputs = dict(inputs, tabular_groups=len(element_list.tabular_groups))
    with run_stage("refinement", cfg, refine_inputs) as sr:
        if sr.ran:
            tables = refinement.refine_page(element_list, page, document_source)
            sr.counts = {"tabular_groups": len(tables)}
    pr.stages["refinement"] = sr

    logger.info(
        "Page %d: %d elements, %d vertical groups, %d tables",
        page + 1,
        len(element_list),
        len(element_list.vertical_groups),
        len(element_list.tabular_groups),
    )
    return pr


# ── Document-level result ──────────────────────────────────────────────


@dataclass
class DocumentResult:
    """Aggregated result for a multi-page document run."""

    pdf_path: Optional[Path] = None
    pages: List[PageResult] = field(default_factory=list)
    config: Optional[LayoutConfig] = None

    def total_tables(self) -> int:
        return sum(len(pr.tabular_groups) for pr in self.pages)

    def to_summary_dict(self) -> Dict[str, Any]:
        """Serialize document result to a summary dict."""
        return {
            "pdf": str(self.pdf_path) if self.pdf_path else None,
            "pages_processed": len(self.pages),
            "total_tables": self.total_tables(),
            "pages": [pr.to_summary_dict() for pr in self.pages],
        }


# ── Document-level runner ──────────────────────────────────────────────


def run_document(
    pdf_path: Path | str,
    pages: List[int] | None = None,
    cfg: LayoutConfig | None = None,
    stack_pages: bool = False,
) -> DocumentResult:
    """Process the pages of a PDF.

    Parameters
    ----------
    pdf_path : Path or str
        Path to the source PDF.
    pages : list[int], optional
        0-based page indices. ``None`` = all pages.
    cfg : LayoutConfig, optional
        Pipeline configuration.
    stack_pages : bool
        Process the selected pages as one element list with page breaks.

    Returns
    -------
    DocumentResult
        Per-page results. A page that fails is recorded with a failed
        ``"pipeline"`` stage and the remaining pages still run.

    Raises
    ------
    ScratchpadContractError, BackReferenceError, InvalidTableDeletionError
        Never recorded per page; these propagate to the caller.
    """
    from .ingest import ingest_pdf, load_document

    if cfg is None:
        cfg = LayoutConfig()
    pdf_path = Path(pdf_path)
    meta = ingest_pdf(pdf_path)
    if pages is None:
        pages = list(range(meta.num_pages))

    dr = DocumentResult(pdf_path=pdf_path, config=cfg)
    engine = GroupingEngine(cfg)
    refinement = TableRefinementPipeline(cfg)
    logger.info("Grouping text elements in document %s.", pdf_path.name)
    t0 = time.perf_counter()

    for loaded in load_document(pdf_path, pages, stack_pages=stack_pages):
        try:
            pr = run_page(
                loaded.elements,
                cfg,
                page=loaded.index,
                page_width=loaded.width,
                page_height=loaded.height,
                document_source=pdf_path.name,
                engine=engine,
                refinement=refinement,
            )
            dr.pages.append(pr)
        except (ScratchpadContractError, BackReferenceError, InvalidTableDeletionError):
            # Broken stage contracts and table links are programming errors.
            raise
        except Exception as exc:
            logger.error("run_document page %d failed: %s", loaded.index, exc)
            failed = PageResult(page=loaded.index, page_width=loaded.width, page_height=loaded.height)
            failed.stages["error"] = StageResult(
                stage="pipeline",
                status="failed",
                error={"type": type(exc).__name__, "message": str(exc)},
            )
            dr.pages.append(failed)

    logger.info(
        "run_document: %d pages, %d tables in %.2fs",
        len(dr.pages),
        dr.total_tables(),
        time.perf_counter() - t0,
    )
    return dr
