"""PDF ingest: file validation, page metadata and element extraction.

Centralises PDF opening, file validation and page-dimension extraction,
and turns pdfplumber's words, lines, rects and images into the
positioned elements the layout engine works on, so that downstream
stages never call ``pdfplumber.open()`` directly.

Public API
----------
- :func:`ingest_pdf`: open + validate a PDF, return a :class:`PdfMeta`
- :func:`extract_page_elements`: positioned elements of one open page
- :func:`load_document`: :class:`LoadedPage` lists, optionally stacked with page breaks
- :class:`PdfMeta`: lightweight PDF-level metadata container
- :class:`PageInfo`: per-page dimensions
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple

import pdfplumber

from ..layout import PositionalElementList
from ..models import (
    BLACK,
    Element,
    HorizontalLine,
    Image,
    PageBreak,
    Rectangle,
    TextElement,
    TextStyle,
    VerticalLine,
)

log = logging.getLogger(__name__)

# Rects thinner than this are drawn rules, not boxes.
LINE_THICKNESS_MAX = 2.0
WORD_X_TOLERANCE = 3
WORD_Y_TOLERANCE = 3

_BOLD_FONT = re.compile(r"bold|black|heavy|semibold|demi", re.IGNORECASE)
_ITALIC_FONT = re.compile(r"italic|oblique", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Data containers
# ---------------------------------------------------------------------------


@dataclass
class PageInfo:
    """Dimension metadata for a single PDF page."""

    index: int  # zero-based page number
    width: float  # points
    height: float  # points

    def to_dict(self) -> dict:
        """Serialize page info to a JSON-compatible dict."""
        return {
            "index": self.index,
            "width": round(self.width, 3),
            "height": round(self.height, 3),
        }


@dataclass
class PdfMeta:
    """PDF-level metadata returned by :func:`ingest_pdf`.

    This is a lightweight descriptor; it does **not** hold the
    ``pdfplumber.PDF`` handle open.
    """

    path: Path
    num_pages: int
    pages: List[PageInfo] = field(default_factory=list)
    file_size_bytes: int = 0
    pdf_metadata: dict = field(default_factory=dict)  # PDF info dict

    def page(self, index: int) -> PageInfo:
        """Return :class:`PageInfo` for *index* (zero-based)."""
        return self.pages[index]

    def to_dict(self) -> dict:
        """Serialize PDF metadata to a JSON-compatible dict."""
        d: dict = {
            "path": str(self.path),
            "num_pages": self.num_pages,
            "file_size_bytes": self.file_size_bytes,
        }
        if self.pdf_metadata:
            d["pdf_metadata"] = self.pdf_metadata
        d["pages"] = [p.to_dict() for p in self.pages]
        return d


@dataclass
class LoadedPage:
    """Elements of one page, or of several pages stacked with page breaks."""

    index: int
    width: float
    height: float
    elements: PositionalElementList
    source_pages: List[int] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


class IngestError(Exception):
    """Raised when a PDF cannot be ingested."""


def _validate_pdf_path(pdf_path: Path) -> None:
    """Raise :class:`IngestError` for missing / empty / wrong-extension files."""
    if not pdf_path.exists():
        raise IngestError(f"File not found: {pdf_path}")
    if not pdf_path.is_file():
        raise IngestError(f"Not a file: {pdf_path}")
    if pdf_path.stat().st_size == 0:
        raise IngestError(f"Empty file: {pdf_path}")
    if pdf_path.suffix.lower() != ".pdf":
        raise IngestError(f"Not a PDF (suffix={pdf_path.suffix!r}): {pdf_path}")


# ---------------------------------------------------------------------------
# Element conversion
# ---------------------------------------------------------------------------


def to_rgb(color: Any) -> Optional[Tuple[int, int, int]]:
    """pdfplumber colour (gray, RGB or CMYK in 0..1) as 0..255 RGB; None for black or unknown."""
    if color is None:
        return None
    if isinstance(color, (int, float)):
        color = (color,)
    try:
        values = [float(c) for c in color]
    except (TypeError, ValueError):
        return None
    if len(values) == 1:
        rgb = (values[0],) * 3
    elif len(values) == 3:
        rgb = tuple(values)
    elif len(values) == 4:
        c, m, y, k = values
        rgb = ((1 - c) * (1 - k), (1 - m) * (1 - k), (1 - y) * (1 - k))
    else:
        return None
    result = tuple(int(round(max(0.0, min(1.0, v)) * 255)) for v in rgb)
    return None if result == BLACK else result


def font_family(fontname: str) -> Optional[str]:
    """Base family of a PDF font name, without subset prefix and style suffix."""
    if not fontname:
        return None
    name = fontname.split("+", 1)[-1]
    return re.split(r"[-,]", name, maxsplit=1)[0] or None


def font_styles(fontname: str) -> frozenset:
    styles = set()
    if _BOLD_FONT.search(fontname or ""):
        styles.add(TextStyle.BOLD)
    if _ITALIC_FONT.search(fontname or ""):
        styles.add(TextStyle.ITALIC)
    return frozenset(styles)


def word_to_element(w: dict, offset: float = 0.0) -> Optional[TextElement]:
    """Convert a pdfplumber word dict → TextElement; None for degenerate boxes."""
    x0, x1 = float(w.get("x0", 0.0)), float(w.get("x1", 0.0))
    top, bottom = float(w.get("top", 0.0)), float(w.get("bottom", 0.0))
    text = w.get("text", "")
    if x1 <= x0 or bottom <= top or not text.strip():
        return None
    fontname = w.get("fontname", "") or ""
    return TextElement(
        top=top + offset,
        left=x0,
        width=x1 - x0,
        height=bottom - top,
        text=text,
        font_size=float(w["size"]) if "size" in w else None,
        font_family=font_family(fontname),
        color=to_rgb(w.get("non_stroking_color")),
        styles=font_styles(fontname),
    )


def _line_elements(x0: float, top: float, x1: float, bottom: float, offset: float) -> List[Element]:
    if bottom - top <= LINE_THICKNESS_MAX:
        return [HorizontalLine(top=(top + bottom) / 2 + offset, left=x0, stretch=x1 - x0)]
    if x1 - x0 <= LINE_THICKNESS_MAX:
        return [VerticalLine(top=top + offset, left=(x0 + x1) / 2, stretch=bottom - top)]
    return []


def graphic_elements(page: "pdfplumber.page.Page", offset: float = 0.0) -> List[Element]:
    """Drawn lines, stroked box edges and filled boxes of *page*."""
    elements: List[Element] = []
    for line in page.lines:
        x0, x1 = sorted((float(line.get("x0", 0)), float(line.get("x1", 0))))
        top, bottom = sorted((float(line.get("top", 0)), float(line.get("bottom", 0))))
        elements.extend(_line_elements(x0, top, x1, bottom, offset))

    for rect in page.rects:
        x0, x1 = float(rect.get("x0", 0)), float(rect.get("x1", 0))
        top, bottom = float(rect.get("top", 0)), float(rect.get("bottom", 0))
        thin = _line_elements(x0, top, x1, bottom, offset)
        if thin:
            elements.extend(thin)
        elif rect.get("stroke", True):
            width, height = x1 - x0, bottom - top
            elements.extend([
                HorizontalLine(top=top + offset, left=x0, stretch=width),
                HorizontalLine(top=bottom + offset, left=x0, stretch=width),
                VerticalLine(top=top + offset, left=x0, stretch=height),
                VerticalLine(top=top + offset, left=x1, stretch=height),
            ])
        elif rect.get("fill", False):
            elements.append(Rectangle(top=top + offset, left=x0, width=x1 - x0, height=bottom - top))
    return elements


def extract_page_elements(page: "pdfplumber.page.Page", offset: float = 0.0) -> List[Element]:
    """Positioned elements of an open pdfplumber page.

    Parameters
    ----------
    page : pdfplumber.page.Page
        Page to read.
    offset : float
        Added to every ``top``; used when pages are stacked.

    Returns
    -------
    list[Element]
        Text runs (one per word), drawn lines, filled rectangles and images.
    """
    elements: List[Element] = []
    words = page.extract_words(
        x_tolerance=WORD_X_TOLERANCE,
        y_tolerance=WORD_Y_TOLERANCE,
        extra_attrs=["fontname", "size", "non_stroking_color"],
    )
    for w in words:
        element = word_to_element(w, offset)
        if element is not None:
            elements.append(element)
    elements.extend(graphic_elements(page, offset))
    for img in page.images:
        x0, x1 = float(img.get("x0", 0)), float(img.get("x1", 0))
        top, bottom = float(img.get("top", 0)), float(img.get("bottom", 0))
        if x1 > x0 and bottom > top:
            elements.append(Image(top=top + offset, left=x0, width=x1 - x0, height=bottom - top))
    log.debug("Page %s: %d words, %d elements", getattr(page, "page_number", "?"), len(words), len(elements))
    return elements


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def ingest_pdf(pdf_path: Path | str) -> PdfMeta:
    """Open and validate a PDF, returning a :class:`PdfMeta` descriptor.

    Raises
    ------
    IngestError
        When the file is missing, empty, encrypted, or cannot be opened as a PDF.
    """
    pdf_path = Path(pdf_path)
    _validate_pdf_path(pdf_path)

    try:
        with pdfplumber.open(pdf_path) as pdf:
            if hasattr(pdf, "doc") and hasattr(pdf.doc, "is_extractable"):
                if not pdf.doc.is_extractable:
                    raise IngestError(
                        f"PDF is password-protected or encrypted "
                        f"(text extraction not permitted): {pdf_path}"
                    )
            pages = [
                PageInfo(index=i, width=float(pg.width), height=float(pg.height))
                for i, pg in enumerate(pdf.pages)
            ]
            pdf_metadata = {}
            for k, v in (pdf.metadata or {}).items():
                if isinstance(v, bytes):
                    v = v.decode("utf-8", errors="replace")
                pdf_metadata[str(k)] = str(v) if v is not None else ""

        file_size = pdf_path.stat().st_size
        meta = PdfMeta(
            path=pdf_path.resolve(),
            num_pages=len(pages),
            pages=pages,
            file_size_bytes=file_size,
            pdf_metadata=pdf_metadata,
        )
        log.info("Ingested %s: %d pages, %.1f KB", pdf_path.name, len(pages), file_size / 1024)
        return meta

    except IngestError:
        raise
    except Exception as exc:
        raise IngestError(f"Cannot open PDF: {exc}") from exc


def load_document(
    pdf_path: Path | str,
    pages: Optional[Sequence[int]] = None,
    stack_pages: bool = False,
) -> List[LoadedPage]:
    """Read the positioned elements of a PDF.

    Parameters
    ----------
    pdf_path : Path or str
        Path to the PDF.
    pages : sequence of int, optional
        0-based page indices. ``None`` = all pages.
    stack_pages : bool
        Stack the pages into one element list separated by
        :class:`~docgrid.models.PageBreak` markers, so that content can
        flow across page breaks.

    Returns
    -------
    list[LoadedPage]
        One entry per page, or a single entry when *stack_pages* is set.
    """
    pdf_path = Path(pdf_path)
    _validate_pdf_path(pdf_path)
    loaded: List[LoadedPage] = []
    try:
        with pdfplumber.open(pdf_path) as pdf:
            indices = list(range(len(pdf.pages))) if pages is None else list(pages)
            if stack_pages:
                elements: List[Element] = []
                offset = 0.0
                width = 0.0
                for n, i in enumerate(indices):
                    page = pdf.pages[i]
                    if n > 0:
                        elements.append(PageBreak(top=offset, left=0.0, width=float(page.width), height=0.0))
                    elements.extend(extract_page_elements(page, offset))
                    offset += float(page.height)
                    width = max(width, float(page.width))
                loaded.append(LoadedPage(0, width, offset, PositionalElementList(elements), indices))
            else:
                for i in indices:
                    page = pdf.pages[i]
                    loaded.append(LoadedPage(
                        i, float(page.width), float(page.height),
                        PositionalElementList(extract_page_elements(page)), [i],
                    ))
    except IngestError:
        raise
    except IndexError as exc:
        raise IngestError(f"Page out of range in {pdf_path}: {exc}") from exc
    except Exception as exc:
        raise IngestError(f"Cannot read PDF: {exc}") from exc
    return loaded
