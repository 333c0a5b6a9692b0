"""Shared test fixtures for docgrid."""

from typing import Iterable, List, Optional, Sequence

import pytest

from docgrid.config import LayoutConfig
from docgrid.layout import PositionalElementList
from docgrid.models import (
    Element,
    HorizontalLine,
    PositionalContext,
    TextElement,
    TextStyle,
    VerticalLine,
)
from docgrid.tabular import TabularElementGroup

CHAR_WIDTH = 6.0
LINE_HEIGHT = 10.0

# ── Helpers ────────────────────────────────────────────────────────────


def make_text(
    left: float,
    top: float,
    text: str,
    width: Optional[float] = None,
    height: float = LINE_HEIGHT,
    bold: bool = False,
    **kwargs,
) -> TextElement:
    """Create a TextElement with a width derived from its text."""
    if width is None:
        width = max(len(text), 1) * CHAR_WIDTH
    if bold:
        kwargs["styles"] = frozenset(kwargs.get("styles", frozenset())) | {TextStyle.BOLD}
    return TextElement(top=top, left=left, width=width, height=height, text=text, **kwargs)


def make_hline(left: float, top: float, length: float) -> HorizontalLine:
    return HorizontalLine(top=top, left=left, stretch=length)


def make_vline(left: float, top: float, length: float) -> VerticalLine:
    return VerticalLine(top=top, left=left, stretch=length)


def with_context(*elements: Element) -> List[Element]:
    """Give each element a fresh PositionalContext."""
    for element in elements:
        element.context = PositionalContext(element)
    return list(elements)


def make_page(elements: Iterable[Element]) -> PositionalElementList:
    """Element list in reading order, every element carrying a context."""
    element_list = PositionalElementList(list(elements))
    for element in element_list:
        element_list.initialize_context(element)
    return element_list


def make_table(
    rows: Sequence[Sequence[Optional[str]]],
    left: float = 50.0,
    top: float = 100.0,
    col_width: float = 80.0,
    row_height: float = 14.0,
    header_count: int = 1,
    bold_rows: Sequence[int] = (),
    extra: Sequence[Element] = (),
) -> TabularElementGroup:
    """Build a table from rows of cell texts; ``None`` or ``""`` leaves a cell empty.

    The cell elements (plus *extra*, placed before them) are put in one
    page list so that contexts, page breaks and previous elements resolve.
    """
    n_rows = len(rows)
    n_cols = max(len(r) for r in rows)
    table = TabularElementGroup(n_rows, n_cols, header_count)
    elements: List[Element] = list(extra)
    placed = []
    for i, row in enumerate(rows):
        for j, text in enumerate(row):
            if not text:
                continue
            element = make_text(left + j * col_width, top + i * row_height, text, bold=i in bold_rows)
            elements.append(element)
            placed.append((i, j, element))
    make_page(elements)
    for i, j, element in placed:
        table.add_element(i, j, element)
    table.set_back_references()
    return table


def text_grid(
    rows: Sequence[Sequence[str]],
    left: float = 50.0,
    top: float = 100.0,
    col_width: float = 80.0,
    row_height: float = 20.0,
    bordered: bool = False,
) -> List[Element]:
    """Text elements laid out as a grid, optionally with ruled cell borders."""
    elements: List[Element] = []
    for i, row in enumerate(rows):
        for j, text in enumerate(row):
            elements.append(make_text(left + j * col_width + 4, top + i * row_height + 5, text))
    if bordered:
        n_rows, n_cols = len(rows), max(len(r) for r in rows)
        width, height = n_cols * col_width, n_rows * row_height
        for i in range(n_rows + 1):
            elements.append(make_hline(left, top + i * row_height, width))
        for j in range(n_cols + 1):
            elements.append(make_vline(left + j * col_width, top, height))
    return elements


# ── Fixtures ───────────────────────────────────────────────────────────


@pytest.fixture
def default_cfg() -> LayoutConfig:
    """Return a default LayoutConfig."""
    return LayoutConfig()


@pytest.fixture
def single_page_cfg() -> LayoutConfig:
    """A config with header/footer exclusion off, so a page is one partition."""
    return LayoutConfig(disable_header_footer_detection=True)


@pytest.fixture
def simple_row() -> List[TextElement]:
    """Three words on one line.

    Layout (approx):
        "HELLO"   "WORLD"   "TEST"
        (10,100)  (80,100)  (150,100)
    """
    return [
        make_text(10, 100, "HELLO"),
        make_text(80, 100, "WORLD"),
        make_text(150, 100, "TEST"),
    ]
