"""Page element sequence and the reading-order comparators.

A :class:`PositionalElementList` owns the ordered elements of one page
(or of several source pages stacked with :class:`~docgrid.models.PageBreak`
markers) together with the vertical and tabular groups found on it.
"""

from __future__ import annotations

import bisect
import functools
from typing import TYPE_CHECKING, Iterable, List, Optional

if TYPE_CHECKING:
    from .models import Element, ElementGroup
    from .tabular import TabularElementGroup

ELEMENT_OVERLAP_EPSILON = 0.02


# ---------------------------------------------------------------------------
# Comparators
# ---------------------------------------------------------------------------


def _overlap(above_bottom: float, below_top: float, height: float) -> float:
    if height == 0:
        return 0.0
    return (above_bottom - below_top) / height


def compare_by_horizontal_alignment(e1: "Element", e2: "Element") -> int:
    """Compare two elements by line.

    Returns 0 when they sit on the same line (their vertical spans
    overlap), otherwise a negative number when *e1* is above *e2* and a
    positive one when below.
    """
    if e1.top is None or e2.top is None:
        return 1
    top1, top2 = e1.top, e2.top
    bottom1 = top1 + (1 if e1.height is None else e1.height)
    bottom2 = top2 + (1 if e2.height is None else e2.height)
    min_height = min(bottom1 - top1, bottom2 - top2)
    threshold = (
        ELEMENT_OVERLAP_EPSILON
        if getattr(e1, "is_form_element", False) or getattr(e2, "is_form_element", False)
        else 0
    )
    if top2 <= top1 <= bottom2:
        overlap = _overlap(bottom2, top1, min_height)
    elif top1 <= top2 <= bottom1:
        overlap = _overlap(bottom1, top2, min_height)
    else:
        overlap = 0.0
    if overlap > threshold:
        return 0
    if top1 < top2:
        return min(int(top1 - top2), -1)
    return max(int(top1 - top2), 1)


def compare_by_vertical_alignment(e1: "Element", e2: "Element") -> int:
    """Compare two elements by column: 0 when their lefts are within half a width."""
    delta1 = 1 if e1.width is None else e1.width / 2
    delta2 = 1 if e2.width is None else e2.width / 2
    if abs(e1.left - e2.left) <= min(delta1, delta2):
        return 0
    return -1 if e1.left < e2.left else 1


def compare_by_horizontal_then_vertical_alignment(e1: "Element", e2: "Element") -> int:
    """Reading order: by line, then by left within a line."""
    line = compare_by_horizontal_alignment(e1, e2)
    if line != 0:
        return line
    if e1.left < e2.left:
        return -1
    if e1.left > e2.left:
        return 1
    return 0


# ---------------------------------------------------------------------------
# Element list
# ---------------------------------------------------------------------------


class PositionalElementList:
    """Ordered elements of a page plus the groups found on them."""

    def __init__(self, elements: Iterable["Element"], sort_by_position: bool = True):
        items = list(elements)
        if sort_by_position:
            items.sort(
                key=functools.cmp_to_key(compare_by_horizontal_then_vertical_alignment)
            )
        self.elements: List["Element"] = items
        self.vertical_groups: List["ElementGroup"] = []
        self.tabular_groups: List["TabularElementGroup"] = []
        self.page_break_positions: List[int] = []
        for i, element in enumerate(items):
            element.element_list = self
            element.list_index = i
            if element.is_page_break:
                self.page_break_positions.append(i)

    def __len__(self) -> int:
        return len(self.elements)

    def __iter__(self):
        return iter(self.elements)

    def __getitem__(self, index: int) -> "Element":
        return self.elements[index]

    def initialize_context(self, element: "Element") -> None:
        from .models import PositionalContext

        element.context = PositionalContext(element)

    # ── Groups ─────────────────────────────────────────────────────────

    def add_vertical_group(self, group: "ElementGroup") -> None:
        self.vertical_groups.append(group)

    def add_tabular_group(self, table: "TabularElementGroup") -> None:
        self.tabular_groups.append(table)

    def remove_tabular_group(self, table: "TabularElementGroup") -> None:
        for i, existing in enumerate(self.tabular_groups):
            if existing is table:
                del self.tabular_groups[i]
                return

    # ── Page breaks ────────────────────────────────────────────────────

    @property
    def number_of_page_breaks(self) -> int:
        return len(self.page_break_positions)

    def page_break_number(self, element: "Element") -> int:
        """Number of page breaks placed up to and including *element*."""
        return bisect.bisect_right(self.page_break_positions, element.list_index)

    def _page_break_position(self, number: int) -> int:
        if number == 0:
            return -1
        if number == self.number_of_page_breaks + 1:
            return len(self.elements)
        return self.page_break_positions[number - 1]

    def page_break(self, number: int) -> Optional["Element"]:
        """The PageBreak element numbered *number* (1-based)."""
        if not 1 <= number <= self.number_of_page_breaks:
            return None
        return self.elements[self.page_break_positions[number - 1]]

    def elements_between_page_breaks(self, start: int, end: int) -> List["Element"]:
        return self.elements[
            self._page_break_position(start) + 1 : self._page_break_position(end)
        ]

    def elements_till_page_break(self, end: int) -> List["Element"]:
        return self.elements_between_page_breaks(0, end)

    def elements_from_page_break(self, start: int) -> List["Element"]:
        return self.elements_between_page_breaks(start, self.number_of_page_breaks + 1)
