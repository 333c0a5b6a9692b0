"""Rectangles with one missing side, and how broken ones are stitched together."""

from __future__ import annotations

from enum import Enum
from typing import Callable, Dict, List, Optional

from ..models import BoundingRect, Element, HorizontalLine, VerticalLine
from .lines import (
    CONTEXT_LIMIT,
    SEPARATION_EPSILON,
    SortedLines,
    horizontal_line,
    is_valid_rectangle,
    vertical_line,
    vertical_line_key,
)

CombineCondition = Callable[[VerticalLine, VerticalLine], bool]


class OpenSide(str, Enum):
    """The side of an :class:`OpenRectangle` with no drawn border."""

    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"


class OpenRectangle:
    """Three borders of a rectangle; the fourth is inferred on demand."""

    def __init__(self, open_side: OpenSide):
        self.open_side = open_side
        self.left_border: Optional[VerticalLine] = None
        self.right_border: Optional[VerticalLine] = None
        self.top_border: Optional[HorizontalLine] = None
        self.bottom_border: Optional[HorizontalLine] = None

    def __repr__(self) -> str:
        return f"OpenRectangle(open_side={self.open_side.name})"

    def _check_side(self, side: OpenSide) -> None:
        if self.open_side is side:
            raise ValueError(
                f"{side.name.title()} border can not be set on a rectangle open on {side.name}"
            )

    def fix_left_border(self, border: VerticalLine) -> "OpenRectangle":
        self._check_side(OpenSide.LEFT)
        self.left_border = border
        return self

    def fix_right_border(self, border: VerticalLine) -> "OpenRectangle":
        self._check_side(OpenSide.RIGHT)
        self.right_border = border
        return self

    def fix_top_border(self, border: HorizontalLine) -> "OpenRectangle":
        self._check_side(OpenSide.TOP)
        self.top_border = border
        return self

    def fix_bottom_border(self, border: HorizontalLine) -> "OpenRectangle":
        self._check_side(OpenSide.BOTTOM)
        self.bottom_border = border
        return self

    def width(self) -> float:
        if self.open_side in (OpenSide.LEFT, OpenSide.RIGHT):
            raise ValueError(f"Width is undefined for a rectangle open on {self.open_side.name}")
        return self.right_border.left - self.left_border.left

    def height(self) -> float:
        if self.open_side in (OpenSide.TOP, OpenSide.BOTTOM):
            raise ValueError(f"Height is undefined for a rectangle open on {self.open_side.name}")
        return self.bottom_border.top - self.top_border.top

    def closing_border(self) -> Element:
        """The synthetic line that would close the open side."""
        side = self.open_side
        if side is OpenSide.BOTTOM:
            bottom_y = min(self.left_border.vertical_end, self.right_border.vertical_end)
            return horizontal_line(bottom_y, self.left_border.left, self.width())
        if side is OpenSide.TOP:
            top_y = max(self.left_border.top, self.right_border.top)
            return horizontal_line(top_y, self.left_border.left, self.width())
        if side is OpenSide.RIGHT:
            right_x = min(self.top_border.horizontal_end, self.bottom_border.horizontal_end)
            return vertical_line(self.top_border.top, right_x, self.height())
        left_x = max(self.top_border.left, self.bottom_border.left)
        return vertical_line(self.top_border.top, left_x, self.height())

    def closed_rectangle(self) -> BoundingRect:
        left, right = self.left_border, self.right_border
        top, bottom = self.top_border, self.bottom_border
        closing = self.closing_border()
        if self.open_side is OpenSide.TOP:
            top = closing
        elif self.open_side is OpenSide.BOTTOM:
            bottom = closing
        elif self.open_side is OpenSide.LEFT:
            left = closing
        else:
            right = closing
        return BoundingRect(left.left, top.top, right.left - left.left, bottom.top - top.top)

    def vertical_borders(self) -> List[VerticalLine]:
        return [b for b in (self.left_border, self.right_border) if b is not None]

    def horizontal_borders(self) -> List[HorizontalLine]:
        return [b for b in (self.top_border, self.bottom_border) if b is not None]


def stack_open_rectangles(open_bottom: OpenRectangle, open_top: OpenRectangle) -> List[BoundingRect]:
    """Close a bottom-open rectangle sitting directly above a top-open one.

    Both must share their left and right x (within one unit); the result
    is the upper, middle and lower rectangles that are valid.
    """
    if (
        abs(open_bottom.left_border.left - open_top.left_border.left) >= SEPARATION_EPSILON
        or abs(open_bottom.right_border.left - open_top.right_border.left) >= SEPARATION_EPSILON
    ):
        return []
    above = open_bottom.closed_rectangle()
    below = open_top.closed_rectangle()
    middle = BoundingRect(above.min_x, above.max_y, above.width, below.min_y - above.max_y)
    return [r for r in (above, middle, below) if is_valid_rectangle(r)]


def _unique(lines) -> Dict[int, Element]:
    return {id(line): line for line in lines}


def combine_horizontally_open_rectangles(
    open_rectangles: List[OpenRectangle],
    combine_condition: CombineCondition,
) -> List[BoundingRect]:
    """Join vertical borders broken by a gap and find the rectangles they now close.

    A vertical border of a bottom-open rectangle is joined with a collinear
    border of a top-open rectangle starting below it whenever
    *combine_condition* accepts the pair. The rectangles found on the
    joined lines are returned along with the internal rectangles each
    broken line spans.
    """
    bottom_open = [r for r in open_rectangles if r.open_side is OpenSide.BOTTOM]
    top_open = [r for r in open_rectangles if r.open_side is OpenSide.TOP]
    pivots = [line for r in bottom_open for line in r.vertical_borders()]
    top_lines: SortedLines[VerticalLine] = SortedLines(
        vertical_line_key, (line for r in top_open for line in r.vertical_borders())
    )
    broken_lines = [line for r in open_rectangles for line in r.vertical_borders()]
    combined = _unique(broken_lines)

    if top_lines:
        left_most, right_most = top_lines.first.left, top_lines.last.left
        for pivot in pivots:
            x, pivot_top, pivot_end = pivot.left, pivot.top, pivot.vertical_end
            if not (x + SEPARATION_EPSILON >= left_most and x - SEPARATION_EPSILON < right_most):
                continue
            collinear = top_lines.sub_set(
                (x - SEPARATION_EPSILON, pivot_top - CONTEXT_LIMIT),
                (x + SEPARATION_EPSILON, pivot_end),
            )
            for line in collinear:
                if line.top + SEPARATION_EPSILON > pivot_end and combine_condition(pivot, line):
                    combined.pop(id(pivot), None)
                    combined.pop(id(line), None)
                    joined = vertical_line(pivot_top, x, line.vertical_end - pivot_top)
                    combined[id(joined)] = joined

    horizontal = _unique(line for r in open_rectangles for line in r.horizontal_borders())
    # Imported lazily: the finder builds OpenRectangles itself.
    from .finder import RectangleFinder

    finder = RectangleFinder(horizontal.values(), combined.values())
    found = list(finder.found_rectangles)
    return found + find_internal_rectangles(found, broken_lines)


def find_internal_rectangles(rectangles: List[BoundingRect],
                             broken_lines: List[VerticalLine]) -> List[BoundingRect]:
    """Split each rectangle along the vertical extent of broken lines inside it."""
    internal: List[BoundingRect] = []
    sorted_lines: SortedLines[VerticalLine] = SortedLines(vertical_line_key, broken_lines)
    for rect in rectangles:
        matching = sorted_lines.sub_set(
            (rect.min_x - SEPARATION_EPSILON, rect.min_y - SEPARATION_EPSILON),
            (rect.max_x + SEPARATION_EPSILON, rect.max_y + SEPARATION_EPSILON),
        )
        for line in matching:
            internal.append(BoundingRect(rect.min_x, line.top, rect.width, line.stretch))
    return internal
