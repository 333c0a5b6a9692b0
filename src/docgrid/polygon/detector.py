"""Tie drawn rectangles and grids to the page elements they enclose."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from ..layout import compare_by_horizontal_alignment
from ..models import BoundingRect, Element, TextElement, VerticalLine
from ..spatial_index import (
    ASC,
    Attr,
    SpatialIndex,
    and_,
    between,
    between_exclusive,
    greater_than,
    less_than,
)
from .finder import RectangleFinder
from .lines import CONTEXT_LIMIT, SEPARATION_EPSILON, is_valid_rectangle
from .open_rectangle import OpenRectangle, combine_horizontally_open_rectangles
from .rectilinear import RectilinearPolygon, build_rectilinear_polygons

log = logging.getLogger(__name__)


def _first(found: List[Element]) -> Optional[Element]:
    return found[0] if found else None


def are_elements_aligned_tabularly(elements: Iterable[Element]) -> bool:
    """True when *elements* (in top order) span two or more rows and two or more columns."""
    rows, cols, current = 1, 0, 0
    prev: Optional[Element] = None
    for element in elements:
        if prev is not None and compare_by_horizontal_alignment(prev, element) < 0:
            rows += 1
            cols = max(cols, current)
            current = 1
        else:
            current += 1
        if rows > 1 and cols > 1:
            break
        prev = element
    cols = max(cols, current)
    return rows > 1 and cols > 1


class PolygonDetector:
    """Finds drawn boxes and grids on a page and stamps their extent on enclosed elements.

    ``boxed_index`` may be swapped between page partitions; the line
    indexes cover the whole page.
    """

    def __init__(self, boxed_index: SpatialIndex, vertical_lines: SpatialIndex,
                 horizontal_lines: SpatialIndex):
        self.boxed_index = boxed_index
        self.vertical_lines = vertical_lines
        self.horizontal_lines = horizontal_lines

    # ── Single rectangles ─────────────────────────────────────────────

    def _vertical_borders(self, down: float, next_top: float, left: float, right: float):
        def at(x: float):
            return _first(self.vertical_lines.retrieve(and_(
                between(Attr.TOP, down, True, next_top + SEPARATION_EPSILON, False),
                between_exclusive(Attr.LEFT, x - SEPARATION_EPSILON, x + SEPARATION_EPSILON),
            )))

        first = at(left)
        if first is None:
            return None
        second = at(right)
        if second is None or abs(first.stretch - second.stretch) >= SEPARATION_EPSILON:
            return None
        return first, second

    def find_rectangle(self, line: Element, include_broken: bool = False) -> Optional[BoundingRect]:
        """Find the box whose top border is the horizontal *line*.

        Needs one vertical line under each end of *line* with matching
        lengths and a horizontal line joining their lower ends. With
        *include_broken*, a missing bottom border lets the search resume
        below the next boxed element. Enclosed elements laid out as a
        grid get the box as their ``bounding_rect``.
        """
        top, left, width = line.top, line.left, line.stretch
        right = left + width
        bottom_line: Optional[Element] = None
        down = top - SEPARATION_EPSILON
        next_top = top
        continued = True
        while bottom_line is None and continued:
            continued = False
            borders = self._vertical_borders(down, next_top, left, right)
            if borders is None:
                break
            first = borders[0]
            down = first.top + first.stretch
            bottom_line = _first(self.horizontal_lines.retrieve(and_(
                between_exclusive(Attr.TOP, down - SEPARATION_EPSILON, down + SEPARATION_EPSILON),
                between_exclusive(Attr.LEFT, left - SEPARATION_EPSILON, left + SEPARATION_EPSILON),
                between_exclusive(Attr.HORIZONTAL_END, right - SEPARATION_EPSILON,
                                  right + SEPARATION_EPSILON),
            )))
            if bottom_line is None and include_broken:
                below = self.boxed_index.first(
                    between_exclusive(Attr.TOP, down, down + CONTEXT_LIMIT), [(Attr.TOP, ASC)]
                )
                if below is not None:
                    next_top = below.bottom
                    continued = True

        if bottom_line is None:
            return None
        rect = BoundingRect(left, top, width, down - top)
        inside = self.elements_within(rect)
        if are_elements_aligned_tabularly(inside):
            for element in inside:
                element.context.bounding_rect = rect
        return rect

    def contained_horizontal_lines(self, rect: BoundingRect) -> List[Element]:
        return self.horizontal_lines.retrieve(and_(
            between_exclusive(Attr.TOP, rect.min_y - SEPARATION_EPSILON, rect.max_y + SEPARATION_EPSILON),
            greater_than(Attr.LEFT, rect.min_x - SEPARATION_EPSILON),
            less_than(Attr.HORIZONTAL_END, rect.max_x + SEPARATION_EPSILON),
        ), [(Attr.TOP, ASC)])

    def contained_vertical_lines(self, rect: BoundingRect) -> List[Element]:
        return self.vertical_lines.retrieve(and_(
            between_exclusive(Attr.LEFT, rect.min_x - SEPARATION_EPSILON, rect.max_x + SEPARATION_EPSILON),
            greater_than(Attr.TOP, rect.min_y - SEPARATION_EPSILON),
            less_than(Attr.VERTICAL_END, rect.max_y + SEPARATION_EPSILON),
        ), [(Attr.LEFT, ASC)])

    def elements_within(self, rect: BoundingRect) -> List[Element]:
        """Boxed elements whose top-left corner lies inside *rect*, in top order."""
        return self.boxed_index.retrieve(and_(
            between_exclusive(Attr.LEFT, rect.min_x - SEPARATION_EPSILON, rect.max_x - SEPARATION_EPSILON),
            between_exclusive(Attr.TOP, rect.min_y - 2 * SEPARATION_EPSILON, rect.max_y - SEPARATION_EPSILON),
        ), [(Attr.TOP, ASC)])

    # ── Grids ─────────────────────────────────────────────────────────

    def lines_combinable(self, above: VerticalLine, below: VerticalLine) -> bool:
        """Whether two collinear vertical lines are one border broken by a gap.

        On the same page the gap must be under one unit; across a page
        break no text may sit between them.
        """
        above_end, below_top = above.vertical_end, below.top
        element_list = above.element_list
        same_page = (
            element_list is None
            or element_list.page_break_number(above) == element_list.page_break_number(below)
        )
        if same_page:
            return below_top - above_end < SEPARATION_EPSILON
        between_lines = self.boxed_index.retrieve(between_exclusive(
            Attr.TOP, above_end - SEPARATION_EPSILON, below_top + SEPARATION_EPSILON
        ))
        return not any(isinstance(e, TextElement) for e in between_lines)

    def can_close_right_side(self, open_rect: OpenRectangle) -> bool:
        """Whether no boxed element crosses the inferred right border."""
        border = open_rect.closing_border()
        x, top_y, bottom_y = border.left, border.top, border.vertical_end
        crossing = self.boxed_index.first(and_(
            greater_than(Attr.BOTTOM, top_y - SEPARATION_EPSILON),
            less_than(Attr.TOP, bottom_y + SEPARATION_EPSILON),
            greater_than(Attr.RIGHT, x - SEPARATION_EPSILON),
            less_than(Attr.LEFT, x + SEPARATION_EPSILON),
        ))
        return crossing is None

    def find_rectilinear_polygons(self, horizontal_lines: Iterable[Element],
                                  vertical_lines: Iterable[Element]) -> List[RectilinearPolygon]:
        """Assemble closed, right-open and broken rectangles into polygons.

        Elements enclosed by a polygon that has more than one rectangle,
        row and column, and whose contents form a grid, get the polygon's
        bounding rectangle unless they already have one.
        """
        finder = RectangleFinder(horizontal_lines, vertical_lines)
        rectangles = list(finder.found_rectangles)
        for builder in finder.builders:
            for open_rect in builder.right_side_open_rectangles():
                if self.can_close_right_side(open_rect):
                    closed = open_rect.closed_rectangle()
                    if is_valid_rectangle(closed):
                        rectangles.append(closed)
        rectangles.extend(
            combine_horizontally_open_rectangles(finder.horizontally_open_rectangles, self.lines_combinable)
        )
        polygons = build_rectilinear_polygons(rectangles)
        log.debug("Found %d rectangles forming %d polygons", len(rectangles), len(polygons))
        self.assign_bounding_boxes(polygons)
        return polygons

    def assign_bounding_boxes(self, polygons: Iterable[RectilinearPolygon]) -> None:
        for polygon in polygons:
            rect = polygon.bounding_rectangle
            inside = self.elements_within(rect)
            if (
                not are_elements_aligned_tabularly(inside)
                or len(polygon.enclosed_rectangles) == 1
                or polygon.number_of_rows == 1
                or polygon.number_of_columns == 1
            ):
                continue
            for element in inside:
                if element.context.bounding_rect is None:
                    element.context.bounding_rect = rect
