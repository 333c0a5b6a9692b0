"""Merge adjacent rectangles into rectilinear polygons (the outline of a grid)."""

from __future__ import annotations

from typing import List, Optional

from ..models import BoundingRect, HorizontalLine, VerticalLine
from .lines import (
    SEPARATION_EPSILON,
    SortedLines,
    horizontal_line,
    horizontal_line_key,
    vertical_line,
    vertical_line_key,
)


class RectilinearPolygon:
    """A union of edge-sharing rectangles, tracked through its borders."""

    def __init__(self, rect: BoundingRect):
        self.horizontal_borders: SortedLines[HorizontalLine] = SortedLines(horizontal_line_key)
        self.vertical_borders: SortedLines[VerticalLine] = SortedLines(vertical_line_key)
        self.enclosed_rectangles: List[BoundingRect] = [rect]
        self.vertical_borders.add(vertical_line(rect.min_y, rect.min_x, rect.height))
        self.vertical_borders.add(vertical_line(rect.min_y, rect.max_x, rect.height))
        self.horizontal_borders.add(horizontal_line(rect.min_y, rect.min_x, rect.width))
        self.horizontal_borders.add(horizontal_line(rect.max_y, rect.min_x, rect.width))

    def __repr__(self) -> str:
        return (
            f"RectilinearPolygon(rectangles={len(self.enclosed_rectangles)}, "
            f"rows={self.number_of_rows}, columns={self.number_of_columns})"
        )

    def is_vertically_overlapping(self, rect: BoundingRect) -> bool:
        top_most = self.horizontal_borders.first.top
        bottom_most = self.horizontal_borders.last.top
        return rect.min_y < bottom_most + SEPARATION_EPSILON and rect.max_y > top_most - SEPARATION_EPSILON

    def include_rectangle_if_possible(self, rect: BoundingRect) -> bool:
        """Absorb *rect* when one of its sides touches an existing border."""
        if not self.is_vertically_overlapping(rect):
            return False
        top = self._include_horizontal_border(rect, rect.min_y, rect.max_y)
        bottom = self._include_horizontal_border(rect, rect.max_y, rect.min_y)
        left = self._include_vertical_border(rect, rect.min_x, rect.max_x)
        right = self._include_vertical_border(rect, rect.max_x, rect.min_x)
        if top or bottom or left or right:
            self.enclosed_rectangles.append(rect)
            return True
        return False

    def _include_horizontal_border(self, rect: BoundingRect, border_y: float, opposite_y: float) -> bool:
        lower, upper = opposite_y - SEPARATION_EPSILON, opposite_y + SEPARATION_EPSILON
        borders = self.horizontal_borders
        if not borders or not (borders.first.top < upper and borders.last.top > lower):
            return False
        for border in borders.sub_set((lower, rect.min_x), (upper, rect.min_x)):
            if border.left <= rect.max_x and border.horizontal_end >= rect.min_x:
                borders.add(horizontal_line(border_y, rect.min_x, rect.width))
                return True
        return False

    def _include_vertical_border(self, rect: BoundingRect, border_x: float, opposite_x: float) -> bool:
        lower, upper = opposite_x - SEPARATION_EPSILON, opposite_x + SEPARATION_EPSILON
        borders = self.vertical_borders
        if not borders or not (borders.first.left < upper and borders.last.left > lower):
            return False
        for border in borders.sub_set((lower, rect.min_y), (upper, rect.min_y)):
            if border.top <= rect.max_y and border.vertical_end >= rect.min_y:
                borders.add(vertical_line(rect.min_y, border_x, rect.height))
                return True
        return False

    @property
    def bounding_rectangle(self) -> Optional[BoundingRect]:
        if not self.enclosed_rectangles:
            return None
        left = self.vertical_borders.first.left
        right = self.vertical_borders.last.left
        top = self.horizontal_borders.first.top
        bottom = self.horizontal_borders.last.top
        return BoundingRect(left, top, right - left, bottom - top)

    @property
    def number_of_rows(self) -> int:
        return len({b.top for b in self.horizontal_borders}) - 1

    @property
    def number_of_columns(self) -> int:
        return len({b.left for b in self.vertical_borders}) - 1


def build_rectilinear_polygons(rectangles: List[BoundingRect]) -> List[RectilinearPolygon]:
    """Group rectangles into polygons, scanning top-to-bottom then left-to-right.

    A rectangle joins every polygon it touches; one touching none starts
    a new polygon.
    """
    polygons: List[RectilinearPolygon] = []
    for rect in sorted(rectangles, key=lambda r: (r.min_y, r.min_x)):
        included = False
        for polygon in polygons:
            included = polygon.include_rectangle_if_possible(rect) or included
        if not included:
            polygons.append(RectilinearPolygon(rect))
    return polygons
