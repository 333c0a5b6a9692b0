"""Sweep-line rectangle discovery over horizontal and vertical line segments."""

from __future__ import annotations

from typing import Iterable, List

from ..models import BoundingRect, Element, HorizontalLine, VerticalLine
from .lines import (
    SEPARATION_EPSILON,
    AbscissaType,
    LineAbscissa,
    SortedLines,
    abscissa_sort_key,
    is_valid_rectangle,
    line_top,
)
from .open_rectangle import OpenRectangle, OpenSide


class RectangleBuilder:
    """Rectangles that use one vertical line as their left border."""

    def __init__(self, left_border: VerticalLine, horizontal_lines: SortedLines[HorizontalLine]):
        self.left_border = left_border
        self.intersecting_lines: SortedLines[HorizontalLine] = SortedLines(line_top)
        self.left_side_open_candidates: SortedLines[HorizontalLine] = SortedLines(line_top)
        self.right_side_open_candidates: SortedLines[HorizontalLine] = SortedLines(line_top)
        if horizontal_lines:
            lower = left_border.top - SEPARATION_EPSILON
            upper = lower + left_border.stretch + 2 * SEPARATION_EPSILON
            if horizontal_lines.first.top < upper and horizontal_lines.last.top > lower:
                x = left_border.left
                for line in horizontal_lines.sub_set(lower, upper):
                    self.intersecting_lines.put(line)
                    if line.horizontal_end > x + SEPARATION_EPSILON:
                        self.right_side_open_candidates.add(line)
                    if line.left < x - SEPARATION_EPSILON:
                        self.left_side_open_candidates.add(line)

    def _same_x(self, border: VerticalLine) -> bool:
        return abs(border.left - self.left_border.left) < SEPARATION_EPSILON

    def find_intersecting_borders(self, right_border: VerticalLine) -> SortedLines[HorizontalLine]:
        """Horizontal lines of this builder that *right_border* crosses."""
        found: SortedLines[HorizontalLine] = SortedLines(line_top)
        if self._same_x(right_border) or not self.intersecting_lines:
            return found
        lower = right_border.top - SEPARATION_EPSILON
        upper = lower + right_border.stretch + 2 * SEPARATION_EPSILON
        if self.intersecting_lines.first.top < upper and self.intersecting_lines.last.top > lower:
            x = right_border.left
            for line in self.intersecting_lines.sub_set(lower, upper):
                if line.left - SEPARATION_EPSILON <= x <= line.horizontal_end + SEPARATION_EPSILON:
                    found.add(line)
        return found

    def rectangles_with_right_border(self, right_border: VerticalLine,
                                     borders: List[HorizontalLine]) -> List[BoundingRect]:
        rectangles: List[BoundingRect] = []
        if self._same_x(right_border):
            return rectangles
        left_x, right_x = self.left_border.left, right_border.left
        for top_border, bottom_border in zip(borders, borders[1:]):
            rect = BoundingRect(left_x, top_border.top, right_x - left_x,
                                bottom_border.top - top_border.top)
            if is_valid_rectangle(rect):
                rectangles.append(rect)
        return rectangles

    def remove_right_side_closed_lines(self, lines: Iterable[HorizontalLine]) -> None:
        self.right_side_open_candidates.discard_all(lines)

    def remove_left_side_closed_lines(self, lines: Iterable[HorizontalLine]) -> None:
        self.left_side_open_candidates.discard_all(lines)

    def right_side_open_rectangles(self) -> List[OpenRectangle]:
        """The largest rectangle whose right side was never drawn, if any."""
        if not self.right_side_open_candidates:
            return []
        top_border = self.right_side_open_candidates.first
        bottom_border = self.right_side_open_candidates.last
        if abs(top_border.top - bottom_border.top) <= SEPARATION_EPSILON:
            return []
        return [
            OpenRectangle(OpenSide.RIGHT)
            .fix_left_border(self.left_border)
            .fix_top_border(top_border)
            .fix_bottom_border(bottom_border)
        ]

    def horizontally_open_rectangles(self, right_border: VerticalLine,
                                     borders: SortedLines[HorizontalLine]) -> List[OpenRectangle]:
        """Rectangles between this left border and *right_border* missing a top or bottom."""
        found: List[OpenRectangle] = []
        if self._same_x(right_border) or not borders:
            return found
        left_top = self.left_border.top
        left_bottom = self.left_border.vertical_end
        right_top = right_border.top
        right_bottom = right_border.vertical_end
        top_most = borders.first
        if top_most.top > left_top + SEPARATION_EPSILON and top_most.top > right_top + SEPARATION_EPSILON:
            found.append(
                OpenRectangle(OpenSide.TOP)
                .fix_left_border(self.left_border)
                .fix_right_border(right_border)
                .fix_bottom_border(top_most)
            )
        bottom_most = borders.last
        if (
            bottom_most.top < left_bottom - SEPARATION_EPSILON
            and bottom_most.top < right_bottom - SEPARATION_EPSILON
        ):
            found.append(
                OpenRectangle(OpenSide.BOTTOM)
                .fix_left_border(self.left_border)
                .fix_right_border(right_border)
                .fix_top_border(bottom_most)
            )
        return found


class RectangleFinder:
    """Sweep line segments left to right, collecting closed and open rectangles.

    Attributes:
        found_rectangles: fully bordered rectangles
        horizontally_open_rectangles: rectangles missing their top or bottom
        builders: one :class:`RectangleBuilder` per vertical line, in sweep order
    """

    def __init__(self, horizontal_lines: Iterable[Element], vertical_lines: Iterable[Element]):
        self.found_rectangles: List[BoundingRect] = []
        self.horizontally_open_rectangles: List[OpenRectangle] = []
        self.builders: List[RectangleBuilder] = []

        events: List[LineAbscissa] = []
        for line in horizontal_lines:
            events.append(LineAbscissa(AbscissaType.HORIZONTAL_LINE_LEFT, line))
            events.append(LineAbscissa(AbscissaType.HORIZONTAL_LINE_RIGHT, line))
        for line in vertical_lines:
            events.append(LineAbscissa(AbscissaType.VERTICAL_LINE, line))
        events.sort(key=abscissa_sort_key)

        current: SortedLines[HorizontalLine] = SortedLines(line_top)
        for event in events:
            if event.abscissa_type is AbscissaType.HORIZONTAL_LINE_LEFT:
                current.put(event.element)
            elif event.abscissa_type is AbscissaType.HORIZONTAL_LINE_RIGHT:
                current.discard_key(event.element.top)
            else:
                vline = event.element
                closed_on_left: List[HorizontalLine] = []
                for builder in self.builders:
                    borders = builder.find_intersecting_borders(vline)
                    self.horizontally_open_rectangles.extend(
                        builder.horizontally_open_rectangles(vline, borders)
                    )
                    self.found_rectangles.extend(
                        builder.rectangles_with_right_border(vline, borders.to_list())
                    )
                    builder.remove_right_side_closed_lines(borders)
                    closed_on_left.extend(borders)
                builder = RectangleBuilder(vline, current)
                builder.remove_left_side_closed_lines(closed_on_left)
                self.builders.append(builder)
