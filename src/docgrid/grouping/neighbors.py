"""Nearest elements in each direction ("shadows") and surrounding element lists.

All lookups run against the boxed-element :class:`SpatialIndex` of the
page partition being processed.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Tuple

from ..layout import compare_by_horizontal_alignment, compare_by_vertical_alignment
from ..models import Element, ElementGroup, TextElement
from ..spatial_index import (
    ASC,
    DESC,
    Attr,
    Condition,
    SpatialIndex,
    and_,
    between_exclusive,
    greater_than,
    intersection,
    less_than,
)

CONTEXT_LIMIT = 1000.0
SEPARATION_EPSILON = 1.0
VERTICAL_TRAVERSAL_THRESHOLD = 2
HORIZONTAL_TRAVERSAL_THRESHOLD = 2
TABLE_SMALL_ELEM_MAX_SIZE = 8.0


def horizontal_intersection(element: Element, other: Element) -> float:
    """Length of the overlap of the two elements' ``[left, right]`` spans."""
    return max(min(element.right, other.right) - max(element.left, other.left), 0.0)


def is_horizontally_intersecting(element: Optional[Element], left: float, right: float) -> bool:
    if element is None:
        return False
    return min(element.right, right) > max(element.left, left)


def _compare_line_with_fallback(prev_to_prev: Optional[Element], previous: Element,
                                element: Element) -> int:
    # A column can skip a short fragment; compare against the one before it
    # when the previous candidate does not overlap horizontally.
    comparable = previous
    if (
        prev_to_prev is not None
        and horizontal_intersection(element, previous) == 0
        and horizontal_intersection(element, prev_to_prev) > 0
    ):
        comparable = prev_to_prev
    return compare_by_horizontal_alignment(comparable, element)


def _span(element: Element, horizontal: bool) -> Tuple[float, float]:
    if horizontal:
        return element.left, element.left + (element.width or 0.0)
    return element.top, element.top + (element.height or 0.0)


class NeighborResolver:
    """Answers "what touches this element" queries over one boxed index."""

    def __init__(self, boxed_index: SpatialIndex):
        self.index = boxed_index

    # ── Shadow elements ────────────────────────────────────────────────

    def _most_intersecting(
        self,
        axis_condition: Condition,
        other_condition: Condition,
        order_by: List[Tuple[Attr, bool]],
        horizontal: bool,
        start: float,
        end: float,
        same_line: Callable[[Optional[Element], Element, Element], bool],
    ) -> Optional[Element]:
        results = self.index.retrieve(and_(axis_condition, other_condition), order_by)
        prev_to_prev: Optional[Element] = None
        prev: Optional[Element] = None
        best: Optional[Element] = None
        best_score = -1.0
        for candidate in results:
            if prev is not None and not same_line(prev_to_prev, prev, candidate):
                break
            c_start, c_end = _span(candidate, horizontal)
            score = max(min(end, c_end) - max(start, c_start), 0.0)
            if score > best_score:
                best_score = score
                best = candidate
            prev_to_prev = prev
            prev = candidate
        return best

    def shadow_above(self, bottom: float, visual_left: float, visual_right: float,
                     left: float, right: float) -> Optional[Element]:
        return self._most_intersecting(
            between_exclusive(Attr.BOTTOM, bottom - CONTEXT_LIMIT, bottom - SEPARATION_EPSILON),
            intersection(Attr.LEFT, Attr.RIGHT, visual_left, visual_right),
            [(Attr.BOTTOM, DESC)],
            True,
            left,
            right,
            lambda pp, p, e: _compare_line_with_fallback(pp, p, e) == 0,
        )

    def shadow_below(self, top: float, visual_left: float, visual_right: float,
                     left: float, right: float) -> Optional[Element]:
        return self._most_intersecting(
            between_exclusive(Attr.TOP, top + SEPARATION_EPSILON, top + CONTEXT_LIMIT),
            intersection(Attr.LEFT, Attr.RIGHT, visual_left, visual_right),
            [(Attr.TOP, ASC)],
            True,
            left,
            right,
            lambda pp, p, e: _compare_line_with_fallback(pp, p, e) == 0,
        )

    def shadow_left(self, top: float, bottom: float, left: float) -> Optional[Element]:
        return self._most_intersecting(
            less_than(Attr.RIGHT, left),
            intersection(Attr.TOP, Attr.BOTTOM, top, bottom, CONTEXT_LIMIT),
            [(Attr.RIGHT, DESC)],
            False,
            top,
            bottom,
            lambda pp, p, e: compare_by_vertical_alignment(p, e) == 0,
        )

    def shadow_right(self, top: float, bottom: float, right: float) -> Optional[Element]:
        return self._most_intersecting(
            greater_than(Attr.LEFT, right),
            intersection(Attr.TOP, Attr.BOTTOM, top, bottom, CONTEXT_LIMIT),
            [(Attr.LEFT, ASC)],
            False,
            top,
            bottom,
            lambda pp, p, e: compare_by_vertical_alignment(p, e) == 0,
        )

    # ── Surrounding element lists ──────────────────────────────────────

    def _surrounding(
        self,
        axis_condition: Condition,
        other_condition: Condition,
        order_by: List[Tuple[Attr, bool]],
        horizontal: bool,
        threshold: int,
        line_crossed: Callable[[Element, Element], bool],
    ) -> ElementGroup:
        results = self.index.retrieve(and_(axis_condition, other_condition), order_by)
        group = ElementGroup()
        intervals: List[Tuple[float, float]] = []
        lines_visited = 0
        prev: Optional[Element] = None
        for candidate in results:
            if prev is not None and line_crossed(prev, candidate):
                lines_visited += 1
                if lines_visited >= threshold:
                    break
            start, end = _span(candidate, horizontal)
            if all(end < s or start > e for s, e in intervals):
                group.add(candidate)
                intervals.append((start, end))
            prev = candidate
        return group

    def above_elements(self, bottom: float, visual_left: float, visual_right: float) -> ElementGroup:
        return self._surrounding(
            between_exclusive(Attr.BOTTOM, bottom - CONTEXT_LIMIT, bottom - SEPARATION_EPSILON),
            and_(greater_than(Attr.HORIZONTAL_CENTRE, visual_left),
                 less_than(Attr.HORIZONTAL_CENTRE, visual_right)),
            [(Attr.BOTTOM, DESC), (Attr.HORIZONTAL_CENTRE, ASC)],
            True,
            VERTICAL_TRAVERSAL_THRESHOLD,
            lambda x, y: compare_by_horizontal_alignment(x, y) != 0,
        )

    def below_elements(self, top: float, visual_left: float, visual_right: float) -> ElementGroup:
        return self._surrounding(
            between_exclusive(Attr.TOP, top + SEPARATION_EPSILON, top + CONTEXT_LIMIT),
            and_(greater_than(Attr.HORIZONTAL_CENTRE, visual_left),
                 less_than(Attr.HORIZONTAL_CENTRE, visual_right)),
            [(Attr.TOP, ASC), (Attr.HORIZONTAL_CENTRE, ASC)],
            True,
            VERTICAL_TRAVERSAL_THRESHOLD,
            lambda x, y: compare_by_horizontal_alignment(x, y) != 0,
        )

    def left_elements(self, left: float, visual_top: float, visual_bottom: float) -> ElementGroup:
        return self._surrounding(
            less_than(Attr.RIGHT, left),
            between_exclusive(Attr.VERTICAL_CENTRE, visual_top, visual_bottom),
            [(Attr.RIGHT, DESC), (Attr.VERTICAL_CENTRE, ASC)],
            False,
            HORIZONTAL_TRAVERSAL_THRESHOLD,
            lambda x, y: compare_by_vertical_alignment(x, y) != 0,
        )

    def right_elements(self, right: float, visual_top: float, visual_bottom: float) -> ElementGroup:
        return self._surrounding(
            greater_than(Attr.LEFT, right),
            between_exclusive(Attr.VERTICAL_CENTRE, visual_top, visual_bottom),
            [(Attr.LEFT, ASC), (Attr.VERTICAL_CENTRE, ASC)],
            False,
            HORIZONTAL_TRAVERSAL_THRESHOLD,
            lambda x, y: compare_by_vertical_alignment(x, y) != 0,
        )

    # ── Table support ──────────────────────────────────────────────────

    def tabular_below(self, top: float, visual_left: float, visual_right: float,
                      left: float, right: float) -> Tuple[Optional[Element], float, float]:
        """Next element below that overlaps ``[left, right]``.

        Wide text that does not overlap narrows the visual band and the
        search continues beneath it.

        Returns:
            ``(element or None, visual_left, visual_right)``
        """
        below: Optional[Element] = None
        overlap = 0.0
        while overlap == 0:
            if below is not None:
                top = below.top + SEPARATION_EPSILON
            below = self.shadow_below(top, visual_left, visual_right, left, right)
            if isinstance(below, TextElement):
                overlap = max(min(below.right, right) - max(below.left, left), 0.0)
                if overlap == 0 and (below.width or 0.0) > TABLE_SMALL_ELEM_MAX_SIZE:
                    if below.right < left:
                        visual_left = below.right
                    else:
                        visual_right = below.left
            elif below is None:
                # zero-width columns would otherwise never terminate
                break
        return below, visual_left, visual_right
