"""Visual edges of an element, from drawn lines or from its neighbours."""

from __future__ import annotations

from typing import List, Optional, Tuple

from ..models import Element
from ..spatial_index import (
    ASC,
    DESC,
    Attr,
    Condition,
    SpatialIndex,
    and_,
    between_exclusive,
    greater_than,
    less_than,
    or_,
)
from .neighbors import CONTEXT_LIMIT

BORDER_LINE_ADJUST_EPSILON = 2.0


def find_visual_edge(
    default: float,
    neighbour_boundary: float,
    neighbour_aligned: bool,
    boundary: float,
    aligned: bool,
    axis_attr: Attr,
    line_axis_condition: Condition,
    line_other_condition: Condition,
    neighbour_axis_condition: Condition,
    order_by: List[Tuple[Attr, bool]],
    line_index: SpatialIndex,
) -> Tuple[float, bool]:
    """Resolve one edge.

    The nearest drawn line matching the conditions wins and the edge is
    border based. Without one, the edge is the midpoint between the
    element and its neighbour when both or neither are alignment bound,
    otherwise the alignment-bound side; with no neighbour it is *default*.
    """
    edge = default
    condition: Condition = and_(line_axis_condition, line_other_condition)
    if neighbour_boundary > 0:
        if neighbour_aligned == aligned:
            edge = min(neighbour_boundary, boundary) + abs(boundary - neighbour_boundary) / 2
        else:
            edge = boundary if aligned else neighbour_boundary
        condition = and_(condition, neighbour_axis_condition)
    line = line_index.first(condition, order_by)
    if line is not None:
        return getattr(line, axis_attr.value), True
    return edge, False


def _vertical_span_condition(top: float, bottom: float) -> Condition:
    return or_(
        and_(between_exclusive(Attr.TOP, top - CONTEXT_LIMIT, top),
             between_exclusive(Attr.VERTICAL_END, top, top + CONTEXT_LIMIT)),
        and_(between_exclusive(Attr.TOP, top, bottom),
             between_exclusive(Attr.VERTICAL_END, bottom, bottom + CONTEXT_LIMIT)),
    )


def _horizontal_span_condition(left: float, right: float) -> Condition:
    return or_(
        and_(less_than(Attr.LEFT, left), greater_than(Attr.HORIZONTAL_END, left)),
        and_(less_than(Attr.LEFT, right), greater_than(Attr.HORIZONTAL_END, right)),
    )


class VisualBorderResolver:
    """Visual left/right/top/bottom of elements within one page partition."""

    def __init__(self, vertical_lines: SpatialIndex, horizontal_lines: SpatialIndex,
                 page_width: float, top_boundary: float, bottom_boundary: float):
        self.vertical_lines = vertical_lines
        self.horizontal_lines = horizontal_lines
        self.page_width = page_width
        self.top_boundary = top_boundary
        self.bottom_boundary = bottom_boundary

    def visual_left(self, top: float, bottom: float, left: float, alignment_left: float,
                    left_element: Optional[Element]) -> Tuple[float, bool]:
        neighbour_alignment_right = (
            left_element.context.alignment_right
            if left_element is not None and left_element.context is not None else 0.0
        )
        neighbour_right = left_element.right if left_element is not None else -1.0
        neighbour_aligned = 0 < neighbour_alignment_right < left
        aligned = alignment_left > 0 and alignment_left > neighbour_right
        return find_visual_edge(
            0.0,
            neighbour_alignment_right if neighbour_aligned else neighbour_right,
            neighbour_aligned,
            alignment_left if aligned else left,
            aligned,
            Attr.LEFT,
            less_than(Attr.LEFT, left + BORDER_LINE_ADJUST_EPSILON),
            _vertical_span_condition(top, bottom),
            greater_than(Attr.LEFT, neighbour_right - BORDER_LINE_ADJUST_EPSILON),
            [(Attr.LEFT, DESC)],
            self.vertical_lines,
        )

    def visual_right(self, top: float, bottom: float, right: float, alignment_right: float,
                     right_element: Optional[Element]) -> Tuple[float, bool]:
        neighbour_alignment_left = (
            right_element.context.alignment_left
            if right_element is not None and right_element.context is not None else 0.0
        )
        neighbour_left = right_element.left if right_element is not None else -1.0
        neighbour_aligned = neighbour_alignment_left > right
        aligned = alignment_right > 0 and alignment_right < neighbour_left
        return find_visual_edge(
            self.page_width,
            neighbour_alignment_left if neighbour_aligned else neighbour_left,
            neighbour_aligned,
            alignment_right if aligned else right,
            aligned,
            Attr.LEFT,
            greater_than(Attr.LEFT, right - BORDER_LINE_ADJUST_EPSILON),
            _vertical_span_condition(top, bottom),
            less_than(Attr.LEFT, neighbour_left + BORDER_LINE_ADJUST_EPSILON),
            [(Attr.LEFT, ASC)],
            self.vertical_lines,
        )

    def visual_top(self, top: float, left: float, right: float,
                   above_element: Optional[Element]) -> Tuple[float, bool]:
        neighbour_bottom = above_element.bottom if above_element is not None else self.top_boundary
        return find_visual_edge(
            self.top_boundary,
            neighbour_bottom,
            False,
            top,
            False,
            Attr.TOP,
            between_exclusive(Attr.TOP, top - CONTEXT_LIMIT, top),
            _horizontal_span_condition(left, right),
            between_exclusive(Attr.TOP, neighbour_bottom, neighbour_bottom + CONTEXT_LIMIT),
            [(Attr.TOP, DESC)],
            self.horizontal_lines,
        )

    def visual_bottom(self, bottom: float, left: float, right: float,
                      below_element: Optional[Element]) -> Tuple[float, bool]:
        neighbour_top = below_element.top if below_element is not None else self.bottom_boundary
        return find_visual_edge(
            self.bottom_boundary,
            neighbour_top,
            False,
            bottom,
            False,
            Attr.TOP,
            between_exclusive(Attr.TOP, bottom, bottom + CONTEXT_LIMIT),
            _horizontal_span_condition(left, right),
            between_exclusive(Attr.TOP, neighbour_top - CONTEXT_LIMIT, neighbour_top),
            [(Attr.TOP, ASC)],
            self.horizontal_lines,
        )
