"""Vertical groups: stacked single-line fragments of one paragraph or label."""

from __future__ import annotations

from ..models import Element, ElementGroup, TextElement
from .borders import BORDER_LINE_ADJUST_EPSILON
from .neighbors import is_horizontally_intersecting

DEFAULT_MAX_LINE_HEIGHT_AND_DISTANCE_FACTOR = 2.0
MAX_LINE_HEIGHT_VARIANCE = 0.4
MAX_LINE_DISTANCE_VARIANCE = 0.5


def find_vertical_group(
    element: Element,
    max_distance_factor: float = DEFAULT_MAX_LINE_HEIGHT_AND_DISTANCE_FACTOR,
    detect_underline: bool = False,
) -> ElementGroup:
    """Grow a vertical group downwards from *element* through shadow-below links.

    Extension stops at the first of: a different element kind, an
    element already grouped, a drawn top border (unless underline
    detection is on and the border hugs the previous line), no
    horizontal overlap, a height change over 40 %, a first gap wider
    than ``max_distance_factor`` x height, a later gap deviating more
    than 50 % from the previous one, or a shadow left/right neighbour
    of either line overlapping the other line. When the deviating gap
    is tighter than the previous one the last member is dropped too.

    Every member gets the group assigned on its context.
    """
    context = element.context
    prev_height = element.height or 0.0
    prev_bottom = element.top + prev_height
    prev_left, prev_right = element.left, element.right
    group = ElementGroup([element])
    prev_line_distance = -1.0
    nxt = context.shadow_below

    while isinstance(nxt, TextElement) and type(element) is type(nxt):
        nxt_context = nxt.context
        if nxt_context.vertical_group is not None:
            break
        if nxt_context.is_visual_top_border and (
            not detect_underline
            or nxt_context.visual_top - prev_bottom > BORDER_LINE_ADJUST_EPSILON
        ):
            break
        nxt_left, nxt_right = nxt.left, nxt.right
        if min(prev_right, nxt_right) <= max(prev_left, nxt_left):
            break
        nxt_top, nxt_height = nxt.top, nxt.height or 0.0
        line_distance = nxt_top - prev_bottom
        if prev_height == 0 or abs(nxt_height / prev_height - 1) > MAX_LINE_HEIGHT_VARIANCE:
            break
        if group.size == 1:
            if line_distance > max_distance_factor * prev_height:
                break
        elif prev_line_distance == 0 or abs(line_distance / prev_line_distance - 1) > MAX_LINE_DISTANCE_VARIANCE:
            if line_distance < prev_line_distance:
                group.elements.pop()
            break
        if (
            is_horizontally_intersecting(context.shadow_left, nxt_left, nxt_right)
            or is_horizontally_intersecting(context.shadow_right, nxt_left, nxt_right)
            or is_horizontally_intersecting(nxt_context.shadow_left, prev_left, prev_right)
            or is_horizontally_intersecting(nxt_context.shadow_right, prev_left, prev_right)
        ):
            break
        group.add(nxt)
        prev_line_distance = line_distance
        prev_height = nxt_height
        prev_bottom = nxt_top + nxt_height
        prev_left, prev_right = nxt_left, nxt_right
        context = nxt_context
        nxt = nxt_context.shadow_below

    if element.element_list is not None:
        element.element_list.add_vertical_group(group)
    for member in group:
        member.context.vertical_group = group
    return group
