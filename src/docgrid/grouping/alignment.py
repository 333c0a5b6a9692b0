"""Alignment groups: elements stacked on a shared left, right or centre."""

from __future__ import annotations

from typing import List, Optional

from ..layout import compare_by_horizontal_alignment
from ..models import Element, HorizontalLine, TextElement
from ..spatial_index import ASC, Attr, SpatialIndex, and_, between_exclusive, intersection
from .neighbors import CONTEXT_LIMIT, SEPARATION_EPSILON

ALIGNMENT_EPSILON = 7.0
MAX_ALIGNMENT_LINE_HEIGHT_AND_DISTANCE_FACTOR = 5.0


def _near(value: float, target: float) -> bool:
    return target - ALIGNMENT_EPSILON < value < target + ALIGNMENT_EPSILON


def find_alignment_group(element: Element, boxed_index: SpatialIndex) -> List[Element]:
    """Collect the alignment group starting at *element* and record its bounds.

    Elements below (ascending top) that overlap ``[left - 7, right + 7]``
    join while their left, right or centre is within 7 units and the gap
    to the previous member is at most five times its height. Groups of
    one are discarded and leave the alignment unset.
    """
    top, height = element.top, element.height or 0.0
    left, right = element.left, element.right
    centre = element.horizontal_center
    candidates = boxed_index.retrieve(
        and_(
            between_exclusive(Attr.TOP, top + ALIGNMENT_EPSILON, top + CONTEXT_LIMIT),
            intersection(Attr.LEFT, Attr.RIGHT, left - ALIGNMENT_EPSILON, right + ALIGNMENT_EPSILON),
        ),
        [(Attr.TOP, ASC)],
    )
    group = [element]
    prev_bottom = top + height
    prev_height = height
    for candidate in candidates:
        if candidate.context is not None and candidate.context.alignment_right != 0:
            break
        if not (
            _near(candidate.left, left)
            or _near(candidate.right, right)
            or _near(candidate.horizontal_center, centre)
        ):
            break
        gap = candidate.top - prev_bottom
        if gap > MAX_ALIGNMENT_LINE_HEIGHT_AND_DISTANCE_FACTOR * prev_height:
            break
        group.append(candidate)
        prev_height = candidate.height or 0.0
        prev_bottom = candidate.top + prev_height

    if len(group) > 1:
        alignment_left = min(e.left for e in group) - SEPARATION_EPSILON
        alignment_right = max(e.right for e in group) + SEPARATION_EPSILON
        for member in group:
            if member.context is not None:
                member.context.alignment_left = alignment_left
                member.context.alignment_right = alignment_right
    return group


def find_alignment_with_horizontal_line(line: HorizontalLine) -> Optional[Element]:
    """Give the single text element on the line just before *line* the line's extent.

    Only applies when exactly one text element of that line lies within
    ``[line.left, line.horizontal_end]``.
    """
    element_list = line.element_list
    if element_list is None:
        return None
    left, right = line.left, line.horizontal_end
    prev: Optional[Element] = None
    aligning: Optional[Element] = None
    for i in range(line.list_index - 1, -1, -1):
        candidate = element_list[i]
        if not isinstance(candidate, TextElement):
            continue
        if prev is not None and compare_by_horizontal_alignment(candidate, prev) != 0:
            break
        if candidate.left >= left and candidate.right <= right:
            if aligning is not None:
                aligning = None
                break
            aligning = candidate
        prev = candidate
    if aligning is not None and aligning.context is not None:
        aligning.context.alignment_left = left
        aligning.context.alignment_right = right
    return aligning
