"""Table discovery: grow columns from a seed text element, then rows and columns.

A candidate table starts at a text element whose shadow-right neighbour
sits on the same row. Its column is grown downwards, neighbouring
columns are merged in to find the table's left, right and bottom, and
the elements inside that boundary are assigned row and column numbers.
The resulting :class:`~docgrid.tabular.TabularElementGroup` is added to
the page list.
"""

from __future__ import annotations

import bisect
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern, Sequence, Set

from ..config import LayoutConfig
from ..grouping.neighbors import NeighborResolver, SEPARATION_EPSILON, TABLE_SMALL_ELEM_MAX_SIZE
from ..layout import compare_by_horizontal_alignment
from ..models import Element, PositionalContext, TextElement
from ..semantics import is_semantically_incomplete
from ..spatial_index import ASC, Attr, SpatialIndex, and_, between_exclusive, greater_than, less_than
from ..tabular import TabularElementGroup

log = logging.getLogger(__name__)

HORIZONTAL_ALIGNMENT_EPSILON = 0.15
TABLE_COL_FIT_ALLOWANCE = 4.0
TABLE_ROW_HEIGHT_VARIANCE = 0.2
TABLE_SEMANTIC_BREAK_THRESHOLD = 0.6
MIN_COLUMN_LEVEL_TABULAR_FITNESS = 0.5
MIN_ROW_LEVEL_TABULAR_FITNESS = 0.5
MAX_INTER_ROW_DISTANCE = 100
ACROSS_PAGE_BREAK_FACTOR_FOR_ROW_DISTANCE = 40
TABLE_ROW_DISTANCE_VARIANCE = 3
FONT_SIZE_TABLE_BREAK_FACTOR = 1.4

DIRECTION_NONE = 0
DIRECTION_LEFT = 1
DIRECTION_RIGHT = 2
DIRECTION_LEFT_RIGHT_BOTH = 3


@dataclass
class Column:
    """A grown column: its elements, expansion direction, boundary below and bottom."""

    elements: List[Element] = field(default_factory=list)
    direction: int = DIRECTION_NONE
    boundary: float = 0.0
    bottom: float = 0.0


@dataclass
class TableBoundary:
    top: float
    right: float
    bottom: float
    left: float

    @property
    def is_empty(self) -> bool:
        return self.bottom < self.top or self.right < self.left


def _slope(delta: float, distance: float) -> float:
    if distance:
        return delta / distance
    return math.inf if delta else 0.0


# ---------------------------------------------------------------------------
# Alignment helpers
# ---------------------------------------------------------------------------


def is_vertical_group_horizontal_aligning(element: Element, other: Element) -> bool:
    """Vertical groups of both elements are centred on the same row."""
    top, _, bottom, left = element.context.vertical_group.text_bounding_box()
    other_top, _, other_bottom, other_left = other.context.vertical_group.text_bounding_box()
    centre = (top + bottom) / 2.0
    other_centre = (other_top + other_bottom) / 2.0
    return _slope(abs(centre - other_centre), abs(left - other_left)) <= HORIZONTAL_ALIGNMENT_EPSILON


def is_horizontal_aligning(element: Element, other: Optional[Element]) -> bool:
    """Whether *other* can sit in the same table row as *element*.

    A missing neighbour aligns; a non-text one never does. Text must share
    the bounding rectangle, not already belong to a table and have a
    similar height. Top and bottom offsets are judged relative to the
    horizontal distance, falling back to the vertical groups when both
    are skewed.
    """
    if other is None:
        return True
    if not isinstance(other, TextElement):
        return False
    other_ctx = other.context
    if other_ctx.bounding_rect is not element.context.bounding_rect or other_ctx.tabular_group is not None:
        return False
    height = element.height or 0.0
    other_height = other.height or 0.0
    distance = abs(element.left - other.left)
    if (
        _slope(abs(element.top - other.top), distance) > HORIZONTAL_ALIGNMENT_EPSILON
        and _slope(abs(element.bottom - other.bottom), distance) > HORIZONTAL_ALIGNMENT_EPSILON
    ):
        return is_vertical_group_horizontal_aligning(element, other)
    if height == 0:
        return False
    return abs(other_height / height - 1) <= TABLE_ROW_HEIGHT_VARIANCE


def visual_left_for_table(left: float, context: PositionalContext, left_element: Optional[Element]) -> float:
    if context.is_visual_left_border:
        return context.visual_left
    if left_element is not None:
        return left_element.right
    below = context.below_elements.elements if context.below_elements is not None else []
    rights = [e.right for e in below if (e.width or 0.0) > TABLE_SMALL_ELEM_MAX_SIZE and e.right < left]
    return max(rights) if rights else context.visual_left


def visual_right_for_table(right: float, context: PositionalContext, right_element: Optional[Element]) -> float:
    if context.is_visual_right_border:
        return context.visual_right
    if right_element is not None:
        return right_element.left
    below = context.below_elements.elements if context.below_elements is not None else []
    lefts = [e.left for e in below if (e.width or 0.0) > TABLE_SMALL_ELEM_MAX_SIZE and e.left > right]
    return min(lefts) if lefts else context.visual_right


def is_tabular_intersecting(column_left: float, column_right: float, element: Optional[Element]) -> bool:
    """*element* is wide and overlaps the column by more than a small element's width."""
    if element is None:
        return False
    width = element.width or 0.0
    if width <= TABLE_SMALL_ELEM_MAX_SIZE:
        return False
    return min(column_right, element.right) > max(column_left, element.left) + TABLE_SMALL_ELEM_MAX_SIZE


def merge_columns(union_column: List[Element], new_column: List[Element],
                  possible_table_bottom: float) -> List[Element]:
    """Interleave two columns top-down, stopping below *possible_table_bottom*.

    Where elements of both columns share a row, the new column's element
    wins.
    """
    merged: List[Element] = []
    i = j = 0
    while i < len(union_column) and j < len(new_column):
        union_elem, new_elem = union_column[i], new_column[j]
        u_top, n_top = union_elem.top, new_elem.top
        if u_top > possible_table_bottom or n_top > possible_table_bottom:
            break
        if (
            abs(u_top - n_top) < SEPARATION_EPSILON
            or u_top < n_top < union_elem.bottom
            or n_top < u_top < new_elem.bottom
        ):
            merged.append(new_elem)
            i += 1
            j += 1
        elif u_top < n_top:
            merged.append(union_elem)
            i += 1
        else:
            merged.append(new_elem)
            j += 1
    for rest, k in ((union_column, i), (new_column, j)):
        while k < len(rest) and rest[k].top <= possible_table_bottom:
            merged.append(rest[k])
            k += 1
    return merged


def is_expansion_valid(header_heads: List[List[Element]],
                       tables_to_curtail: Dict[TabularElementGroup, int]) -> bool:
    """Rows taken from earlier tables hold nothing but the new header's elements."""
    expansion = {id(e) for head in header_heads for e in head}
    for table, first_row in tables_to_curtail.items():
        for row in table.cells[first_row:]:
            for cell in row:
                if any(id(e) not in expansion for e in cell.elements):
                    return False
    return True


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------


class TableBoundaryDetector:
    """Finds tables within one page partition.

    ``found_noise_elements`` persists across partitions so that noise
    recognised once is skipped in later column assignment.
    """

    def __init__(self, config: LayoutConfig, found_noise_elements: Optional[Set[Element]] = None):
        self.config = config
        self.noise_patterns: List[Pattern[str]] = config.compiled_noise_patterns
        self.found_noise_elements: Set[Element] = found_noise_elements if found_noise_elements is not None else set()
        self.boxed_index: Optional[SpatialIndex] = None
        self.neighbors: Optional[NeighborResolver] = None
        self.bottom_boundary = 0.0

    def bind(self, boxed_index: SpatialIndex, bottom_boundary: float) -> "TableBoundaryDetector":
        """Point the detector at one partition's boxed index."""
        self.boxed_index = boxed_index
        self.neighbors = NeighborResolver(boxed_index)
        self.bottom_boundary = bottom_boundary
        return self

    def _is_noise(self, element: Element) -> bool:
        return any(p.fullmatch(element.text) for p in self.noise_patterns)

    def _is_known_noise(self, element: Element) -> bool:
        return element in self.found_noise_elements

    def is_significant(self, prev_row: Sequence[Element], curr_row: Sequence[Element]) -> bool:
        """A bold row whose texts jump semantically from the previous row."""
        first = curr_row[0]
        if not (isinstance(first, TextElement) and first.is_bold):
            return False
        jump = self.config.semantic_jump_calculator(
            [e.text for e in prev_row], [e.text for e in curr_row]
        )
        return jump > TABLE_SEMANTIC_BREAK_THRESHOLD

    # ── Columns ────────────────────────────────────────────────────────

    def find_column_elements(self, element: Element, ignore_horizontal_alignment: bool) -> Column:
        """Grow a column downwards from *element*.

        Elements below join while they share the bounding rectangle (or
        lie on another page), belong to no table, fit the visual band
        within ``TABLE_COL_FIT_ALLOWANCE`` and have no wide neighbour
        cutting into the column. Noise elements are stepped over.
        """
        columns: List[Element] = []
        ctx = element.context
        column_left, column_right = element.left, element.right
        visual_left = visual_left_for_table(column_left, ctx, ctx.shadow_left)
        visual_right = visual_right_for_table(column_right, ctx, ctx.shadow_right)
        top = element.top
        left_aligning = right_aligning = True
        left_neighbours = 0
        vertical_group = ctx.vertical_group
        page_break = ctx.page_break_number

        current: Optional[Element] = element
        aligning = True
        while aligning:
            columns.append(current)
            below, visual_left, visual_right = self.neighbors.tabular_below(
                top, visual_left, visual_right, column_left, column_right
            )
            bounding_rect = ctx.bounding_rect
            aligning = False
            if below is not None:
                below_ctx = below.context
                if below_ctx.vertical_group is not None and below_ctx.vertical_group.first is below:
                    vertical_group = below_ctx.vertical_group
                if (
                    below_ctx.bounding_rect is bounding_rect
                    or page_break != below_ctx.page_break_number
                ) and below_ctx.tabular_group is None:
                    below_left, below_right = below_ctx.shadow_left, below_ctx.shadow_right
                    horizontally_aligned = True
                    if not ignore_horizontal_alignment:
                        left_aligning = left_aligning and is_horizontal_aligning(below, below_left)
                        right_aligning = right_aligning and is_horizontal_aligning(below, below_right)
                        horizontally_aligned = left_aligning or right_aligning
                    if horizontally_aligned:
                        top = below.top
                        if (
                            below.left >= visual_left - TABLE_COL_FIT_ALLOWANCE
                            and below.right <= visual_right + TABLE_COL_FIT_ALLOWANCE
                            and not is_tabular_intersecting(column_left, column_right, below_left)
                            and not is_tabular_intersecting(column_left, column_right, below_right)
                        ):
                            aligning = True
                            if below_left is None or (below_left.width or 0.0) > TABLE_SMALL_ELEM_MAX_SIZE:
                                visual_left = max(
                                    visual_left, visual_left_for_table(below.left, below_ctx, below_left)
                                )
                            if below_right is None or (below_right.width or 0.0) > TABLE_SMALL_ELEM_MAX_SIZE:
                                visual_right = min(
                                    visual_right, visual_right_for_table(below.right, below_ctx, below_right)
                                )
                            if below_left is not None and left_aligning:
                                left_neighbours += 1
                            column_left = min(column_left, below.left)
                            column_right = max(column_right, below.right)
                        elif self._is_noise(below) or any(
                            self._is_known_noise(e) for e in below_ctx.vertical_group
                        ):
                            aligning = True
                            self.found_noise_elements.add(below)
            current = below
            if current is None:
                break
            ctx = current.context

        if current is not None and current.context.vertical_group is vertical_group:
            current = vertical_group.first
        direction = DIRECTION_LEFT_RIGHT_BOTH if left_neighbours > 0 else DIRECTION_RIGHT
        boundary = self.bottom_boundary if current is None else current.top
        return Column(columns, direction, boundary, columns[-1].bottom)

    # ── Boundary ───────────────────────────────────────────────────────

    def _expand(self, union: List[Element], start: Optional[Element], rightwards: bool,
                table_left: float, table_right: float, boundaries: List[float],
                max_col_bottom: float):
        limit = float(2 ** 31 - 1) if rightwards else 0.0
        starts: List[Element] = []
        while start is not None:
            starts.append(start)
            column = self.find_column_elements(start, True)
            if (rightwards and start.left > table_right) or (not rightwards and start.right < table_left):
                bisect.insort_right(boundaries, column.boundary)
                max_col_bottom = max(max_col_bottom, column.bottom)
            start = None
            union = merge_columns(union, column.elements, column.boundary)
            for element in union:
                neighbour = element.context.shadow_right if rightwards else element.context.shadow_left
                if rightwards:
                    table_right = max(table_right, element.right)
                else:
                    table_left = min(table_left, element.left)
                if not is_horizontal_aligning(element, neighbour):
                    limit = min(limit, element.left) if rightwards else max(limit, element.right)
                elif (
                    start is None
                    and neighbour is not None
                    and (element.right < limit if rightwards else element.left > limit)
                    and not any(s is neighbour for s in starts)
                ):
                    start = neighbour
        return table_left, table_right, max_col_bottom

    def find_table_boundary(self, starting: Column) -> TableBoundary:
        """Expand *starting* sideways into neighbouring columns to bound the table.

        The bottom is the first column boundary once half of them are
        accounted for, or the first boundary below every column's last
        element.
        """
        union = starting.elements
        table_top = union[0].top - SEPARATION_EPSILON
        table_left = min(e.left for e in union) - SEPARATION_EPSILON
        table_right = max(e.right for e in union)
        boundaries: List[float] = [starting.boundary]
        max_col_bottom = starting.bottom

        if starting.direction in (DIRECTION_RIGHT, DIRECTION_LEFT_RIGHT_BOTH):
            seed = next((e for e in union if e.context.shadow_right is not None), None)
            if seed is not None:
                table_left, table_right, max_col_bottom = self._expand(
                    union, seed.context.shadow_right, True,
                    table_left, table_right, boundaries, max_col_bottom,
                )
        if starting.direction in (DIRECTION_LEFT, DIRECTION_LEFT_RIGHT_BOTH):
            seed = next((e for e in union if e.context.shadow_left is not None), None)
            if seed is not None:
                table_left, table_right, max_col_bottom = self._expand(
                    starting.elements, seed.context.shadow_left, False,
                    table_left, table_right, boundaries, max_col_bottom,
                )

        max_bad = (1 - MIN_COLUMN_LEVEL_TABULAR_FITNESS) * len(boundaries)
        table_bottom = self.bottom_boundary
        for i, boundary in enumerate(boundaries, start=1):
            if i >= max_bad or boundary > max_col_bottom:
                table_bottom = boundary
                break
        return TableBoundary(table_top, table_right, table_bottom, table_left)

    # ── Tables ─────────────────────────────────────────────────────────

    def _table_elements(self, boundary: TableBoundary, bottom: float, order_by) -> List[Element]:
        return self.boxed_index.retrieve(and_(
            between_exclusive(Attr.BOTTOM, boundary.top, bottom),
            greater_than(Attr.RIGHT, boundary.left),
            less_than(Attr.LEFT, boundary.right),
        ), order_by)

    def _row_break(self, element: Element, prev: Element, row_distance: int, row_number: int,
                   max_row_distance: int, across_page_break: bool) -> bool:
        if across_page_break:
            limit = MAX_INTER_ROW_DISTANCE
            if self.config.grid_detection_enabled:
                limit += ACROSS_PAGE_BREAK_FACTOR_FOR_ROW_DISTANCE
            return row_distance > limit
        rect = element.context.bounding_rect
        same_box = rect is not None and rect is prev.context.bounding_rect
        if not same_box and (
            row_distance > MAX_INTER_ROW_DISTANCE
            or (max_row_distance > 0 and row_number > 0
                and row_distance // max_row_distance > TABLE_ROW_DISTANCE_VARIANCE)
        ):
            return True
        font, prev_font = getattr(element, "font_size", None), getattr(prev, "font_size", None)
        return bool(font and prev_font and font / prev_font > FONT_SIZE_TABLE_BREAK_FACTOR)

    def find_tabular_group(self, element: Element) -> Optional[TabularElementGroup]:
        """Detect the table whose first row holds *element*; None when there is none."""
        right = element.context.shadow_right
        if right is None or not is_horizontal_aligning(element, right):
            return None
        starting = self.find_column_elements(element, False)
        if len(starting.elements) <= 1 or starting.direction == DIRECTION_NONE:
            return None
        boundary = self.find_table_boundary(starting)
        if boundary.is_empty:
            return None
        rect = element.context.bounding_rect
        if rect is not None and self.config.use_grid_for_table_extent and boundary.bottom < rect.max_y:
            boundary.bottom = rect.max_y

        prev: Optional[Element] = None
        row_number = 0
        header_heads: List[List[Element]] = []
        table_elements: List[Element] = []
        prev_row: Optional[List[Element]] = None
        curr_row: Optional[List[Element]] = []
        to_curtail: Dict[TabularElementGroup, int] = {}
        table_bottom = boundary.bottom
        max_row_distance = 0
        proper_rows = 0

        for candidate in self._table_elements(boundary, boundary.bottom, [(Attr.TOP, ASC)]):
            if not isinstance(candidate, TextElement):
                continue
            row_distance = 0 if prev is None else compare_by_horizontal_alignment(candidate, prev)
            if row_distance > 0:
                across = candidate.context.page_break_number != prev.context.page_break_number
                if self._row_break(candidate, prev, row_distance, row_number, max_row_distance, across):
                    table_bottom = candidate.top - SEPARATION_EPSILON
                    break
                if prev_row is not None and self.is_significant(prev_row, curr_row):
                    table_bottom = curr_row[0].top - SEPARATION_EPSILON
                    curr_row = None
                    row_number -= 1
                    break
                row_size = len(curr_row)
                if row_number == 0:
                    # A header made only of multi-column spans is not a table.
                    if all(head[-1].context.is_plural_header() for head in header_heads):
                        return None
                    if is_expansion_valid(header_heads, to_curtail):
                        for table, rows in to_curtail.items():
                            table.curtail(rows)
                    else:
                        header_heads = [[head[-1]] for head in header_heads]
                    depth = max(len(head) for head in header_heads)
                    for head in header_heads:
                        for offset, head_elem in enumerate(head, start=depth - len(head)):
                            head_elem.context.tabular_row = offset
                            table_elements.append(head_elem)
                    row_number = depth
                    row_size = len(header_heads)
                else:
                    for row_elem in curr_row:
                        table_elements.append(row_elem)
                        row_elem.context.tabular_row = row_number
                    row_number += 1
                    prev_row = curr_row
                    curr_row = []
                if row_size > 1:
                    proper_rows += 1
                if not across:
                    max_row_distance = max(max_row_distance, row_distance)

            if row_number == 0:
                head: List[Element] = []
                for member in candidate.context.vertical_group:
                    member_ctx = member.context
                    table = member_ctx.tabular_group
                    if table is not None:
                        to_curtail[table] = min(
                            to_curtail.get(table, table.number_of_rows), member_ctx.tabular_row
                        )
                    head.append(member)
                    if member is candidate:
                        break
                if not head:
                    return None
                header_heads.append(head)
            else:
                curr_row.append(candidate)
            prev = candidate

        if curr_row is not None:
            if prev_row is not None and self.is_significant(prev_row, curr_row):
                table_bottom = curr_row[0].top - SEPARATION_EPSILON
                row_number -= 1
            else:
                if len(curr_row) > 1:
                    proper_rows += 1
                for row_elem in curr_row:
                    table_elements.append(row_elem)
                    row_elem.context.tabular_row = row_number
        if row_number == 0 or proper_rows < 2:
            return None

        column_number = self._assign_columns(boundary, table_bottom)
        if column_number == 0:
            return None
        for head in header_heads:
            column = head[-1].context.tabular_column
            for head_elem in head:
                head_elem.context.tabular_column = column

        table = TabularElementGroup(row_number + 1, column_number + 1)
        for table_elem in table_elements:
            ctx = table_elem.context
            if ctx.tabular_group is not table and ctx.tabular_column is not None:
                ctx.tabular_group = table
                table.add_element(ctx.tabular_row, ctx.tabular_column, table_elem)
        while table.cells and all(c.is_empty() for c in table.cells[-1]):
            table.curtail(table.number_of_rows - 1)
        if not table.cells:
            return None
        element_list = table_elements[0].element_list
        if element_list is not None:
            element_list.add_tabular_group(table)
        log.debug("Table of %d rows x %d columns starting at %r",
                  table.number_of_rows, table.number_of_columns, element.text)
        return table

    def _assign_columns(self, boundary: TableBoundary, table_bottom: float) -> int:
        """Number columns left to right; returns the highest column index."""
        in_order = [
            e for e in self._table_elements(boundary, table_bottom, [(Attr.LEFT, ASC), (Attr.TOP, ASC)])
            if isinstance(e, TextElement)
        ]
        prev_rights: List[float] = []
        prev_rows: Set[int] = set()
        column = 0
        for i, elem in enumerate(in_order):
            ctx = elem.context
            if not self._is_known_noise(elem):
                row = ctx.tabular_row
                left, width = elem.left, elem.width or 0.0
                if i + 1 < len(in_order):
                    intersection = width - min(in_order[i + 1].left - left, width)
                elif not prev_rights or left > prev_rights[-1]:
                    intersection = width
                else:
                    intersection = 0.0
                before = bisect.bisect_left(prev_rights, left)
                score = before / len(prev_rights) if prev_rights else 0.0
                if before == len(prev_rights) or (intersection > 0.0 and score > MIN_ROW_LEVEL_TABULAR_FITNESS):
                    if len(prev_rights) > 1 or row in prev_rows:
                        column += 1
                        prev_rights.clear()
                        prev_rows.clear()
                if not is_semantically_incomplete(elem.text):
                    bisect.insort_right(prev_rights, left + width)
                    prev_rows.add(row)
            ctx.tabular_column = column
        return column
