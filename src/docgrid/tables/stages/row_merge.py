"""Merge consecutive rows that are wrapped continuations of one logical row."""

from __future__ import annotations

import re
from typing import List, Sequence, Tuple

from ...config import GridType
from ...models import Element
from ...semantics import (
    RegexType,
    contains_only_index,
    is_amount_or_percentage,
    is_semantically_incomplete,
)
from ...tabular import TableType, TabularCellElementGroup, TabularElementGroup
from ..scratchpad import KeyContract, Scratchpad, ScratchpadKey
from .base import RefinementStage

# Ends with a colon, is a bracketed code of up to four characters, or a lone hyphen.
TABLE_UNIQUE_CELL_PATTERN = re.compile(r":$|^\(.{1,4}\)$|^-$")
# Ends in a dash after at least one non dash character.
DASH_WRAPPED_TEXT_PATTERN = re.compile(
    "[^\n]*[^\\-\\u2010-\\u2015\\uFE58\\uFE63\\uFF0D\\n][^\n]*[\\-\\u2010-\\u2015\\uFE58\\uFE63\\uFF0D]"
)

MAX_MERGED_COLS = 2
NON_GRID_COL_BOUNDARY_CLOSENESS_FACTOR = 0.15
GRID_COL_BOUNDARY_CLOSENESS_FACTOR = 0.1
NEXT_COL_BOUNDARY_CLOSENESS_FACTOR = 0.52
MIN_ROW_LEVEL_SYMMETRY_FOR_WRAPPING = 0.5

Boundaries = Tuple[List[float], List[float]]


def is_grid_based_element(element: Element) -> bool:
    ctx = element.context
    return ctx.is_visual_top_border and ctx.is_visual_left_border and ctx.is_visual_right_border


def _all_cells_empty(cells: Sequence[TabularCellElementGroup]) -> bool:
    return all(not cell.text for cell in cells)


def _same_styles(first: Element, second: Element) -> bool:
    return (set(getattr(first, "styles", frozenset())) == set(getattr(second, "styles", frozenset()))
            and getattr(first, "color", None) == getattr(second, "color", None))


def is_text_wrappable_across_rows(above: List[Element], below: List[Element], col: int,
                                  boundaries: Boundaries) -> bool:
    """The above cell's text runs close enough to its column edge to have wrapped."""
    above_right = max(e.right for e in above)
    first = above[0]
    if is_grid_based_element(first):
        right_if_unwrapped = above_right + (below[0].width or 0.0)
        grid_right = first.context.visual_right
        grid_width = grid_right - first.context.visual_left
        return right_if_unwrapped > grid_right - GRID_COL_BOUNDARY_CLOSENESS_FACTOR * grid_width
    lefts, rights = boundaries
    width = rights[col] - lefts[col]
    close_to_boundary = above_right > rights[col] - NON_GRID_COL_BOUNDARY_CLOSENESS_FACTOR * width
    if col < len(lefts) - 1:
        mean_width = (rights[col + 1] - lefts[col]) / 2
        close_to_next = above_right > lefts[col + 1] - NEXT_COL_BOUNDARY_CLOSENESS_FACTOR * mean_width
        return close_to_boundary and close_to_next
    return close_to_boundary


def are_cells_mergeable(above: List[Element], below: List[Element], col: int,
                        boundaries: Boundaries, row_level_symmetry: float) -> bool:
    first_above, first_below = above[0], below[0]
    above_text, below_text = first_above.text, first_below.text
    above_type, below_type = RegexType.of(above_text), RegexType.of(below_text)
    textual = (
        above_type not in (RegexType.NUMERIC, RegexType.DATE)
        and below_type not in (RegexType.NUMERIC, RegexType.DATE)
    )
    return (
        (DASH_WRAPPED_TEXT_PATTERN.fullmatch(above_text) is not None or textual)
        and not above_text.endswith(":")
        and not above_text.endswith(".")
        and not (contains_only_index(above_text) and contains_only_index(below_text))
        and _same_styles(first_above, first_below)
        and TABLE_UNIQUE_CELL_PATTERN.search(above_text) is None
        and first_above.context.vertical_group is first_below.context.vertical_group
        and (row_level_symmetry < MIN_ROW_LEVEL_SYMMETRY_FOR_WRAPPING
             or is_text_wrappable_across_rows(above, below, col, boundaries))
    )


def are_rows_mergeable(old: TabularElementGroup, new: TabularElementGroup, boundaries: Boundaries,
                       row1: int, row2: int, row_level_symmetry: float, table_type: TableType) -> bool:
    """Whether row *row2* of *old* continues row *row1* of the table being built."""
    cols = old.number_of_columns
    if table_type is TableType.KEY_VALUE:
        below_elements = old.merged_cell(row2, 1).elements
        above_elements = new.merged_cell(row1, 1).elements
        below = below_elements[0] if below_elements else None
        above = above_elements[0] if above_elements else None
        return (
            all(not e.text for e in old.cell(row2, 0).elements)
            and not all(
                is_semantically_incomplete(e.text) or is_amount_or_percentage(e.text)
                for e in old.cell(row2, 1).elements
            )
            and (below is None or above is None or (
                above.context.vertical_group is below.context.vertical_group
                and not above.has_different_visual_style(below)
            ))
        )

    if table_type is TableType.GRID_BASED:
        if row2 <= old.column_header_count:
            return False
        border_below_above = -1.0
        border_above_below = -1.0
        for c in range(cols):
            below_cell = old.merged_cell(row2, c).elements
            above_cell = new.merged_cell(row1, c).elements
            if above_cell and above_cell[-1].context.is_visual_bottom_border:
                border = above_cell[-1].context.visual_bottom
                if border_below_above == -1 or border_below_above > border:
                    border_below_above = border
            if below_cell and below_cell[0].context.is_visual_top_border:
                border = below_cell[0].context.visual_top
                if border_above_below == -1 or border_above_below < border:
                    border_above_below = border
        # No border between the rows, or one border box around both.
        return (border_below_above == -1 or border_above_below == -1
                or border_below_above > border_above_below)

    if table_type is TableType.FULLY_POPULATED:
        above_row = new.cells[row1]
        below_row = old.cells[row2]
        only_first_above = bool(above_row[0].text) and _all_cells_empty(above_row[1:])
        only_first_below = bool(below_row[0].text) and _all_cells_empty(below_row[1:])
        below_elements = old.merged_cell(row2, 0).elements
        above_elements = new.merged_cell(row1, 0).elements
        if not (only_first_above and not only_first_below and above_elements and below_elements):
            return False
        above, below = above_elements[0], below_elements[0]
        char_width = (above.width or 0.0) / len(above.text) if above.text else 0.0
        return (
            abs(above.left - below.left) <= char_width
            and below.context.vertical_group is above.context.vertical_group
            and not above.has_different_visual_style(below)
            and not above.text.endswith(":")
            and not above.text.endswith(".")
        )

    merged = 0
    for c in range(cols):
        below_cell = old.merged_cell(row2, c).elements
        above_cell = new.merged_cell(row1, c).elements
        if below_cell and above_cell:
            if not are_cells_mergeable(above_cell, below_cell, c, boundaries, row_level_symmetry):
                return False
            merged += 1
    return 0 < merged <= MAX_MERGED_COLS


class InternalRowMerging(RefinementStage):
    """Merges wrapped rows, then re-merges under key-value or fully-populated rules."""

    contract = KeyContract(
        name="InternalRowMerging",
        required=frozenset({ScratchpadKey.TABULAR_GROUP}),
        optional=frozenset({ScratchpadKey.GRID_TYPE}),
        stored=frozenset({ScratchpadKey.TABULAR_GROUP}),
    )

    def execute(self, pad: Scratchpad) -> None:
        table = pad.require(ScratchpadKey.TABULAR_GROUP)
        grid_type = pad.retrieve(ScratchpadKey.GRID_TYPE, GridType.NONE)
        table_type = TableType.GRID_BASED if table.is_grid_type_satisfied(grid_type) else TableType.NORMAL
        processed = self.merge_internal_rows(pad, table, table_type)
        if self.rows_form_key_value_pairs(processed):
            processed = self.merge_internal_rows(pad, processed, TableType.KEY_VALUE)
        elif self.rows_fully_populated(processed):
            processed = self.merge_internal_rows(pad, processed, TableType.FULLY_POPULATED)
        processed.set_back_references()
        pad.store(ScratchpadKey.TABULAR_GROUP, processed)

    def merge_internal_rows(self, pad: Scratchpad, table: TabularElementGroup,
                            table_type: TableType) -> TabularElementGroup:
        boundaries = table.column_boundaries()
        merged = TabularElementGroup(table.number_of_rows, table.number_of_columns,
                                     table.column_header_count)
        symmetry = table.row_level_symmetry()
        row1 = 0
        self._add_or_merge_row(table, merged, row1, 0)
        for row2 in range(1, table.number_of_rows):
            if not are_rows_mergeable(table, merged, boundaries, row1, row2, symmetry, table_type):
                row1 += 1
            self._add_or_merge_row(table, merged, row1, row2)
        merged.caption = table.caption
        merged.confidence_map.update(table.confidence_map)
        merged.curtail(row1 + 1)
        if merged.number_of_rows == table.number_of_rows:
            self.log_entry(pad, "No internal rows merged.")
        else:
            self.log_entry(pad, "Internal rows merged (%s).", table_type.value)
        return merged

    @staticmethod
    def _add_or_merge_row(old: TabularElementGroup, new: TabularElementGroup, row1: int, row2: int) -> None:
        for col in range(old.number_of_columns):
            old_cell = old.cells[row2][col]
            new_cell = new.cells[row1][col]
            for element in old_cell.elements:
                if not any(e is element for e in new_cell.elements):
                    new_cell.add(element)
            new_cell.horizontally_merged = old_cell.horizontally_merged
            new_cell.vertically_merged = old_cell.vertically_merged
        if row2 < old.column_header_count:
            new.column_header_count = row1 + 1

    @staticmethod
    def rows_form_key_value_pairs(table: TabularElementGroup) -> bool:
        if table.number_of_columns != 2:
            return False
        return all(
            not row[0].elements or any(not e.text or e.text.endswith(":") for e in row[0].elements)
            for row in table.cells
        )

    @staticmethod
    def rows_fully_populated(table: TabularElementGroup) -> bool:
        for row in table.cells[table.column_header_count:]:
            all_empty = _all_cells_empty(row)
            all_filled = all(cell.text for cell in row)
            only_first = bool(row) and bool(row[0].text) and _all_cells_empty(row[1:])
            if not (all_empty or all_filled or only_first):
                return False
        return True
