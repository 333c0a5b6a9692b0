"""Grow the column header upwards, or attach the text above the table as its caption.

The candidate "above line" holds, per column, the nearest text element
placed before the table in reading order. Depending on where that line
comes from it becomes:

* a caption, when the table sits in a drawn box the line is not part of;
* a new (parent) header row, when it lines up with the table columns;
* nothing, otherwise.

Rows taken from an earlier table are deleted from it; earlier tables left
empty are recorded under ``PREV_TABLES_TO_DELETE`` for the driver.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Set

from ...layout import compare_by_horizontal_alignment
from ...models import BoundingRect, Element, ElementGroup, TextElement
from ...semantics import RegexType, can_be_header, is_last_line_of_paragraph
from ...tabular import (
    DEFAULT_COLUMN_HEADER_COUNT,
    ConfidenceFeature,
    TabularCellElementGroup,
    TabularElementGroup,
)
from ..scratchpad import KeyContract, Scratchpad, ScratchpadKey
from .base import RefinementStage, table_index_in_page

COLUMN_HEADER_COVERAGE_FACTOR = 0.5
LEFT_TABLE_BOUNDARY_ALLOWANCE = 10

AboveLine = List[Optional[Element]]


# ── Above line helpers ─────────────────────────────────────────────────


def _group_of(element: Element) -> List[Element]:
    group = element.context.vertical_group
    return group.elements if group is not None else [element]


def _index_in(elements: List[Element], element: Element) -> int:
    for i, e in enumerate(elements):
        if e is element:
            return i
    return 0


def is_element_beyond_bounding_box(element: Element, bbox: BoundingRect) -> bool:
    return element.left < bbox.min_x - LEFT_TABLE_BOUNDARY_ALLOWANCE or element.right > bbox.max_x


def populate_above_line(above_line: AboveLine, table: TabularElementGroup) -> None:
    """Fill *above_line* right to left with the text preceding the table's top element."""
    cols = table.number_of_columns
    first: Optional[Element] = None
    top = float("inf")
    for j in range(cols):
        cell = table.merged_cell(0, j)
        if cell.elements and cell.elements[0].top < top:
            top = cell.elements[0].top
            first = cell.elements[0]
    if first is None:
        return
    ctx = first.context
    page_break = ctx.page_break_number
    partition_type = ctx.page_partition_type
    candidates = [
        e for e in ctx.previous_elements()
        if isinstance(e, TextElement) and e.context is not None
        and e.context.tabular_group is not table
    ][:cols]
    previous = [
        e for e in candidates
        if e.context.page_break_number == page_break
        and e.context.page_partition_type == partition_type
    ]
    for i, element in enumerate(previous):
        above_line[cols - i - 1] = element


def is_above_line_empty(above_line: AboveLine) -> bool:
    return all(e is None for e in above_line)


def filter_above_line_by_horizontal_alignment(above_line: AboveLine, nearest: int) -> None:
    anchor = above_line[nearest]
    for i, element in enumerate(above_line):
        if i != nearest and element is not None and anchor is not None:
            if compare_by_horizontal_alignment(element, anchor) != 0:
                above_line[i] = None


def filter_above_line_by_vertical_alignment(above_line: AboveLine,
                                            table: TabularElementGroup) -> float:
    """Keep, per column, the above element overlapping it most; return mean overlap."""
    lefts, rights = table.column_boundaries()
    confidence = 0.0
    for j in range(table.number_of_columns):
        width = rights[j] - lefts[j]
        found = False
        overlap = 0.0
        if width > 0:
            error_allowed = 0.1 if j == 0 else 0.5
            for i in range(len(above_line)):
                element = above_line[i]
                if element is None:
                    continue
                ctx = element.context
                if (ctx.visual_left - lefts[j] < error_allowed * width
                        and rights[j] - ctx.visual_right < error_allowed * width):
                    current = max(0.0, min(rights[j], ctx.visual_right)
                                  - max(ctx.visual_left, lefts[j])) / width
                    if overlap < current:
                        above_line[j] = element
                        overlap = current
                        found = True
        if found:
            confidence += overlap
        else:
            above_line[j] = None
    return confidence / table.number_of_columns if table.number_of_columns else 0.0


def filter_above_element_by_text_attributes(first: Element, above: Optional[Element]) -> Optional[Element]:
    """*above* when it is at least as large as *first*, keeps its styles and is wordy."""
    if above is None:
        return None
    size, first_size = getattr(above, "font_size", None), getattr(first, "font_size", None)
    if (size is None) != (first_size is None):
        return None
    if size is not None and size < first_size:
        return None
    if not set(getattr(first, "styles", frozenset())) <= set(getattr(above, "styles", frozenset())):
        return None
    if RegexType.of(above.text.strip()).priority < RegexType.ALPHA.priority:
        return None
    return above


def extended_cell_content(above_line: AboveLine, table: TabularElementGroup, col: int) -> TabularCellElementGroup:
    """Vertical group of ``above_line[col]`` walked upwards while it reads as header text."""
    cell = TabularCellElementGroup()
    last = above_line[col]
    if last is None:
        return cell
    row = 0
    while row < table.number_of_rows and not table.merged_cell(row, col).elements:
        row += 1
    if row == table.number_of_rows:
        return cell
    first = table.merged_cell(row, col).elements[0]
    elements = _group_of(last)
    for index in range(_index_in(elements, last), -1, -1):
        element = filter_above_element_by_text_attributes(first, elements[index])
        if element is None:
            break
        cell.add(element)
    return cell


def is_deletion_from_previous_tables_possible(elements: Sequence[Element]) -> bool:
    """Only the last two rows of an earlier table may be taken."""
    for element in elements:
        ctx = element.context
        previous = ctx.tabular_group
        if previous is not None and ctx.tabular_row < previous.number_of_rows - 2:
            return False
    return True


def add_vertical_group_elements_to_caption(element: Element, caption: TabularCellElementGroup,
                                           above_line_count: int) -> None:
    elements = _group_of(element)
    index = _index_in(elements, element)
    while index >= 0:
        above = elements[index]
        if above_line_count == 1 and is_last_line_of_paragraph(above.text):
            break
        caption.add(above)
        index -= 1


def _first_element_in_column_upwards(table: TabularElementGroup, col: int, start_row: int) -> Optional[Element]:
    for row in range(start_row, -1, -1):
        if table.cell(row, col).elements:
            return table.cell(row, col).elements[0]
    return None


# ── Stage ──────────────────────────────────────────────────────────────


class ColumnHeaderExpansion(RefinementStage):
    """Extends the header down over sparse leading rows, then up over the above line."""

    contract = KeyContract(
        name="ColumnHeaderExpansion",
        required=frozenset({ScratchpadKey.PROCESSED_TABULAR_GROUP, ScratchpadKey.PREV_TABLES_TO_DELETE}),
        stored=frozenset({ScratchpadKey.PROCESSED_TABULAR_GROUP, ScratchpadKey.PREV_TABLES_TO_DELETE}),
    )

    def execute(self, pad: Scratchpad) -> None:
        table = pad.require(ScratchpadKey.PROCESSED_TABULAR_GROUP)
        self.expand_column_header_down(table)
        processed = self.expand_up(pad, table)
        pad.store(ScratchpadKey.PROCESSED_TABULAR_GROUP, processed)

    @staticmethod
    def expand_column_header_down(table: TabularElementGroup) -> None:
        """The header reaches the row where half the columns have seen content."""
        cols = table.number_of_columns
        seen = [False] * cols
        required = COLUMN_HEADER_COVERAGE_FACTOR * cols
        coverage = 0
        for r in range(table.number_of_rows):
            for c in range(cols):
                if not seen[c] and table.cell(r, c).elements:
                    seen[c] = True
                    coverage += 1
                    if coverage >= required:
                        table.column_header_count = max(r + 1, table.column_header_count)
                        return

    def expand_up(self, pad: Scratchpad, table: TabularElementGroup) -> TabularElementGroup:
        cols = table.number_of_columns
        above_line: AboveLine = [None] * cols
        populate_above_line(above_line, table)
        if is_above_line_empty(above_line):
            return table
        nearest = max(range(cols), key=lambda i: 0.0 if above_line[i] is None else above_line[i].bottom)
        filter_above_line_by_horizontal_alignment(above_line, nearest)
        if is_above_line_empty(above_line):
            return table

        first = table.first
        bbox = first.context.bounding_rect if first is not None else None
        if bbox is not None and all(
            e is None or e.context.bounding_rect is not bbox for e in above_line
        ):
            return self.caption_outside_bounding_box(pad, table, above_line, bbox)

        confidence = filter_above_line_by_vertical_alignment(above_line, table)
        return self.table_with_expanded_headers(pad, above_line, table, confidence)

    # ── Caption ────────────────────────────────────────────────────────

    def caption_outside_bounding_box(self, pad: Scratchpad, table: TabularElementGroup,
                                     above_line: AboveLine, bbox: BoundingRect) -> TabularElementGroup:
        elements = self.filter_on_visual_boundary(above_line, bbox)
        if not elements or not can_be_header([e.text for e in elements]):
            return table
        part_of_table = any(e.context.tabular_column is not None for e in elements)
        if (part_of_table and self.spans_multiple_columns(elements)
                and not self.differs_from_previous_table_row(elements)):
            return table
        return self.table_with_caption(pad, table, elements, part_of_table)

    @staticmethod
    def filter_on_visual_boundary(above_line: AboveLine, bbox: BoundingRect) -> List[Element]:
        elements = [
            e for e in above_line if e is not None and not is_element_beyond_bounding_box(e, bbox)
        ]
        if len(elements) == 1 and elements[0].context.tabular_group is None:
            group = _group_of(elements[0])
            index = _index_in(group, elements[0])
            if index > 0 and is_element_beyond_bounding_box(group[index - 1], bbox):
                return []
        return elements

    @staticmethod
    def spans_multiple_columns(elements: Sequence[Element]) -> bool:
        """The earlier-table row holding *elements* has more than one filled cell."""
        for element in elements:
            ctx = element.context
            if ctx.tabular_group is not None:
                row = ctx.tabular_group.merged_rows()[ctx.tabular_row]
                return sum(1 for cell in row if cell.elements) > 1
        return False

    @staticmethod
    def differs_from_previous_table_row(elements: Sequence[Element]) -> bool:
        for element in elements:
            ctx = element.context
            if ctx.tabular_group is None or ctx.tabular_row == 0:
                continue
            above = _first_element_in_column_upwards(
                ctx.tabular_group, ctx.tabular_column, ctx.tabular_row - 1
            )
            if above is None or element.has_different_visual_style(above):
                return True
        return False

    def table_with_caption(self, pad: Scratchpad, table: TabularElementGroup,
                           elements: List[Element], part_of_table: bool) -> TabularElementGroup:
        self.log_entry(pad, "Caption found.")
        if not part_of_table:
            caption = TabularCellElementGroup()
            for element in elements:
                add_vertical_group_elements_to_caption(element, caption, len(elements))
            table.caption = caption
            return table
        if len(elements) == 1 and not self.spans_multiple_columns(elements):
            return self.caption_from_single_cell_rows(table, elements)
        caption = TabularCellElementGroup()
        for element in elements:
            ctx = element.context
            caption.add(element)
            if ctx.tabular_group is not None:
                ctx.tabular_group.delete_row(ctx.tabular_row)
        table.caption = caption
        return table

    @staticmethod
    def caption_from_single_cell_rows(table: TabularElementGroup,
                                      elements: List[Element]) -> TabularElementGroup:
        """Move trailing one-cell rows of the earlier table into the caption."""
        outside = [e for e in elements if e.context.tabular_group is None]
        inside = [e for e in elements if e.context.tabular_group is not None]
        if not inside:
            return table
        ctx = inside[0].context
        above_table = ctx.tabular_group
        row, col = ctx.tabular_row, ctx.tabular_column
        if row != above_table.number_of_rows - 1:
            return table
        caption = TabularCellElementGroup()
        cell = list(above_table.cells[row][col].elements)
        filled = 1
        while row > 0 and filled == 1 and cell:
            for element in cell:
                caption.add(element)
            above_table.delete_row(row)
            previous_row = above_table.cells[row - 1]
            filled = sum(1 for c in previous_row if c.elements)
            cell = list(previous_row[col].elements)
            row -= 1
        for element in outside:
            add_vertical_group_elements_to_caption(element, caption, 1)
        table.caption = caption
        return table

    # ── Header rows ────────────────────────────────────────────────────

    def table_with_expanded_headers(self, pad: Scratchpad, above_line: AboveLine,
                                    table: TabularElementGroup, confidence: float) -> TabularElementGroup:
        if is_above_line_empty(above_line):
            return table
        cols = table.number_of_columns
        new_row: List[TabularCellElementGroup] = [extended_cell_content(above_line, table, 0)]
        mergers = 0
        expand = 0
        for i in range(1, cols):
            if above_line[i] is None:
                expand = 0
                break
            if above_line[i] is above_line[i - 1]:
                new_row.append(TabularCellElementGroup(horizontally_merged=True))
                mergers += 1
            else:
                cell = extended_cell_content(above_line, table, i)
                if not cell.elements:
                    expand = 0
                    break
                new_row.append(cell)
                expand += 1 if i > 1 else 0

        final = table
        if (mergers >= cols - 2 and expand == 0 and confidence == 1
                and len(new_row) == len(above_line) and len(new_row) > 1
                and (self._is_dated_or_wordy(new_row[0]) or self._is_dated_or_wordy(new_row[1]))
                and is_deletion_from_previous_tables_possible(new_row[1].elements)
                and is_deletion_from_previous_tables_possible(new_row[0].elements)):
            self.delete_entries_from_previous_tables(pad, new_row[0].elements)
            self.delete_entries_from_previous_tables(pad, new_row[1].elements)
            caption = ElementGroup()
            for element in new_row[0].elements + new_row[1].elements:
                caption.add(element)
            self.log_entry(pad, "Caption found.")
            table.caption = caption

        new_row_elements = [e for cell in new_row for e in cell.elements]
        if (((expand >= cols - 2 and mergers == 0 and cols >= 2 and expand > 0)
                or (expand > 0 and mergers > 0))
                and is_deletion_from_previous_tables_possible(new_row_elements)):
            self.delete_entries_from_previous_tables(pad, new_row_elements)
            expanded = TabularElementGroup(
                0, cols, max(table.column_header_count, DEFAULT_COLUMN_HEADER_COUNT)
            )
            expanded.add_row(new_row, 0)
            for i, row in enumerate(table.cells):
                expanded.add_row(row, i + 1)
            self.log_entry(pad, "Parent header found after expansion.")
            final = expanded
            final.set_confidence(ConfidenceFeature.EXPAND_UP_CONFIDENCE, confidence)
            if sum(1 for c in final.cells[0] if c.elements) != sum(1 for c in final.cells[1] if c.elements):
                final.column_header_count += 1
            final.caption = table.caption
        final.set_back_references()
        return final

    @staticmethod
    def _is_dated_or_wordy(cell: TabularCellElementGroup) -> bool:
        return bool(cell.elements) and RegexType.of(cell.elements[0].text).priority > RegexType.NUMERIC.priority

    def delete_entries_from_previous_tables(self, pad: Scratchpad, elements: Sequence[Element]) -> None:
        """Delete the rows holding *elements* from their earlier tables."""
        to_delete: Set[int] = pad.require(ScratchpadKey.PREV_TABLES_TO_DELETE)
        for element in reversed(list(elements)):
            ctx = element.context
            previous = ctx.tabular_group
            if previous is None:
                continue
            previous.delete_row(ctx.tabular_row)
            if not previous.cells:
                to_delete.add(table_index_in_page(previous, element))
        pad.store(ScratchpadKey.PREV_TABLES_TO_DELETE, to_delete)
