"""Merge the leading rows that together form the column header."""

from __future__ import annotations

from typing import List, Optional, Sequence

from ...models import Element, ElementGroup, PositionalContext, TextStyle
from ...semantics import RegexType, has_alphabets, is_named_entity
from ...tabular import TabularCellElementGroup, TabularElementGroup
from ..scratchpad import KeyContract, Scratchpad, ScratchpadKey
from .base import RefinementStage

MAX_ROWS_ALLOWED_IN_HEADER = 0.5


def contains_numeric_cell(row: Sequence[TabularCellElementGroup]) -> bool:
    return any(RegexType.of(cell.text) is RegexType.NUMERIC for cell in row)


def _index_in(elements: List[Element], element: Element) -> int:
    for i, e in enumerate(elements):
        if e is element:
            return i
    return 0


def _group_elements(group: Optional[ElementGroup], element: Element) -> List[Element]:
    return group.elements if group is not None else [element]


def _bottom_border_position(ctx: PositionalContext) -> Optional[float]:
    table = ctx.tabular_group
    row, col = ctx.tabular_row, ctx.tabular_column
    if table is None or row is None or col is None or col >= len(table.cells[row]):
        return None
    if table.cell(row, col).border_existence()[2]:
        return ctx.visual_bottom
    return None


def _is_row_below_border(table: TabularElementGroup, row: int, border: Optional[float]) -> bool:
    if border is None:
        return False
    for cell in table.cells[row]:
        if cell.elements:
            return border <= cell.elements[0].context.visual_top
    return False


class _TextStyleCriterion:
    """Header ends where text style or colour changes down the column."""

    name = "text_styles"

    @staticmethod
    def is_applicable(element: Element) -> bool:
        styles = getattr(element, "styles", frozenset())
        return TextStyle.BOLD in styles or TextStyle.ITALIC in styles

    @staticmethod
    def compare(group: Optional[ElementGroup], start: Element) -> int:
        table = start.context.tabular_group
        elements = _group_elements(group, start)
        start_index = _index_in(elements, start)
        styles = set(getattr(start, "styles", frozenset()))
        color = getattr(start, "color", None)
        i = start_index
        while i < len(elements):
            other = elements[i]
            if not (
                set(getattr(other, "styles", frozenset())) == styles
                and getattr(other, "color", None) == color
                and other.context.tabular_group is table
            ):
                break
            i += 1
        ctx = elements[start_index if i == start_index else i - 1].context
        current = ctx.tabular_row + 1
        col = ctx.tabular_column
        table = ctx.tabular_group
        border = _bottom_border_position(ctx)
        # Blank rows below the last styled row still belong to the header.
        while (
            current < table.number_of_rows
            and col < len(table.cells[current])
            and not table.cell(current, col).elements
            and not _is_row_below_border(table, current, border)
        ):
            current += 1
        return current - 1


class _RegexCriterion:
    """Header ends at the last wordy element of the column's vertical group."""

    name = "regex"

    @staticmethod
    def is_applicable(element: Element) -> bool:
        return True

    @staticmethod
    def compare(group: Optional[ElementGroup], start: Element) -> int:
        table = start.context.tabular_group
        elements = _group_elements(group, start)
        start_index = _index_in(elements, start)
        i = start_index
        while i < len(elements) and has_alphabets(elements[i].text):
            if elements[i].context.tabular_group is not table:
                break
            i += 1
        return elements[start_index if i == start_index else i - 1].context.tabular_row


VOTING_CRITERIA = (_TextStyleCriterion, _RegexCriterion)


class ColumnHeaderMerging(RefinementStage):
    """Votes on the last header row and merges the header rows into one."""

    contract = KeyContract(
        name="ColumnHeaderMerging",
        required=frozenset({ScratchpadKey.TABULAR_GROUP}),
        stored=frozenset({ScratchpadKey.PROCESSED_TABULAR_GROUP}),
    )

    def execute(self, pad: Scratchpad) -> None:
        table = pad.require(ScratchpadKey.TABULAR_GROUP)
        processed = self.merge_column_headers(pad, table)
        processed.set_back_references()
        pad.store(ScratchpadKey.PROCESSED_TABULAR_GROUP, processed)

    def merge_column_headers(self, pad: Scratchpad,
                             table: TabularElementGroup) -> TabularElementGroup:
        header_rows = self.vote_header_rows(table)
        if header_rows > 0 and not self.are_numbers_being_merged(table, header_rows):
            self.log_entry(pad, "Merging header rows.")
            return table.new_row_merged_table(0, header_rows)
        self.log_entry(pad, "No header row merging required.")
        return table

    def vote_header_rows(self, table: TabularElementGroup) -> int:
        """Index of the last header row, by majority over the columns."""
        rows, cols = table.number_of_rows, table.number_of_columns
        votes = [0] * rows
        applied = None
        for criterion in VOTING_CRITERIA:
            applicable = False
            for col in range(cols):
                row = 0
                while row < rows and not table.cell(row, col).elements:
                    row += 1
                if row == rows:
                    continue
                element = table.cell(row, col).elements[0]
                applicable = applicable or criterion.is_applicable(element)
                voted = criterion.compare(element.context.vertical_group, element) if applicable else 0
                votes[voted] += 1
            if applicable:
                applied = criterion
                break
            votes = [0] * rows

        is_regex = applied is _RegexCriterion
        names = self.config.named_entities
        last_header_row = 0
        for row in range(rows):
            # Named entities are data, never header text.
            if is_regex and any(is_named_entity(cell.text, names) for cell in table.cells[row]):
                break
            if votes[row] > votes[last_header_row]:
                last_header_row = row

        if (is_regex and last_header_row >= MAX_ROWS_ALLOWED_IN_HEADER * rows) or last_header_row == 0:
            index = 0
            while index < rows and not table.cell(index, 0).elements:
                index += 1
            last_header_row = index - 1
        return last_header_row

    @staticmethod
    def are_numbers_being_merged(table: TabularElementGroup, header_rows: int) -> bool:
        previous = False
        for row in range(header_rows + 1):
            current = contains_numeric_cell(table.cells[row])
            if previous and current:
                return True
            previous = current
        return False
