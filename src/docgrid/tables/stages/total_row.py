"""Tag the rows of a table that hold totals.

Rows with numbers outside the first column are the candidates. Among
them, rows styled differently from an ordinary row, or ruled off by a
top border, are preferred. A candidate with a "total"-like label whose
right neighbour is an amount is a total row; runs of more than three
consecutive total rows are discarded as a false positive.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Set

from ...models import Element
from ...semantics import has_alphabets, is_amount_representation, means_total
from ...tabular import TabularCellElementGroup, TabularElementGroup, VectorTag
from ..scratchpad import KeyContract, Scratchpad, ScratchpadKey
from .base import RefinementStage
from .header_merge import contains_numeric_cell
from .row_merge import is_grid_based_element

MAX_CONTINUOUS_TOTAL_ROWS_ALLOWED = 3

Row = List[TabularCellElementGroup]


def remove_large_continuous_row_groups(rows: List[int]) -> List[int]:
    """Drop runs of more than three consecutive indices from sorted *rows*."""
    refined: List[int] = []
    i = 0
    while i < len(rows):
        run = 1
        while i + run < len(rows) and rows[i + run] - rows[i] == run:
            run += 1
        if run <= MAX_CONTINUOUS_TOTAL_ROWS_ALLOWED:
            refined.extend(rows[i:i + run])
        i += run
    return refined


def numerical_columns(table: TabularElementGroup, number_rows: Set[int]) -> List[int]:
    """Columns after the first whose cells in *number_rows* are amounts or blank."""
    columns = []
    for col in range(1, table.number_of_columns):
        if all(
            col >= len(table.cells[r])
            or not table.cell(r, col).text
            or is_amount_representation(table.cell(r, col).text)
            for r in number_rows
        ):
            columns.append(col)
    return columns


def _row_elements(row: Row, columns: Optional[Iterable[int]] = None) -> List[Element]:
    if columns is None:
        return [e for cell in row for e in cell.elements]
    return [e for col in columns if col < len(row) for e in row[col].elements]


def has_numbers(row: Row) -> bool:
    # A number in the first column is more likely a row index than a total.
    return contains_numeric_cell(row[1:])


def has_total_label(row: Row) -> bool:
    for element in _row_elements(row):
        right = element.context.shadow_right if element.context is not None else None
        if means_total(element.text) and right is not None and is_amount_representation(right.text):
            return True
    return False


def reference_row(table: TabularElementGroup, rows: Set[int]) -> int:
    """First row carrying no text style at all, else the first row."""
    ordered = sorted(rows)
    for r in ordered:
        if not any(getattr(e, "styles", None) for e in _row_elements(table.cells[r])):
            return r
    return ordered[0]


def has_different_style(table: TabularElementGroup, row: Row, columns: List[int], reference: int) -> bool:
    for element in _row_elements(row, columns):
        ctx = element.context
        if ctx is None or ctx.tabular_group is None:
            continue
        other = ctx.tabular_group.cell(reference, ctx.tabular_column).last
        if other is not None and element.has_different_visual_style(other):
            return True
    return False


def has_total_border(row: Row, columns: List[int]) -> bool:
    """A ruled line above an amount that sums the amounts above it."""
    for element in _row_elements(row, columns):
        ctx = element.context
        if ctx is None or not ctx.is_visual_top_border:
            continue
        above, below = ctx.shadow_above, ctx.shadow_below
        if above is None or not is_amount_representation(above.text):
            continue
        if is_grid_based_element(element):
            continue
        if (ctx.has_underlined_border() or below is None or ctx.has_overlined_border()
                or has_alphabets(below.text)):
            return True
    return False


class TotalRowDetection(RefinementStage):
    """Adds :attr:`VectorTag.TOTAL_ROW` tags to every resulting table."""

    contract = KeyContract(
        name="TotalRowDetection",
        required=frozenset({ScratchpadKey.END_RESULT}),
        stored=frozenset({ScratchpadKey.END_RESULT}),
    )

    def execute(self, pad: Scratchpad) -> None:
        tables: List[TabularElementGroup] = pad.require(ScratchpadKey.END_RESULT)
        for table in tables:
            self.detect_total_rows(pad, table)
        pad.store(ScratchpadKey.END_RESULT, tables)

    def detect_total_rows(self, pad: Scratchpad, table: TabularElementGroup) -> None:
        if table.column_header_count >= table.number_of_rows:
            return
        number_rows = {
            r for r in range(table.column_header_count, table.number_of_rows)
            if has_numbers(table.cells[r])
        }
        candidates = self.total_row_candidates(table, number_rows) or number_rows
        labelled = sorted(r for r in candidates if has_total_label(table.cells[r]))
        if labelled:
            rows = remove_large_continuous_row_groups(labelled)
        elif len(candidates) != len(number_rows):
            rows = remove_large_continuous_row_groups(sorted(candidates))
        else:
            return
        if rows:
            self.log_entry(pad, "Total rows detected at %s.", [r + 1 for r in rows])
        table.add_vector_tags(VectorTag.TOTAL_ROW, rows)

    @staticmethod
    def total_row_candidates(table: TabularElementGroup, number_rows: Set[int]) -> Set[int]:
        candidates: Set[int] = set()
        if len(number_rows) < 2:
            return candidates
        columns = numerical_columns(table, number_rows)
        reference = reference_row(table, number_rows)
        styled = {r for r in number_rows if has_different_style(table, table.cells[r], columns, reference)}
        if len(styled) != len(number_rows):
            candidates |= styled
        if not table.are_horizontal_lines_significant():
            bordered = {r for r in number_rows if has_total_border(table.cells[r], columns)}
            if len(bordered) != len(number_rows):
                candidates |= bordered
        return candidates
