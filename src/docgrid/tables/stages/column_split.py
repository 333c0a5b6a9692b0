"""Split columns whose last header row holds several unrelated headers."""

from __future__ import annotations

from typing import List, Tuple

from ...models import Element
from ...semantics import can_be_connected
from ...tabular import TabularCellElementGroup, TabularElementGroup
from ..scratchpad import KeyContract, Scratchpad, ScratchpadKey
from .base import RefinementStage


def horizontal_overlap(left1: float, right1: float, left2: float, right2: float) -> float:
    return max(0.0, min(right1, right2) - max(left1, left2))


def partition_header(cell: TabularCellElementGroup) -> Tuple[List[Element], List[Element]]:
    """``(selected, rejected)``: selected elements cannot continue their left neighbour."""
    selected: List[Element] = []
    rejected: List[Element] = []
    for element in cell.elements:
        left = element.context.shadow_left if element.context is not None else None
        if (left is not None and any(e is left for e in cell.elements)
                and not can_be_connected(left.text, element.text)):
            selected.append(element)
        else:
            rejected.append(element)
    return selected, rejected


def _populate_header_cells(selected: List[Element], rejected: List[Element],
                           current: TabularCellElementGroup, following: TabularCellElementGroup) -> None:
    following.elements.extend(selected)
    current.elements[:] = rejected


def _reassign_to_best_overlap(current_box, following_box, current: TabularCellElementGroup,
                              following: TabularCellElementGroup) -> None:
    _, current_right, _, current_left = current_box
    _, following_right, _, following_left = following_box
    kept: List[Element] = []
    for element in current.elements:
        current_overlap = horizontal_overlap(element.left, element.right, current_left, current_right)
        following_overlap = horizontal_overlap(element.left, element.right, following_left, following_right)
        if current_overlap < following_overlap:
            following.add(element)
        else:
            kept.append(element)
    current.elements[:] = kept


class ColumnSplitting(RefinementStage):
    """Gives each header of a shared header cell its own column."""

    contract = KeyContract(
        name="ColumnSplitting",
        required=frozenset({ScratchpadKey.SPLIT_TABULAR_GROUPS}),
        stored=frozenset({ScratchpadKey.END_RESULT}),
    )

    def execute(self, pad: Scratchpad) -> None:
        tables: List[TabularElementGroup] = pad.require(ScratchpadKey.SPLIT_TABULAR_GROUPS)
        if pad.retrieve_bool(ScratchpadKey.IS_PARENT_TABLE):
            for table in tables:
                self.split_merged_columns(pad, table)
        pad.store(ScratchpadKey.END_RESULT, tables)

    def split_merged_columns(self, pad: Scratchpad, table: TabularElementGroup) -> None:
        if table.column_header_count == 0:
            return
        header_row = table.column_header_count - 1
        col = 0
        while col < table.number_of_columns:
            header = table.cell(header_row, col)
            _, right, _, left = header.border_existence()
            if not (left or right):
                selected, rejected = partition_header(header)
                if selected and rejected:
                    self._split_column(pad, table, header_row, col, selected, rejected)
            col += 1
        table.set_back_references()

    def _split_column(self, pad: Scratchpad, table: TabularElementGroup, header_row: int, col: int,
                      selected: List[Element], rejected: List[Element]) -> None:
        following = col + 1
        if following < table.number_of_columns and not table.cell(header_row, following).elements:
            self.log_entry(pad, "Doing only column header splitting at column No. '%d'.", col + 1)
            _populate_header_cells(selected, rejected, table.cell(header_row, col),
                                   table.cell(header_row, following))
            return

        self.log_entry(pad, "Doing column header splitting and content reorganization at Column No. '%d'.",
                       col + 1)
        for r in range(table.number_of_rows):
            current = table.cell(r, col)
            table.cells[r].insert(following, TabularCellElementGroup(
                vertically_merged=current.vertically_merged,
                horizontally_merged=current.horizontally_merged,
            ))
        current_header = table.cell(header_row, col)
        new_header = table.cell(header_row, following)
        _populate_header_cells(selected, rejected, current_header, new_header)
        current_box = current_header.text_bounding_box()
        new_box = new_header.text_bounding_box()
        for r in range(header_row + 1, table.number_of_rows):
            if table.cell(r, col).elements:
                _reassign_to_best_overlap(current_box, new_box, table.cell(r, col), table.cell(r, following))
