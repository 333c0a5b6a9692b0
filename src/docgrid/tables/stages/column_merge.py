"""Fold narrow columns whose content continues the column to their left."""

from __future__ import annotations

from typing import List

from ...semantics import is_semantically_incomplete
from ...tabular import TabularCellElementGroup, TabularElementGroup
from ..scratchpad import KeyContract, Scratchpad, ScratchpadKey
from .base import RefinementStage

MAX_MERGEABLE_COLUMN_WIDTH = 10.8


def _cell_width(cell: TabularCellElementGroup) -> float:
    if not cell.elements:
        return 0.0
    return max(e.right for e in cell.elements) - min(e.left for e in cell.elements)


def are_cells_mergeable(current: TabularCellElementGroup, following: TabularCellElementGroup) -> bool:
    if not current.text or not following.text:
        return True
    return len(current.elements) == 1 and is_semantically_incomplete(current.text)


def is_column_mergeable(table: TabularElementGroup, col: int) -> bool:
    """Column *col* + 1 is narrow, empty at the header, and only continues *col*."""
    if col + 1 >= table.number_of_columns:
        return False
    if any(_cell_width(row[col + 1]) > MAX_MERGEABLE_COLUMN_WIDTH for row in table.cells):
        return False
    header_row = table.column_header_count - 1
    for r, row in enumerate(table.cells):
        current, following = row[col], row[col + 1]
        if r == header_row:
            if not current.elements or following.elements:
                return False
        elif not are_cells_mergeable(current, following):
            return False
    return True


class InternalColumnMerging(RefinementStage):
    """Merges each mergeable column into the one on its left."""

    contract = KeyContract(
        name="InternalColumnMerging",
        required=frozenset({ScratchpadKey.SPLIT_TABULAR_GROUPS}),
        stored=frozenset({ScratchpadKey.SPLIT_TABULAR_GROUPS}),
    )

    def execute(self, pad: Scratchpad) -> None:
        if not pad.retrieve_bool(ScratchpadKey.IS_PARENT_TABLE):
            return
        tables: List[TabularElementGroup] = pad.require(ScratchpadKey.SPLIT_TABULAR_GROUPS)
        for table in tables:
            self.merge_columns(pad, table)
        pad.store(ScratchpadKey.SPLIT_TABULAR_GROUPS, tables)

    def merge_columns(self, pad: Scratchpad, table: TabularElementGroup) -> None:
        modified = False
        col = 0
        while col < table.number_of_columns - 1:
            if is_column_mergeable(table, col):
                self.log_entry(pad, "Merging column '%d' with next column.", col + 1)
                for row in table.cells:
                    following = row.pop(col + 1)
                    for element in following.elements:
                        row[col].add(element)
                modified = True
            else:
                col += 1
        if modified:
            table.set_back_references()
