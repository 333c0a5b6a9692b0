"""Tables as grids of cells, with back references into element contexts.

Every structural edit must be followed by
:meth:`TabularElementGroup.set_back_references` so that each element's
``(tabular_group, tabular_row, tabular_column)`` points at the cell that
actually holds it. :meth:`TabularElementGroup.verify_back_references`
checks that invariant and raises :class:`BackReferenceError` when it is
broken.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .config import GridType
from .layout import compare_by_horizontal_then_vertical_alignment
from .models import Element, ElementGroup, _joined_text

MINIMUM_GRID_COVERAGE_RATIO = 0.6
DEFAULT_COLUMN_HEADER_COUNT = 1


class BackReferenceError(RuntimeError):
    """An element's table pointer disagrees with the cell holding it."""


class ConfidenceFeature(str, Enum):
    """Named confidence scores attached to a table."""

    HEADER_CONFIDENCE = "header_confidence"
    EXPAND_UP_CONFIDENCE = "expand_up_confidence"
    SPLIT_DOWN_CONFIDENCE = "split_down_confidence"
    SPLIT_UP_CONFIDENCE = "split_up_confidence"


class VectorTag(str, Enum):
    """Tags attached to whole rows (or columns) of a table."""

    TOTAL_ROW = "totalRow"

    @property
    def is_row_tag(self) -> bool:
        return True

    @classmethod
    def from_name(cls, name: str) -> Optional["VectorTag"]:
        for tag in cls:
            if tag.value == name:
                return tag
        return None


class TableType(str, Enum):
    GRID_BASED = "grid_based"
    KEY_VALUE = "key_value"
    FULLY_POPULATED = "fully_populated"
    NORMAL = "normal"


class _BorderType(Enum):
    CONSISTENT_PRESENT = 1
    CONSISTENT_ABSENT = 2
    INCONSISTENT = 3


# ── Cells ──────────────────────────────────────────────────────────────


@dataclass(eq=False)
class TabularCellElementGroup(ElementGroup):
    """One table cell; merge flags refer to the cell above / to the left."""

    vertically_merged: bool = False
    horizontally_merged: bool = False

    def add(self, element: Element) -> "TabularCellElementGroup":
        """Insert *element* after the last element preceding it in reading order."""
        elements = self.elements
        for i in range(len(elements) - 1, -1, -1):
            if compare_by_horizontal_then_vertical_alignment(element, elements[i]) >= 0:
                elements.insert(i + 1, element)
                return self
        elements.insert(0, element)
        return self

    def border_existence(self) -> Tuple[bool, bool, bool, bool]:
        """``(top, right, bottom, left)`` drawn-border flags over the cell's elements."""
        top = right = bottom = left = False
        for element in self.elements:
            ctx = element.context
            if ctx is not None:
                top = top or ctx.is_visual_top_border
                right = right or ctx.is_visual_right_border
                bottom = bottom or ctx.is_visual_bottom_border
                left = left or ctx.is_visual_left_border
        return (top, right, bottom, left)

    def is_border_less(self) -> bool:
        return not any(self.border_existence())


# ── Table ──────────────────────────────────────────────────────────────


class TabularElementGroup:
    """A detected table: ``number_of_rows`` x ``number_of_columns`` cells."""

    def __init__(
        self,
        number_of_rows: int,
        number_of_columns: int,
        default_column_header_count: int = 0,
    ):
        self.cells: List[List[TabularCellElementGroup]] = [
            [TabularCellElementGroup() for _ in range(number_of_columns)]
            for _ in range(number_of_rows)
        ]
        self.column_header_count = default_column_header_count
        self.caption: Optional[ElementGroup] = None
        self.confidence_map: Dict[ConfidenceFeature, float] = {}
        self.vector_tags: Dict[VectorTag, List[int]] = {}

    def __repr__(self) -> str:
        return (
            f"TabularElementGroup(rows={self.number_of_rows}, "
            f"columns={self.number_of_columns}, header={self.column_header_count})"
        )

    # ── Shape ──────────────────────────────────────────────────────────

    @property
    def number_of_rows(self) -> int:
        return len(self.cells)

    @property
    def number_of_columns(self) -> int:
        return len(self.cells[0]) if self.cells else 0

    def cell(self, row: int, col: int) -> TabularCellElementGroup:
        return self.cells[row][col]

    def column(self, col: int) -> List[TabularCellElementGroup]:
        return [row[col] for row in self.cells]

    @property
    def size(self) -> int:
        return sum(len(c.elements) for row in self.cells for c in row)

    @property
    def first(self) -> Optional[Element]:
        if not self.cells:
            return None
        for cell in self.cells[0]:
            if cell.elements:
                return cell.elements[0]
        return None

    @property
    def last(self) -> Optional[Element]:
        if not self.cells:
            return None
        for cell in reversed(self.cells[-1]):
            if cell.elements:
                return cell.elements[-1]
        return None

    def elements(self, row1: int = 0, row2: Optional[int] = None,
                 col1: int = 0, col2: Optional[int] = None) -> List[Element]:
        """Elements of rows ``row1..row2`` and columns ``col1..col2`` (inclusive)."""
        if row2 is None:
            row2 = self.number_of_rows - 1
        if col2 is None:
            col2 = self.number_of_columns - 1
        found: List[Element] = []
        for i in range(row1, row2 + 1):
            for j in range(col1, col2 + 1):
                found.extend(self.cells[i][j].elements)
        return found

    @property
    def text(self) -> str:
        return _joined_text(self.elements())

    @property
    def element_list(self):
        """The page list holding this table's elements, if any."""
        first = self.first
        return first.element_list if first is not None else None

    # ── Population ─────────────────────────────────────────────────────

    def add_element(self, row: int, col: int, element: Element) -> None:
        self.cells[row][col].add(element)

    def add_elements(self, row: int, col: int, elements: List[Element]) -> None:
        for element in list(elements):
            self.add_element(row, col, element)

    def add_row(self, row: List[TabularCellElementGroup], index: int) -> None:
        self.cells.insert(index, row)

    def add_column(self, index: int) -> None:
        """Insert an empty column before *index*."""
        for row in self.cells:
            row.insert(index, TabularCellElementGroup())

    def delete_column(self, index: int) -> None:
        """Remove column *index*; its elements lose their table reference."""
        for row in self.cells:
            cell = row.pop(index)
            for element in cell.elements:
                if element.context is not None:
                    element.context.delete_table_reference()
        self.set_back_references()

    def delete_row(self, row_number: int) -> None:
        """Remove a row, carrying down content that a merged cell below shares."""
        row_count = self.number_of_rows
        row = self.cells[row_number]
        for col, cell in enumerate(row):
            next_cell = (
                self.cells[row_number + 1][col] if row_number + 1 < row_count else None
            )
            if not cell.vertically_merged and (
                next_cell is None or not next_cell.vertically_merged
            ):
                for element in cell.elements:
                    if element.context is not None:
                        element.context.delete_table_reference()
            if next_cell is not None and next_cell.vertically_merged:
                self.add_elements(row_number + 1, col, cell.elements)
                next_cell.vertically_merged = False
        del self.cells[row_number]
        if row_number < self.column_header_count:
            self.column_header_count -= 1
        self.set_back_references()

    def curtail(self, number_of_rows: int) -> None:
        """Drop every row from index *number_of_rows* on."""
        element_list = self.element_list
        for i in range(self.number_of_rows - 1, number_of_rows - 1, -1):
            for cell in self.cells[i]:
                if not cell.vertically_merged:
                    for element in cell.elements:
                        if element.context is not None:
                            element.context.delete_table_reference()
            del self.cells[i]
        if not self.cells and element_list is not None:
            element_list.remove_tabular_group(self)

    # ── Back references ────────────────────────────────────────────────

    def set_back_references(self) -> None:
        """Point every held element's context at the cell holding it."""
        if not self.cells or not self.cells[0]:
            return
        for r, row in enumerate(self.cells):
            for c, cell in enumerate(row):
                for element in cell.elements:
                    ctx = element.context
                    if ctx is not None:
                        ctx.tabular_column = c
                        ctx.tabular_row = r
                        ctx.tabular_group = self

    def verify_back_references(self) -> None:
        """Raise :class:`BackReferenceError` on any stale element pointer."""
        for r, row in enumerate(self.cells):
            if len(row) != self.number_of_columns:
                raise BackReferenceError(
                    f"row {r} has {len(row)} cells, expected {self.number_of_columns}"
                )
            for c, cell in enumerate(row):
                for element in cell.elements:
                    ctx = element.context
                    if ctx is None:
                        continue
                    if ctx.tabular_group is not self:
                        raise BackReferenceError(
                            f"element {element.text!r} at ({r}, {c}) points at another table"
                        )
                    row_ref, col_ref = ctx.tabular_row, ctx.tabular_column
                    if row_ref is None or col_ref is None:
                        raise BackReferenceError(
                            f"element {element.text!r} at ({r}, {c}) has no cell index"
                        )
                    if not (0 <= row_ref < self.number_of_rows
                            and 0 <= col_ref < self.number_of_columns):
                        raise BackReferenceError(
                            f"element {element.text!r} points outside the grid at "
                            f"({row_ref}, {col_ref})"
                        )
                    holder = self.cells[row_ref][col_ref].elements
                    if not any(e is element for e in holder):
                        raise BackReferenceError(
                            f"element {element.text!r} points at ({row_ref}, {col_ref}) "
                            f"but is held at ({r}, {c})"
                        )

    # ── Confidence and tags ────────────────────────────────────────────

    def set_confidence(self, feature: ConfidenceFeature, value: float) -> None:
        self.confidence_map[feature] = value

    def confidence(self, feature: ConfidenceFeature) -> float:
        return self.confidence_map.get(feature, 0.0)

    def has_confidence(self, feature: ConfidenceFeature) -> bool:
        return feature in self.confidence_map

    def add_vector_tag(self, tag: VectorTag, index: int) -> None:
        self.vector_tags.setdefault(tag, []).append(index)

    def add_vector_tags(self, tag: VectorTag, indices: List[int]) -> None:
        self.vector_tags.setdefault(tag, []).extend(indices)

    def vector_indices_for_tag(self, tag: VectorTag) -> set:
        return set(self.vector_tags.get(tag, []))

    # ── Merged views ───────────────────────────────────────────────────

    def merged_cell(self, row: int, col: int) -> TabularCellElementGroup:
        """The cell owning the span that covers ``(row, col)``."""
        while row > 0 and self.cells[row][col].vertically_merged:
            row -= 1
        while col > 0 and self.cells[row][col].horizontally_merged:
            col -= 1
        return self.cells[row][col]

    def merged_columns(self) -> List[List[TabularCellElementGroup]]:
        return [
            [self.merged_cell(i, j) for i in range(self.number_of_rows)]
            for j in range(self.number_of_columns)
        ]

    def merged_rows(self) -> List[List[TabularCellElementGroup]]:
        return [
            [self.merged_cell(i, j) for j in range(self.number_of_columns)]
            for i in range(self.number_of_rows)
        ]

    # ── Shape statistics ───────────────────────────────────────────────

    def row_level_symmetry(self) -> float:
        """1 when every body row fills the same number of cells, lower otherwise."""
        counts = [
            sum(1 for c in row if c.elements)
            for row in self.cells[self.column_header_count:]
        ]
        if not counts:
            return 1.0
        avg = sum(counts) / len(counts)
        if avg == 0:
            return 0.0
        return 1 - sum(abs(c - avg) for c in counts) / (len(counts) * avg)

    def _row_depth_for_column(self, col: int) -> int:
        row = 0
        while row < self.column_header_count and not self.cells[row][col].elements:
            row += 1
        if self.column_header_count > 0 and row < self.column_header_count:
            return self.column_header_count
        return self.number_of_rows

    def column_boundaries(self) -> Tuple[List[float], List[float]]:
        """Left and right extents of each column's elements."""
        lefts: List[float] = []
        rights: List[float] = []
        for j in range(self.number_of_columns):
            left = float("inf")
            right = 0.0
            for i in range(self._row_depth_for_column(j)):
                for element in self.cells[i][j].elements:
                    left = min(left, element.left)
                    right = max(right, element.right)
            lefts.append(left)
            rights.append(right)
        return lefts, rights

    def is_row_based(self) -> bool:
        """True when at most two columns carry any content."""
        if self.number_of_columns <= 2:
            return True
        non_null = sum(
            1
            for j in range(self.number_of_columns)
            if any(self.cells[i][j].elements for i in range(self.number_of_rows))
        )
        return non_null <= 2

    def are_horizontal_lines_significant(self) -> bool:
        """Drawn top and bottom borders bound most rows."""
        if not self.cells:
            return False
        gridded = 0
        for row in self.cells:
            for cell in row:
                if any(
                    e.context is not None
                    and e.context.is_visual_top_border
                    and e.context.is_visual_bottom_border
                    for e in cell.elements
                ):
                    gridded += 1
                    break
        return gridded / self.number_of_rows >= MINIMUM_GRID_COVERAGE_RATIO

    @staticmethod
    def _border_presence(cell: TabularCellElementGroup, direction: str) -> bool:
        top, right, bottom, left = cell.border_existence()
        return {"top": top, "right": right, "bottom": bottom, "left": left}[direction]

    def _border_type(self, cells: List[TabularCellElementGroup], direction: str) -> _BorderType:
        unknown = True
        present = False
        n = len(cells)
        for idx, cell in enumerate(cells):
            border = self._border_presence(cell, direction)
            if not cell.text:
                continue
            if direction == "bottom" and idx < n - 1:
                below = cells[idx + 1]
                if below.is_border_less():
                    border = False
                elif self._border_presence(below, "bottom"):
                    border = True
            elif direction == "top" and idx > 0:
                if cells[idx - 1].is_border_less():
                    border = False
            if unknown:
                present = border
                unknown = False
            if present != border:
                return _BorderType.INCONSISTENT
        return _BorderType.CONSISTENT_PRESENT if present else _BorderType.CONSISTENT_ABSENT

    def _lines_consistent(self, vectors, first_direction: str, direction: str) -> Optional[bool]:
        has_borders = False
        checks = [(vectors[0], first_direction)] + [(v, direction) for v in vectors]
        for cells, side in checks:
            kind = self._border_type(cells, side)
            if kind is _BorderType.INCONSISTENT:
                return None
            if kind is _BorderType.CONSISTENT_PRESENT:
                has_borders = True
        return has_borders

    def is_row_and_column_grid(self) -> bool:
        """Every column and row is consistently bordered, with borders on both axes."""
        if not self.cells:
            return False
        columns = self._lines_consistent(self.merged_columns(), "left", "right")
        if columns is None:
            return False
        rows = self._lines_consistent(self.merged_rows(), "top", "bottom")
        if rows is None:
            return False
        return columns and rows

    def is_grid_type_satisfied(self, grid_type: GridType) -> bool:
        if grid_type == GridType.ROW_AND_COL:
            return self.is_row_and_column_grid()
        # Row grids are not asserted before grid based row merging.
        return grid_type == GridType.ROW_AND_MAYBE_COL

    # ── Derived tables ─────────────────────────────────────────────────

    def new_row_merged_table(self, row1: int, row2: int) -> "TabularElementGroup":
        """A copy of this table with rows ``row1..row2`` merged into one."""
        if row1 > row2 or row1 < 0 or row2 > self.number_of_rows:
            return self
        rows, cols = self.number_of_rows, self.number_of_columns
        merged = TabularElementGroup(rows - row2 + row1, cols, DEFAULT_COLUMN_HEADER_COUNT)
        for i in range(rows):
            new_i = i if i < row1 else (i - row2 + row1 if i > row2 else row1)
            for j in range(cols):
                old = self.cells[i][j]
                new = merged.cells[new_i][j]
                new.horizontally_merged = old.horizontally_merged
                new.vertically_merged = old.vertically_merged
                for element in old.elements:
                    if not any(e is element for e in new.elements):
                        merged.add_element(new_i, j, element)
        merged.caption = self.caption
        merged.column_header_count = min(
            self.column_header_count,
            row1 + 1 + max(0, self.column_header_count - row2 - 1),
        )
        return merged

    def to_dict(self) -> dict:
        """Summary for logging and debugging."""
        return {
            "rows": self.number_of_rows,
            "columns": self.number_of_columns,
            "column_header_count": self.column_header_count,
            "caption": self.caption.text if self.caption is not None else None,
            "confidence": {k.value: v for k, v in self.confidence_map.items()},
            "vector_tags": {k.value: sorted(v) for k, v in self.vector_tags.items()},
            "cells": [[cell.text for cell in row] for row in self.cells],
        }
