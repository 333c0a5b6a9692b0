"""Split a table whose lower rows start a new table.

Each row collects break votes from several independent criteria while
the columns are scanned top to bottom. Four products of those votes are
compared against fixed thresholds; the first qualifying row splits the
table. The lower part is refined again through the whole pipeline and
the split is kept only when that run reports the part as permissible.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional, Set

from ...models import Element, TextStyle
from ...semantics import RegexType
from ...tabular import (
    DEFAULT_COLUMN_HEADER_COUNT,
    ConfidenceFeature,
    TabularCellElementGroup,
    TabularElementGroup,
)
from ..scratchpad import KeyContract, Scratchpad, ScratchpadKey
from .base import RefinementStage

ROW_HEIGHT_VARIANCE_THRESHOLD = 0.15
SPLIT_HEADER_CONFIDENCE_THRESHOLD = 0.8
MINIMUM_TABLE_ROWS = 2

DERIVATIVE_PRODUCT_THRESHOLDS = (0.4, 0.8, 0.6, 0.6)
DERIVATIVE_PRODUCT_STD_DEVIATIONS = (0.2135, 0.0, 0.112, 0.10042)
ROW_BASED_TEXT_BREAK_THRESHOLD = 0.5

RunChild = Callable[[Scratchpad], List[TabularElementGroup]]


# ── Break votes ────────────────────────────────────────────────────────


class _BreakingCriterion:
    """Adds votes to rows while one column is scanned top to bottom."""

    def __init__(self, row_count: int):
        self.votes: List[float] = [0.0] * row_count

    def start_column(self) -> None:
        pass

    def update(self, element: Element, row: int) -> None:
        raise NotImplementedError

    def update_empty(self, row: int) -> None:
        pass


class _TextStyleBreak(_BreakingCriterion):
    """Text style differs from the cell above."""

    def start_column(self) -> None:
        self.styles: frozenset = frozenset()

    def update(self, element: Element, row: int) -> None:
        styles = frozenset(getattr(element, "styles", frozenset()))
        if styles and styles != self.styles:
            self.votes[row] += 1
        self.styles = styles

    def update_empty(self, row: int) -> None:
        self.styles = frozenset()


class _RegexBreak(_BreakingCriterion):
    """Lexical class differs from the cell above."""

    def start_column(self) -> None:
        self.regex = RegexType.NON_ALPHANUMERIC

    def update(self, element: Element, row: int) -> None:
        regex = RegexType.of(element.text.strip())
        if regex is not self.regex:
            self.votes[row] += 1
        self.regex = regex

    def update_empty(self, row: int) -> None:
        self.regex = RegexType.NON_ALPHANUMERIC


class _ColorBreak(_BreakingCriterion):
    """Colour differs from the previous cell; carried over between columns."""

    color = None

    def update(self, element: Element, row: int) -> None:
        color = getattr(element, "color", None)
        if color is not None and color != self.color:
            self.votes[row] += 1
        self.color = color

    def update_empty(self, row: int) -> None:
        self.color = None


class _FontBreak(_BreakingCriterion):
    """A height rise followed by a drop votes for the row before the drop."""

    def start_column(self) -> None:
        self.height = 0.0
        self.variance = 0.0

    def _variance(self, height: float) -> float:
        if self.height == 0:
            return float("inf") if height > 0 else 0.0
        return height / self.height - 1

    def update(self, element: Element, row: int) -> None:
        height = element.height or 0.0
        variance = self._variance(height)
        if variance < -ROW_HEIGHT_VARIANCE_THRESHOLD and self.variance > ROW_HEIGHT_VARIANCE_THRESHOLD:
            self.votes[row - 1] += 1
        self.height, self.variance = height, variance

    def update_empty(self, row: int) -> None:
        self.variance = self._variance(0.0)
        self.height = 0.0


class _FilledBreak(_BreakingCriterion):
    """Empty/filled transition; carried over between columns."""

    previous: Optional[Element] = None

    def update(self, element: Element, row: int) -> None:
        if self.previous is None:
            self.votes[row] += 1
        self.previous = element

    def update_empty(self, row: int) -> None:
        if self.previous is not None:
            self.votes[row] += 1
        self.previous = None


class _NonNullCount(_BreakingCriterion):
    def update(self, element: Element, row: int) -> None:
        self.votes[row] += 1


class _BoldCount(_BreakingCriterion):
    def update(self, element: Element, row: int) -> None:
        if TextStyle.BOLD in getattr(element, "styles", frozenset()):
            self.votes[row] += 1


CRITERIA = {
    "text_style": _TextStyleBreak,
    "regex": _RegexBreak,
    "color": _ColorBreak,
    "font": _FontBreak,
    "filled": _FilledBreak,
    "non_null": _NonNullCount,
    "bold": _BoldCount,
}


def table_breaking_votes(table: TabularElementGroup) -> Dict[str, List[float]]:
    """Per criterion, the break votes collected by each row."""
    rows = table.number_of_rows
    criteria = {name: cls(rows) for name, cls in CRITERIA.items()}
    for j in range(table.number_of_columns):
        for criterion in criteria.values():
            criterion.start_column()
        for r in range(rows):
            element = table.cell(r, j).first
            for criterion in criteria.values():
                if element is None:
                    criterion.update_empty(r)
                else:
                    criterion.update(element, r)
    return {name: criterion.votes for name, criterion in criteria.items()}


def derivative_products(votes: Dict[str, List[float]], row: int, col_count: int) -> List[float]:
    non_null = votes["non_null"][row]
    if non_null == 0 or col_count == 0:
        return [0.0, 0.0, 0.0, 0.0]
    text = votes["text_style"][row] / non_null
    regex = votes["regex"][row] / non_null
    bold = votes["bold"][row] / non_null
    color = votes["color"][row] / non_null
    filled = votes["filled"][row] / col_count
    return [text * regex * bold, color * bold, filled * regex, filled * text]


def split_confidence(products: List[float], next_header_confidence: float) -> float:
    """Half the mean normalised excess over the thresholds, half the lower table's header."""
    considered = 0
    confidence = 0.0
    for i, product in enumerate(products):
        if product >= DERIVATIVE_PRODUCT_THRESHOLDS[i]:
            if DERIVATIVE_PRODUCT_STD_DEVIATIONS[i] > 0:
                confidence += (product - DERIVATIVE_PRODUCT_THRESHOLDS[i]) / DERIVATIVE_PRODUCT_STD_DEVIATIONS[i]
            considered += 1
    split_part = confidence / considered if considered else 0.0
    return 0.5 * split_part + 0.5 * next_header_confidence


# ── Splitting ──────────────────────────────────────────────────────────


def remove_empty_columns(table: TabularElementGroup) -> TabularElementGroup:
    if not table.cells:
        return table
    col = 0
    while col < table.number_of_columns:
        if any(table.merged_cell(r, col).elements for r in range(table.number_of_rows)):
            col += 1
        else:
            for row in table.cells:
                del row[col]
    return table


def split_table(table: TabularElementGroup, row: int) -> List[TabularElementGroup]:
    """Two tables: rows ``0..row`` and the rest."""
    cols = table.number_of_columns
    upper = TabularElementGroup(0, cols, DEFAULT_COLUMN_HEADER_COUNT)
    lower = TabularElementGroup(0, cols, DEFAULT_COLUMN_HEADER_COUNT)
    for i, old_row in enumerate(table.cells):
        new_row = []
        for old in old_row:
            cell = TabularCellElementGroup(
                vertically_merged=old.vertically_merged,
                horizontally_merged=old.horizontally_merged,
            )
            for element in old.elements:
                cell.add(element)
            new_row.append(cell)
        if i <= row:
            upper.add_row(new_row, i)
        else:
            lower.add_row(new_row, i - row - 1)
    upper.caption = table.caption
    upper.column_header_count = min(table.column_header_count, upper.number_of_rows)
    upper.set_back_references()
    lower.set_back_references()
    return [remove_empty_columns(upper), remove_empty_columns(lower)]


class TableSplitting(RefinementStage):
    """Splits the table at the first row voted as the start of a new table."""

    contract = KeyContract(
        name="TableSplitting",
        required=frozenset({
            ScratchpadKey.TABULAR_GROUP,
            ScratchpadKey.HEADER_CONFIDENCE,
            ScratchpadKey.PREV_TABLES_TO_DELETE,
        }),
        optional=frozenset({ScratchpadKey.GRID_TYPE}),
        stored=frozenset({
            ScratchpadKey.IS_SPLIT_PERMISSIBLE,
            ScratchpadKey.SPLIT_TABULAR_GROUPS,
            ScratchpadKey.PREV_TABLES_TO_DELETE,
        }),
    )

    def __init__(self, config, run_child: RunChild):
        super().__init__(config)
        self.run_child = run_child

    def execute(self, pad: Scratchpad) -> None:
        table = pad.require(ScratchpadKey.TABULAR_GROUP)
        to_delete: Set[int] = pad.require(ScratchpadKey.PREV_TABLES_TO_DELETE)
        header_confidence = float(pad.require(ScratchpadKey.HEADER_CONFIDENCE))
        is_parent = pad.retrieve_bool(ScratchpadKey.IS_PARENT_TABLE)
        permissible = is_parent or header_confidence >= SPLIT_HEADER_CONFIDENCE_THRESHOLD
        pad.store(ScratchpadKey.IS_SPLIT_PERMISSIBLE, permissible)
        if not permissible:
            self.log_entry(pad, "Current split table is non-permissible.")
            pad.store(ScratchpadKey.SPLIT_TABULAR_GROUPS, [table])
            return
        self.log_entry(pad, "Current table is permissible. Splitting it further recursively.")
        tables = self.split_from_votes(pad, table, to_delete) or [table]
        for split in tables:
            split.set_back_references()
        pad.store(ScratchpadKey.SPLIT_TABULAR_GROUPS, tables)

    def split_from_votes(self, pad: Scratchpad, table: TabularElementGroup,
                         to_delete: Set[int]) -> List[TabularElementGroup]:
        depth = pad.retrieve(ScratchpadKey.SPLIT_DEPTH, 0)
        if depth >= self.config.max_split_depth:
            self.log_entry(pad, "Split depth limit %d reached; not splitting.", depth)
            return []
        votes = table_breaking_votes(table)
        cols = table.number_of_columns
        row_based = table.is_row_based()
        for r in range(MINIMUM_TABLE_ROWS, table.number_of_rows - 1):
            products = derivative_products(votes, r, cols)
            font_break = row_based and (votes["font"][r] > 0 or products[3] >= ROW_BASED_TEXT_BREAK_THRESHOLD)
            if not font_break and not any(
                p >= t for p, t in zip(products, DERIVATIVE_PRODUCT_THRESHOLDS)
            ):
                continue
            self.log_entry(pad, "Checking permissibility for table split at row index: %d.", r)
            upper, lower = split_table(table, r - 1)
            child = Scratchpad.seeded({
                ScratchpadKey.TABULAR_GROUP: lower,
                ScratchpadKey.DOCUMENT_SOURCE: pad.retrieve(ScratchpadKey.DOCUMENT_SOURCE, ""),
                ScratchpadKey.PAGE_NUMBER: pad.retrieve(ScratchpadKey.PAGE_NUMBER, 0),
                ScratchpadKey.TABLE_INDEX: pad.retrieve(ScratchpadKey.TABLE_INDEX, 0),
                ScratchpadKey.SPLIT_ROW_INDEX: r,
                ScratchpadKey.IS_PARENT_TABLE: False,
                ScratchpadKey.PREV_TABLES_TO_DELETE: set(),
                ScratchpadKey.GRID_TYPE: pad.retrieve(ScratchpadKey.GRID_TYPE),
                ScratchpadKey.SPLIT_DEPTH: depth + 1,
            })
            results = list(self.run_child(child))
            if not child.retrieve_bool(ScratchpadKey.IS_SPLIT_PERMISSIBLE):
                continue
            confidence = split_confidence(products, float(child.retrieve(ScratchpadKey.HEADER_CONFIDENCE, 0.0)))
            upper.set_confidence(ConfidenceFeature.SPLIT_DOWN_CONFIDENCE, confidence)
            if results:
                results[0].set_confidence(ConfidenceFeature.SPLIT_UP_CONFIDENCE, confidence)
            child_deletions: Set[int] = set(child.require(ScratchpadKey.PREV_TABLES_TO_DELETE))
            # -1: header expansion in the lower part emptied the upper part.
            if -1 not in child_deletions:
                results.insert(0, upper)
            child_deletions.discard(-1)
            to_delete |= child_deletions
            pad.store(ScratchpadKey.PREV_TABLES_TO_DELETE, to_delete)
            return results
        return []
