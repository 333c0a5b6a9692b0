"""Tests for the individual table refinement stages."""

import math

import pytest
from conftest import make_page, make_table, make_text

from docgrid.config import LayoutConfig, default_header_confidence_threshold
from docgrid.models import BoundingRect, ElementGroup
from docgrid.tables.scratchpad import Scratchpad, ScratchpadKey
from docgrid.tables.stages import (
    ColumnHeaderExpansion,
    ColumnHeaderMerging,
    ColumnSplitting,
    HeaderConfidenceCalculation,
    InternalColumnMerging,
    InternalRowMerging,
    TableSplitting,
    TotalRowDetection,
)
from docgrid.tables.stages.column_merge import is_column_mergeable
from docgrid.tables.stages.header_confidence import compute_header_confidence
from docgrid.tables.stages.header_merge import contains_numeric_cell
from docgrid.tables.stages.row_merge import DASH_WRAPPED_TEXT_PATTERN
from docgrid.tables.stages.table_split import (
    derivative_products,
    remove_empty_columns,
    split_confidence,
    split_table,
    table_breaking_votes,
)
from docgrid.tables.stages.total_row import remove_large_continuous_row_groups
from docgrid.tabular import ConfidenceFeature, TabularElementGroup, VectorTag


def _texts(cell):
    return [e.text for e in cell.elements]


def _share_vertical_group(*elements):
    group = ElementGroup(list(elements))
    for element in elements:
        element.context.vertical_group = group


# ── Header merging ─────────────────────────────────────────────────────


class TestColumnHeaderMerging:
    def test_single_plain_header_is_kept(self):
        table = make_table([["Item", "Amount"], ["Rent", "100"], ["Food", "50"]])
        stage = ColumnHeaderMerging(LayoutConfig())
        assert stage.vote_header_rows(table) == -1
        assert stage.merge_column_headers(Scratchpad(), table) is table

    def test_two_bold_rows_merge(self):
        table = make_table(
            [["Item", "Amount"], ["name", "(USD)"], ["Rent", "100"], ["Food", "50"]],
            bold_rows=(0, 1),
        )
        for col in range(2):
            _share_vertical_group(table.cell(0, col).first, table.cell(1, col).first)
        stage = ColumnHeaderMerging(LayoutConfig())
        assert stage.vote_header_rows(table) == 1

        pad = Scratchpad.seeded({ScratchpadKey.TABULAR_GROUP: table})
        stage.run(pad)
        merged = pad.retrieve(ScratchpadKey.PROCESSED_TABULAR_GROUP)
        assert merged.number_of_rows == 3
        assert _texts(merged.cell(0, 0)) == ["Item", "name"]
        assert _texts(merged.cell(0, 1)) == ["Amount", "(USD)"]
        merged.verify_back_references()

    def test_numbers_are_not_merged(self):
        table = make_table([["10", "20"], ["100", "200"], ["3", "4"]])
        assert ColumnHeaderMerging.are_numbers_being_merged(table, 1)
        assert not ColumnHeaderMerging.are_numbers_being_merged(table, 0)

    def test_contains_numeric_cell(self):
        table = make_table([["Rent", "100"], ["Food", None]])
        assert contains_numeric_cell(table.cells[0])
        assert not contains_numeric_cell(table.cells[1])


# ── Header expansion ───────────────────────────────────────────────────


class TestColumnHeaderExpansion:
    def test_header_grows_over_sparse_leading_rows(self):
        table = make_table([["Title", None, None, None], ["a", "b", "c", "d"], ["1", "2", "3", "4"]])
        ColumnHeaderExpansion.expand_column_header_down(table)
        assert table.column_header_count == 2

    def test_full_first_row_keeps_header(self):
        table = make_table([["Item", "Amount"], ["Rent", "100"]])
        ColumnHeaderExpansion.expand_column_header_down(table)
        assert table.column_header_count == 1

    def test_caption_outside_drawn_box(self):
        title = make_text(50, 80, "Schedule of fees:")
        table = make_table(
            [["Item", "Amount"], ["Rent", "100"], ["Food", "50"]],
            extra=[title],
        )
        box = BoundingRect(45, 95, 160, 50)
        for element in table.elements():
            element.context.bounding_rect = box
        pad = Scratchpad.seeded({
            ScratchpadKey.PROCESSED_TABULAR_GROUP: table,
            ScratchpadKey.PREV_TABLES_TO_DELETE: set(),
        })
        ColumnHeaderExpansion(LayoutConfig()).run(pad)
        result = pad.retrieve(ScratchpadKey.PROCESSED_TABULAR_GROUP)
        assert result is table
        assert result.caption.text == "Schedule of fees:"
        assert result.number_of_rows == 3

    def test_nothing_above(self):
        table = make_table([["Item", "Amount"], ["Rent", "100"]])
        pad = Scratchpad.seeded({
            ScratchpadKey.PROCESSED_TABULAR_GROUP: table,
            ScratchpadKey.PREV_TABLES_TO_DELETE: set(),
        })
        ColumnHeaderExpansion(LayoutConfig()).run(pad)
        assert pad.retrieve(ScratchpadKey.PROCESSED_TABULAR_GROUP) is table
        assert table.caption is None


# ── Header confidence ──────────────────────────────────────────────────


class TestHeaderConfidence:
    def test_bold_header(self):
        table = make_table([["Item", "Amount"], ["Rent", "100"]], bold_rows=(0,))
        confidence = compute_header_confidence(table, default_header_confidence_threshold)
        assert confidence == pytest.approx(1.1 * (1 + math.log(2)))
        assert table.column_header_count == 1

    def test_plain_header(self):
        table = make_table([["Item", "Amount"], ["Rent", "100"]])
        confidence = compute_header_confidence(table, default_header_confidence_threshold)
        assert confidence == pytest.approx(0.1 * (1 + math.log(2)))

    def test_numeric_header_is_cut(self):
        table = make_table([["10", "20"], ["Rent", "100"]])
        assert compute_header_confidence(table, default_header_confidence_threshold) == 0.0
        assert table.column_header_count == 0

    def test_threshold(self):
        assert default_header_confidence_threshold(TabularElementGroup(1, 1)) == pytest.approx(0.05)
        assert default_header_confidence_threshold(TabularElementGroup(1, 3)) == pytest.approx(
            0.05 * (1 + math.log(3))
        )

    def test_weak_processed_header_reverts(self):
        original = make_table([["Item", "Amount"], ["Rent", "100"]])
        processed = make_table([["10", "20"], ["Rent", "100"]])
        original.caption = ElementGroup([make_text(0, 0, "Caption")])
        stage = HeaderConfidenceCalculation(LayoutConfig())
        final = stage.final_table(Scratchpad(), original, processed, 0.5, 0.0)
        assert final is original
        assert final.confidence(ConfidenceFeature.HEADER_CONFIDENCE) == 0.5
        assert final.caption is not None

    def test_strong_processed_header_wins(self):
        original = make_table([["Item", "Amount"], ["Rent", "100"]])
        processed = make_table([["Item", "Amount"], ["Rent", "100"]], bold_rows=(0,))
        pad = Scratchpad.seeded({
            ScratchpadKey.TABULAR_GROUP: original,
            ScratchpadKey.PROCESSED_TABULAR_GROUP: processed,
        })
        HeaderConfidenceCalculation(LayoutConfig()).run(pad)
        assert pad.retrieve(ScratchpadKey.TABULAR_GROUP) is processed
        assert pad.retrieve(ScratchpadKey.HEADER_CONFIDENCE) == pytest.approx(1.1 * (1 + math.log(2)))


# ── Row merging ────────────────────────────────────────────────────────


class TestInternalRowMerging:
    def test_wrapped_description_is_merged(self):
        table = make_table([
            ["Description", "Amount"],
            ["Office rent for", "1,200"],
            ["the first quarter", None],
            ["Food", "50"],
        ])
        table.set_confidence(ConfidenceFeature.HEADER_CONFIDENCE, 0.3)
        pad = Scratchpad.seeded({ScratchpadKey.TABULAR_GROUP: table})
        InternalRowMerging(LayoutConfig()).run(pad)
        merged = pad.retrieve(ScratchpadKey.TABULAR_GROUP)
        assert merged.number_of_rows == 3
        assert _texts(merged.cell(1, 0)) == ["Office rent for", "the first quarter"]
        assert _texts(merged.cell(2, 0)) == ["Food"]
        assert merged.column_header_count == 1
        assert merged.confidence(ConfidenceFeature.HEADER_CONFIDENCE) == 0.3
        merged.verify_back_references()

    def test_numbers_are_never_joined(self):
        table = make_table([["Item", "Amount"], ["Rent", "100"], ["Food", "50"]])
        pad = Scratchpad.seeded({ScratchpadKey.TABULAR_GROUP: table})
        InternalRowMerging(LayoutConfig()).run(pad)
        assert pad.retrieve(ScratchpadKey.TABULAR_GROUP).number_of_rows == 3

    def test_key_value_pairs(self):
        pairs = make_table([["Name:", "Alice"], ["Address:", "1 Main St"], [None, "Springfield"]])
        assert InternalRowMerging.rows_form_key_value_pairs(pairs)
        assert not InternalRowMerging.rows_form_key_value_pairs(make_table([["Name", "Alice"]]))
        assert not InternalRowMerging.rows_form_key_value_pairs(make_table([["a:", "b", "c"]]))

    def test_fully_populated(self):
        assert InternalRowMerging.rows_fully_populated(
            make_table([["Item", "Amount"], ["Rent", "100"], ["Note", None]])
        )
        assert not InternalRowMerging.rows_fully_populated(
            make_table([["Item", "Amount", "Tax"], ["Rent", None, "5"]])
        )

    @pytest.mark.parametrize("text, wrapped", [("long-", True), ("-", False), ("word", False)])
    def test_dash_wrapped_text(self, text, wrapped):
        assert (DASH_WRAPPED_TEXT_PATTERN.fullmatch(text) is not None) is wrapped


# ── Table splitting ────────────────────────────────────────────────────


def _two_tables():
    return make_table(
        [["Item", "Amount"], ["Rent", "100"], ["Food", "50"],
         ["Region", "Sales"], ["North", "10"], ["South", "20"]],
        bold_rows=(0, 3),
    )


class _ChildRun:
    """Stands in for the pipeline when a lower part is refined again."""

    def __init__(self, permissible=True, header_confidence=0.9, deletions=()):
        self.permissible = permissible
        self.header_confidence = header_confidence
        self.deletions = set(deletions)
        self.pads = []

    def __call__(self, pad):
        self.pads.append(pad)
        pad.store(ScratchpadKey.IS_SPLIT_PERMISSIBLE, self.permissible)
        pad.store(ScratchpadKey.HEADER_CONFIDENCE, self.header_confidence)
        pad.store(ScratchpadKey.PREV_TABLES_TO_DELETE, set(self.deletions))
        return [pad.retrieve(ScratchpadKey.TABULAR_GROUP)]


def _split_pad(table, extra=None):
    values = {
        ScratchpadKey.TABULAR_GROUP: table,
        ScratchpadKey.HEADER_CONFIDENCE: 0.5,
        ScratchpadKey.PREV_TABLES_TO_DELETE: set(),
        ScratchpadKey.IS_PARENT_TABLE: True,
    }
    values.update(extra or {})
    return Scratchpad.seeded(values)


class TestTableSplitting:
    def test_votes_mark_the_second_header(self):
        votes = table_breaking_votes(_two_tables())
        assert votes["text_style"][3] == 2
        assert votes["bold"][3] == 2
        assert votes["regex"][3] == 1
        assert votes["non_null"] == [2] * 6
        assert derivative_products(votes, 3, 2) == pytest.approx([0.5, 0.0, 0.0, 0.0])
        assert derivative_products(votes, 2, 2) == [0.0, 0.0, 0.0, 0.0]

    def test_split_confidence(self):
        assert split_confidence([0.5, 0.0, 0.0, 0.0], 0.4) == pytest.approx(0.5 * 0.1 / 0.2135 + 0.2)
        assert split_confidence([0.0, 0.9, 0.0, 0.0], 0.4) == pytest.approx(0.2)
        assert split_confidence([0.0, 0.0, 0.0, 0.0], 0.0) == 0.0

    def test_split_table(self):
        upper, lower = split_table(_two_tables(), 2)
        assert upper.number_of_rows == 3
        assert lower.number_of_rows == 3
        assert upper.column_header_count == 1
        assert lower.first.text == "Region"
        lower.verify_back_references()

    def test_remove_empty_columns(self):
        table = make_table([["A", None, "C"], ["1", None, "3"]])
        assert remove_empty_columns(table).number_of_columns == 2
        assert remove_empty_columns(TabularElementGroup(0, 0)).cells == []

    def test_split_at_second_header(self):
        child = _ChildRun()
        pad = _split_pad(_two_tables())
        TableSplitting(LayoutConfig(), child).run(pad)
        upper, lower = pad.retrieve(ScratchpadKey.SPLIT_TABULAR_GROUPS)
        assert pad.retrieve(ScratchpadKey.IS_SPLIT_PERMISSIBLE)
        assert _texts(upper.cell(0, 0)) == ["Item"]
        assert _texts(lower.cell(0, 0)) == ["Region"]
        expected = 0.5 * (0.1 / 0.2135) + 0.5 * 0.9
        assert upper.confidence(ConfidenceFeature.SPLIT_DOWN_CONFIDENCE) == pytest.approx(expected)
        assert lower.confidence(ConfidenceFeature.SPLIT_UP_CONFIDENCE) == pytest.approx(expected)

        (child_pad,) = child.pads
        assert child_pad.retrieve(ScratchpadKey.SPLIT_ROW_INDEX) == 3
        assert child_pad.retrieve(ScratchpadKey.SPLIT_DEPTH) == 1
        assert not child_pad.retrieve_bool(ScratchpadKey.IS_PARENT_TABLE)

    def test_upper_part_taken_by_lower_header(self):
        pad = _split_pad(_two_tables())
        TableSplitting(LayoutConfig(), _ChildRun(deletions={-1, 0})).run(pad)
        (lower,) = pad.retrieve(ScratchpadKey.SPLIT_TABULAR_GROUPS)
        assert lower.first.text == "Region"
        assert pad.retrieve(ScratchpadKey.PREV_TABLES_TO_DELETE) == {0}

    def test_non_permissible_lower_part_is_not_split(self):
        table = _two_tables()
        pad = _split_pad(table)
        TableSplitting(LayoutConfig(), _ChildRun(permissible=False)).run(pad)
        assert pad.retrieve(ScratchpadKey.SPLIT_TABULAR_GROUPS) == [table]

    def test_weak_child_header_is_not_permissible(self):
        table = _two_tables()
        child = _ChildRun()
        pad = _split_pad(table, {ScratchpadKey.IS_PARENT_TABLE: False})
        TableSplitting(LayoutConfig(), child).run(pad)
        assert not pad.retrieve_bool(ScratchpadKey.IS_SPLIT_PERMISSIBLE)
        assert pad.retrieve(ScratchpadKey.SPLIT_TABULAR_GROUPS) == [table]
        assert child.pads == []

    def test_depth_limit(self):
        table = _two_tables()
        child = _ChildRun()
        pad = _split_pad(table, {ScratchpadKey.SPLIT_DEPTH: 1})
        TableSplitting(LayoutConfig(max_split_depth=1), child).run(pad)
        assert pad.retrieve(ScratchpadKey.SPLIT_TABULAR_GROUPS) == [table]
        assert child.pads == []


# ── Column merging and splitting ───────────────────────────────────────


class TestInternalColumnMerging:
    def _currency_table(self):
        return make_table([["Item", "Amount", None], ["Rent", "$", "5"], ["Food", "$", "7"]])

    def test_is_column_mergeable(self):
        table = self._currency_table()
        assert not is_column_mergeable(table, 0)
        assert is_column_mergeable(table, 1)
        assert not is_column_mergeable(table, 2)

    def test_narrow_column_is_folded_left(self):
        table = self._currency_table()
        pad = Scratchpad.seeded({
            ScratchpadKey.SPLIT_TABULAR_GROUPS: [table],
            ScratchpadKey.IS_PARENT_TABLE: True,
        })
        InternalColumnMerging(LayoutConfig()).run(pad)
        assert table.number_of_columns == 2
        assert _texts(table.cell(1, 1)) == ["$", "5"]
        assert table.cell(2, 1).last.context.tabular_column == 1

    def test_split_parts_are_left_alone(self):
        table = self._currency_table()
        pad = Scratchpad.seeded({ScratchpadKey.SPLIT_TABULAR_GROUPS: [table]})
        InternalColumnMerging(LayoutConfig()).run(pad)
        assert table.number_of_columns == 3


class TestColumnSplitting:
    def _run(self, table):
        pad = Scratchpad.seeded({
            ScratchpadKey.SPLIT_TABULAR_GROUPS: [table],
            ScratchpadKey.IS_PARENT_TABLE: True,
        })
        ColumnSplitting(LayoutConfig()).run(pad)
        return pad

    def test_header_moves_into_empty_neighbour(self):
        qty, price = make_text(50, 100, "Qty"), make_text(90, 100, "Price")
        one, cost = make_text(50, 114, "1"), make_text(130, 114, "2.50")
        make_page([qty, price, one, cost])
        price.context.shadow_left = qty
        table = TabularElementGroup(2, 2, 1)
        for row, col, element in [(0, 0, qty), (0, 0, price), (1, 0, one), (1, 1, cost)]:
            table.add_element(row, col, element)
        table.set_back_references()

        pad = self._run(table)
        assert pad.retrieve(ScratchpadKey.END_RESULT) == [table]
        assert _texts(table.cell(0, 0)) == ["Qty"]
        assert _texts(table.cell(0, 1)) == ["Price"]
        assert price.context.tabular_column == 1

    def test_content_follows_the_new_header(self):
        qty, price, total = make_text(50, 100, "Qty"), make_text(100, 100, "Price"), make_text(200, 100, "Total")
        one, each, sum_ = make_text(52, 114, "1"), make_text(102, 114, "2.50"), make_text(200, 114, "2.50")
        make_page([qty, price, total, one, each, sum_])
        price.context.shadow_left = qty
        table = TabularElementGroup(2, 2, 1)
        for row, col, element in [(0, 0, qty), (0, 0, price), (0, 1, total),
                                  (1, 0, one), (1, 0, each), (1, 1, sum_)]:
            table.add_element(row, col, element)
        table.set_back_references()

        self._run(table)
        assert table.number_of_columns == 3
        assert [_texts(c) for c in table.cells[0]] == [["Qty"], ["Price"], ["Total"]]
        assert [_texts(c) for c in table.cells[1]] == [["1"], ["2.50"], ["2.50"]]
        table.verify_back_references()

    def test_connected_header_is_kept(self):
        label, value = make_text(50, 100, "Rate:"), make_text(90, 100, "Fixed")
        make_page([label, value])
        value.context.shadow_left = label
        table = TabularElementGroup(1, 2, 1)
        table.add_element(0, 0, label)
        table.add_element(0, 0, value)
        table.set_back_references()
        self._run(table)
        assert _texts(table.cell(0, 0)) == ["Rate:", "Fixed"]


# ── Total rows ─────────────────────────────────────────────────────────


class TestTotalRowDetection:
    def _run(self, table):
        pad = Scratchpad.seeded({ScratchpadKey.END_RESULT: [table]})
        TotalRowDetection(LayoutConfig()).run(pad)
        return table.vector_indices_for_tag(VectorTag.TOTAL_ROW)

    def test_labelled_total(self):
        table = make_table([["Item", "Amount"], ["Rent", "100"], ["Food", "50"], ["Total", "150"]])
        table.cell(3, 0).first.context.shadow_right = table.cell(3, 1).first
        assert self._run(table) == {3}

    def test_label_needs_an_amount_beside_it(self):
        table = make_table([["Item", "Amount"], ["Rent", "100"], ["Food", "50"], ["Total", "150"]])
        assert self._run(table) == set()

    def test_styled_row(self):
        table = make_table(
            [["Item", "Amount"], ["Rent", "100"], ["Food", "50"], ["Sum", "150"]],
            bold_rows=(3,),
        )
        assert self._run(table) == {3}

    def test_header_only_table(self):
        assert self._run(make_table([["Item", "Amount"]])) == set()

    def test_long_runs_are_dropped(self):
        assert remove_large_continuous_row_groups([1, 2, 3, 4, 7]) == [7]
        assert remove_large_continuous_row_groups([1, 2, 3, 5]) == [1, 2, 3, 5]
        assert remove_large_continuous_row_groups([]) == []

    def _monthly(self):
        return make_table([
            ["Item", "Jan", "Feb"],
            ["Rent", "$ 2", "$ 4"],
            ["Food", "$ 1", "$ 3"],
            ["Gas", "$ 3", "$ 4"],
            [None, "$ 6", "$ 11"],
        ])

    @staticmethod
    def _rule_above(table, row):
        for col in (1, 2):
            element = table.cell(row, col).first
            element.context.is_visual_top_border = True
            element.context.shadow_above = table.cell(row - 1, col).first

    def test_ruled_off_total(self):
        table = self._monthly()
        self._rule_above(table, 4)
        assert self._run(table) == {4}

    def test_long_ruled_run_is_no_total(self):
        table = make_table([
            ["Item", "Jan", "Feb"],
            ["Rent", "$ 2", "$ 4"],
            ["Food", "$ 1", "$ 3"],
            ["Gas", "$ 3", "$ 4"],
            ["Fuel", "$ 2", "$ 2"],
            [None, "$ 8", "$ 13"],
        ])
        for row in (2, 3, 4, 5):
            self._rule_above(table, row)
        assert self._run(table) == set()
