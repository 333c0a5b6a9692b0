"""Tests for the table refinement driver."""

import math

import pytest
from conftest import make_table

from docgrid.config import GridType, LayoutConfig
from docgrid.tables.refinement import (
    InvalidTableDeletionError,
    TableRefinementPipeline,
    refine_tables,
)
from docgrid.tables.scratchpad import ScratchpadKey
from docgrid.tabular import ConfidenceFeature, TabularElementGroup, VectorTag


def _registered(rows):
    table = make_table(rows)
    table.element_list.add_tabular_group(table)
    return table


def _expenses():
    table = _registered([["Item", "Amount"], ["Rent", "100"], ["Food", "50"], ["Total", "150"]])
    table.cell(3, 0).first.context.shadow_right = table.cell(3, 1).first
    return table


class TestPipeline:
    def test_stage_order(self):
        assert TableRefinementPipeline().stage_names == [
            "ColumnHeaderMerging",
            "ColumnHeaderExpansion",
            "HeaderConfidenceCalculation",
            "InternalRowMerging",
            "TableSplitting",
            "InternalColumnMerging",
            "ColumnSplitting",
            "TotalRowDetection",
        ]

    def test_new_scratchpad(self):
        pipeline = TableRefinementPipeline(LayoutConfig(grid_based_table_detection="row_and_col"))
        table = TabularElementGroup(1, 1)
        pad = pipeline.new_scratchpad(table, 2, 1, "report.pdf")
        assert pad.retrieve(ScratchpadKey.TABULAR_GROUP) is table
        assert pad.retrieve(ScratchpadKey.PAGE_NUMBER) == 2
        assert pad.retrieve(ScratchpadKey.TABLE_INDEX) == 1
        assert pad.retrieve_bool(ScratchpadKey.IS_PARENT_TABLE)
        assert pad.retrieve(ScratchpadKey.PREV_TABLES_TO_DELETE) == set()
        assert pad.retrieve(ScratchpadKey.GRID_TYPE) is GridType.ROW_AND_COL
        assert pad.retrieve(ScratchpadKey.SPLIT_DEPTH) == 0


class TestDeletePreviousTables:
    def test_negative_indices_are_ignored(self):
        tables = [TabularElementGroup(1, 1) for _ in range(3)]
        t0, t1, t2 = tables
        current = TableRefinementPipeline._delete_previous_tables(tables, {0, -1}, 2)
        assert current == 1
        assert tables == [t1, t2]

    def test_deletes_from_the_back(self):
        tables = [TabularElementGroup(1, 1) for _ in range(4)]
        t3 = tables[3]
        current = TableRefinementPipeline._delete_previous_tables(tables, [0, 1, 2], 3)
        assert current == 0
        assert tables == [t3]

    def test_current_or_later_table_is_invalid(self):
        tables = [TabularElementGroup(1, 1) for _ in range(2)]
        with pytest.raises(InvalidTableDeletionError, match="index 1"):
            TableRefinementPipeline._delete_previous_tables(tables, {1}, 1)


class TestRefinePage:
    def test_simple_table_survives(self):
        table = _registered([["Item", "Amount"], ["Rent", "100"], ["Food", "50"]])
        (result,) = TableRefinementPipeline().refine_page(table.element_list)
        assert result.number_of_rows == 3
        assert result.number_of_columns == 2
        assert result.column_header_count == 1
        assert result.confidence(ConfidenceFeature.HEADER_CONFIDENCE) == pytest.approx(
            0.1 * (1 + math.log(2))
        )
        assert result.vector_indices_for_tag(VectorTag.TOTAL_ROW) == set()
        result.verify_back_references()

    def test_total_row_is_tagged(self):
        table = _expenses()
        (result,) = TableRefinementPipeline().refine_page(table.element_list, document_source="expenses")
        assert result.number_of_rows == 4
        assert result.vector_indices_for_tag(VectorTag.TOTAL_ROW) == {3}

    def test_page_list_is_updated(self):
        table = _expenses()
        element_list = table.element_list
        refine_tables([element_list])
        assert len(element_list.tabular_groups) == 1
        assert element_list.tabular_groups[0].first.text == "Item"

    def test_page_without_tables(self):
        table = make_table([["a"]])
        assert TableRefinementPipeline().refine_page(table.element_list) == []
