"""Table refinement: run every detected table of a page through the stages.

Each table gets a fresh :class:`Scratchpad` seeded with the table and
the facts describing where it sits. The stages run in a fixed order;
table splitting re-enters :meth:`TableRefinementPipeline.run_table` for
the lower part of a split. The tables left in ``END_RESULT`` replace the
original table in the page list, and earlier tables emptied by header
expansion are removed.
"""

from __future__ import annotations

import logging
import time
from typing import List, Optional, Sequence

from ..config import LayoutConfig
from ..layout import PositionalElementList
from ..tabular import DEFAULT_COLUMN_HEADER_COUNT, TabularElementGroup
from .scratchpad import Scratchpad, ScratchpadKey
from .stages import (
    ColumnHeaderExpansion,
    ColumnHeaderMerging,
    ColumnSplitting,
    HeaderConfidenceCalculation,
    InternalColumnMerging,
    InternalRowMerging,
    RefinementStage,
    TableSplitting,
    TotalRowDetection,
)

log = logging.getLogger(__name__)


class InvalidTableDeletionError(RuntimeError):
    """A stage asked to delete a table that is not before the current one."""


class TableRefinementPipeline:
    """The ordered refinement stages, shared by every table of a document."""

    def __init__(self, config: Optional[LayoutConfig] = None):
        self.config = config or LayoutConfig()
        self.stages: List[RefinementStage] = [
            ColumnHeaderMerging(self.config),
            ColumnHeaderExpansion(self.config),
            HeaderConfidenceCalculation(self.config),
            InternalRowMerging(self.config),
            TableSplitting(self.config, self.run_table),
            InternalColumnMerging(self.config),
            ColumnSplitting(self.config),
            TotalRowDetection(self.config),
        ]

    @property
    def stage_names(self) -> List[str]:
        return [stage.name for stage in self.stages]

    def run_table(self, pad: Scratchpad) -> List[TabularElementGroup]:
        """Run all stages on the table in *pad*; returns ``END_RESULT``."""
        for stage in self.stages:
            stage.run(pad)
        return list(pad.retrieve(ScratchpadKey.END_RESULT, []))

    def new_scratchpad(self, table: TabularElementGroup, page_number: int, table_index: int,
                       document_source: str) -> Scratchpad:
        return Scratchpad.seeded({
            ScratchpadKey.TABULAR_GROUP: table,
            ScratchpadKey.DOCUMENT_SOURCE: document_source,
            ScratchpadKey.PAGE_NUMBER: page_number,
            ScratchpadKey.TABLE_INDEX: table_index,
            ScratchpadKey.SPLIT_ROW_INDEX: 0,
            ScratchpadKey.IS_PARENT_TABLE: True,
            ScratchpadKey.PREV_TABLES_TO_DELETE: set(),
            ScratchpadKey.GRID_TYPE: self.config.grid_based_table_detection,
            ScratchpadKey.SPLIT_DEPTH: 0,
        })

    def refine_page(self, element_list: PositionalElementList, page_number: int = 0,
                    document_source: str = "") -> List[TabularElementGroup]:
        """Refine every table of *element_list* in place; returns the new table list."""
        tables = element_list.tabular_groups
        i = 0
        table_count = 0
        while i < len(tables):
            table = tables[i]
            table.column_header_count = DEFAULT_COLUMN_HEADER_COUNT
            table.set_back_references()
            pad = self.new_scratchpad(table, page_number, table_count, document_source)
            log.debug("[Table No. %d on Page. %d of document %s] Initiating enriched table detection.",
                      table_count + 1, page_number + 1, document_source)
            results = self.run_table(pad)
            i = self._delete_previous_tables(tables, pad.retrieve(ScratchpadKey.PREV_TABLES_TO_DELETE, set()), i)
            tables[i:i + 1] = results
            for result in results:
                result.set_back_references()
            i += len(results)
            table_count += 1
        return tables

    @staticmethod
    def _delete_previous_tables(tables: List[TabularElementGroup], indices: Sequence[int], current: int) -> int:
        # -1 refers to a table outside the page list.
        for index in sorted((i for i in indices if i >= 0), reverse=True):
            if index >= current:
                raise InvalidTableDeletionError(
                    f"Invalid deletion of table at index {index} while refining table at index {current}"
                )
            del tables[index]
            current -= 1
        return current


def refine_tables(pages: Sequence[PositionalElementList], config: Optional[LayoutConfig] = None,
                  document_source: str = "") -> None:
    """Refine the tables of every page of a document."""
    pipeline = TableRefinementPipeline(config)
    log.info("Enriching tables in document.")
    start = time.perf_counter()
    for page_number, element_list in enumerate(pages):
        pipeline.refine_page(element_list, page_number, document_source)
    log.info("Time taken to enrich tables: %.1f ms", (time.perf_counter() - start) * 1000.0)
