"""Common base for the table refinement stages."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, ClassVar

from ...tabular import TabularElementGroup
from ..scratchpad import KeyContract, Scratchpad, ScratchpadKey

if TYPE_CHECKING:
    from ...config import LayoutConfig

log = logging.getLogger("docgrid.tables.stages")


class RefinementStage:
    """One step of the refinement pipeline.

    Subclasses declare their scratchpad ``contract`` and implement
    :meth:`execute`. :meth:`run` enforces the contract around it.
    """

    contract: ClassVar[KeyContract]

    def __init__(self, config: "LayoutConfig"):
        self.config = config

    @property
    def name(self) -> str:
        return type(self).__name__

    def run(self, pad: Scratchpad) -> None:
        with pad.contract(self.contract):
            self.execute(pad)

    def execute(self, pad: Scratchpad) -> None:
        raise NotImplementedError

    def log_entry(self, pad: Scratchpad, text: str, *args) -> None:
        """Debug log prefixed with the table being refined."""
        if not log.isEnabledFor(logging.DEBUG):
            return
        message = text % args if args else text
        table_no = pad.retrieve(ScratchpadKey.TABLE_INDEX, 0) + 1
        page_no = pad.retrieve(ScratchpadKey.PAGE_NUMBER, 0) + 1
        source = pad.retrieve(ScratchpadKey.DOCUMENT_SOURCE, "")
        if pad.retrieve_bool(ScratchpadKey.IS_PARENT_TABLE):
            log.debug("[%s: Table No. %d on Page. %d of document %s] %s",
                      self.name, table_no, page_no, source, message)
        else:
            split_row = pad.retrieve(ScratchpadKey.SPLIT_ROW_INDEX, 0) + 1
            log.debug("[%s: Table No. %d (split at row %d) on Page. %d of document %s] %s",
                      self.name, table_no, split_row, page_no, source, message)


def table_index_in_page(table: TabularElementGroup, element) -> int:
    """Position of *table* in the page list holding *element*, -1 when absent."""
    element_list = element.element_list
    if element_list is None:
        return -1
    for i, existing in enumerate(element_list.tabular_groups):
        if existing is table:
            return i
    return -1

