"""Score the header rows and keep the processed table only if its header holds up."""

from __future__ import annotations

import math
from typing import Callable, Sequence

from ...models import Element, TextStyle
from ...semantics import RegexType
from ...tabular import ConfidenceFeature, TabularElementGroup
from ..scratchpad import KeyContract, Scratchpad, ScratchpadKey
from .base import RefinementStage

NUMERIC_CELLS_THRESHOLD = 0.15


def has_highlighted_elements(elements: Sequence[Element]) -> bool:
    for element in elements:
        styles = getattr(element, "styles", frozenset())
        if TextStyle.BOLD in styles or TextStyle.ITALIC in styles:
            return True
    return False


def has_colored_elements(elements: Sequence[Element]) -> bool:
    return any(getattr(e, "color", None) is not None for e in elements)


def compute_header_confidence(table: TabularElementGroup,
                              threshold: Callable[[TabularElementGroup], float]) -> float:
    """Mean confidence of the header rows that clear *threshold*.

    Rows scoring at or below the threshold cut the header short at that
    row. A row is scored on the balance of highlighted and coloured
    cells, its fill ratio and its share of numeric cells.
    """
    total = 0.0
    i = 0
    while i < table.column_header_count:
        numeric = highlighted = colored = non_null = 0
        for c in range(table.number_of_columns):
            elements = table.merged_cell(i, c).elements
            content = " ".join(e.text for e in elements if e is not None)
            if not content:
                continue
            non_null += 1
            if RegexType.of(content) is RegexType.NUMERIC:
                numeric += 1
            if has_highlighted_elements(elements):
                highlighted += 1
            if has_colored_elements(elements):
                colored += 1
        if non_null == 0:
            row_confidence = 0.0
        else:
            numeric_ratio = numeric / non_null
            if numeric_ratio > NUMERIC_CELLS_THRESHOLD:
                row_confidence = 0.0
            else:
                highlighted_ratio = highlighted / non_null
                colored_ratio = colored / non_null
                row_confidence = (
                    4 * abs(highlighted_ratio - 0.5) * abs(colored_ratio - 0.5)
                    * (highlighted_ratio + 0.1)
                    * (non_null / table.number_of_columns)
                    * (1 + math.log(non_null))
                    * (1.0 - numeric_ratio)
                )
        if row_confidence <= threshold(table):
            table.column_header_count = i
        else:
            total += row_confidence
        i += 1
    return total / table.column_header_count if table.column_header_count > 0 else 0.0


class HeaderConfidenceCalculation(RefinementStage):
    """Chooses between the original and the header-processed table."""

    contract = KeyContract(
        name="HeaderConfidenceCalculation",
        required=frozenset({ScratchpadKey.TABULAR_GROUP, ScratchpadKey.PROCESSED_TABULAR_GROUP}),
        stored=frozenset({ScratchpadKey.TABULAR_GROUP, ScratchpadKey.HEADER_CONFIDENCE}),
    )

    def execute(self, pad: Scratchpad) -> None:
        table = pad.require(ScratchpadKey.TABULAR_GROUP)
        processed = pad.require(ScratchpadKey.PROCESSED_TABULAR_GROUP)
        threshold = self.config.header_confidence_threshold
        original_confidence = compute_header_confidence(table, threshold)
        processed_confidence = compute_header_confidence(processed, threshold)
        final = self.final_table(pad, table, processed, original_confidence, processed_confidence)
        final.set_back_references()
        pad.store(ScratchpadKey.TABULAR_GROUP, final)
        pad.store(ScratchpadKey.HEADER_CONFIDENCE, final.confidence(ConfidenceFeature.HEADER_CONFIDENCE))

    def final_table(self, pad: Scratchpad, table: TabularElementGroup, processed: TabularElementGroup,
                    original_confidence: float, processed_confidence: float) -> TabularElementGroup:
        if processed_confidence <= self.config.header_confidence_threshold(processed):
            self.log_entry(pad, "Processed table header confidence below threshold. "
                                "Reverting and taking the original table instead.")
            # Any caption already set on the original table is kept.
            table.set_confidence(ConfidenceFeature.HEADER_CONFIDENCE, original_confidence)
            return table
        self.log_entry(pad, "Processed table header confidence above threshold. "
                            "Continuing with the processed table itself.")
        processed.set_confidence(ConfidenceFeature.HEADER_CONFIDENCE, processed_confidence)
        return processed
