"""Layout configuration: the named options consumed by the layout engine.

:class:`LayoutConfig` collects every tunable that callers may override.
Fields are validated in ``__post_init__`` and an invalid value raises
:class:`ConfigValidationError` with a ``name=value`` message.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, FrozenSet, List, Optional, Pattern, Sequence

if TYPE_CHECKING:
    from .tabular import TabularElementGroup


class ConfigValidationError(ValueError):
    """Raised when a LayoutConfig field has an invalid value."""


def _check_range(
    name: str, value: float, lo: float, hi: float, *, inclusive: bool = True
) -> None:
    if inclusive:
        if not (lo <= value <= hi):
            raise ConfigValidationError(f"{name}={value} out of range [{lo}, {hi}]")
    else:
        if not (lo < value < hi):
            raise ConfigValidationError(f"{name}={value} out of range ({lo}, {hi})")


def _check_positive(name: str, value: float) -> None:
    if value <= 0:
        raise ConfigValidationError(f"{name}={value} must be > 0")


def _check_callable(name: str, value: Any) -> None:
    if not callable(value):
        raise ConfigValidationError(f"{name}={value!r} must be callable")


# ── Grid type ──────────────────────────────────────────────────────────


class GridType(str, Enum):
    """How much of a drawn grid a table is expected to carry.

    ``row_and_col``: horizontal and vertical lines both delimit cells.
    ``row_and_maybe_col``: horizontal lines delimit rows, vertical lines may be absent.
    ``none``: drawn lines are not of interest.
    """

    ROW_AND_COL = "row_and_col"
    ROW_AND_MAYBE_COL = "row_and_maybe_col"
    NONE = "none"

    @classmethod
    def from_value(cls, value: Any) -> "GridType":
        """Parse the external option value (``"true"`` / ``"true-strict"``)."""
        if isinstance(value, GridType):
            return value
        if value == "true":
            return cls.ROW_AND_MAYBE_COL
        if value == "true-strict":
            return cls.ROW_AND_COL
        try:
            return cls(value)
        except ValueError:
            return cls.NONE


# ── Default strategies ─────────────────────────────────────────────────


def _digit_and_non_digit_count(texts: Sequence[str]) -> tuple[int, int]:
    from .semantics import has_alphabets

    digits = sum(1 for s in texts if not has_alphabets(s))
    non_digits = sum(1 for s in texts if has_alphabets(s) and len(s) > 2)
    return digits, non_digits


def default_semantic_jump(previous: Sequence[str], current: Sequence[str]) -> float:
    """Score the lexical jump between two rows of cell texts.

    A jump is a simultaneous rise in wordy cells and drop in numeric
    cells; both must change by more than one cell to count.
    """
    prev_digits, prev_words = _digit_and_non_digit_count(previous)
    cur_digits, cur_words = _digit_and_non_digit_count(current)
    word_increase = max(cur_words - prev_words, 0)
    digit_decrease = max(prev_digits - cur_digits, 0)
    change = (
        min(word_increase, digit_decrease)
        if word_increase > 1 and digit_decrease > 1
        else 0
    )
    size = min(len(previous), len(current))
    if size == 0:
        return 0.0
    return change / size


def default_header_confidence_threshold(table: "TabularElementGroup") -> float:
    """Minimum header confidence for *table*.

    Half the score a fully populated plain header row of the same width
    would reach, i.e. ``0.05 * (1 + ln(columns))``.
    """
    columns = max(table.number_of_columns, 1)
    return 0.05 * (1 + math.log(columns))


# ── Config ─────────────────────────────────────────────────────────────


@dataclass
class LayoutConfig:
    """Tunables for positional grouping and table detection."""

    # Regexes (full match) for text that column growth steps over.
    tabular_noise_patterns: List[str] = field(default_factory=list)
    # Skip rectilinear polygons and tables entirely.
    disable_table_detection: bool = False
    # Skip header/footer partition exclusion.
    disable_header_footer_detection: bool = False
    # First line gap of a vertical group, in multiples of line height.
    max_distance_factor: float = 2.0
    # Allow vertical groups to continue across underline borders.
    detect_underline: bool = False
    # Grid detection mode; accepts GridType or "true" / "true-strict".
    grid_based_table_detection: Any = GridType.NONE
    # Footers are recognised by page numbers.
    is_page_numbered_doc: bool = False
    # Content partitions may span page breaks.
    allow_context_across_page_breaks: bool = True
    # callable(previous_texts, current_texts) -> float
    semantic_jump_calculator: Callable[[Sequence[str], Sequence[str]], float] = (
        default_semantic_jump
    )
    # callable(table) -> float
    header_confidence_threshold: Callable[["TabularElementGroup"], float] = (
        default_header_confidence_threshold
    )
    # Depth bound for recursive table splitting.
    max_split_depth: int = 32
    # Lowercased names treated as named entities; None means the bundled list.
    named_entities: Optional[FrozenSet[str]] = None

    def __post_init__(self) -> None:
        self.grid_based_table_detection = GridType.from_value(
            self.grid_based_table_detection
        )
        _check_positive("max_distance_factor", self.max_distance_factor)
        _check_range("max_split_depth", self.max_split_depth, 1, 10_000)
        _check_callable("semantic_jump_calculator", self.semantic_jump_calculator)
        _check_callable("header_confidence_threshold", self.header_confidence_threshold)
        for pattern in self.tabular_noise_patterns:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ConfigValidationError(
                    f"tabular_noise_patterns={pattern!r} is not a valid regex: {exc}"
                ) from exc
        if self.named_entities is not None:
            self.named_entities = frozenset(n.lower() for n in self.named_entities)

    # ── Derived ────────────────────────────────────────────────────────

    @property
    def compiled_noise_patterns(self) -> List[Pattern[str]]:
        """Noise patterns compiled for full matching."""
        return [re.compile(p) for p in self.tabular_noise_patterns]

    @property
    def grid_detection_enabled(self) -> bool:
        return self.grid_based_table_detection != GridType.NONE

    @property
    def use_grid_for_table_extent(self) -> bool:
        return self.grid_based_table_detection == GridType.ROW_AND_COL

    def to_dict(self) -> dict:
        """Summary of the scalar options, for logging."""
        return {
            "tabular_noise_patterns": list(self.tabular_noise_patterns),
            "disable_table_detection": self.disable_table_detection,
            "disable_header_footer_detection": self.disable_header_footer_detection,
            "max_distance_factor": self.max_distance_factor,
            "detect_underline": self.detect_underline,
            "grid_based_table_detection": self.grid_based_table_detection.value,
            "is_page_numbered_doc": self.is_page_numbered_doc,
            "allow_context_across_page_breaks": self.allow_context_across_page_breaks,
            "max_split_depth": self.max_split_depth,
        }
