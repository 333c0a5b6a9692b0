"""Line helpers shared by the rectangle finder and the polygon builder."""

from __future__ import annotations

import functools
from enum import Enum
from typing import Any, Callable, Dict, Generic, Iterable, Iterator, List, Optional, TypeVar

from ..models import BoundingRect, Element, HorizontalLine, VerticalLine

SEPARATION_EPSILON = 1.0
CONTEXT_LIMIT = 1000.0

L = TypeVar("L", bound=Element)


def vertical_line(top: float, left: float, stretch: float) -> VerticalLine:
    return VerticalLine(top=top, left=left, stretch=stretch)


def horizontal_line(top: float, left: float, stretch: float) -> HorizontalLine:
    return HorizontalLine(top=top, left=left, stretch=stretch)


def vertical_line_key(line: Element) -> tuple:
    """Order vertical lines by x, then by top."""
    return (line.left, line.top)


def horizontal_line_key(line: Element) -> tuple:
    """Order horizontal lines by y, then by left."""
    return (line.top, line.left)


def line_top(line: Element) -> float:
    return line.top


def is_valid_rectangle(rect: BoundingRect) -> bool:
    """Both sides longer than one unit."""
    return rect.width > SEPARATION_EPSILON and rect.height > SEPARATION_EPSILON


class SortedLines(Generic[L]):
    """Lines kept sorted on *key*; lines with an equal key collapse into one."""

    def __init__(self, key: Callable[[L], Any], lines: Iterable[L] = ()):
        self.key = key
        self._lines: Dict[Any, L] = {}
        for line in lines:
            self.add(line)

    def add(self, line: L) -> None:
        """Insert unless a line with the same key is present."""
        self._lines.setdefault(self.key(line), line)

    def put(self, line: L) -> None:
        """Insert, replacing a line with the same key."""
        self._lines[self.key(line)] = line

    def discard_key(self, key: Any) -> None:
        self._lines.pop(key, None)

    def discard_all(self, lines: Iterable[L]) -> None:
        for line in lines:
            self._lines.pop(self.key(line), None)

    def __len__(self) -> int:
        return len(self._lines)

    def __bool__(self) -> bool:
        return bool(self._lines)

    def __iter__(self) -> Iterator[L]:
        return iter(self.to_list())

    def to_list(self) -> List[L]:
        return [self._lines[k] for k in sorted(self._lines)]

    @property
    def first(self) -> Optional[L]:
        return self._lines[min(self._lines)] if self._lines else None

    @property
    def last(self) -> Optional[L]:
        return self._lines[max(self._lines)] if self._lines else None

    def sub_set(self, lo: Any, hi: Any) -> List[L]:
        """Lines with ``lo <= key < hi``."""
        return [self._lines[k] for k in sorted(self._lines) if lo <= k < hi]

    def copy(self) -> "SortedLines[L]":
        clone: SortedLines[L] = SortedLines(self.key)
        clone._lines = dict(self._lines)
        return clone


# ---------------------------------------------------------------------------
# Sweep events
# ---------------------------------------------------------------------------


class AbscissaType(Enum):
    """Sweep event kinds, in tie-break priority order."""

    HORIZONTAL_LINE_LEFT = 0
    VERTICAL_LINE = 1
    HORIZONTAL_LINE_RIGHT = 2

    @property
    def priority(self) -> int:
        return self.value

    def abscissa(self, element: Element) -> float:
        if self is AbscissaType.VERTICAL_LINE:
            if not isinstance(element, VerticalLine):
                raise ValueError("Element must be a VerticalLine")
            return element.left
        if not isinstance(element, HorizontalLine):
            raise ValueError("Element must be a HorizontalLine")
        if self is AbscissaType.HORIZONTAL_LINE_LEFT:
            return element.left
        return element.horizontal_end


class LineAbscissa:
    """One sweep event: an x position produced by a line end or a vertical line."""

    __slots__ = ("abscissa_type", "element")

    def __init__(self, abscissa_type: AbscissaType, element: Element):
        self.abscissa_type = abscissa_type
        self.element = element

    @property
    def value(self) -> float:
        return self.abscissa_type.abscissa(self.element)

    def __repr__(self) -> str:
        return f"LineAbscissa({self.abscissa_type.name}, {self.value:.2f})"


def _compare_abscissas(a: LineAbscissa, b: LineAbscissa) -> int:
    # Positions within SEPARATION_EPSILON are ordered by event priority so a
    # horizontal line touching a vertical one is open when the vertical is seen.
    va, vb = a.value, b.value
    if abs(va - vb) > SEPARATION_EPSILON or a.abscissa_type is b.abscissa_type:
        return (va > vb) - (va < vb)
    return a.abscissa_type.priority - b.abscissa_type.priority


abscissa_sort_key = functools.cmp_to_key(_compare_abscissas)
