"""Range and order queries over positioned elements.

Each :class:`SpatialIndex` keeps one sorted key list per derived
coordinate (:class:`Attr`). Conditions (:class:`Between`,
:class:`GreaterThan`, :class:`LessThan`, :class:`And`, :class:`Or`)
narrow the candidate set through those sorted lists and are then
checked element by element, so every condition is exact even when an
attribute is not indexed.

Usage::

    index = SpatialIndex.boxed()
    index.add_all(elements)
    above = index.retrieve(
        between_exclusive(Attr.BOTTOM, top - 1000, top - 1),
        order_by=[(Attr.BOTTOM, DESC)],
    )
"""

from __future__ import annotations

import bisect
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .models import Element

ASC = False
DESC = True


class Attr(str, Enum):
    """Derived coordinates an element can be queried on."""

    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"
    HORIZONTAL_CENTRE = "horizontal_centre"
    VERTICAL_CENTRE = "vertical_centre"
    VERTICAL_END = "vertical_end"
    HORIZONTAL_END = "horizontal_end"


def _stretch(e: Element) -> Optional[float]:
    return getattr(e, "stretch", None)


def _plus(a: Optional[float], b: Optional[float]) -> Optional[float]:
    if a is None or b is None:
        return None
    return a + b


_GETTERS: Dict[Attr, Callable[[Element], Optional[float]]] = {
    Attr.TOP: lambda e: e.top,
    Attr.BOTTOM: lambda e: _plus(e.top, e.height),
    Attr.LEFT: lambda e: e.left,
    Attr.RIGHT: lambda e: _plus(e.left, e.width),
    Attr.HORIZONTAL_CENTRE: lambda e: (
        None if e.width is None else e.left + e.width / 2
    ),
    Attr.VERTICAL_CENTRE: lambda e: (
        None if e.height is None else e.top + e.height / 2
    ),
    Attr.VERTICAL_END: lambda e: _plus(e.top, _stretch(e)),
    Attr.HORIZONTAL_END: lambda e: _plus(e.left, _stretch(e)),
}


def attr_value(attr: Attr, element: Element) -> Optional[float]:
    return _GETTERS[attr](element)


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


class Condition:
    """A predicate over elements that can pre-select candidates from an index."""

    def matches(self, element: Element) -> bool:
        raise NotImplementedError

    def candidates(self, index: "SpatialIndex") -> Optional[List[Element]]:
        """A superset of the matching elements, or None for "everything"."""
        return None

    def __and__(self, other: "Condition") -> "And":
        return And(self, other)

    def __or__(self, other: "Condition") -> "Or":
        return Or(self, other)


class Between(Condition):
    def __init__(self, attr: Attr, lo: float, lo_inclusive: bool,
                 hi: float, hi_inclusive: bool):
        self.attr = attr
        self.lo = lo
        self.lo_inclusive = lo_inclusive
        self.hi = hi
        self.hi_inclusive = hi_inclusive

    def __repr__(self) -> str:
        lb = "[" if self.lo_inclusive else "("
        rb = "]" if self.hi_inclusive else ")"
        return f"{self.attr.value} in {lb}{self.lo}, {self.hi}{rb}"

    def matches(self, element: Element) -> bool:
        v = attr_value(self.attr, element)
        if v is None:
            return False
        above_lo = v >= self.lo if self.lo_inclusive else v > self.lo
        below_hi = v <= self.hi if self.hi_inclusive else v < self.hi
        return above_lo and below_hi

    def candidates(self, index: "SpatialIndex") -> Optional[List[Element]]:
        return index.range(self.attr, self.lo, self.lo_inclusive, self.hi, self.hi_inclusive)


class GreaterThan(Between):
    """Strictly greater than *value*."""

    def __init__(self, attr: Attr, value: float):
        super().__init__(attr, value, False, float("inf"), True)


class LessThan(Between):
    """Strictly less than *value*."""

    def __init__(self, attr: Attr, value: float):
        super().__init__(attr, float("-inf"), True, value, False)


class And(Condition):
    def __init__(self, *conditions: Condition):
        self.conditions: Tuple[Condition, ...] = conditions

    def __repr__(self) -> str:
        return "(" + " AND ".join(repr(c) for c in self.conditions) + ")"

    def matches(self, element: Element) -> bool:
        return all(c.matches(element) for c in self.conditions)

    def candidates(self, index: "SpatialIndex") -> Optional[List[Element]]:
        best: Optional[List[Element]] = None
        for condition in self.conditions:
            found = condition.candidates(index)
            if found is not None and (best is None or len(found) < len(best)):
                best = found
        return best


class Or(Condition):
    def __init__(self, *conditions: Condition):
        self.conditions: Tuple[Condition, ...] = conditions

    def __repr__(self) -> str:
        return "(" + " OR ".join(repr(c) for c in self.conditions) + ")"

    def matches(self, element: Element) -> bool:
        return any(c.matches(element) for c in self.conditions)

    def candidates(self, index: "SpatialIndex") -> Optional[List[Element]]:
        seen: Dict[int, Element] = {}
        for condition in self.conditions:
            found = condition.candidates(index)
            if found is None:
                return None
            for element in found:
                seen.setdefault(id(element), element)
        return list(seen.values())


def between(attr: Attr, lo: float, lo_inclusive: bool, hi: float, hi_inclusive: bool) -> Between:
    return Between(attr, lo, lo_inclusive, hi, hi_inclusive)


def between_exclusive(attr: Attr, lo: float, hi: float) -> Between:
    return Between(attr, lo, False, hi, False)


def greater_than(attr: Attr, value: float) -> GreaterThan:
    return GreaterThan(attr, value)


def less_than(attr: Attr, value: float) -> LessThan:
    return LessThan(attr, value)


def and_(*conditions: Condition) -> And:
    return And(*conditions)


def or_(*conditions: Condition) -> Or:
    return Or(*conditions)


def intersection(lower_attr: Attr, upper_attr: Attr, lo: float, hi: float,
                 max_context: float = float("inf")) -> Or:
    """``[lower_attr, upper_attr]`` intersects ``[lo, hi)``.

    Either the lower end falls inside ``[lo, hi)``, or it starts before
    *lo* (within *max_context*) and the upper end reaches past *lo*.
    """
    return Or(
        Between(lower_attr, lo, True, hi, False),
        And(
            Between(lower_attr, lo - max_context, False, lo, True),
            between_exclusive(upper_attr, lo, lo + max_context),
        ),
    )


# ---------------------------------------------------------------------------
# Index
# ---------------------------------------------------------------------------


class SpatialIndex:
    """Elements kept sorted on each indexed attribute."""

    BOXED_ATTRS = (
        Attr.TOP, Attr.BOTTOM, Attr.LEFT, Attr.RIGHT,
        Attr.HORIZONTAL_CENTRE, Attr.VERTICAL_CENTRE,
    )
    VERTICAL_LINE_ATTRS = (Attr.TOP, Attr.LEFT, Attr.VERTICAL_END)
    HORIZONTAL_LINE_ATTRS = (Attr.TOP, Attr.LEFT, Attr.HORIZONTAL_END)

    def __init__(self, attrs: Sequence[Attr]):
        self.attrs: Tuple[Attr, ...] = tuple(attrs)
        self._keys: Dict[Attr, List[Tuple[float, int]]] = {a: [] for a in self.attrs}
        self._members: Dict[int, Tuple[int, Element]] = {}
        self._by_seq: Dict[int, Element] = {}
        self._seq = 0

    @classmethod
    def boxed(cls) -> "SpatialIndex":
        return cls(cls.BOXED_ATTRS)

    @classmethod
    def vertical_lines(cls) -> "SpatialIndex":
        return cls(cls.VERTICAL_LINE_ATTRS)

    @classmethod
    def horizontal_lines(cls) -> "SpatialIndex":
        return cls(cls.HORIZONTAL_LINE_ATTRS)

    def __len__(self) -> int:
        return len(self._members)

    def __contains__(self, element: Element) -> bool:
        return id(element) in self._members

    def elements(self) -> List[Element]:
        """Members in insertion order."""
        return [self._by_seq[s] for s in sorted(self._by_seq)]

    def add(self, element: Element) -> None:
        if id(element) in self._members:
            return
        seq = self._seq
        self._seq += 1
        self._members[id(element)] = (seq, element)
        self._by_seq[seq] = element
        for attr in self.attrs:
            value = attr_value(attr, element)
            if value is not None:
                bisect.insort(self._keys[attr], (value, seq))

    def add_all(self, elements: Iterable[Element]) -> None:
        for element in elements:
            self.add(element)

    def range(self, attr: Attr, lo: float, lo_inclusive: bool,
              hi: float, hi_inclusive: bool) -> Optional[List[Element]]:
        """Members whose *attr* lies in the range, or None when *attr* is not indexed."""
        keys = self._keys.get(attr)
        if keys is None:
            return None
        if lo_inclusive:
            start = bisect.bisect_left(keys, (lo, -1))
        else:
            start = bisect.bisect_right(keys, (lo, float("inf")))
        if hi_inclusive:
            end = bisect.bisect_right(keys, (hi, float("inf")))
        else:
            end = bisect.bisect_left(keys, (hi, -1))
        return [self._by_seq[seq] for _, seq in keys[start:end]]

    def retrieve(self, condition: Condition,
                 order_by: Sequence[Tuple[Attr, bool]] = ()) -> List[Element]:
        """Members satisfying *condition*, sorted on the ``(attr, descending)`` keys."""
        if not self._members:
            return []
        found = condition.candidates(self)
        pool = self.elements() if found is None else found
        result = [e for e in pool if condition.matches(e)]

        def key(element: Element):
            parts = []
            for attr, descending in order_by:
                value = attr_value(attr, element)
                if value is None:
                    value = float("inf")
                parts.append(-value if descending else value)
            parts.append(self._members[id(element)][0])
            return tuple(parts)

        result.sort(key=key)
        return result

    def first(self, condition: Condition,
              order_by: Sequence[Tuple[Attr, bool]] = ()) -> Optional[Element]:
        found = self.retrieve(condition, order_by)
        return found[0] if found else None
