"""Positioned elements, their positional context and element groups."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Dict, FrozenSet, List, Optional, Tuple

if TYPE_CHECKING:
    from .layout import PositionalElementList
    from .tabular import TabularElementGroup

INTRA_LINE_SEP = "\t"
INTER_LINE_SEP = "\n"

MAX_FONT_SIZE_CHANGE_RATIO = 0.15
SIGNIFICANT_ELEMENT_MIN_CHARS = 3
UNDER_AND_OVER_LINE_DISTANCE_FACTOR = 1

BLACK: Tuple[int, int, int] = (0, 0, 0)


class TextStyle(str, Enum):
    """Style flags carried by text runs."""

    BOLD = "bold"
    ITALIC = "italic"
    UNDERLINE = "underline"


class PagePartitionType(str, Enum):
    """Region of a page an element was resolved in."""

    HEADER = "header"
    FOOTER = "footer"
    CONTENT = "content"


@dataclass(eq=False)
class BoundingRect:
    """Region enclosed by drawn borders; shared by identity across its elements."""

    x: float
    y: float
    width: float
    height: float

    @property
    def min_x(self) -> float:
        return self.x

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def min_y(self) -> float:
        return self.y

    @property
    def max_y(self) -> float:
        return self.y + self.height

    def bbox(self) -> Tuple[float, float, float, float]:
        """Bounding box as ``(x0, y0, x1, y1)``."""
        return (self.min_x, self.min_y, self.max_x, self.max_y)


# ── Elements ───────────────────────────────────────────────────────────


@dataclass(eq=False)
class Element:
    """A primitive placed on the page, compared by identity."""

    top: float = 0.0
    left: float = 0.0
    width: Optional[float] = None
    height: Optional[float] = None
    text: str = ""
    context: Optional["PositionalContext"] = field(default=None, repr=False)
    element_list: Optional["PositionalElementList"] = field(default=None, repr=False)
    list_index: int = field(default=-1, repr=False)

    is_graphical: ClassVar[bool] = False
    is_page_break: ClassVar[bool] = False

    @property
    def bottom(self) -> float:
        return self.top + (self.height or 0.0)

    @property
    def right(self) -> float:
        return self.left + (self.width or 0.0)

    @property
    def horizontal_center(self) -> float:
        return self.left + (self.width or 0.0) / 2

    @property
    def vertical_center(self) -> float:
        return self.top + (self.height or 0.0) / 2

    def bbox(self) -> Tuple[float, float, float, float]:
        """Bounding box as ``(x0, y0, x1, y1)``."""
        return (self.left, self.top, self.right, self.bottom)

    def has_context(self) -> bool:
        return self.context is not None

    def has_different_visual_style(self, other: "Element") -> bool:
        """True when font size, family, colour or style set differ."""
        size, other_size = getattr(self, "font_size", None), getattr(other, "font_size", None)
        if (size is None) != (other_size is None):
            return True
        if size is not None and not abs(size - other_size) < MAX_FONT_SIZE_CHANGE_RATIO * size:
            return True
        family = getattr(self, "font_family", None)
        other_family = getattr(other, "font_family", None)
        if family is not None and family != other_family:
            return True
        color = getattr(self, "color", None) or BLACK
        other_color = getattr(other, "color", None) or BLACK
        if tuple(color) != tuple(other_color):
            return True
        styles = getattr(self, "styles", frozenset())
        other_styles = getattr(other, "styles", frozenset())
        return bool(set(styles) ^ set(other_styles))

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "kind": type(self).__name__,
            "top": round(self.top, 3),
            "left": round(self.left, 3),
        }
        if self.width is not None:
            d["width"] = round(self.width, 3)
        if self.height is not None:
            d["height"] = round(self.height, 3)
        if self.text:
            d["text"] = self.text
        return d


@dataclass(eq=False)
class Rectangle(Element):
    """A boxed element: filled rectangle, and the base of text runs and images."""

    width: Optional[float] = 0.0
    height: Optional[float] = 0.0


@dataclass(eq=False)
class TextElement(Rectangle):
    """A run of text with its typography."""

    font_size: Optional[float] = None
    font_family: Optional[str] = None
    color: Optional[Tuple[int, int, int]] = None
    styles: FrozenSet[TextStyle] = frozenset()

    @property
    def is_bold(self) -> bool:
        return TextStyle.BOLD in self.styles


@dataclass(eq=False)
class Image(Rectangle):
    """An embedded raster image; only its placement matters here."""


@dataclass(eq=False)
class HorizontalLine(Element):
    """A drawn horizontal segment of length ``stretch`` starting at ``left``."""

    stretch: float = 0.0

    is_graphical: ClassVar[bool] = True

    @property
    def horizontal_end(self) -> float:
        return self.left + self.stretch

    @property
    def right(self) -> float:
        return self.horizontal_end


@dataclass(eq=False)
class VerticalLine(Element):
    """A drawn vertical segment of length ``stretch`` starting at ``top``."""

    stretch: float = 0.0

    is_graphical: ClassVar[bool] = True

    @property
    def vertical_end(self) -> float:
        return self.top + self.stretch

    @property
    def bottom(self) -> float:
        return self.vertical_end


@dataclass(eq=False)
class PageBreak(Element):
    """Zero-size marker separating source pages stacked into one list."""

    is_graphical: ClassVar[bool] = True
    is_page_break: ClassVar[bool] = True


# ── Groups ─────────────────────────────────────────────────────────────


def _joined_text(elements: List[Element]) -> str:
    from .layout import compare_by_horizontal_alignment

    parts: List[str] = []
    prev: Optional[Element] = None
    for element in elements:
        if prev is not None:
            parts.append(
                INTRA_LINE_SEP
                if compare_by_horizontal_alignment(prev, element) == 0
                else INTER_LINE_SEP
            )
        parts.append(element.text)
        prev = element
    return "".join(parts)


@dataclass(eq=False)
class ElementGroup:
    """An ordered list of elements shared by reference with the page list."""

    elements: List[Element] = field(default_factory=list)

    def add(self, element: Element) -> "ElementGroup":
        self.elements.append(element)
        return self

    @property
    def first(self) -> Optional[Element]:
        return self.elements[0] if self.elements else None

    @property
    def last(self) -> Optional[Element]:
        return self.elements[-1] if self.elements else None

    @property
    def size(self) -> int:
        return len(self.elements)

    def is_empty(self) -> bool:
        return not self.elements

    def __len__(self) -> int:
        return len(self.elements)

    def __iter__(self):
        return iter(self.elements)

    @property
    def text(self) -> str:
        return _joined_text(self.elements)

    def text_bounding_box(self) -> Tuple[float, float, float, float]:
        """``(top, right, bottom, left)`` of the group, top from the first element."""
        left = min(e.left for e in self.elements)
        right = max(e.right for e in self.elements)
        return (self.elements[0].top, right, self.elements[-1].bottom, left)

    def enclosing_vertical_groups(self) -> List["ElementGroup"]:
        """Distinct vertical groups of the member elements that carry a context."""
        groups: List[ElementGroup] = []
        for element in self.elements:
            if element.context is None:
                continue
            group = element.context.vertical_group
            if not any(group is g for g in groups):
                groups.append(group)
        return groups


# ── Positional context ─────────────────────────────────────────────────


@dataclass(eq=False)
class PositionalContext:
    """Everything the engine resolved about one element's surroundings."""

    element: Element = field(repr=False)
    page_partition_type: Optional[PagePartitionType] = PagePartitionType.CONTENT

    # Visual edges and whether each one is a drawn border.
    visual_top: float = 0.0
    visual_bottom: float = 0.0
    visual_left: float = 0.0
    visual_right: float = 0.0
    is_visual_top_border: bool = False
    is_visual_bottom_border: bool = False
    is_visual_left_border: bool = False
    is_visual_right_border: bool = False

    # 0 means unset.
    alignment_left: float = 0.0
    alignment_right: float = 0.0

    bounding_rect: Optional[BoundingRect] = field(default=None, repr=False)

    # Neighbours.
    shadow_above: Optional[Element] = field(default=None, repr=False)
    shadow_below: Optional[Element] = field(default=None, repr=False)
    shadow_left: Optional[Element] = field(default=None, repr=False)
    shadow_right: Optional[Element] = field(default=None, repr=False)
    above_elements: Optional[ElementGroup] = field(default=None, repr=False)
    below_elements: Optional[ElementGroup] = field(default=None, repr=False)
    left_elements: Optional[ElementGroup] = field(default=None, repr=False)
    right_elements: Optional[ElementGroup] = field(default=None, repr=False)

    vertical_group: Optional[ElementGroup] = field(default=None, repr=False)

    tabular_group: Optional["TabularElementGroup"] = field(default=None, repr=False)
    tabular_row: Optional[int] = None
    tabular_column: Optional[int] = None

    @property
    def page_break_number(self) -> int:
        element_list = self.element.element_list
        if element_list is None:
            return 0
        return element_list.page_break_number(self.element)

    def delete_table_reference(self) -> None:
        self.tabular_group = None
        self.tabular_row = None
        self.tabular_column = None

    def has_underlined_border(self) -> bool:
        """True when a drawn bottom border sits within one font size below the text."""
        font_size = getattr(self.element, "font_size", None) or 0.0
        threshold = UNDER_AND_OVER_LINE_DISTANCE_FACTOR * font_size
        distance = self.visual_bottom - self.element.top - (self.element.height or 0.0)
        if self.is_visual_bottom_border and distance < threshold:
            below = self.shadow_below
            return below is None or distance < below.top - self.visual_bottom
        return False

    def has_overlined_border(self) -> bool:
        """True when a drawn top border sits within one font size above the text."""
        font_size = getattr(self.element, "font_size", None) or 0.0
        threshold = UNDER_AND_OVER_LINE_DISTANCE_FACTOR * font_size
        distance = self.element.top - self.visual_top
        if self.is_visual_top_border and distance < threshold:
            above = self.shadow_above
            return above is None or distance < self.visual_top - above.bottom
        return False

    def previous_elements(self) -> List[Element]:
        """Non-graphical elements placed before this one, nearest first."""
        element_list = self.element.element_list
        if element_list is None:
            return []
        before = element_list.elements[: self.element.list_index]
        return [e for e in reversed(before) if not e.is_graphical]

    def is_plural_header(self) -> bool:
        """More than one significant element on the first line below."""
        from .layout import compare_by_horizontal_alignment

        below = self.below_elements
        if below is None or below.size <= 1:
            return False
        first = below.first
        count = sum(
            1
            for e in below.elements
            if len(e.text) >= SIGNIFICANT_ELEMENT_MIN_CHARS
            and compare_by_horizontal_alignment(e, first) == 0
        )
        return count > 1
