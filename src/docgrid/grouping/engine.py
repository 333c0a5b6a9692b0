"""Per-page grouping: indexes, alignment, polygons, contexts, vertical groups, tables.

:class:`GroupingEngine` runs the steps in order over one
:class:`~docgrid.layout.PositionalElementList`. Each step is a public
method so that the page runner can time and gate it separately; all of
them work partition by partition on the :class:`PageLayout` returned by
:meth:`GroupingEngine.index_page`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set

from ..config import LayoutConfig
from ..layout import PositionalElementList
from ..models import (
    BoundingRect,
    Element,
    HorizontalLine,
    Image,
    PagePartitionType,
    Rectangle,
    TextElement,
    VerticalLine,
)
from ..polygon import PolygonDetector, RectilinearPolygon
from ..spatial_index import Attr, SpatialIndex, between_exclusive
from ..tables.boundary import TableBoundaryDetector
from .alignment import find_alignment_group, find_alignment_with_horizontal_line
from .borders import VisualBorderResolver
from .neighbors import NeighborResolver
from .partition import PagePartition, PagePartitioner
from .vertical import find_vertical_group

log = logging.getLogger(__name__)


@dataclass
class PartitionState:
    """One page partition with its own boxed-element index."""

    partition: PagePartition
    boxed_index: SpatialIndex

    @property
    def elements(self) -> List[Element]:
        return self.partition.elements

    @property
    def partition_type(self) -> PagePartitionType:
        return self.partition.partition_type


@dataclass
class PageLayout:
    """Working state of one page while the grouping steps run."""

    element_list: PositionalElementList
    page_width: float
    page_height: float
    boxed_index: SpatialIndex
    vertical_lines: SpatialIndex
    horizontal_lines: SpatialIndex
    detector: PolygonDetector
    polygon_horizontal_lines: List[Element] = field(default_factory=list)
    polygon_vertical_lines: List[Element] = field(default_factory=list)
    boxes: List[BoundingRect] = field(default_factory=list)
    partitions: List[PartitionState] = field(default_factory=list)
    polygons: List[RectilinearPolygon] = field(default_factory=list)

    def counts(self) -> dict:
        return {
            "elements": len(self.element_list),
            "partitions": len(self.partitions),
            "boxes": len(self.boxes),
            "polygons": len(self.polygons),
            "vertical_groups": len(self.element_list.vertical_groups),
            "tabular_groups": len(self.element_list.tabular_groups),
        }


def _without(lines: List[Element], removed: List[Element]) -> List[Element]:
    removed_ids: Set[int] = {id(e) for e in removed}
    return [e for e in lines if id(e) not in removed_ids]


def is_background_image(image: Element, boxed_index: SpatialIndex) -> bool:
    """An image that text is written over."""
    top, bottom = image.top, image.bottom
    left, right = image.left, image.right
    for text in boxed_index.retrieve(between_exclusive(Attr.TOP, top, bottom)):
        if left <= text.left < right or text.left < left < text.right:
            return True
    return False


class GroupingEngine:
    """Positional grouping and table discovery for the pages of one document."""

    def __init__(self, config: Optional[LayoutConfig] = None):
        self.config = config or LayoutConfig()
        self.partitioner = PagePartitioner(
            allow_context_across_page_breaks=self.config.allow_context_across_page_breaks,
            exclude_header_footer=not self.config.disable_header_footer_detection,
            regex_based_detection=True,
            table_based_detection=True,
            is_page_numbered_doc=self.config.is_page_numbered_doc,
        )
        # Noise recognised on one page stays known for the rest of the document.
        self.found_noise_elements: Set[Element] = set()

    def process_page(self, element_list: PositionalElementList, page_width: float,
                     page_height: float) -> PageLayout:
        """Run every grouping step on one page."""
        layout = self.index_page(element_list, page_width, page_height)
        self.find_alignment_groups(layout)
        self.find_polygons(layout)
        self.populate_contexts(layout)
        self.find_vertical_groups(layout)
        self.find_tables(layout)
        log.debug("Page grouped: %s", layout.counts())
        return layout

    # ── Indexing ───────────────────────────────────────────────────────

    def index_page(self, element_list: PositionalElementList, page_width: float,
                   page_height: float) -> PageLayout:
        """Build the page indexes, find drawn boxes and split the page into partitions."""
        boxed_index = SpatialIndex.boxed()
        vertical_lines = SpatialIndex.vertical_lines()
        horizontal_lines = SpatialIndex.horizontal_lines()
        layout = PageLayout(
            element_list=element_list,
            page_width=page_width,
            page_height=page_height,
            boxed_index=boxed_index,
            vertical_lines=vertical_lines,
            horizontal_lines=horizontal_lines,
            detector=PolygonDetector(boxed_index, vertical_lines, horizontal_lines),
        )
        for element in element_list:
            if isinstance(element, Rectangle):
                element_list.initialize_context(element)
                boxed_index.add(element)
            elif isinstance(element, VerticalLine):
                vertical_lines.add(element)
                layout.polygon_vertical_lines.append(element)
            elif isinstance(element, HorizontalLine):
                horizontal_lines.add(element)
                layout.polygon_horizontal_lines.append(element)

        # Lines of a plain drawn box do not take part in polygon building.
        for element in element_list:
            if isinstance(element, HorizontalLine):
                rect = layout.detector.find_rectangle(element, False)
                if rect is not None:
                    layout.boxes.append(rect)
                    layout.polygon_horizontal_lines = _without(
                        layout.polygon_horizontal_lines, layout.detector.contained_horizontal_lines(rect)
                    )
                    layout.polygon_vertical_lines = _without(
                        layout.polygon_vertical_lines, layout.detector.contained_vertical_lines(rect)
                    )

        for partition in self.partitioner.partitions(element_list, page_width, page_height):
            layout.partitions.append(self._index_partition(partition))
        return layout

    @staticmethod
    def _index_partition(partition: PagePartition) -> PartitionState:
        index = SpatialIndex.boxed()
        for element in partition.elements:
            if isinstance(element, Rectangle) and not isinstance(element, Image):
                index.add(element)
                element.context.page_partition_type = partition.partition_type
        for element in partition.elements:
            if isinstance(element, Image):
                if not is_background_image(element, index):
                    index.add(element)
                element.context.page_partition_type = partition.partition_type
        return PartitionState(partition, index)

    # ── Alignment and polygons ─────────────────────────────────────────

    def find_alignment_groups(self, layout: PageLayout) -> int:
        """Alignment groups of boxed elements; returns the number of groups found."""
        groups = 0
        for state in layout.partitions:
            for element in state.elements:
                if isinstance(element, Rectangle) and element.context.alignment_right == 0:
                    if len(find_alignment_group(element, state.boxed_index)) > 1:
                        groups += 1
                if isinstance(element, HorizontalLine) and not self.config.disable_table_detection:
                    find_alignment_with_horizontal_line(element)
        return groups

    def find_polygons(self, layout: PageLayout) -> List[RectilinearPolygon]:
        if self.config.disable_table_detection:
            return []
        for state in layout.partitions:
            if state.partition_type is not PagePartitionType.CONTENT:
                continue
            layout.detector.boxed_index = state.boxed_index
            layout.polygons.extend(layout.detector.find_rectilinear_polygons(
                layout.polygon_horizontal_lines, layout.polygon_vertical_lines
            ))
        return layout.polygons

    # ── Contexts ───────────────────────────────────────────────────────

    def populate_contexts(self, layout: PageLayout) -> None:
        for state in layout.partitions:
            neighbors = NeighborResolver(state.boxed_index)
            borders = VisualBorderResolver(
                layout.vertical_lines,
                layout.horizontal_lines,
                layout.page_width,
                state.partition.top_boundary,
                state.partition.bottom_boundary,
            )
            layout.detector.boxed_index = state.boxed_index
            for element in state.elements:
                if isinstance(element, Rectangle):
                    self.populate_positional_context(element, neighbors, borders)
                elif isinstance(element, HorizontalLine):
                    layout.detector.find_rectangle(element, True)

    @staticmethod
    def populate_positional_context(element: Element, neighbors: NeighborResolver,
                                    borders: VisualBorderResolver) -> None:
        """Fill in neighbours and visual edges.

        Left and right neighbours come first since the visual left and
        right depend on them; the above and below neighbours are searched
        within the visual left/right band, and the surrounding lists
        within the visual edges.
        """
        ctx = element.context
        top, bottom = element.top, element.bottom
        left, right = element.left, element.right

        ctx.shadow_left = neighbors.shadow_left(top, bottom, left)
        ctx.shadow_right = neighbors.shadow_right(top, bottom, right)
        ctx.visual_left, ctx.is_visual_left_border = borders.visual_left(
            top, bottom, left, ctx.alignment_left, ctx.shadow_left
        )
        ctx.visual_right, ctx.is_visual_right_border = borders.visual_right(
            top, bottom, right, ctx.alignment_right, ctx.shadow_right
        )
        ctx.shadow_below = neighbors.shadow_below(top, ctx.visual_left, ctx.visual_right, left, right)
        ctx.shadow_above = neighbors.shadow_above(bottom, ctx.visual_left, ctx.visual_right, left, right)
        ctx.visual_top, ctx.is_visual_top_border = borders.visual_top(top, left, right, ctx.shadow_above)
        ctx.visual_bottom, ctx.is_visual_bottom_border = borders.visual_bottom(
            bottom, left, right, ctx.shadow_below
        )
        ctx.below_elements = neighbors.below_elements(top, ctx.visual_left, ctx.visual_right)
        ctx.above_elements = neighbors.above_elements(bottom, ctx.visual_left, ctx.visual_right)
        ctx.right_elements = neighbors.right_elements(right, ctx.visual_top, ctx.visual_bottom)
        ctx.left_elements = neighbors.left_elements(left, ctx.visual_top, ctx.visual_bottom)

    # ── Groups and tables ──────────────────────────────────────────────

    def find_vertical_groups(self, layout: PageLayout) -> int:
        before = len(layout.element_list.vertical_groups)
        for state in layout.partitions:
            for element in state.elements:
                if isinstance(element, Rectangle) and element.context.vertical_group is None:
                    find_vertical_group(element, self.config.max_distance_factor, self.config.detect_underline)
        return len(layout.element_list.vertical_groups) - before

    def find_tables(self, layout: PageLayout) -> int:
        """Detect tables in the content partitions; returns the page's table count."""
        if self.config.disable_table_detection:
            return 0
        for state in layout.partitions:
            detector = TableBoundaryDetector(self.config, self.found_noise_elements).bind(
                state.boxed_index, state.partition.bottom_boundary
            )
            for element in state.elements:
                ctx = element.context
                if (
                    isinstance(element, TextElement)
                    and ctx.tabular_group is None
                    and ctx.page_partition_type in (None, PagePartitionType.CONTENT)
                ):
                    detector.find_tabular_group(element)
        return len(layout.element_list.tabular_groups)
