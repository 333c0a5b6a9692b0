"""Tests for page partitioning and the GroupingEngine steps end to end."""

import pytest
from conftest import make_hline, make_page, make_text, make_vline

from docgrid.config import LayoutConfig
from docgrid.grouping.engine import GroupingEngine, is_background_image
from docgrid.grouping.partition import (
    PagePartitioner,
    find_common_count,
    is_page_number,
)
from docgrid.layout import PositionalElementList
from docgrid.models import ElementGroup, Image, PageBreak, PagePartitionType
from docgrid.spatial_index import SpatialIndex
from docgrid.tables.boundary import TableBoundaryDetector

PAGE_WIDTH = 612.0
PAGE_HEIGHT = 792.0


def _page_break(top=PAGE_HEIGHT):
    return PageBreak(top=top, left=0.0, width=PAGE_WIDTH, height=0.0)


# ── Partitioning ───────────────────────────────────────────────────────


class TestPageNumbers:
    @pytest.mark.parametrize("text", ["3", "iv", "Page-3", "12 - 13"])
    def test_page_numbers(self, text):
        assert is_page_number(text)

    @pytest.mark.parametrize("text", ["Page 3", "Total", "3 -"])
    def test_not_page_numbers(self, text):
        assert not is_page_number(text)


class TestCommonCount:
    def test_repeated_heading(self):
        first = [make_text(50, 20, "Annual report")]
        second = [make_text(50, 812, "Annual report")]
        assert find_common_count(first, second, 0.0, PAGE_HEIGHT) == 1

    def test_numbers_may_change(self):
        first = [make_text(50, 20, "Page 1 of 2")]
        second = [make_text(50, 812, "Page 2 of 2")]
        assert find_common_count(first, second, 0.0, PAGE_HEIGHT) == 1

    def test_moved_heading(self):
        first = [make_text(50, 20, "Annual report")]
        second = [make_text(50, 900, "Annual report")]
        assert find_common_count(first, second, 0.0, PAGE_HEIGHT) == 0


class TestPagePartitioner:
    def _two_pages(self):
        h1 = make_text(50, 20, "Annual report")
        b1 = make_text(50, 300, "Body text one")
        h2 = make_text(50, 812, "Annual report")
        b2 = make_text(50, 1100, "Body text two")
        element_list = make_page([h1, b1, _page_break(), h2, b2])
        return element_list, (h1, b1, h2, b2)

    def test_single_partition_without_header_detection(self):
        element_list, _ = self._two_pages()
        partitioner = PagePartitioner(exclude_header_footer=False)
        (partition,) = partitioner.partitions(element_list, PAGE_WIDTH, 2 * PAGE_HEIGHT)
        assert partition.partition_type is PagePartitionType.CONTENT
        assert partition.bottom_boundary == 2 * PAGE_HEIGHT

    def test_one_partition_per_page_without_shared_context(self):
        element_list, (h1, b1, h2, b2) = self._two_pages()
        partitioner = PagePartitioner(allow_context_across_page_breaks=False, exclude_header_footer=False)
        first, second = partitioner.partitions(element_list, PAGE_WIDTH, 2 * PAGE_HEIGHT)
        assert first.elements == [h1, b1]
        assert second.elements == [h2, b2]
        assert first.bottom_boundary == second.top_boundary == PAGE_HEIGHT

    def test_running_headers_are_split_off(self):
        element_list, (h1, b1, h2, b2) = self._two_pages()
        partitions = PagePartitioner().partitions(element_list, PAGE_WIDTH, 2 * PAGE_HEIGHT)
        assert [p.partition_type for p in partitions] == [
            PagePartitionType.CONTENT,
            PagePartitionType.HEADER,
            PagePartitionType.HEADER,
        ]
        content, header1, header2 = partitions
        assert content.elements == [b1, b2]
        assert header1.elements == [h1]
        assert header2.elements == [h2]
        assert header1.bottom_boundary == h1.bottom + 2


# ── Engine ─────────────────────────────────────────────────────────────


def test_background_image():
    image = Image(top=0, left=0, width=200, height=100)
    index = SpatialIndex.boxed()
    index.add(make_text(20, 40, "over"))
    assert is_background_image(image, index)
    assert not is_background_image(Image(top=300, left=0, width=50, height=50), index)


class TestGroupingEngine:
    def _bordered_cell_then_line(self):
        a1 = make_text(50, 100, "A1")
        a2 = make_text(50, 114, "A2")
        lines = [
            make_hline(40, 90, 160),
            make_hline(40, 130, 160),
            make_vline(40, 90, 40),
            make_vline(200, 90, 40),
        ]
        isolated = make_hline(100, 900, 50)
        element_list = PositionalElementList([a1, a2, *lines, _page_break(), isolated])
        return element_list, a1, a2, isolated

    def test_isolated_line_has_no_vertical_group(self, single_page_cfg):
        element_list, a1, a2, isolated = self._bordered_cell_then_line()
        GroupingEngine(single_page_cfg).process_page(element_list, PAGE_WIDTH, 2 * PAGE_HEIGHT)
        assert ElementGroup([isolated]).enclosing_vertical_groups() == []

    def test_cell_lines_share_vertical_group(self, single_page_cfg):
        element_list, a1, a2, _ = self._bordered_cell_then_line()
        GroupingEngine(single_page_cfg).process_page(element_list, PAGE_WIDTH, 2 * PAGE_HEIGHT)
        (group,) = ElementGroup([a1, a2]).enclosing_vertical_groups()
        assert list(group) == [a1, a2]
        assert a2.context.vertical_group is group

    def test_contexts_see_drawn_borders(self, single_page_cfg):
        element_list, a1, a2, _ = self._bordered_cell_then_line()
        GroupingEngine(single_page_cfg).process_page(element_list, PAGE_WIDTH, 2 * PAGE_HEIGHT)
        ctx = a1.context
        assert (ctx.visual_left, ctx.is_visual_left_border) == (40, True)
        assert (ctx.visual_right, ctx.is_visual_right_border) == (200, True)
        assert (ctx.visual_top, ctx.is_visual_top_border) == (90, True)
        assert ctx.shadow_below is a2
        assert a2.context.shadow_above is a1

    def test_index_page_partitions(self, single_page_cfg):
        element_list, *_ = self._bordered_cell_then_line()
        layout = GroupingEngine(single_page_cfg).index_page(element_list, PAGE_WIDTH, 2 * PAGE_HEIGHT)
        assert len(layout.partitions) == 1
        assert len(layout.boxed_index) == 2
        assert layout.counts()["elements"] == len(element_list)

    def test_table_steps_disabled(self):
        cfg = LayoutConfig(disable_table_detection=True, disable_header_footer_detection=True)
        element_list, *_ = self._bordered_cell_then_line()
        engine = GroupingEngine(cfg)
        layout = engine.index_page(element_list, PAGE_WIDTH, 2 * PAGE_HEIGHT)
        assert engine.find_polygons(layout) == []
        assert engine.find_tables(layout) == 0

    def test_noise_memory_is_per_engine(self):
        engine = GroupingEngine()
        engine.found_noise_elements.add(make_text(50, 100, "*"))
        assert GroupingEngine().found_noise_elements == set()

    def test_noise_memory_holds_the_elements(self):
        engine = GroupingEngine()
        noise = make_text(50, 100, "*")
        engine.found_noise_elements.add(noise)
        detector = TableBoundaryDetector(engine.config, engine.found_noise_elements)
        assert detector._is_known_noise(noise)
        assert not detector._is_known_noise(make_text(50, 100, "*"))

    def test_empty_page(self, single_page_cfg):
        layout = GroupingEngine(single_page_cfg).process_page(make_page([]), PAGE_WIDTH, PAGE_HEIGHT)
        assert layout.counts()["tabular_groups"] == 0
