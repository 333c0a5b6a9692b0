"""Tests for the grouping steps: alignment, neighbours, visual borders, vertical groups."""

from conftest import make_hline, make_page, make_text, make_vline, with_context

from docgrid.grouping.alignment import find_alignment_group, find_alignment_with_horizontal_line
from docgrid.grouping.borders import VisualBorderResolver
from docgrid.grouping.neighbors import (
    NeighborResolver,
    horizontal_intersection,
    is_horizontally_intersecting,
)
from docgrid.grouping.vertical import find_vertical_group
from docgrid.spatial_index import SpatialIndex


def _index(*elements):
    index = SpatialIndex.boxed()
    index.add_all(elements)
    return index


def _lines(*lines):
    vertical = SpatialIndex.vertical_lines()
    horizontal = SpatialIndex.horizontal_lines()
    for line in lines:
        if hasattr(line, "vertical_end"):
            vertical.add(line)
        else:
            horizontal.add(line)
    return vertical, horizontal


# ── Alignment ──────────────────────────────────────────────────────────


class TestAlignmentGroup:
    def test_left_aligned_stack(self):
        a, b, c = with_context(
            make_text(50, 100, "Alpha"), make_text(50, 115, "Beta"), make_text(50, 130, "Gamma")
        )
        group = find_alignment_group(a, _index(a, b, c))
        assert group == [a, b, c]
        assert a.context.alignment_left == 49
        assert c.context.alignment_right == 81

    def test_misaligned_candidate_stops_group(self):
        a, b = with_context(make_text(50, 100, "Alpha"), make_text(65, 115, "x", width=60))
        group = find_alignment_group(a, _index(a, b))
        assert group == [a]
        assert a.context.alignment_right == 0

    def test_large_gap_stops_group(self):
        a, b = with_context(make_text(50, 100, "Alpha"), make_text(50, 200, "Beta"))
        assert find_alignment_group(a, _index(a, b)) == [a]


class TestAlignmentWithHorizontalLine:
    def test_single_text_takes_line_extent(self):
        total = make_text(60, 100, "Total", width=30)
        line = make_hline(50, 115, 100)
        make_page([total, line])
        assert find_alignment_with_horizontal_line(line) is total
        assert (total.context.alignment_left, total.context.alignment_right) == (50, 150)

    def test_two_texts_on_the_line(self):
        a = make_text(60, 100, "Net", width=20)
        b = make_text(100, 100, "Total", width=30)
        line = make_hline(50, 115, 100)
        make_page([a, b, line])
        assert find_alignment_with_horizontal_line(line) is None
        assert a.context.alignment_right == 0

    def test_line_without_page(self):
        assert find_alignment_with_horizontal_line(make_hline(0, 0, 10)) is None


# ── Neighbours ─────────────────────────────────────────────────────────


class TestNeighbors:
    def test_intersection_helpers(self):
        a = make_text(0, 0, "a", width=50)
        b = make_text(40, 0, "b", width=50)
        assert horizontal_intersection(a, b) == 10
        assert is_horizontally_intersecting(a, 45, 60)
        assert not is_horizontally_intersecting(a, 50, 60)
        assert not is_horizontally_intersecting(None, 0, 10)

    def test_shadows(self):
        a = make_text(50, 100, "A")
        b = make_text(150, 100, "B")
        c = make_text(50, 130, "C")
        resolver = NeighborResolver(_index(a, b, c))
        assert resolver.shadow_right(a.top, a.bottom, a.right) is b
        assert resolver.shadow_left(b.top, b.bottom, b.left) is a
        assert resolver.shadow_below(a.top, 0, 612, a.left, a.right) is c
        assert resolver.shadow_above(c.bottom, 0, 612, c.left, c.right) is a
        assert resolver.shadow_above(a.bottom, 0, 612, a.left, a.right) is None

    def test_surrounding_lists(self):
        a = make_text(50, 100, "A")
        b = make_text(150, 100, "B")
        c = make_text(50, 130, "C")
        resolver = NeighborResolver(_index(a, b, c))
        below = resolver.below_elements(a.top, 0, 612)
        assert list(below) == [c]
        right = resolver.right_elements(a.right, 90, 120)
        assert list(right) == [b]


# ── Visual borders ─────────────────────────────────────────────────────


class TestVisualBorders:
    def test_drawn_line_is_the_left_edge(self):
        vertical, horizontal = _lines(make_vline(40, 90, 40))
        resolver = VisualBorderResolver(vertical, horizontal, 612, 0, 792)
        assert resolver.visual_left(100, 110, 50, 0.0, None) == (40, True)

    def test_page_edges_without_lines(self):
        vertical, horizontal = _lines()
        resolver = VisualBorderResolver(vertical, horizontal, 612, 0, 792)
        assert resolver.visual_left(100, 110, 50, 0.0, None) == (0.0, False)
        assert resolver.visual_right(100, 110, 62, 0.0, None) == (612, False)

    def test_midpoint_with_neighbour(self):
        vertical, horizontal = _lines()
        resolver = VisualBorderResolver(vertical, horizontal, 612, 0, 792)
        neighbour = make_text(10, 100, "n", width=20)
        assert resolver.visual_left(100, 110, 50, 0.0, neighbour) == (40.0, False)

    def test_drawn_line_is_the_top_edge(self):
        vertical, horizontal = _lines(make_hline(40, 90, 160))
        resolver = VisualBorderResolver(vertical, horizontal, 612, 0, 792)
        assert resolver.visual_top(100, 50, 62, None) == (90, True)


# ── Vertical groups ────────────────────────────────────────────────────


def _stack(*tops):
    elements = [make_text(50, top, f"line {i}", width=80) for i, top in enumerate(tops)]
    make_page(elements)
    for upper, lower in zip(elements, elements[1:]):
        upper.context.shadow_below = lower
    return elements


class TestVerticalGroup:
    def test_two_close_lines(self):
        a, b = _stack(100, 114)
        group = find_vertical_group(a)
        assert list(group) == [a, b]
        assert a.context.vertical_group is group
        assert b.context.vertical_group is group
        assert group in a.element_list.vertical_groups

    def test_first_gap_too_wide(self):
        a, b = _stack(100, 140)
        assert list(find_vertical_group(a)) == [a]
        assert b.context.vertical_group is None

    def test_looser_gap_stops_group(self):
        a, b, c = _stack(100, 114, 140)
        assert list(find_vertical_group(a)) == [a, b]

    def test_tighter_gap_drops_last_member(self):
        a, b, c = _stack(100, 120, 131)
        assert list(find_vertical_group(a)) == [a]

    def test_zero_previous_gap_is_a_break(self):
        a, b, c = _stack(100, 110, 125)
        assert list(find_vertical_group(a)) == [a, b]

    def test_top_border_stops_group(self):
        a, b = _stack(100, 114)
        b.context.is_visual_top_border = True
        b.context.visual_top = 112
        assert list(find_vertical_group(a)) == [a]

    def test_underline_hugging_previous_line_is_crossed(self):
        a, b = _stack(100, 114)
        b.context.is_visual_top_border = True
        b.context.visual_top = 112
        assert list(find_vertical_group(a, detect_underline=True)) == [a, b]

    def test_height_change_stops_group(self):
        a = make_text(50, 100, "Title", width=80, height=20)
        b = make_text(50, 124, "body", width=80, height=10)
        make_page([a, b])
        a.context.shadow_below = b
        assert list(find_vertical_group(a)) == [a]

    def test_side_neighbour_overlapping_next_line(self):
        a, b = _stack(100, 114)
        a.context.shadow_right = make_text(100, 114, "other", width=40)
        assert list(find_vertical_group(a)) == [a]
