"""Tests for docgrid.spatial_index: range and order queries."""

from conftest import make_hline, make_text, make_vline

from docgrid.spatial_index import (
    ASC,
    DESC,
    Attr,
    SpatialIndex,
    and_,
    attr_value,
    between,
    between_exclusive,
    greater_than,
    intersection,
    less_than,
    or_,
)


def _column(*tops):
    return [make_text(10, top, f"r{top}") for top in tops]


class TestAttrValue:
    def test_boxed_attrs(self):
        e = make_text(10, 20, "abcd", width=40, height=10)
        assert attr_value(Attr.BOTTOM, e) == 30
        assert attr_value(Attr.RIGHT, e) == 50
        assert attr_value(Attr.HORIZONTAL_CENTRE, e) == 30
        assert attr_value(Attr.VERTICAL_CENTRE, e) == 25

    def test_line_ends(self):
        assert attr_value(Attr.VERTICAL_END, make_vline(0, 10, 50)) == 60
        assert attr_value(Attr.HORIZONTAL_END, make_hline(5, 10, 50)) == 55
        assert attr_value(Attr.VERTICAL_END, make_text(0, 0, "x")) is None


class TestRetrieve:
    def test_between_inclusive_and_exclusive(self):
        a, b, c = _column(10, 20, 30)
        index = SpatialIndex.boxed()
        index.add_all([a, b, c])
        assert index.retrieve(between(Attr.TOP, 10, True, 30, True)) == [a, b, c]
        assert index.retrieve(between_exclusive(Attr.TOP, 10, 30)) == [b]

    def test_greater_and_less(self):
        a, b, c = _column(10, 20, 30)
        index = SpatialIndex.boxed()
        index.add_all([a, b, c])
        assert index.retrieve(greater_than(Attr.TOP, 10)) == [b, c]
        assert index.retrieve(less_than(Attr.TOP, 30)) == [a, b]

    def test_order_by_descending(self):
        a, b, c = _column(10, 20, 30)
        index = SpatialIndex.boxed()
        index.add_all([b, a, c])
        found = index.retrieve(less_than(Attr.BOTTOM, 100), order_by=[(Attr.BOTTOM, DESC)])
        assert found == [c, b, a]

    def test_ties_keep_insertion_order(self):
        first = make_text(10, 50, "first")
        second = make_text(90, 50, "second")
        index = SpatialIndex.boxed()
        index.add_all([first, second])
        assert index.retrieve(less_than(Attr.TOP, 100), order_by=[(Attr.TOP, ASC)]) == [first, second]
        assert index.first(less_than(Attr.TOP, 100), order_by=[(Attr.TOP, ASC)]) is first

    def test_and_or(self):
        left = make_text(0, 0, "left", width=20)
        right = make_text(100, 0, "right", width=20)
        low = make_text(0, 100, "low", width=20)
        index = SpatialIndex.boxed()
        index.add_all([left, right, low])
        both = and_(less_than(Attr.TOP, 50), greater_than(Attr.LEFT, 50))
        assert index.retrieve(both) == [right]
        either = or_(greater_than(Attr.LEFT, 50), greater_than(Attr.TOP, 50))
        assert index.retrieve(either) == [right, low]
        assert index.retrieve(less_than(Attr.TOP, 50) & less_than(Attr.LEFT, 50)) == [left]

    def test_unindexed_attribute_is_still_exact(self):
        index = SpatialIndex.boxed()
        index.add(make_text(0, 0, "x"))
        assert index.retrieve(greater_than(Attr.VERTICAL_END, -1)) == []

    def test_intersection(self):
        v1 = make_vline(0, 0, 100)
        v2 = make_vline(50, 200, 50)
        index = SpatialIndex.vertical_lines()
        index.add_all([v1, v2])
        found = index.retrieve(intersection(Attr.TOP, Attr.VERTICAL_END, 40, 60))
        assert found == [v1]

    def test_empty_index(self):
        assert SpatialIndex.boxed().retrieve(less_than(Attr.TOP, 10)) == []
        assert SpatialIndex.boxed().first(less_than(Attr.TOP, 10)) is None


class TestMembership:
    def test_add_is_idempotent(self):
        e = make_text(0, 0, "x")
        index = SpatialIndex.boxed()
        index.add(e)
        index.add(e)
        assert len(index) == 1
        assert e in index

    def test_elements_in_insertion_order(self):
        a, b = make_text(0, 50, "a"), make_text(0, 10, "b")
        index = SpatialIndex.horizontal_lines()
        index.add_all([a, b])
        assert index.elements() == [a, b]
