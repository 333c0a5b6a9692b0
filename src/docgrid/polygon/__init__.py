"""Rectangle and rectilinear-polygon detection from drawn line segments."""

from .detector import PolygonDetector, are_elements_aligned_tabularly
from .finder import RectangleBuilder, RectangleFinder
from .lines import AbscissaType, LineAbscissa, SortedLines, is_valid_rectangle
from .open_rectangle import (
    OpenRectangle,
    OpenSide,
    combine_horizontally_open_rectangles,
    find_internal_rectangles,
    stack_open_rectangles,
)
from .rectilinear import RectilinearPolygon, build_rectilinear_polygons

__all__ = [
    "AbscissaType",
    "LineAbscissa",
    "OpenRectangle",
    "OpenSide",
    "PolygonDetector",
    "RectangleBuilder",
    "RectangleFinder",
    "RectilinearPolygon",
    "SortedLines",
    "are_elements_aligned_tabularly",
    "build_rectilinear_polygons",
    "combine_horizontally_open_rectangles",
    "find_internal_rectangles",
    "is_valid_rectangle",
    "stack_open_rectangles",
]
