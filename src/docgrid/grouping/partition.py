"""Page partitions: content between page breaks, with repeating headers and footers split off.

A page list may hold several source pages stacked with
:class:`~docgrid.models.PageBreak` markers. Elements that repeat at the
top (or bottom) of consecutive partitions at the same place are
treated as running headers (footers); so are lines matching a URL or
date, "continues on next page", and page numbers on page-numbered
documents.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence

from ..layout import PositionalElementList, compare_by_horizontal_alignment
from ..models import INTRA_LINE_SEP, Element, PagePartitionType, Rectangle, TextElement
from ..semantics import (
    PUNCTUATION_PATTERN,
    URL_PATTERN,
    are_strings_non_numerically_invariant,
    has_alphabets,
    is_number_in_any_system,
)

log = logging.getLogger(__name__)

PAGE_HEADER_RATIO = 0.15
PAGE_FOOTER_RATIO = 0.15
MAX_SPACE_BETWEEN_HEADER_ELEMENTS = 0.1
MAX_SPACE_BETWEEN_FOOTER_ELEMENTS = 0.1
MAX_HEADER_EXTREMITY = 0.1
MAX_FOOTER_EXTREMITY = 0.1
LEFT_SIMILARITY_THRESHOLD = 30.0
TOP_SIMILARITY_THRESHOLD = 30.0
HEIGHT_SIMILARITY_THRESHOLD = 2.0
PAGE_PARTITION_OFFSET = 2.0
MAX_ELEMENTS_PER_LINE = 3
PARA_INTER_LINE_SPACE_VARIATION = 0.2
MAX_INTER_LINE_SPACE_TO_HEIGHT = 2.0
MAX_SUCCESSIVE_CLUSTER_SIZE = 2

EXTREMELY_SMALL_MARGIN_THRESHOLD = 45.0
RIGHT_ALIGNMENT_FACTOR = 2.0
CENTER_ALIGNMENT_VARIANCE = 0.1
CENTER_ALIGNMENT_MIN_MARGIN = 150.0
MAX_TABULAR_HEADER_SIZE = 0.2

_MONTH = r"(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\.?"
_DATE_PREFIXES = (
    r"^[0-3]?[0-9]([/ .\-])[0-3]?[0-9]\1(?:[0-9]{4}|[0-9]{2})",
    r"^(?:[0-9]{4}|[0-9]{2})([/ .\-])[0-3]?[0-9]\2[0-3]?[0-9]",
    r"^[0-3]?[0-9][/ \-]" + _MONTH + r"[/ \-,]\s{0,2}[0-9]{2,4}",
    r"^" + _MONTH + r"\s[0-3]?[0-9],\s{0,2}[0-9]{4}",
)
HEADER_FOOTER_PATTERN = re.compile(
    "|".join([URL_PATTERN.pattern] + list(_DATE_PREFIXES)), re.IGNORECASE
)
PAGE_FOOTER_PATTERNS = [re.compile("continues on next page")]


@dataclass
class PagePartition:
    """A run of elements with its vertical bounds and region type."""

    elements: List[Element] = field(default_factory=list)
    top_boundary: float = 0.0
    bottom_boundary: float = 0.0
    partition_type: PagePartitionType = PagePartitionType.CONTENT


class _LineAlignment(Enum):
    EXTREME_LEFT = 0
    LEFT = 1
    CENTER = 2
    RIGHT = 3
    EXTREME_RIGHT = 4

    @classmethod
    def of(cls, line: Sequence[Element], page_width: float) -> "_LineAlignment":
        left_margin = line[0].left
        right_margin = page_width - line[-1].right
        if left_margin < EXTREMELY_SMALL_MARGIN_THRESHOLD:
            return cls.EXTREME_LEFT
        if right_margin < EXTREMELY_SMALL_MARGIN_THRESHOLD:
            return cls.EXTREME_RIGHT
        if left_margin > RIGHT_ALIGNMENT_FACTOR * right_margin:
            return cls.RIGHT
        if (
            left_margin > CENTER_ALIGNMENT_MIN_MARGIN
            and right_margin > CENTER_ALIGNMENT_MIN_MARGIN
            and abs(right_margin / left_margin - 1) < CENTER_ALIGNMENT_VARIANCE
        ):
            return cls.CENTER
        return cls.LEFT


# ---------------------------------------------------------------------------
# Similarity helpers
# ---------------------------------------------------------------------------


def _similar_left(first: Element, second: Element) -> bool:
    return abs(first.left - second.left) < LEFT_SIMILARITY_THRESHOLD


def _similar_height(first: Element, second: Element) -> bool:
    return abs((first.height or 0.0) - (second.height or 0.0)) < HEIGHT_SIMILARITY_THRESHOLD


def _similar_top(first: Element, second: Element, first_offset: float, second_offset: float) -> bool:
    return abs(first.top - first_offset - second.top + second_offset) < TOP_SIMILARITY_THRESHOLD


def _same_styles(first: Element, second: Element) -> bool:
    return set(getattr(first, "styles", ())) == set(getattr(second, "styles", ()))


def elements_similar_across_pages(first: Element, second: Element,
                                  first_offset: float, second_offset: float) -> bool:
    """Same place relative to the partition top, similar height, same text modulo numbers."""
    return (
        _similar_left(first, second)
        and _similar_top(first, second, first_offset, second_offset)
        and _similar_height(first, second)
        and are_strings_non_numerically_invariant(first.text, second.text)
    )


def _similar_within_page(first: Element, second: Element) -> bool:
    return _same_styles(first, second) and _similar_left(first, second) and _similar_height(first, second)


def _inter_line_space(first: Element, second: Element, reverse: bool) -> float:
    if reverse:
        first, second = second, first
    return second.top - first.bottom


def is_page_number(text: str) -> bool:
    """``"3"``, ``"iv"``, ``"Page-3"`` style page numbers: the last dash part is a number."""
    found = False
    for part in text.split("-"):
        part = part.strip()
        found = is_number_in_any_system(part)
        if not found and len(part) != 1 and not has_alphabets(part):
            return False
    return found


def _rule_based_match(element: Element, is_footer: bool) -> bool:
    return is_footer and any(p.fullmatch(element.text) for p in PAGE_FOOTER_PATTERNS)


def _first_index(elements: Sequence[Element], predicate: Callable[[Element], bool]) -> int:
    for i, element in enumerate(elements):
        if predicate(element):
            return i
    return -1


def _detect_size(elements: Sequence[Element], predicate: Callable[[Element], bool],
                 required: int, reverse: bool) -> int:
    # Prefix length holding *required* matching elements, 0 when there are fewer.
    if required == 0:
        return 0
    satisfied = 0
    for i in range(len(elements)):
        element = elements[len(elements) - 1 - i] if reverse else elements[i]
        if predicate(element):
            satisfied += 1
        if satisfied == required:
            return i + 1
    return 0


def find_common_count(first: Sequence[Element], second: Sequence[Element],
                      first_offset: float, second_offset: float) -> int:
    """Number of leading elements of *first* repeated in *second*.

    Matches must be consecutive in *second* and must not end half way
    through a line of *first*.
    """
    remaining = list(enumerate(second))
    matches: List[int] = []
    for element in first:
        for pos, (index, other) in enumerate(remaining):
            if elements_similar_across_pages(element, other, first_offset, second_offset):
                matches.append(index)
                del remaining[pos]
                break
        else:
            break
    matches.sort()
    count = 1 if matches else 0
    while count < len(matches) and matches[count] == matches[count - 1] + 1:
        count += 1
    if 0 < count < len(first):
        while count > 0 and compare_by_horizontal_alignment(first[count], first[count - 1]) == 0:
            count -= 1
    return count


def _regex_match_count(elements: Sequence[Element]) -> int:
    if not elements:
        return 0
    end = _first_index(elements, lambda e: compare_by_horizontal_alignment(e, elements[0]) != 0)
    end = len(elements) if end < 0 else end
    line_text = INTRA_LINE_SEP.join(e.text for e in elements[:end])
    return end if HEADER_FOOTER_PATTERN.search(line_text) else 0


def _common_count_within_page(partition: PagePartition, candidates: Sequence[Element],
                              is_footer: bool) -> int:
    # Candidate lines that also occur in the body of the same partition are
    # ordinary content (e.g. repeated table headings), not running headers.
    if not candidates:
        return 0
    elements = partition.elements
    boundary = _first_index(elements, lambda e: e is candidates[-1])
    others = elements[:boundary] if is_footer else elements[boundary + 1:]
    count = 0
    line: List[Element] = []
    for i in range(len(candidates) - 1, -1, -1):
        candidate = candidates[i]
        collinear = not line or compare_by_horizontal_alignment(candidate, line[-1]) == 0
        if not line or collinear:
            line.append(candidate)
        if i == 0 or not collinear:
            if len(line) > 1 and all(
                isinstance(candidate_elem, TextElement)
                and any(
                    _similar_within_page(e, candidate_elem) and e.text == candidate_elem.text
                    for e in others
                )
                for candidate_elem in line
            ):
                count += len(line)
                line = [] if i == 0 else [candidate]
            else:
                break
    return count


# ---------------------------------------------------------------------------
# Partitioner
# ---------------------------------------------------------------------------


class PagePartitioner:
    """Split a page element list into content, header and footer partitions."""

    def __init__(self, allow_context_across_page_breaks: bool = True,
                 exclude_header_footer: bool = True,
                 regex_based_detection: bool = True,
                 table_based_detection: bool = True,
                 is_page_numbered_doc: bool = False):
        self.allow_context_across_page_breaks = allow_context_across_page_breaks
        self.exclude_header_footer = exclude_header_footer
        self.regex_based_detection = regex_based_detection
        self.table_based_detection = table_based_detection
        self.is_page_numbered_doc = is_page_numbered_doc

    def partitions(self, element_list: PositionalElementList, page_width: float,
                   page_height: float) -> List[PagePartition]:
        num_breaks = element_list.number_of_page_breaks
        start = 0
        end = num_breaks + 1 if self.allow_context_across_page_breaks and not self.exclude_header_footer else 1
        result: List[PagePartition] = []
        while end <= num_breaks + 1:
            top = element_list.page_break(start).top if start > 0 else 0.0
            bottom = element_list.page_break(end).top if end <= num_breaks else page_height
            result.append(PagePartition(
                list(element_list.elements_between_page_breaks(start, end)), top, bottom
            ))
            start = end
            end += 1
        if self.exclude_header_footer and (len(result) > 1 or self.regex_based_detection):
            result = self._separate_headers_and_footers(result, page_width)
        log.debug("Page split into %d partitions", len(result))
        return result

    def _separate_headers_and_footers(self, partitions: List[PagePartition],
                                      page_width: float) -> List[PagePartition]:
        header_sizes = self._common_counts(
            partitions, lambda p: self._candidates(p, page_width, False), False
        )
        footer_sizes = self._common_counts(
            partitions, lambda p: self._candidates(p, page_width, True), True
        )
        content: List[Element] = []
        result: List[PagePartition] = []
        if self.allow_context_across_page_breaks:
            result.append(PagePartition(content, 0.0, partitions[-1].bottom_boundary))
        for i, partition in enumerate(partitions):
            elements = partition.elements
            is_boxed = lambda e: isinstance(e, Rectangle)  # noqa: E731
            header_size = _detect_size(elements, is_boxed, header_sizes[i], False)
            footer_size = _detect_size(elements, is_boxed, footer_sizes[i], True)
            size = len(elements)
            header_bottom = partition.top_boundary
            footer_top = partition.bottom_boundary
            body = elements[header_size:size - footer_size]
            if header_size > 0:
                header_bottom = elements[header_size - 1].bottom + PAGE_PARTITION_OFFSET
                result.append(PagePartition(
                    elements[:header_size], partition.top_boundary, header_bottom,
                    PagePartitionType.HEADER,
                ))
            if footer_size > 0:
                footer_top = elements[size - footer_size].top - PAGE_PARTITION_OFFSET
            if self.allow_context_across_page_breaks:
                content.extend(body)
            else:
                result.append(PagePartition(body, header_bottom, footer_top))
            if footer_size > 0:
                result.append(PagePartition(
                    elements[size - footer_size:], footer_top, partition.bottom_boundary,
                    PagePartitionType.FOOTER,
                ))
        return result

    def _common_counts(self, partitions: List[PagePartition],
                       candidate_fn: Callable[[PagePartition], List[Element]],
                       is_footer: bool) -> List[int]:
        final_counts: List[int] = []
        common_counts: List[int] = []
        candidates = [candidate_fn(p) for p in partitions]
        new_sequence = True
        for i in range(1, len(partitions)):
            prev_candidates = candidates[i - 1]
            prev_partition = partitions[i - 1]
            common = find_common_count(
                prev_candidates, candidates[i],
                prev_partition.top_boundary, partitions[i].top_boundary,
            )
            prev_common = 0 if new_sequence else common_counts[-1]
            rule_index = _first_index(prev_candidates, lambda e: _rule_based_match(e, is_footer)) + 1
            count = max(common, prev_common, rule_index)
            count -= _common_count_within_page(prev_partition, prev_candidates[:count], is_footer)
            final_counts.append(count)
            new_sequence = prev_common > common
            common_counts.append(common)
        if common_counts:
            count = common_counts[-1]
        elif self.regex_based_detection:
            count = _regex_match_count(candidates[0])
        else:
            count = 0
        last = candidates[-1] if candidates else []
        count = max(count, _first_index(last, lambda e: _rule_based_match(e, is_footer)) + 1)
        count -= _common_count_within_page(partitions[-1], last[:count], is_footer)
        final_counts.append(count)
        return final_counts

    def _candidates(self, partition: PagePartition, page_width: float,
                    is_footer: bool) -> List[Element]:
        """Lines near the top (bottom) of *partition* that may be a running header (footer).

        Lines are clustered on large gaps, drawn lines, alignment changes
        and extreme position; collection stops at the first cluster of
        more than two elements or when a line crosses the band limit.
        """
        page_height = partition.bottom_boundary - partition.top_boundary
        if is_footer:
            ultimate = partition.bottom_boundary - page_height * PAGE_FOOTER_RATIO
            extremity = partition.bottom_boundary - page_height * MAX_FOOTER_EXTREMITY
        else:
            ultimate = partition.top_boundary + page_height * PAGE_HEADER_RATIO
            extremity = partition.top_boundary + page_height * MAX_HEADER_EXTREMITY
        result: List[Element] = []
        curr_line: List[Element] = []
        prev_line: Optional[List[Element]] = None
        inter_line_space = float(2 ** 31 - 1)
        cluster_changes: List[int] = []
        after_end: Optional[Element] = None
        graphics_between = False
        prev_top = partition.top_boundary if is_footer else partition.bottom_boundary
        has_extremity_cluster = False

        ordered = reversed(partition.elements) if is_footer else partition.elements
        for element in ordered:
            if isinstance(element, Rectangle):
                if curr_line and compare_by_horizontal_alignment(curr_line[-1], element) != 0:
                    if graphics_between:
                        after_end = element
                        break
                    inter_line_space = _inter_line_space(curr_line[-1], element, is_footer)
                    if inter_line_space >= (element.height or 0.0) * MAX_INTER_LINE_SPACE_TO_HEIGHT:
                        cluster_changes.append(len(result))
                    if prev_line is None:
                        line_top = curr_line[-1].top
                        if line_top > extremity if is_footer else line_top < extremity:
                            cluster_changes.append(len(result))
                            has_extremity_cluster = True
                    elif (
                        _LineAlignment.of(prev_line, page_width) != _LineAlignment.of(curr_line, page_width)
                        or is_footer and sum(1 for e in prev_line if is_number_in_any_system(e.text)) == 1
                    ):
                        boundary = len(result) - len(curr_line)
                        if not cluster_changes or boundary >= cluster_changes[-1]:
                            cluster_changes.append(boundary)
                    prev_line = curr_line
                    curr_line = []
                elif sum(1 for e in curr_line if not PUNCTUATION_PATTERN.fullmatch(e.text)) == MAX_ELEMENTS_PER_LINE:
                    # looks like a table row
                    result = result[:len(result) - len(curr_line)]
                    break
                curr_line.append(element)
                if is_footer:
                    element_end = element.top
                    threshold = max(prev_top - page_height * MAX_SPACE_BETWEEN_FOOTER_ELEMENTS, ultimate)
                    outside = element_end < threshold
                else:
                    element_end = element.bottom
                    threshold = min(prev_top + page_height * MAX_SPACE_BETWEEN_HEADER_ELEMENTS, ultimate)
                    outside = element_end > threshold
                if outside:
                    after_end = element
                    break
                result.append(element)
                prev_top = element_end
                graphics_between = False
            elif element.is_graphical:
                graphics_between = True

        page_number_index = -1
        if self.is_page_numbered_doc and is_footer:
            page_number_index = _first_index(result, lambda e: is_page_number(e.text))

        # a cluster that continues past the limit is body text
        if result and after_end is not None:
            last_space = _inter_line_space(result[-1], after_end, is_footer)
            if (
                last_space < MAX_INTER_LINE_SPACE_TO_HEIGHT * (after_end.height or 0.0)
                and inter_line_space != 0
                and abs(last_space - inter_line_space) / inter_line_space < PARA_INTER_LINE_SPACE_VARIATION
            ):
                if cluster_changes:
                    result = result[:cluster_changes.pop()]
                else:
                    result = []

        cluster_changes.append(len(result))
        for i in range(2 if has_extremity_cluster else 1, len(cluster_changes)):
            if cluster_changes[i] - cluster_changes[i - 1] > MAX_SUCCESSIVE_CLUSTER_SIZE:
                rule_index = _first_index(result, lambda e: _rule_based_match(e, is_footer))
                return result[:max(page_number_index + 1, rule_index + 1, cluster_changes[i - 1])]

        # tabular headers/footers extend to the whole bordered box
        box = result[-1].context.bounding_rect if result and result[-1].context is not None else None
        if self.table_based_detection and box is not None and box.height < page_height * MAX_TABULAR_HEADER_SIZE:
            element_list = result[-1].element_list
            step = -1 if is_footer else 1
            i = result[-1].list_index + step
            while element_list is not None and 0 <= i < len(element_list):
                sibling = element_list[i]
                if isinstance(sibling, Rectangle):
                    if sibling.context is None or sibling.context.bounding_rect is not box:
                        break
                    result.append(sibling)
                i += step
        return result
