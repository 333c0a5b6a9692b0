"""Tests for docgrid.semantics: lexical classification of cell text."""

import pytest

from docgrid.semantics import (
    RegexType,
    are_strings_non_numerically_invariant,
    can_be_connected,
    can_be_header,
    contains_only_index,
    is_amount_or_percentage,
    is_amount_representation,
    is_last_line_of_paragraph,
    is_named_entity,
    is_relaxed_numeric_date,
    is_roman_number,
    is_semantically_incomplete,
    means_total,
    split_into_words,
)


class TestRegexType:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("Revenue", RegexType.ALPHA),
            ("Q1 2020", RegexType.ALPHANUMERIC),
            ("12/31/2020", RegexType.DATE),
            ("1,234.50", RegexType.NUMERIC),
            ("$ 6", RegexType.NUMERIC),
            ("--", RegexType.NON_ALPHANUMERIC),
            ("", RegexType.NON_ALPHANUMERIC),
        ],
    )
    def test_of(self, text, expected):
        assert RegexType.of(text) is expected

    def test_priority_order(self):
        assert RegexType.NUMERIC.priority < RegexType.DATE.priority < RegexType.ALPHA.priority


class TestAmounts:
    @pytest.mark.parametrize("text", ["1,234", "(12.5)", "-7", "45 %", "−3"])
    def test_amount_or_percentage(self, text):
        assert is_amount_or_percentage(text)

    @pytest.mark.parametrize("text", ["", "()", "abc", "12a"])
    def test_not_amount(self, text):
        assert not is_amount_or_percentage(text)

    @pytest.mark.parametrize("text", ["$ 6", "100", "-", "€"])
    def test_amount_representation(self, text):
        assert is_amount_representation(text)

    def test_words_are_not_amounts(self):
        assert not is_amount_representation("Total")

    def test_lone_currency_is_incomplete(self):
        assert is_semantically_incomplete("$")
        assert not is_semantically_incomplete("$5")


class TestDates:
    @pytest.mark.parametrize("text", ["31/12/2020", "12-31-20", "2020.01.15", "1999"])
    def test_dates(self, text):
        assert is_relaxed_numeric_date(text)

    @pytest.mark.parametrize("text", ["32/13/2020", "12345", "3000"])
    def test_not_dates(self, text):
        assert not is_relaxed_numeric_date(text)


class TestIndexes:
    @pytest.mark.parametrize("text", ["1.", "(a)", "iv)", "[2]", "■"])
    def test_index_markers(self, text):
        assert contains_only_index(text)

    @pytest.mark.parametrize("text", ["", "Item 1.", "abcd."])
    def test_not_index_markers(self, text):
        assert not contains_only_index(text)

    def test_roman(self):
        assert is_roman_number("XIV")
        assert is_roman_number("iv")
        assert not is_roman_number("IIII")


class TestTotals:
    @pytest.mark.parametrize("text", ["Total", "Sub total", "SUBTOTAL", "Net income", "Estimated cost"])
    def test_means_total(self, text):
        assert means_total(text)

    @pytest.mark.parametrize("text", ["Totally", "Revenue", ""])
    def test_not_total(self, text):
        assert not means_total(text)


class TestWords:
    def test_split_keeps_separators(self):
        assert split_into_words("a, b") == ["a", ",", "b"]

    def test_split_drops_separators(self):
        assert split_into_words("a, b", include_punctuation=False) == ["a", "b"]

    def test_numerically_invariant(self):
        assert are_strings_non_numerically_invariant("Page 1 of 3", "Page 2 of 3")
        assert not are_strings_non_numerically_invariant("Page 1", "Sheet 1")


class TestHeaderText:
    def test_single_wordy_header(self):
        assert can_be_header(["Schedule of fees:"])

    def test_sentence_end_is_not_header(self):
        assert not can_be_header(["The table below lists the fees."])

    def test_rest_must_be_wordy(self):
        assert can_be_header(["1", "Name", "Amount"])
        assert not can_be_header(["Name", "12"])

    def test_empty(self):
        assert not can_be_header([])

    def test_last_line_of_paragraph(self):
        assert is_last_line_of_paragraph("This ends here.")
        assert not is_last_line_of_paragraph("No period")

    def test_can_be_connected(self):
        assert can_be_connected("Notes:", "x")
        assert can_be_connected("1.", "x")
        assert not can_be_connected("Name", "x")


class TestNamedEntities:
    def test_city(self):
        assert is_named_entity("New York")
        assert is_named_entity("new-york")

    def test_common_tokens_excluded(self):
        assert not is_named_entity("Total")

    def test_custom_names(self):
        assert is_named_entity("Gotham", frozenset({"gotham"}))
        assert not is_named_entity("London", frozenset({"gotham"}))
