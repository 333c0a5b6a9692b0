"""Lightweight lexical classification of cell text.

Regex checks only: numeric, amount, date, index markers, total keywords,
header-like rows and named entities (city names). Nothing here looks at
geometry.
"""

from __future__ import annotations

import datetime
import re
import string
from enum import Enum
from typing import FrozenSet, List, Optional, Sequence

URL_PATTERN = re.compile(
    r"(https?|ftp|file)://[-a-zA-Z0-9+&@#/%?=~_|!:,.;]*[-a-zA-Z0-9+&@#/%=~_|]"
)
PUNCTUATION_PATTERN = re.compile("[" + re.escape(string.punctuation) + "]")
# Non numeric content that may accompany the number in an amount cell.
NUMERIC_QUALIFIERS = "\\$|%|USD|EUR|\u20ac|-|_|\u2212"

_CONTAINS_ALPHA = re.compile(r"[a-zA-Z]")
_CONTAINS_NUM = re.compile(r"[0-9]")
_NUM = re.compile(r"[0-9]+")
_TOTAL_PHRASE = re.compile(r"(.*\s)?(?i:(net|(sub)?total|estimated))(\s.*)?:?", re.DOTALL)
_CURRENCY_SYMBOLS = ("$", "\u20ac")
_INDEX_START_DELIM = re.compile(r"[(\[]")
_INDEX_END_DELIM = re.compile(r"[.,)\]]")
_ALPHA_NUM = re.compile(r"([A-Z]+|[a-z]+|[0-9]+)")
_ROMAN = re.compile(r"M{0,3}(CM|CD|D?C{0,3})(XC|XL|L?X{0,3})(IX|IV|V?I{0,3})")
_BULLET = re.compile("[\u25a0-\u25ff]")
_WORD_SEP = re.compile(
    "(["
    + re.escape(string.punctuation)
    + "\\s\u00a0\u2007\u202f\u3010\u3011\u007c\u00f7\u0002\u0001\u2022\u201e\ue010\ue011"
    + "\u200b-\u200f\u2060\ufeff"
    + "]+)"
)
_PUNCT_OR_SPACE = re.compile(r"[\s" + re.escape(string.punctuation) + r"]+")
_EXTRA_SPACES = "\u00a0\u2007\u202f"

_DATE_DMY = re.compile(r"([0-9]{1,2})([/ .\-])([0-9]{1,2})\2([0-9]{2}|[0-9]{4})")
_DATE_YMD = re.compile(r"([0-9]{2}|[0-9]{4})([/ .\-])([0-9]{1,2})\2([0-9]{1,2})")
_DATE_YEAR = re.compile(r"[1-2][0-9]{3}")

COMMON_NON_LOCATION_TOKENS: FrozenSet[str] = frozenset(
    {
        "total", "date", "name", "amount", "balance", "price", "rate", "value",
        "march", "may", "june", "august", "page", "none", "other", "mobile",
        "orange", "victoria", "florence", "gary", "george", "santa", "salem",
    }
)

DEFAULT_NAMED_ENTITIES: FrozenSet[str] = frozenset(
    {
        "abu dhabi", "accra", "addis ababa", "ahmedabad", "algiers", "amsterdam",
        "ankara", "athens", "atlanta", "auckland", "austin", "baghdad", "baltimore",
        "bangalore", "bangkok", "barcelona", "beijing", "beirut", "belfast",
        "belgrade", "berlin", "bern", "bogota", "boston", "brasilia", "bratislava",
        "brisbane", "brussels", "bucharest", "budapest", "buenos aires", "cairo",
        "calgary", "canberra", "cape town", "caracas", "casablanca", "charlotte",
        "chennai", "chicago", "copenhagen", "dakar", "dallas", "damascus",
        "dar es salaam", "delhi", "denver", "detroit", "dhaka", "doha", "dubai",
        "dublin", "durban", "edinburgh", "frankfurt", "geneva", "george town",
        "glasgow", "guangzhou", "hamburg", "hanoi", "havana", "helsinki",
        "ho chi minh city", "hong kong", "honolulu", "houston", "hyderabad",
        "istanbul", "jakarta", "jerusalem", "johannesburg", "kabul", "karachi",
        "kathmandu", "kiev", "kolkata", "kuala lumpur", "kuwait city", "lagos",
        "lahore", "las vegas", "lima", "lisbon", "ljubljana", "london",
        "los angeles", "luanda", "luxembourg", "lyon", "madrid", "manchester",
        "manila", "marseille", "melbourne", "mexico city", "miami", "milan",
        "minneapolis", "minsk", "monaco", "montevideo", "montreal", "moscow",
        "mumbai", "munich", "nairobi", "naples", "new delhi", "new orleans",
        "new york", "nicosia", "osaka", "oslo", "ottawa", "panama city", "paris",
        "perth", "philadelphia", "phoenix", "portland", "prague", "pune", "quito",
        "reykjavik", "riga", "rio de janeiro", "riyadh", "rome", "rotterdam",
        "san diego", "san francisco", "san jose", "santiago", "sao paulo",
        "seattle", "seoul", "shanghai", "shenzhen", "singapore", "sofia",
        "stockholm", "stuttgart", "sydney", "taipei", "tallinn", "tehran",
        "tel aviv", "tokyo", "toronto", "tunis", "turin", "vancouver", "venice",
        "vienna", "vilnius", "warsaw", "washington", "wellington", "wicklow",
        "zagreb", "zurich",
    }
)


# ---------------------------------------------------------------------------
# Character classes
# ---------------------------------------------------------------------------


def is_white_space(ch: str) -> bool:
    return ch.isspace() or ch in _EXTRA_SPACES


def has_alphabets(text: str) -> bool:
    return _CONTAINS_ALPHA.search(text) is not None


def has_numeric_content(text: str) -> bool:
    return _CONTAINS_NUM.search(text) is not None


def is_number(text: str) -> bool:
    return _NUM.fullmatch(text) is not None


def is_alpha_numeric(text: str) -> bool:
    return bool(text) and _ALPHA_NUM.fullmatch(text) is not None


def is_bullet(text: str) -> bool:
    return bool(text) and _BULLET.fullmatch(text) is not None


def _is_cased_alphabetic(text: str, upper: bool) -> bool:
    if not text:
        return False
    has_alpha = False
    for ch in text:
        if ch.isalpha():
            has_alpha = True
            if (ch.islower() if upper else ch.isupper()):
                return False
    return has_alpha


def is_lower_case_alphabetic_string(text: str) -> bool:
    return _is_cased_alphabetic(text, upper=False)


def is_upper_case_alphabetic_string(text: str) -> bool:
    return _is_cased_alphabetic(text, upper=True)


def is_roman_number(text: str) -> bool:
    if is_lower_case_alphabetic_string(text):
        text = text.upper()
    return (
        bool(text)
        and is_upper_case_alphabetic_string(text)
        and _ROMAN.fullmatch(text) is not None
    )


def is_number_in_any_system(text: str) -> bool:
    return is_number(text) or is_roman_number(text)


# ---------------------------------------------------------------------------
# Words
# ---------------------------------------------------------------------------


def split_into_words(text: str, include_punctuation: bool = True) -> List[str]:
    """Split on punctuation and spaces; separators are kept as words when requested."""
    words: List[str] = []
    for i, chunk in enumerate(_WORD_SEP.split(text)):
        is_separator = i % 2 == 1
        if is_separator and not include_punctuation:
            continue
        stripped = chunk.strip(" \t\n\r\f\v" + _EXTRA_SPACES)
        if stripped:
            words.append(stripped)
    return words


def are_strings_non_numerically_invariant(first: str, second: str) -> bool:
    """True when the two texts differ only in their numbers."""
    words1 = split_into_words(first)
    words2 = split_into_words(second)
    if len(words1) != len(words2):
        return False
    for w1, w2 in zip(words1, words2):
        if w1 != w2 and not (is_number_in_any_system(w1) and is_number_in_any_system(w2)):
            return False
    return True


# ---------------------------------------------------------------------------
# Amounts, dates, indexes
# ---------------------------------------------------------------------------


def is_semantically_incomplete(text: str) -> bool:
    """A lone currency symbol waiting for its amount."""
    return text in _CURRENCY_SYMBOLS


def is_amount_or_percentage(text: str) -> bool:
    """Number with optional brackets, negative sign, separators and percent."""
    value = text.strip()
    if not value:
        return False
    if value[0] == "(" and value[-1] == ")":
        value = value[1:-1]
    if not value:
        return False
    if value[0] in ("-", "\u2212"):
        value = value[1:]
    if not value:
        return False
    if value[-1] == "%":
        value = value[:-1].strip()
    value = re.sub(r"[.,]", "", value)
    return bool(value) and is_number(value)


def _valid_date(year: int, month: int, day: int, two_digit_year: bool) -> bool:
    if two_digit_year:
        year += 2000
    try:
        datetime.date(year, month, day)
    except ValueError:
        return False
    return True


def is_relaxed_numeric_date(text: str) -> bool:
    """Numeric dates in middle, little or big endian order, or a bare year."""
    normalized = re.sub(r"\s+", " ", text.strip().replace("\u00a0", " "))
    normalized = normalized.replace("\u2212", "-")
    m = _DATE_DMY.fullmatch(normalized)
    if m:
        a, b, y = int(m.group(1)), int(m.group(3)), m.group(4)
        two = len(y) == 2
        if _valid_date(int(y), a, b, two) or _valid_date(int(y), b, a, two):
            return True
    m = _DATE_YMD.fullmatch(normalized)
    if m:
        y, a, b = m.group(1), int(m.group(3)), int(m.group(4))
        if _valid_date(int(y), a, b, len(y) == 2):
            return True
    return _DATE_YEAR.fullmatch(normalized) is not None


def contains_only_index(text: str) -> bool:
    """Text is an index marker such as ``1.``, ``(a)``, ``iv)`` or a bullet."""
    if not text:
        return False
    if _INDEX_END_DELIM.search(text):
        parts = [p for p in _INDEX_END_DELIM.split(text)]
        while parts and parts[-1] == "":
            parts.pop()
        if len(parts) != 1:
            return False
        index = parts[0]
        if index and _INDEX_START_DELIM.fullmatch(index[0]):
            index = index[1:]
        return (
            (len(index) <= 3 and is_alpha_numeric(index))
            or is_roman_number(index)
            or is_bullet(index)
        )
    trimmed = text.strip()
    return len(trimmed) == 1 and is_bullet(trimmed)


def means_total(text: str) -> bool:
    """Text carries a total / subtotal / net / estimated keyword."""
    return _TOTAL_PHRASE.fullmatch(text) is not None


def can_be_connected(first: str, second: str) -> bool:
    """Joining *first* and *second* reads as one phrase (judged on *first* only)."""
    return (
        first.endswith(":")
        or first.endswith(",")
        or (has_numeric_content(first) and first.endswith("."))
    )


def is_last_line_of_paragraph(text: str) -> bool:
    if not text.endswith("."):
        return False
    body = text[:-1]
    prev_period = body.find(".")
    if prev_period == -1:
        return True
    return len(re.split(r"\s+", body[prev_period + 1:])) > 1


# ---------------------------------------------------------------------------
# Regex type
# ---------------------------------------------------------------------------


class RegexType(Enum):
    """Coarse lexical class of a text, ordered by priority."""

    NON_ALPHANUMERIC = 0
    NUMERIC = 1
    DATE = 2
    ALPHA = 3
    ALPHANUMERIC = 4

    @property
    def priority(self) -> int:
        return self.value

    @classmethod
    def of(cls, text: str) -> "RegexType":
        if has_alphabets(text):
            return cls.ALPHANUMERIC if has_numeric_content(text) else cls.ALPHA
        if is_relaxed_numeric_date(text):
            return cls.DATE
        if has_numeric_content(text):
            return cls.NUMERIC
        return cls.NON_ALPHANUMERIC


def can_be_header(texts: Sequence[str]) -> bool:
    """Texts read as a header: wordy, and not the end of a sentence when alone."""
    if not texts:
        return False
    if len(texts) == 1:
        return (
            RegexType.of(texts[0]).priority >= RegexType.ALPHA.priority
            and not is_last_line_of_paragraph(texts[0])
        )
    return all(RegexType.of(t).priority >= RegexType.ALPHA.priority for t in texts[1:])


def is_amount_representation(text: str) -> bool:
    """Numeric once the first currency/sign qualifier is read as a digit."""
    if RegexType.of(text) is RegexType.NUMERIC:
        return True
    return RegexType.of(re.sub(NUMERIC_QUALIFIERS, "0", text, count=1)) is RegexType.NUMERIC


# ---------------------------------------------------------------------------
# Named entities
# ---------------------------------------------------------------------------


def normalize_locational_text(text: str) -> str:
    return _PUNCT_OR_SPACE.sub(" ", text.lower()).strip()


def is_named_entity(text: str, names: Optional[FrozenSet[str]] = None) -> bool:
    """Text is exactly a known city name."""
    if not text:
        return False
    normalized = normalize_locational_text(text)
    if normalized in COMMON_NON_LOCATION_TOKENS:
        return False
    return normalized in (DEFAULT_NAMED_ENTITIES if names is None else names)
