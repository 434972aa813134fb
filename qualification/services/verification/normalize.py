"""Value normalization helpers shared by the verification engine and format checks."""

import re
from datetime import date, datetime
from typing import Any, List, Optional

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")
_LIST_SEPARATORS = re.compile(r"[,;]")

# Italian documents print dates day first; ISO dates are year first.
_DAY_FIRST = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_YEAR_FIRST = re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$")

MIN_YEAR = 1900
MAX_YEAR = 2100


def is_blank(value: Any) -> bool:
    """True for None, blank strings and empty collections."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


def collapse(value: Any) -> str:
    """Case-fold and collapse whitespace; punctuation is kept."""
    return _WHITESPACE.sub(" ", str(value).strip()).casefold()


def clean_string(value: Any) -> str:
    """Case, punctuation and whitespace insensitive form of a value."""
    text = _NON_WORD.sub("", str(value).strip().lower())
    return _WHITESPACE.sub(" ", text).strip()


def split_values(value: Any, separated: bool = True) -> List[str]:
    """Split a multi-valued field into its non-blank items.

    Lists are flattened; strings are split on ``,`` and ``;`` when
    ``separated`` is set.
    """
    if is_blank(value):
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        items: List[str] = []
        for item in value:
            items.extend(split_values(item, separated))
        return items
    text = str(value)
    parts = _LIST_SEPARATORS.split(text) if separated else [text]
    return [part.strip() for part in parts if part.strip()]


def parse_document_date(value: Any) -> Optional[date]:
    """Parse a document date; None when it cannot be read.

    Accepts ``DD/MM/YYYY`` (also with ``.``, ``-`` or space separators) and
    ``YYYY-MM-DD``. Day first wins when both readings are possible.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if is_blank(value):
        return None

    normalized = _WHITESPACE.sub("/", re.sub(r"[.\-]", "/", str(value).strip()))

    match = _DAY_FIRST.match(normalized)
    if match:
        day, month, year = (int(part) for part in match.groups())
    else:
        match = _YEAR_FIRST.match(normalized)
        if not match:
            return None
        year, month, day = (int(part) for part in match.groups())

    if not MIN_YEAR <= year <= MAX_YEAR:
        return None

    try:
        return date(year, month, day)
    except ValueError:
        # 31/02 and friends
        return None


def format_document_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")
