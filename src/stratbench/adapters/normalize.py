# Copyright (c) Syntropy Systems
"""Rule-based date and address normalization used by the reference strategy."""
from __future__ import annotations

import re
from datetime import datetime

DATE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d",  # 2024-01-05
    "%m/%d/%Y",  # 01/05/2024, 8/5/2024
    "%m/%d/%y",  # 8/15/23
    "%m-%d-%Y",  # 01-05-2024
    "%Y.%m.%d",  # 2024.01.05
    "%m.%d.%Y",  # 01.05.2024
    "%B %d, %Y",  # January 5, 2024
    "%B %d %Y",  # March 15 2023
    "%b %d, %Y",  # Jan 5, 2024
    "%b %d %Y",  # Nov 11 2023
    "%d %B %Y",  # 5 January 2024
    "%d %b %Y",  # 5 Jan 2024
    "%d-%b-%Y",  # 6-Jan-2024
    "%d %B '%y",  # 15 June '23
    "%b %Y %d",  # Oct 2023 7
)

_ORDINAL_WORDS: dict[str, str] = {
    "first": "1", "second": "2", "third": "3", "fourth": "4", "fifth": "5",
    "sixth": "6", "seventh": "7", "eighth": "8", "ninth": "9", "tenth": "10",
    "eleventh": "11", "twelfth": "12", "thirteenth": "13", "fourteenth": "14",
    "fifteenth": "15", "sixteenth": "16", "seventeenth": "17", "eighteenth": "18",
    "nineteenth": "19", "twentieth": "20", "twenty-first": "21",
    "twenty-second": "22", "twenty-third": "23", "twenty-fourth": "24",
    "twenty-fifth": "25", "twenty-sixth": "26", "twenty-seventh": "27",
    "twenty-eighth": "28", "twenty-ninth": "29", "thirtieth": "30",
    "thirty-first": "31",
}

# Longest first, so "twenty-first" wins over "first".
_ORDINAL_PATTERN = re.compile(
    r"\b("
    + "|".join(re.escape(w) for w in sorted(_ORDINAL_WORDS, key=len, reverse=True))
    + r")\b",
    re.IGNORECASE,
)
_ORDINAL_SUFFIX = re.compile(r"(?<=\d)(st|nd|rd|th)\b", re.IGNORECASE)
_LEADING_THE = re.compile(r"\bthe\s+", re.IGNORECASE)
_OF = re.compile(r"\s+of\s+", re.IGNORECASE)
_SPACES = re.compile(r"\s+")

ADDRESS_ABBREVIATIONS: dict[str, str] = {
    "st": "Street",
    "ave": "Avenue",
    "blvd": "Boulevard",
    "dr": "Drive",
    "ln": "Lane",
    "ct": "Court",
    "rd": "Road",
    "apt": "Apartment",
    "ste": "Suite",
    "pl": "Place",
    "cir": "Circle",
    "pkwy": "Parkway",
    "hwy": "Highway",
    "fl": "Floor",
}

_STATE_ZIP = re.compile(r"\b([A-Za-z]{2})\s+(\d{5}(?:-\d{4})?)$")


def _clean_date(raw: str) -> str:
    cleaned = _ORDINAL_SUFFIX.sub("", raw.strip())
    cleaned = _LEADING_THE.sub("", cleaned)
    cleaned = _OF.sub(" ", cleaned)
    cleaned = _ORDINAL_PATTERN.sub(lambda m: _ORDINAL_WORDS[m.group(1).lower()], cleaned)
    return _SPACES.sub(" ", cleaned).strip()


def normalize_date(raw: str) -> str:
    """Return ``raw`` as an ISO ``yyyy-mm-dd`` date.

    Raises:
        ValueError: Empty input or no known format matches

    """
    if not raw or not raw.strip():
        msg = "Date input is empty"
        raise ValueError(msg)

    cleaned = _clean_date(raw)
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).date().isoformat()  # noqa: DTZ007
        except ValueError:
            continue

    msg = f"Unable to parse date: {raw}"
    raise ValueError(msg)


def _title_case(text: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in text.lower().split())


def _expand_abbreviations(text: str) -> str:
    words: list[str] = []
    for word in text.split():
        bare = word.rstrip(".,")
        suffix = word[len(bare):].rstrip(".")
        words.append(ADDRESS_ABBREVIATIONS.get(bare.lower(), bare) + suffix)
    return " ".join(words)


def normalize_address(raw: str) -> str:
    """Title-case each comma-separated part and expand street abbreviations.

    A trailing two-letter state code followed by a ZIP code is upper-cased
    and left unexpanded.

    Raises:
        ValueError: Empty input

    """
    if not raw or not raw.strip():
        msg = "Address input is empty"
        raise ValueError(msg)

    parts: list[str] = []
    for raw_part in raw.split(","):
        part = _title_case(raw_part.strip())
        if not part:
            continue

        match = _STATE_ZIP.search(part)
        if match:
            before = _expand_abbreviations(part[: match.start()].strip())
            tail = f"{match.group(1).upper()} {match.group(2)}"
            part = f"{before} {tail}" if before else tail
        else:
            part = _expand_abbreviations(part)
        parts.append(part)

    return ", ".join(parts)
