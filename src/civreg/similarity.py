"""Edit-distance name matching over birth records."""

from __future__ import annotations

from typing import Callable, Iterable

from .codec import Record
from .models.search import Match, SearchQuery

DEFAULT_THRESHOLD = 0.45
DEFAULT_LIMIT = 10

FULL_NAME_WEIGHT = 0.8
FULL_NAME_DOB_WEIGHT = 0.2
SURNAME_WEIGHT = 0.9
SURNAME_DOB_WEIGHT = 0.1


def _normalize(text: str) -> str:
    return text.strip().lower()


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance between the trimmed, lowercased forms of a and b."""
    a, b = _normalize(a), _normalize(b)
    rows, cols = len(a) + 1, len(b) + 1
    dp = [[0] * cols for _ in range(rows)]
    for i in range(rows):
        dp[i][0] = i
    for j in range(cols):
        dp[0][j] = j

    for i in range(1, rows):
        for j in range(1, cols):
            cost = 0 if a[i - 1] == b[j - 1] else 1
            dp[i][j] = min(
                dp[i - 1][j] + 1,
                dp[i][j - 1] + 1,
                dp[i - 1][j - 1] + cost,
            )
    return dp[-1][-1]


def similarity(a: str, b: str) -> float:
    """1 - distance / longer length; two empty strings are identical."""
    longest = max(len(_normalize(a)), len(_normalize(b)))
    if longest == 0:
        return 1.0
    return 1.0 - edit_distance(a, b) / longest


def child_full_name(record: Record) -> str:
    parts = (
        record.get("CHILD_FIRST_NAME", ""),
        record.get("CHILD_MIDDLE_NAME", ""),
        record.get("CHILD_LAST_NAME", ""),
    )
    return " ".join(p.strip() for p in parts if p and p.strip())


def last_token(name: str) -> str:
    tokens = name.split()
    return tokens[-1] if tokens else ""


def score_record(
    query: SearchQuery,
    record: Record,
    name_of: Callable[[Record], str] = child_full_name,
) -> float:
    name = name_of(record)
    full_sim = similarity(query.name, name)
    last_sim = similarity(query.name, last_token(name))
    dob = query.dob.strip()
    dob_match = 1.0 if dob and record.get("DATE_OF_BIRTH", "")[:10] == dob else 0.0
    score = max(
        FULL_NAME_WEIGHT * full_sim + FULL_NAME_DOB_WEIGHT * dob_match,
        SURNAME_WEIGHT * last_sim + SURNAME_DOB_WEIGHT * dob_match,
    )
    return min(1.0, max(0.0, score))


def search(
    query: SearchQuery,
    records: Iterable[Record],
    threshold: float = DEFAULT_THRESHOLD,
    limit: int = DEFAULT_LIMIT,
    name_of: Callable[[Record], str] = child_full_name,
) -> list[Match]:
    """Rank records against a name/date query.

    Each record scores the better of a whole-name match and a surname match,
    each nudged up by an exact date-of-birth hit. Only scores strictly above
    ``threshold`` are kept; the best ``limit`` are returned, highest first.
    """
    matches: list[Match] = []
    for record in records:
        score = score_record(query, record, name_of)
        if score > threshold:
            matches.append(Match(record=dict(record), score=score))
    matches.sort(key=lambda m: m.score, reverse=True)
    return matches[:limit]
