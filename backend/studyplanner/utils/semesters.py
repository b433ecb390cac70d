"""Semester label helpers.

Semester labels are short human-readable codes: ``WS24/25`` for a winter
semester spanning two calendar years and ``SS25`` for a summer semester.
The helpers here turn labels into chronological sort keys and group or
filter course records by label. They are pure functions and work on any
object exposing ``name``/``semester`` attributes (models or plain records).
"""

from __future__ import annotations

import re
from typing import Any, Iterable, List, Optional, Tuple

SUMMER_PREFIX = "SS"
WINTER_PREFIX = "WS"
# Malformed labels sort after every valid one (max valid key is 99 * 10 + 5).
UNKNOWN_SEMESTER_KEY = 9999

_WINTER_RE = re.compile(r"^WS(\d{2})/(\d{2})$")
_SUMMER_RE = re.compile(r"^SS(\d{2})$")


def semester_sort_key(label: Any) -> int:
    """Map a semester label to an integer that orders labels chronologically.

    The key is ``year * 10 + offset`` where ``year`` is the two digits after
    the prefix and ``offset`` is 0 for summer and 5 for anything else, so
    ``WS24/25 (245) < SS25 (250) < WS25/26 (255) < SS26 (260)``.
    Labels whose year cannot be read get ``UNKNOWN_SEMESTER_KEY``.
    """
    if not isinstance(label, str) or len(label) < 4:
        return UNKNOWN_SEMESTER_KEY
    digits = label[2:4]
    if not (digits.isascii() and digits.isdigit()):
        return UNKNOWN_SEMESTER_KEY
    offset = 0 if label[:2] == SUMMER_PREFIX else 5
    return int(digits) * 10 + offset


def is_valid_semester(label: Any) -> bool:
    """Return True if `label` is a well-formed ``WS<YY>/<YY+1>`` or ``SS<YY>`` code."""
    if not isinstance(label, str):
        return False
    if _SUMMER_RE.match(label):
        return True
    m = _WINTER_RE.match(label)
    if not m:
        return False
    start, end = int(m.group(1)), int(m.group(2))
    return end == (start + 1) % 100


def describe_semester(label: str) -> str:
    """Return a long display name, e.g. ``Winter Semester 2024/25``."""
    m = _WINTER_RE.match(label or "")
    if m and is_valid_semester(label):
        return f"Winter Semester 20{m.group(1)}/{m.group(2)}"
    m = _SUMMER_RE.match(label or "")
    if m:
        return f"Summer Semester 20{m.group(1)}"
    return label


def sort_semesters(labels: Iterable[str]) -> List[str]:
    """Return distinct labels in chronological order."""
    return sorted(set(labels), key=lambda s: (semester_sort_key(s), s))


def group_by_semester(courses: Iterable[Any]) -> List[Tuple[str, list]]:
    """Group courses by semester label.

    Courses inside a group are ordered by name (case-insensitive) and the
    groups themselves by `semester_sort_key`; the label text breaks ties
    between labels sharing a key.
    """
    grouped: dict = {}
    for course in courses:
        grouped.setdefault(course.semester, []).append(course)
    for items in grouped.values():
        items.sort(key=lambda c: (c.name or "").casefold())
    return sorted(grouped.items(), key=lambda kv: (semester_sort_key(kv[0]), kv[0]))


def filter_courses(courses: Iterable[Any], semester: Optional[str] = None, search: Optional[str] = None) -> list:
    """Filter courses by exact semester and a free-text search term.

    The search term is matched case-insensitively against name, instructor,
    semester and abbreviation.
    """
    term = (search or "").strip().casefold()
    out = []
    for course in courses:
        if semester and course.semester != semester:
            continue
        if term:
            haystack = (course.name, course.instructor, course.semester, course.abbreviation)
            if not any(term in (value or "").casefold() for value in haystack):
                continue
        out.append(course)
    return out
