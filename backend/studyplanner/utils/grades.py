"""Credit-weighted grade average (German scale, 1.0 best, 5.0 worst).

Grades are entered incrementally, so anything that is not a usable grade
(missing, blank, non-numeric, outside 1.0..5.0) simply counts as "not
graded yet" and never raises.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, Optional

from ..models import CourseStatus

MIN_GRADE = 1.0
MAX_GRADE = 5.0
PASSING_GRADE = 4.0


@dataclass(frozen=True)
class GradeSummary:
    average: float
    total_credits: int
    graded_credits: int
    graded_count: int


def parse_grade(raw: Any) -> Optional[float]:
    """Return `raw` as a float grade in [1.0, 5.0] or None if unusable."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, str):
        text = raw.strip().replace(",", ".")
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            return None
    elif isinstance(raw, (int, float)):
        value = float(raw)
    else:
        return None
    if math.isnan(value) or value < MIN_GRADE or value > MAX_GRADE:
        return None
    return value


def round_half_up(value: float, places: int = 2) -> float:
    """Round half away from zero on the decimal representation of `value`."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _field(entry: Any, name: str) -> Any:
    if isinstance(entry, dict):
        return entry.get(name)
    return getattr(entry, name, None)


def index_grades(grades: Iterable[Any]) -> Dict[Any, Any]:
    """Map course id -> raw grade; the first entry for a course wins."""
    out: Dict[Any, Any] = {}
    for entry in grades or []:
        course_id = _field(entry, "course_id")
        if course_id is not None and course_id not in out:
            out[course_id] = _field(entry, "grade")
    return out


def calculate_average(courses: Iterable[Any], grades: Iterable[Any]) -> GradeSummary:
    """Compute the credit-weighted average over all validly graded courses.

    `courses` need `id` and `credits`; `grades` are dicts or objects with
    `course_id` and `grade`. The average is rounded to two places and is 0
    when nothing is graded. `total_credits` counts every course.
    """
    by_course = index_grades(grades)
    weighted_sum = 0.0
    total_credits = 0
    graded_credits = 0
    graded_count = 0
    for course in courses:
        credits = course.credits
        total_credits += credits
        grade = parse_grade(by_course.get(course.id))
        if grade is None:
            continue
        weighted_sum += grade * credits
        graded_credits += credits
        graded_count += 1
    average = round_half_up(weighted_sum / graded_credits) if graded_credits > 0 else 0
    return GradeSummary(
        average=average,
        total_credits=total_credits,
        graded_credits=graded_credits,
        graded_count=graded_count,
    )


def status_for_grade(raw: Any) -> CourseStatus:
    """Derive the enrollment status implied by a grade entry."""
    grade = parse_grade(raw)
    if grade is None:
        return CourseStatus.ENROLLED
    if grade <= PASSING_GRADE:
        return CourseStatus.PASSED
    return CourseStatus.FAILED
