from types import SimpleNamespace

from studyplanner.models import CourseStatus
from studyplanner.utils.grades import calculate_average, parse_grade, round_half_up, status_for_grade


def _course(course_id, credits):
    return SimpleNamespace(id=course_id, credits=credits)


def test_no_graded_courses():
    summary = calculate_average([_course(1, 6), _course(2, 3)], [])
    assert summary.average == 0
    assert summary.graded_count == 0
    assert summary.graded_credits == 0
    assert summary.total_credits == 9


def test_single_graded_course():
    summary = calculate_average([_course(1, 6)], [{"course_id": 1, "grade": "1.7"}])
    assert summary.average == 1.7
    assert summary.graded_credits == 6
    assert summary.total_credits == 6
    assert summary.graded_count == 1


def test_weighted_average():
    courses = [_course("a", 6), _course("b", 6)]
    grades = [{"course_id": "a", "grade": 2.0}, {"course_id": "b", "grade": 4.0}]
    assert calculate_average(courses, grades).average == 3.0


def test_credit_weights_matter():
    courses = [_course(1, 6), _course(2, 6), _course(3, 3)]
    grades = [
        {"course_id": 1, "grade": "1.0"},
        {"course_id": 2, "grade": "2.0"},
        {"course_id": 3, "grade": "1.3"},
    ]
    summary = calculate_average(courses, grades)
    assert summary.average == 1.46
    assert summary.graded_credits == 15


def test_out_of_range_and_junk_grades_are_ignored():
    courses = [_course(1, 6), _course(2, 6), _course(3, 6), _course(4, 6), _course(5, 6)]
    grades = [
        {"course_id": 1, "grade": "5.5"},
        {"course_id": 2, "grade": 0.5},
        {"course_id": 3, "grade": "abc"},
        {"course_id": 4, "grade": "   "},
        {"course_id": 5, "grade": "2.3"},
    ]
    summary = calculate_average(courses, grades)
    assert summary.average == 2.3
    assert summary.graded_count == 1
    assert summary.graded_credits == 6
    assert summary.total_credits == 30


def test_bounds_are_inclusive():
    courses = [_course(1, 5), _course(2, 5)]
    grades = [{"course_id": 1, "grade": "1.0"}, {"course_id": 2, "grade": "5.0"}]
    summary = calculate_average(courses, grades)
    assert summary.average == 3.0
    assert summary.graded_count == 2


def test_rounding_is_half_up():
    courses = [_course(1, 1), _course(2, 1)]
    grades = [{"course_id": 1, "grade": "1.0"}, {"course_id": 2, "grade": "1.25"}]
    assert calculate_average(courses, grades).average == 1.13
    assert round_half_up(2.345) == 2.35
    assert round_half_up(2.344) == 2.34


def test_grade_objects_and_first_entry_wins():
    grades = [SimpleNamespace(course_id=1, grade="2.0"), SimpleNamespace(course_id=1, grade="4.0")]
    assert calculate_average([_course(1, 6)], grades).average == 2.0


def test_calculation_is_repeatable():
    courses = [_course(1, 6), _course(2, 3)]
    grades = [{"course_id": 1, "grade": "1.3"}, {"course_id": 2, "grade": "2.7"}]
    assert calculate_average(courses, grades) == calculate_average(courses, grades)


def test_parse_grade():
    assert parse_grade("1,7") == 1.7
    assert parse_grade(" 2.0 ") == 2.0
    assert parse_grade(3) == 3.0
    assert parse_grade(None) is None
    assert parse_grade(True) is None
    assert parse_grade("nan") is None
    assert parse_grade("4.01") == 4.01
    assert parse_grade("5.01") is None


def test_status_for_grade():
    assert status_for_grade("1.0") == CourseStatus.PASSED
    assert status_for_grade("4.0") == CourseStatus.PASSED
    assert status_for_grade("4.3") == CourseStatus.FAILED
    assert status_for_grade("5.0") == CourseStatus.FAILED
    assert status_for_grade("") == CourseStatus.ENROLLED
    assert status_for_grade("7") == CourseStatus.ENROLLED
