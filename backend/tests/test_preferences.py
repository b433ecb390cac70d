import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from studyplanner.preferences import InMemoryPreferencesStore, SqlPreferencesStore


def test_in_memory_get_set_delete():
    prefs = InMemoryPreferencesStore({"courses_view_mode": "list"})
    assert prefs.get("courses_view_mode") == "list"
    assert prefs.get("missing", "grid") == "grid"
    prefs.set("courses_semester_filter", "SS25")
    assert prefs.get("courses_semester_filter") == "SS25"
    prefs.delete("courses_semester_filter")
    assert prefs.get("courses_semester_filter") is None


def test_values_are_copied_through_json():
    prefs = InMemoryPreferencesStore()
    value = [{"course_id": 1, "grade": "1.7"}]
    prefs.set("course_grades", value)
    value[0]["grade"] = "5.0"
    assert prefs.get("course_grades") == [{"course_id": 1, "grade": "1.7"}]


def test_subscribe_and_unsubscribe():
    prefs = InMemoryPreferencesStore()
    seen = []
    unsubscribe = prefs.subscribe("deadlines", lambda key, value: seen.append((key, value)))
    prefs.set("deadlines", [])
    prefs.set("other", 1)
    prefs.delete("deadlines")
    unsubscribe()
    prefs.set("deadlines", ["ignored"])
    assert seen == [("deadlines", []), ("deadlines", None)]


def test_non_json_value_rejected():
    prefs = InMemoryPreferencesStore()
    with pytest.raises(ValueError):
        prefs.set("bad", {1, 2})


def test_sql_store_persists_across_instances(session):
    SqlPreferencesStore(session).set("dashboard_view_mode", "columns")
    assert SqlPreferencesStore(session).get("dashboard_view_mode") == "columns"
    SqlPreferencesStore(session).set("dashboard_view_mode", "grid")
    assert SqlPreferencesStore(session).get("dashboard_view_mode") == "grid"
    SqlPreferencesStore(session).delete("dashboard_view_mode")
    assert SqlPreferencesStore(session).get("dashboard_view_mode", "x") == "x"


def test_update_applies_change_to_current_value():
    prefs = InMemoryPreferencesStore({"deadlines": ["a"]})
    seen = []
    prefs.subscribe("deadlines", lambda key, value: seen.append(value))
    assert prefs.update("deadlines", lambda current: current + ["b"]) == ["a", "b"]
    assert prefs.update("missing", lambda current: current + [1], []) == [1]
    assert seen == [["a", "b"]]


def test_failed_update_keeps_stored_value():
    prefs = InMemoryPreferencesStore({"deadlines": ["a"]})

    def boom(current):
        raise LookupError("Deadline not found")

    with pytest.raises(LookupError):
        prefs.update("deadlines", boom)
    assert prefs.get("deadlines") == ["a"]


def test_concurrent_updates_are_not_lost():
    prefs = InMemoryPreferencesStore()

    def append(n):
        def add(current):
            time.sleep(0.001)
            return current + [n]
        prefs.update("course_grades", add, [])

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(append, range(40)))
    assert sorted(prefs.get("course_grades")) == list(range(40))


def test_sql_update_sees_value_written_by_another_session(session):
    from sqlmodel import Session
    from studyplanner.database import engine

    prefs = SqlPreferencesStore(session)
    prefs.set("deadlines", ["first"])
    assert prefs.get("deadlines") == ["first"]
    with Session(engine) as other:
        SqlPreferencesStore(other).update("deadlines", lambda current: current + ["second"])
    assert prefs.update("deadlines", lambda current: current + ["third"]) == ["first", "second", "third"]
