"""Key/value preferences store.

Grades, the personal deadline list and view settings are stored as JSON
values under string keys. Services receive a `PreferencesStore` instead of
talking to a storage backend directly, and can `subscribe` to a key to
react when its value changes.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

from sqlmodel import Session, select

from . import models

logger = logging.getLogger("studyplanner.preferences")

GRADES_KEY = "course_grades"
DEADLINES_KEY = "deadlines"
COURSES_VIEW_MODE_KEY = "courses_view_mode"
COURSES_SEMESTER_FILTER_KEY = "courses_semester_filter"
DASHBOARD_VIEW_MODE_KEY = "dashboard_view_mode"

# Keys owned by a service; the generic preference endpoint may not write them.
MANAGED_KEYS = frozenset({GRADES_KEY, DEADLINES_KEY})

PREFERENCE_DEFAULTS: Dict[str, Any] = {
    COURSES_VIEW_MODE_KEY: "grid",
    COURSES_SEMESTER_FILTER_KEY: "",
    DASHBOARD_VIEW_MODE_KEY: "grid",
}

ALLOWED_VALUES: Dict[str, tuple] = {
    COURSES_VIEW_MODE_KEY: ("grid", "list"),
    DASHBOARD_VIEW_MODE_KEY: ("grid", "columns"),
}

Listener = Callable[[str, Any], None]

# Serialises read-modify-write cycles made through `update`.
_UPDATE_LOCK = threading.RLock()


def _encode(value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=True)
    except (TypeError, ValueError) as e:
        raise ValueError(f"preference value is not JSON serialisable: {e}") from e


class PreferencesStore:
    """Base class holding subscriber bookkeeping.

    Subclasses implement `_load`, `_save` and `_remove`; values passed to
    `set` must survive a JSON round trip.
    """

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = {}

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._load(key)
        if raw is None:
            return default
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        self._save(key, _encode(value))
        self._notify(key, value)

    def update(self, key: str, mutate: Callable[[Any], Any], default: Any = None) -> Any:
        """Store `mutate(current_value)` under `key` and return it.

        The read and the write happen under one lock, so concurrent updates
        of the same key are applied one after the other instead of
        overwriting each other. Exceptions raised by `mutate` leave the
        stored value untouched.
        """
        with _UPDATE_LOCK:
            raw = self._load(key, for_update=True)
            value = mutate(default if raw is None else json.loads(raw))
            self.set(key, value)
        return value

    def delete(self, key: str) -> None:
        self._remove(key)
        self._notify(key, None)

    def subscribe(self, key: str, callback: Listener) -> Callable[[], None]:
        """Call `callback(key, value)` after every change to `key`.

        Returns a function that removes the subscription.
        """
        self._listeners.setdefault(key, []).append(callback)

        def unsubscribe():
            listeners = self._listeners.get(key, [])
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe

    def _notify(self, key: str, value: Any) -> None:
        for callback in list(self._listeners.get(key, [])):
            callback(key, value)

    def _load(self, key: str, for_update: bool = False):
        raise NotImplementedError

    def _save(self, key: str, raw: str) -> None:
        raise NotImplementedError

    def _remove(self, key: str) -> None:
        raise NotImplementedError


class InMemoryPreferencesStore(PreferencesStore):
    """Dictionary-backed store for scripts and tests."""

    def __init__(self, initial: Dict[str, Any] | None = None):
        super().__init__()
        self._data: Dict[str, str] = {k: _encode(v) for k, v in (initial or {}).items()}

    def _load(self, key: str, for_update: bool = False):
        return self._data.get(key)

    def _save(self, key: str, raw: str) -> None:
        self._data[key] = raw

    def _remove(self, key: str) -> None:
        self._data.pop(key, None)


class SqlPreferencesStore(PreferencesStore):
    """Store preferences as rows of the `Preference` table.

    One instance wraps one database session; each write commits.
    """

    def __init__(self, session: Session):
        super().__init__()
        self.session = session

    def _load(self, key: str, for_update: bool = False):
        if not for_update:
            row = self.session.get(models.Preference, key)
            return row.value if row else None
        # re-read the row so a value committed by another session is seen
        stmt = (
            select(models.Preference)
            .where(models.Preference.key == key)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = self.session.exec(stmt).first()
        return row.value if row else None

    def _save(self, key: str, raw: str) -> None:
        row = self.session.get(models.Preference, key)
        if row is None:
            row = models.Preference(key=key, value=raw)
        else:
            row.value = raw
            row.updated_at = datetime.now(timezone.utc)
        self.session.add(row)
        self.session.commit()
        logger.debug("preference saved key=%s bytes=%d", key, len(raw))

    def _remove(self, key: str) -> None:
        row = self.session.get(models.Preference, key)
        if row is not None:
            self.session.delete(row)
            self.session.commit()
