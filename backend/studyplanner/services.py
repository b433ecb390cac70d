"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories,
the preferences store and the pure helpers in `utils`. Services validate
input (raising `ValueError` for bad input and `LookupError` for missing
entities), run the domain logic and persist through repositories.
"""

import logging
import uuid
from datetime import date, datetime, time as dtime, timedelta, timezone
from typing import Dict, List, Optional

from sqlmodel import Session

from . import models, repositories
from .config import settings
from .preferences import DEADLINES_KEY, GRADES_KEY, PreferencesStore, SqlPreferencesStore
from .utils import storage
from .utils.grades import GradeSummary, calculate_average, index_grades, status_for_grade
from .utils.semesters import filter_courses, group_by_semester, is_valid_semester, sort_semesters

logger = logging.getLogger("studyplanner.services")

COURSE_REQUIRED_FIELDS = ("name", "credits", "semester", "instructor", "day", "time", "room")
DEADLINE_TYPES = ("private", "administrative", "uni")
# Grades are stored as typed, including half-entered values like "1."; the
# limit only keeps junk out of the preferences row.
MAX_GRADE_TEXT = 32


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _local_naive(value: datetime) -> datetime:
    """Convert aware datetimes to naive local time; naive ones are kept as-is."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


class CourseService:
    """Create, edit, list and delete courses."""
    def __init__(self, session: Session, prefs: Optional[PreferencesStore] = None):
        self.session = session
        self.prefs = prefs or SqlPreferencesStore(session)
        self.repo = repositories.CourseRepository(session)

    def _clean(self, data: dict) -> dict:
        """Validate a course payload and return normalized field values."""
        cleaned = {}
        for field in COURSE_REQUIRED_FIELDS:
            value = data.get(field)
            if isinstance(value, str):
                value = value.strip()
            if value is None or value == "":
                raise ValueError("All fields are required")
            cleaned[field] = value
        try:
            credits = int(cleaned["credits"])
        except (TypeError, ValueError):
            raise ValueError("Credits must be a positive number")
        if isinstance(cleaned["credits"], bool) or credits <= 0:
            raise ValueError("Credits must be a positive number")
        cleaned["credits"] = credits
        if not is_valid_semester(cleaned["semester"]):
            raise ValueError("Invalid semester label")
        abbreviation = (data.get("abbreviation") or "").strip()
        cleaned["abbreviation"] = abbreviation or None
        return cleaned

    def get(self, course_id: int) -> models.Course:
        course = self.repo.get(course_id)
        if not course:
            raise LookupError("Course not found")
        return course

    def create(self, data: dict) -> models.Course:
        """Validate `data` and persist a new course."""
        course = self.repo.create(models.Course(**self._clean(data)))
        logger.info("course created id=%s semester=%s", course.id, course.semester)
        return course

    def replace(self, course_id: int, data: dict) -> models.Course:
        """Overwrite every editable field of an existing course."""
        course = self.get(course_id)
        for field, value in self._clean(data).items():
            setattr(course, field, value)
        course.updated_at = _utcnow()
        return self.repo.save(course)

    def patch(self, course_id: int, semester: Optional[str] = None, status: Optional[models.CourseStatus] = None) -> models.Course:
        """Move a course to another semester and/or set its status."""
        course = self.get(course_id)
        if semester is not None:
            if not is_valid_semester(semester):
                raise ValueError("Invalid semester label")
            course.semester = semester
        if status is not None:
            course.status = models.CourseStatus(status)
        course.updated_at = _utcnow()
        return self.repo.save(course)

    def delete(self, course_id: int) -> None:
        """Delete a course with its documents, dates, stored files and grade."""
        course = self.get(course_id)
        keys = [d.storage_key for d in course.documents]
        self.repo.delete(course)
        DocumentService(self.session).release_storage(keys)
        GradeService(self.session, self.prefs).forget(course_id)
        logger.info("course deleted id=%s", course_id)

    def list(self, semester: Optional[str] = None, search: Optional[str] = None) -> List[models.Course]:
        return filter_courses(self.repo.list(), semester=semester, search=search)

    def grouped(self, semester: Optional[str] = None, search: Optional[str] = None):
        """Return `(label, courses)` pairs in chronological semester order."""
        return group_by_semester(self.list(semester=semester, search=search))

    def semesters(self) -> List[str]:
        return sort_semesters(c.semester for c in self.repo.list())


class GradeService:
    """Read and write per-course grades and compute the weighted average.

    Grades live in the preferences store under `GRADES_KEY` as a list of
    ``{"course_id": int, "grade": str}`` entries. A subscription on that key
    keeps each course's `status` in line with its grade.
    """
    def __init__(self, session: Session, prefs: Optional[PreferencesStore] = None):
        self.session = session
        self.prefs = prefs or SqlPreferencesStore(session)
        self.course_repo = repositories.CourseRepository(session)
        self._before: Dict[int, str] = {}
        self.prefs.subscribe(GRADES_KEY, self._sync_statuses)

    def _stored(self) -> List[dict]:
        return self._entries_of(self.prefs.get(GRADES_KEY, []))

    @staticmethod
    def _entries_of(raw) -> List[dict]:
        if not isinstance(raw, list):
            logger.warning("ignoring malformed %s preference", GRADES_KEY)
            return []
        return [e for e in raw if isinstance(e, dict) and "course_id" in e]

    def entries(self) -> List[dict]:
        """Return one entry per existing course; ungraded courses have ``grade == ""``."""
        stored = index_grades(self._stored())
        return [
            {"course_id": c.id, "grade": "" if stored.get(c.id) is None else str(stored[c.id])}
            for c in self.course_repo.list()
        ]

    def set_grade(self, course_id: int, raw) -> dict:
        """Store the grade typed for `course_id`; blank input clears it.

        Any short text is accepted, invalid values just count as ungraded.
        """
        if not self.course_repo.get(course_id):
            raise LookupError("Course not found")
        text = "" if raw is None else str(raw).strip()
        if len(text) > MAX_GRADE_TEXT:
            raise ValueError("Grade is too long")

        def replace_entry(current):
            stored = self._entries_of(current)
            self._before = index_grades(stored)
            updated = [e for e in stored if e.get("course_id") != course_id]
            updated.append({"course_id": course_id, "grade": text})
            return updated

        self.prefs.update(GRADES_KEY, replace_entry, [])
        return {"course_id": course_id, "grade": text}

    def forget(self, course_id: int) -> None:
        """Drop the grade entry of a deleted course."""
        if not any(e.get("course_id") == course_id for e in self._stored()):
            return

        def drop_entry(current):
            remaining = [e for e in self._entries_of(current) if e.get("course_id") != course_id]
            self._before = index_grades(remaining)
            return remaining

        self.prefs.update(GRADES_KEY, drop_entry, [])

    def summary(self) -> GradeSummary:
        return calculate_average(self.course_repo.list(), self._stored())

    def _sync_statuses(self, key: str, value) -> None:
        after = index_grades(value or [])
        changed = [cid for cid in after if after.get(cid) != self._before.get(cid)]
        for cid in changed:
            course = self.course_repo.get(cid)
            if course is None:
                continue
            status = status_for_grade(after[cid])
            if course.status != status:
                course.status = status
                course.updated_at = _utcnow()
                self.course_repo.save(course)
                logger.info("course status updated id=%s status=%s", cid, status.value)
        self._before = after


class DocumentService:
    """Attach uploaded files to courses and serve them back."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.DocumentRepository(session)
        self.course_repo = repositories.CourseRepository(session)

    def upload(
        self,
        course_id: int,
        filename: str,
        payload: bytes,
        content_type: Optional[str] = None,
        name: Optional[str] = None,
        doc_type: models.DocumentType = models.DocumentType.OTHER,
    ) -> models.Document:
        """Validate and store an uploaded document for `course_id`."""
        if not self.course_repo.get(course_id):
            raise LookupError("Course not found")
        storage.validate_filename(filename)
        if not payload:
            raise ValueError("empty file")
        if len(payload) > settings.MAX_UPLOAD_BYTES:
            raise ValueError("file too large")
        storage.sniff_document_kind(payload, filename)
        key = storage.save_document_bytes(payload, filename)
        doc = models.Document(
            course_id=course_id,
            name=(name or "").strip() or filename,
            type=models.DocumentType(doc_type),
            filename=filename,
            content_type=content_type,
            size_bytes=len(payload),
            storage_key=key,
        )
        return self.repo.create(doc)

    def list(self, course_id: int) -> List[models.Document]:
        if not self.course_repo.get(course_id):
            raise LookupError("Course not found")
        return self.repo.list_for_course(course_id)

    def get(self, document_id: int) -> models.Document:
        doc = self.repo.get(document_id)
        if not doc:
            raise LookupError("Document not found")
        return doc

    def read(self, document_id: int):
        """Return `(document, bytes)` for a download."""
        doc = self.get(document_id)
        try:
            return doc, storage.read_document_bytes(doc.storage_key)
        except FileNotFoundError:
            logger.error("document file missing id=%s key=%s", doc.id, doc.storage_key)
            raise LookupError("Document file missing")

    def delete(self, document_id: int) -> None:
        doc = self.get(document_id)
        key = doc.storage_key
        self.repo.delete(doc)
        self.release_storage([key])

    def release_storage(self, keys) -> int:
        """Remove stored files no longer referenced by any document."""
        still_used = set(self.repo.list_storage_keys())
        removed = 0
        for key in set(keys):
            if key not in still_used and storage.remove_document_bytes(key):
                removed += 1
        return removed


class EventService:
    """Important dates per course and the dashboard queries built on them."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.ImportantDateRepository(session)
        self.course_repo = repositories.CourseRepository(session)
        self.doc_repo = repositories.DocumentRepository(session)

    def add_date(
        self,
        course_id: int,
        title: str,
        when: datetime,
        date_type: models.ImportantDateType = models.ImportantDateType.OTHER,
        description: Optional[str] = None,
    ) -> models.ImportantDate:
        if not self.course_repo.get(course_id):
            raise LookupError("Course not found")
        title = (title or "").strip()
        if not title:
            raise ValueError("title is required")
        event = models.ImportantDate(
            course_id=course_id,
            title=title,
            date=_local_naive(when),
            type=models.ImportantDateType(date_type),
            description=(description or "").strip() or None,
        )
        return self.repo.create(event)

    def delete_date(self, date_id: int) -> None:
        event = self.repo.get(date_id)
        if not event:
            raise LookupError("Important date not found")
        self.repo.delete(event)

    def todays_events(self, now: Optional[datetime] = None) -> List[models.ImportantDate]:
        """Events of any type falling on the current local day."""
        now = _local_naive(now or datetime.now())
        start = datetime.combine(now.date(), dtime())
        return self.repo.list_between(start, start + timedelta(days=1))

    def weekly_deadlines(self, now: Optional[datetime] = None) -> List[models.ImportantDate]:
        """Assignment, project and exam dates in the current Sunday-based week."""
        now = _local_naive(now or datetime.now())
        days_since_sunday = (now.weekday() + 1) % 7
        start = datetime.combine(now.date() - timedelta(days=days_since_sunday), dtime())
        return self.repo.list_between(start, start + timedelta(days=7), types=models.DEADLINE_DATE_TYPES)

    def dashboard(self) -> dict:
        return {
            "total_courses": self.course_repo.count(),
            "total_documents": self.doc_repo.count(),
            "upcoming_events": self.repo.count(),
        }


class DeadlineService:
    """Personal deadline / to-do list kept in the preferences store."""
    def __init__(self, prefs: PreferencesStore):
        self.prefs = prefs

    def list(self) -> List[dict]:
        raw = self.prefs.get(DEADLINES_KEY, [])
        return raw if isinstance(raw, list) else []

    def _update(self, mutate) -> List[dict]:
        """Apply `mutate` to the stored list under the store's update lock."""
        return self.prefs.update(DEADLINES_KEY, lambda raw: mutate(raw if isinstance(raw, list) else []), [])

    def _index(self, deadlines: List[dict], deadline_id: str) -> int:
        for i, d in enumerate(deadlines):
            if d.get("id") == deadline_id:
                return i
        raise LookupError("Deadline not found")

    def add(self, title: str, deadline_type: str = "private", due_date: Optional[date] = None, due_time: Optional[str] = None) -> dict:
        title = (title or "").strip()
        if not title:
            raise ValueError("title is required")
        if deadline_type not in DEADLINE_TYPES:
            raise ValueError(f"type must be one of {', '.join(DEADLINE_TYPES)}")
        deadline = {
            "id": uuid.uuid4().hex,
            "title": title,
            "type": deadline_type,
            "completed": False,
            "created_at": _utcnow().isoformat(),
            "due_date": due_date.isoformat() if due_date else None,
            "due_time": due_time or None,
        }
        self._update(lambda deadlines: deadlines + [deadline])
        return deadline

    def toggle(self, deadline_id: str) -> dict:
        def flip(deadlines):
            item = deadlines[self._index(deadlines, deadline_id)]
            item["completed"] = not item.get("completed", False)
            return deadlines

        deadlines = self._update(flip)
        return deadlines[self._index(deadlines, deadline_id)]

    def delete(self, deadline_id: str) -> None:
        def drop(deadlines):
            del deadlines[self._index(deadlines, deadline_id)]
            return deadlines

        self._update(drop)

    def move(self, from_index: int, to_index: int) -> List[dict]:
        """Move the deadline at `from_index` so it ends up at `to_index`."""
        def reorder(deadlines):
            if not (0 <= from_index < len(deadlines)) or not (0 <= to_index < len(deadlines)):
                raise ValueError("index out of range")
            deadlines.insert(to_index, deadlines.pop(from_index))
            return deadlines

        return self._update(reorder)

    def clear_completed(self) -> int:
        removed = []

        def drop_completed(deadlines):
            removed.extend(d for d in deadlines if d.get("completed"))
            return [d for d in deadlines if not d.get("completed")]

        self._update(drop_completed)
        return len(removed)


SEED_COURSES = [
    ("Design Workshop 1", "DW1", "WS24/25"),
    ("Human Centered Security", "HCS", "WS24/25"),
    ("Mensch-Maschine Interaktion", "MMI2", "WS24/25"),
    ("Wissenschaftliches Arbeiten", "WAL", "WS24/25"),
    ("Information Visualization", "InfoViz", "WS24/25"),
    ("LMU App 1", "FSE1", "SS25"),
    ("Praktikum VR", "VR/UE", "SS25"),
    ("Software Testing", "ST", "SS25"),
    ("Design Workshop 2", "DW2", "SS25"),
    ("LMU App 2", "FSE2", "WS25/26"),
    ("Ethik der KI", "EKI", "WS25/26"),
    ("Experience Design", "EXD", "WS25/26"),
    ("Online Multimedia", "OMM", "WS25/26"),
    ("Master Thesis", "MT", "SS26"),
]


class SeedService:
    """Wipe the database and optionally load the demo course list."""
    def __init__(self, session: Session, prefs: Optional[PreferencesStore] = None):
        self.session = session
        self.prefs = prefs or SqlPreferencesStore(session)
        self.course_repo = repositories.CourseRepository(session)
        self.doc_repo = repositories.DocumentRepository(session)

    def clear(self) -> None:
        """Delete all courses (with documents and dates) and all grades."""
        keys = self.doc_repo.list_storage_keys()
        self.course_repo.delete_all()
        DocumentService(self.session).release_storage(keys)
        self.prefs.delete(GRADES_KEY)
        logger.info("all course data cleared")

    def seed(self) -> dict:
        self.clear()
        for name, abbreviation, semester in SEED_COURSES:
            self.course_repo.create(models.Course(
                name=name,
                abbreviation=abbreviation,
                credits=6,
                semester=semester,
                instructor="n.a.",
                day="n.a.",
                time="n.a.",
                room="n.a.",
            ))
        logger.info("seeded %d courses", len(SEED_COURSES))
        return {"message": "Your courses created successfully", "courses": len(SEED_COURSES), "events": 0}
