"""SQLModel data models.

This module defines the study planner's database tables using SQLModel.
A `Course` owns its `Document` and `ImportantDate` rows (deleting the
course deletes them); `Preference` is a small key/value table backing
the preferences store.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from sqlalchemy import Column, DateTime
from sqlmodel import Field, Relationship, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CourseStatus(str, Enum):
    ENROLLED = "ENROLLED"
    PASSED = "PASSED"
    FAILED = "FAILED"


class DocumentType(str, Enum):
    LECTURE_SLIDES = "LECTURE_SLIDES"
    LECTURE_NOTES = "LECTURE_NOTES"
    ASSIGNMENT = "ASSIGNMENT"
    EXAM = "EXAM"
    SUMMARY = "SUMMARY"
    OTHER = "OTHER"


class ImportantDateType(str, Enum):
    ASSIGNMENT_DUE = "ASSIGNMENT_DUE"
    PROJECT_DUE = "PROJECT_DUE"
    EXAM_DATE = "EXAM_DATE"
    LECTURE = "LECTURE"
    OTHER = "OTHER"


# Types shown in the dashboard's "due this week" panel.
DEADLINE_DATE_TYPES = (
    ImportantDateType.ASSIGNMENT_DUE,
    ImportantDateType.PROJECT_DUE,
    ImportantDateType.EXAM_DATE,
)


class Course(SQLModel, table=True):
    """A course the user is taking or has taken.

    Fields:
    - `credits`: ECTS weight, a positive integer used to weight grades
    - `semester`: label such as ``WS24/25`` or ``SS25``
    - `status`: enrollment outcome, kept in sync with the stored grade
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    abbreviation: Optional[str] = None
    credits: int
    semester: str = Field(index=True)
    instructor: str
    day: str
    time: str
    room: str
    status: CourseStatus = Field(default=CourseStatus.ENROLLED)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    documents: List['Document'] = Relationship(
        back_populates='course',
        sa_relationship_kwargs={'cascade': 'all, delete-orphan'},
    )
    important_dates: List['ImportantDate'] = Relationship(
        back_populates='course',
        sa_relationship_kwargs={'cascade': 'all, delete-orphan'},
    )


class Document(SQLModel, table=True):
    """An uploaded file attached to a `Course`.

    The bytes live on disk under the documents directory; `storage_key` is
    the file name relative to that directory.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    course_id: int = Field(foreign_key='course.id', index=True)
    name: str
    type: DocumentType = Field(default=DocumentType.OTHER)
    filename: str
    content_type: Optional[str] = None
    size_bytes: int = 0
    storage_key: str
    created_at: datetime = Field(default_factory=_utcnow)
    course: Optional[Course] = Relationship(back_populates='documents')


class ImportantDate(SQLModel, table=True):
    """A dated event for a course (exam, assignment or project deadline)."""
    id: Optional[int] = Field(default=None, primary_key=True)
    course_id: int = Field(foreign_key='course.id', index=True)
    title: str
    # naive local wall-clock time; the today/week windows are naive too
    date: datetime = Field(sa_column=Column(DateTime(timezone=False), index=True, nullable=False))
    type: ImportantDateType = Field(default=ImportantDateType.OTHER)
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    course: Optional[Course] = Relationship(back_populates='important_dates')


class Preference(SQLModel, table=True):
    """A JSON-encoded preference value stored under a string key."""
    key: str = Field(primary_key=True, max_length=100)
    value: str
    updated_at: datetime = Field(default_factory=_utcnow)
