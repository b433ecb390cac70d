"""Pydantic request/response schemas used by the API.

Request schemas are deliberately permissive (most fields optional, credits
accepted as text) so that the service layer can reply with the same
validation messages the course form shows; response schemas pin the
JSON shapes returned to clients.
"""

from datetime import date, datetime
from typing import Any, List, Optional, Union

from pydantic import BaseModel, Field

from .models import CourseStatus, DocumentType, ImportantDateType


class CourseIn(BaseModel):
    """Payload for creating or fully replacing a course."""
    name: Optional[str] = None
    abbreviation: Optional[str] = None
    credits: Optional[Union[int, str]] = None
    semester: Optional[str] = None
    instructor: Optional[str] = None
    day: Optional[str] = None
    time: Optional[str] = None
    room: Optional[str] = None


class CoursePatch(BaseModel):
    """Partial update used when a course is moved to another semester or re-labelled."""
    semester: Optional[str] = None
    status: Optional[CourseStatus] = None


class DocumentOut(BaseModel):
    id: int
    course_id: int
    name: str
    type: DocumentType
    filename: str
    content_type: Optional[str] = None
    size_bytes: int
    created_at: datetime


class CourseRef(BaseModel):
    id: int
    name: str


class ImportantDateIn(BaseModel):
    title: str
    date: datetime
    type: ImportantDateType = ImportantDateType.OTHER
    description: Optional[str] = None


class ImportantDateOut(BaseModel):
    id: int
    course_id: int
    title: str
    date: datetime
    type: ImportantDateType
    description: Optional[str] = None
    created_at: datetime
    course: Optional[CourseRef] = None


class CourseOut(BaseModel):
    id: int
    name: str
    abbreviation: Optional[str] = None
    credits: int
    semester: str
    semester_name: str
    instructor: str
    day: str
    time: str
    room: str
    status: CourseStatus
    created_at: datetime
    updated_at: datetime
    documents: List[DocumentOut] = []
    important_dates: List[ImportantDateOut] = []


class SemesterGroupOut(BaseModel):
    semester: str
    semester_name: str
    sort_key: int
    courses: List[CourseOut]


class GradeIn(BaseModel):
    """A grade as typed by the user; blank clears it."""
    grade: Optional[Union[str, float]] = None


class GradeEntryOut(BaseModel):
    course_id: int
    grade: str


class GradeSummaryOut(BaseModel):
    average: float
    total_credits: int
    graded_credits: int
    graded_count: int


class DashboardOut(BaseModel):
    total_courses: int
    total_documents: int
    upcoming_events: int


class PreferenceIn(BaseModel):
    value: Any = None


class DeadlineIn(BaseModel):
    title: str = ""
    type: str = "private"
    due_date: Optional[date] = None
    due_time: Optional[str] = Field(default=None, pattern=r"^\d{2}:\d{2}$")


class DeadlineOut(BaseModel):
    id: str
    title: str
    type: str
    completed: bool
    created_at: datetime
    due_date: Optional[date] = None
    due_time: Optional[str] = None


class DeadlineMove(BaseModel):
    from_index: int
    to_index: int
