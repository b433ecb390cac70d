"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (courses,
documents, important dates). Repositories return SQLModel objects and
perform commits/refreshes where appropriate.
"""

from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from . import models


class CourseRepository:
    """CRUD operations for `Course` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, course: models.Course) -> models.Course:
        """Persist a new course and return the managed instance."""
        self.session.add(course)
        self.session.commit()
        self.session.refresh(course)
        return course

    def get(self, course_id: int) -> Optional[models.Course]:
        """Get a `Course` by primary key."""
        return self.session.get(models.Course, course_id)

    def list(self) -> List[models.Course]:
        """Return all courses, newest first."""
        stmt = select(models.Course).order_by(models.Course.created_at.desc(), models.Course.id.desc())
        return self.session.exec(stmt).all()

    def save(self, course: models.Course) -> models.Course:
        """Commit changes made to a managed course."""
        self.session.add(course)
        self.session.commit()
        self.session.refresh(course)
        return course

    def delete(self, course: models.Course) -> None:
        """Delete a course; its documents and dates go with it."""
        self.session.delete(course)
        self.session.commit()

    def count(self) -> int:
        return self.session.exec(select(func.count()).select_from(models.Course)).one()

    def delete_all(self) -> None:
        """Remove every course together with attached rows."""
        for course in self.session.exec(select(models.Course)).all():
            self.session.delete(course)
        self.session.commit()


class DocumentRepository:
    """Query helpers for `Document` records."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, document: models.Document) -> models.Document:
        self.session.add(document)
        self.session.commit()
        self.session.refresh(document)
        return document

    def get(self, document_id: int) -> Optional[models.Document]:
        return self.session.get(models.Document, document_id)

    def list_for_course(self, course_id: int) -> List[models.Document]:
        """List documents of `course_id`, newest first."""
        stmt = (
            select(models.Document)
            .where(models.Document.course_id == course_id)
            .order_by(models.Document.created_at.desc(), models.Document.id.desc())
        )
        return self.session.exec(stmt).all()

    def list_storage_keys(self) -> List[str]:
        return self.session.exec(select(models.Document.storage_key)).all()

    def delete(self, document: models.Document) -> None:
        self.session.delete(document)
        self.session.commit()

    def count(self) -> int:
        return self.session.exec(select(func.count()).select_from(models.Document)).one()


class ImportantDateRepository:
    """Persist and query `ImportantDate` events."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, important_date: models.ImportantDate) -> models.ImportantDate:
        self.session.add(important_date)
        self.session.commit()
        self.session.refresh(important_date)
        return important_date

    def get(self, date_id: int) -> Optional[models.ImportantDate]:
        return self.session.get(models.ImportantDate, date_id)

    def delete(self, important_date: models.ImportantDate) -> None:
        self.session.delete(important_date)
        self.session.commit()

    def list_between(
        self,
        start: datetime,
        end: datetime,
        types: Optional[Iterable[models.ImportantDateType]] = None,
    ) -> List[models.ImportantDate]:
        """Return events with `start <= date < end`, earliest first.

        When `types` is given only events of those types are returned.
        """
        stmt = select(models.ImportantDate).where(
            models.ImportantDate.date >= start,
            models.ImportantDate.date < end,
        )
        if types is not None:
            stmt = stmt.where(models.ImportantDate.type.in_(list(types)))
        stmt = stmt.order_by(models.ImportantDate.date.asc(), models.ImportantDate.id.asc())
        return self.session.exec(stmt).all()

    def count(self) -> int:
        return self.session.exec(select(func.count()).select_from(models.ImportantDate)).one()
