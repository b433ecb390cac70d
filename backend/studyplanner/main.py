"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the study planner backend.
Controllers are intentionally thin: they accept requests, delegate to
services, translate `ValueError`/`LookupError` into 400/404 responses and
return JSON.

Endpoint groups:
- /api/courses, /api/semesters          course store
- /api/courses/{id}/documents, /api/documents
- /api/courses/{id}/dates, /api/dates, /api/events, /api/dashboard
- /api/grades                           grades and weighted average
- /api/preferences, /api/deadlines      preferences store
- /api/seed, /api/clear, /api/debug, /health
"""

import json
import logging
import os
import re
import time
import uuid
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from . import models, services
from .config import settings
from .database import create_db_and_tables, get_session
from .preferences import ALLOWED_VALUES, MANAGED_KEYS, PREFERENCE_DEFAULTS, SqlPreferencesStore
from .schemas import (
    CourseIn,
    CourseOut,
    CoursePatch,
    DashboardOut,
    DeadlineIn,
    DeadlineMove,
    DeadlineOut,
    DocumentOut,
    GradeEntryOut,
    GradeIn,
    GradeSummaryOut,
    ImportantDateIn,
    ImportantDateOut,
    PreferenceIn,
    SemesterGroupOut,
)
from .utils.rate_limit import UploadRateLimiter
from .utils.semesters import describe_semester, semester_sort_key

app = FastAPI(title="Study Planner API")
logger = logging.getLogger("studyplanner.api")
if not logger.handlers:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
_upload_limiter = UploadRateLimiter(settings.UPLOAD_RATE_LIMIT_PER_MIN, window_seconds=60)

_PREFERENCE_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]{1,100}$")

# Wide-open CORS lets a locally served frontend talk to the API in dev.
if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    if request.url.path.startswith("/api"):
        logger.info(
            "request_done %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "duration_ms": round((time.perf_counter() - started) * 1000.0, 2),
                },
                ensure_ascii=True,
            ),
        )
    return response


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Database error"})


def _date_out(event: models.ImportantDate, with_course: bool = False) -> dict:
    out = {
        'id': event.id,
        'course_id': event.course_id,
        'title': event.title,
        'date': event.date,
        'type': event.type,
        'description': event.description,
        'created_at': event.created_at,
        'course': None,
    }
    if with_course and event.course is not None:
        out['course'] = {'id': event.course.id, 'name': event.course.name}
    return out


def _document_out(doc: models.Document) -> dict:
    return {
        'id': doc.id,
        'course_id': doc.course_id,
        'name': doc.name,
        'type': doc.type,
        'filename': doc.filename,
        'content_type': doc.content_type,
        'size_bytes': doc.size_bytes,
        'created_at': doc.created_at,
    }


def _course_out(course: models.Course) -> dict:
    return {
        'id': course.id,
        'name': course.name,
        'abbreviation': course.abbreviation,
        'credits': course.credits,
        'semester': course.semester,
        'semester_name': describe_semester(course.semester),
        'instructor': course.instructor,
        'day': course.day,
        'time': course.time,
        'room': course.room,
        'status': course.status,
        'created_at': course.created_at,
        'updated_at': course.updated_at,
        'documents': [_document_out(d) for d in course.documents],
        'important_dates': [_date_out(e) for e in sorted(course.important_dates, key=lambda e: e.date)],
    }


def _check_upload_rate(request: Request) -> None:
    key = request.client.host if request.client else "unknown"
    allowed, retry_after = _upload_limiter.check(key)
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail=f"rate limit exceeded; retry after {retry_after}s",
            headers={"Retry-After": str(retry_after)},
        )


def _require_data_reset() -> None:
    if not settings.ALLOW_DATA_RESET:
        raise HTTPException(status_code=403, detail='data reset is disabled')


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}


@app.get('/api/debug')
def debug():
    """Report runtime configuration without leaking connection strings."""
    return {
        'env': settings.ENV,
        'database_configured': settings.database_configured,
        'timestamp': datetime.now(timezone.utc).isoformat(),
    }


@app.post('/api/courses', status_code=201, response_model=CourseOut)
def create_course(payload: CourseIn, db: Session = Depends(get_session)):
    """Create a course. All fields except `abbreviation` are required."""
    svc = services.CourseService(db)
    try:
        course = svc.create(payload.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _course_out(course)


@app.get('/api/courses', response_model=list[CourseOut])
def list_courses(semester: Optional[str] = None, search: Optional[str] = None, db: Session = Depends(get_session)):
    """List courses newest first, optionally filtered by semester and search term."""
    svc = services.CourseService(db)
    return [_course_out(c) for c in svc.list(semester=semester, search=search)]


@app.get('/api/courses/grouped', response_model=list[SemesterGroupOut])
def list_courses_grouped(semester: Optional[str] = None, search: Optional[str] = None, db: Session = Depends(get_session)):
    """Courses grouped per semester, semesters in chronological order."""
    svc = services.CourseService(db)
    return [
        {
            'semester': label,
            'semester_name': describe_semester(label),
            'sort_key': semester_sort_key(label),
            'courses': [_course_out(c) for c in courses],
        }
        for label, courses in svc.grouped(semester=semester, search=search)
    ]


@app.get('/api/semesters')
def list_semesters(db: Session = Depends(get_session)):
    """Distinct semester labels in use, oldest first."""
    svc = services.CourseService(db)
    return [{'semester': s, 'semester_name': describe_semester(s)} for s in svc.semesters()]


@app.get('/api/courses/{course_id}', response_model=CourseOut)
def get_course(course_id: int, db: Session = Depends(get_session)):
    svc = services.CourseService(db)
    try:
        return _course_out(svc.get(course_id))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.put('/api/courses/{course_id}', response_model=CourseOut)
def update_course(course_id: int, payload: CourseIn, db: Session = Depends(get_session)):
    """Replace all editable fields of a course."""
    svc = services.CourseService(db)
    try:
        course = svc.replace(course_id, payload.model_dump())
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _course_out(course)


@app.patch('/api/courses/{course_id}', response_model=CourseOut)
def patch_course(course_id: int, payload: CoursePatch, db: Session = Depends(get_session)):
    """Move a course to another semester or change its status."""
    svc = services.CourseService(db)
    try:
        course = svc.patch(course_id, semester=payload.semester, status=payload.status)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _course_out(course)


@app.delete('/api/courses/{course_id}')
def delete_course(course_id: int, db: Session = Depends(get_session)):
    svc = services.CourseService(db)
    try:
        svc.delete(course_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {'message': 'Course deleted successfully'}


@app.get('/api/courses/{course_id}/documents', response_model=list[DocumentOut])
def list_documents(course_id: int, db: Session = Depends(get_session)):
    svc = services.DocumentService(db)
    try:
        return [_document_out(d) for d in svc.list(course_id)]
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.post('/api/courses/{course_id}/documents', status_code=201, response_model=DocumentOut)
def upload_document(
    request: Request,
    course_id: int,
    file: UploadFile = File(...),
    name: Optional[str] = Form(default=None),
    doc_type: models.DocumentType = Form(default=models.DocumentType.OTHER, alias="type"),
    db: Session = Depends(get_session),
):
    """Attach an uploaded PDF, image, office or text file to a course."""
    if not file.filename:
        raise HTTPException(status_code=400, detail='no file')
    _check_upload_rate(request)
    payload = file.file.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(payload) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail='file too large')
    svc = services.DocumentService(db)
    try:
        doc = svc.upload(course_id, file.filename, payload, content_type=file.content_type, name=name, doc_type=doc_type)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        status = 415 if str(e).startswith('unsupported') else 400
        raise HTTPException(status_code=status, detail=str(e))
    return _document_out(doc)


@app.get('/api/documents/{document_id}/download')
def download_document(document_id: int, db: Session = Depends(get_session)):
    svc = services.DocumentService(db)
    try:
        doc, payload = svc.read(document_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return Response(
        content=payload,
        media_type=doc.content_type or 'application/octet-stream',
        headers={'Content-Disposition': f"attachment; filename*=UTF-8''{quote(doc.filename)}"},
    )


@app.delete('/api/documents/{document_id}')
def delete_document(document_id: int, db: Session = Depends(get_session)):
    svc = services.DocumentService(db)
    try:
        svc.delete(document_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {'message': 'Document deleted successfully'}


@app.post('/api/courses/{course_id}/dates', status_code=201, response_model=ImportantDateOut)
def add_important_date(course_id: int, payload: ImportantDateIn, db: Session = Depends(get_session)):
    svc = services.EventService(db)
    try:
        event = svc.add_date(course_id, payload.title, payload.date, payload.type, payload.description)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _date_out(event, with_course=True)


@app.delete('/api/dates/{date_id}')
def delete_important_date(date_id: int, db: Session = Depends(get_session)):
    svc = services.EventService(db)
    try:
        svc.delete_date(date_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {'message': 'Important date deleted successfully'}


@app.get('/api/events/today', response_model=list[ImportantDateOut])
def todays_events(db: Session = Depends(get_session)):
    """All important dates falling on today's date."""
    svc = services.EventService(db)
    return [_date_out(e, with_course=True) for e in svc.todays_events()]


@app.get('/api/events/week', response_model=list[ImportantDateOut])
def weekly_deadlines(db: Session = Depends(get_session)):
    """Assignment, project and exam dates of the current week (Sunday to Saturday)."""
    svc = services.EventService(db)
    return [_date_out(e, with_course=True) for e in svc.weekly_deadlines()]


@app.get('/api/dashboard', response_model=DashboardOut)
def dashboard(db: Session = Depends(get_session)):
    return services.EventService(db).dashboard()


@app.get('/api/grades', response_model=list[GradeEntryOut])
def list_grades(db: Session = Depends(get_session)):
    """One grade entry per course; ungraded courses carry an empty string."""
    return services.GradeService(db).entries()


@app.get('/api/grades/summary', response_model=GradeSummaryOut)
def grade_summary(db: Session = Depends(get_session)):
    """Credit-weighted average and progress counters."""
    summary = services.GradeService(db).summary()
    return {
        'average': summary.average,
        'total_credits': summary.total_credits,
        'graded_credits': summary.graded_credits,
        'graded_count': summary.graded_count,
    }


@app.put('/api/grades/{course_id}', response_model=GradeEntryOut)
def set_grade(course_id: int, payload: GradeIn, db: Session = Depends(get_session)):
    """Store the grade for a course and update the course status to match."""
    svc = services.GradeService(db)
    try:
        return svc.set_grade(course_id, payload.grade)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get('/api/preferences/{key}')
def get_preference(key: str, db: Session = Depends(get_session)):
    if not _PREFERENCE_KEY_RE.match(key):
        raise HTTPException(status_code=400, detail='invalid preference key')
    prefs = SqlPreferencesStore(db)
    return {'key': key, 'value': prefs.get(key, PREFERENCE_DEFAULTS.get(key))}


@app.put('/api/preferences/{key}')
def set_preference(key: str, payload: PreferenceIn, db: Session = Depends(get_session)):
    """Store a view setting such as `courses_view_mode` or `courses_semester_filter`."""
    if not _PREFERENCE_KEY_RE.match(key):
        raise HTTPException(status_code=400, detail='invalid preference key')
    if key in MANAGED_KEYS:
        raise HTTPException(status_code=400, detail=f'{key} is managed by its own endpoint')
    allowed = ALLOWED_VALUES.get(key)
    if allowed and payload.value not in allowed:
        raise HTTPException(status_code=400, detail=f"{key} must be one of {', '.join(allowed)}")
    prefs = SqlPreferencesStore(db)
    try:
        prefs.set(key, payload.value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {'key': key, 'value': payload.value}


@app.get('/api/deadlines', response_model=list[DeadlineOut])
def list_deadlines(db: Session = Depends(get_session)):
    return services.DeadlineService(SqlPreferencesStore(db)).list()


@app.post('/api/deadlines', status_code=201, response_model=DeadlineOut)
def add_deadline(payload: DeadlineIn, db: Session = Depends(get_session)):
    svc = services.DeadlineService(SqlPreferencesStore(db))
    try:
        return svc.add(payload.title, payload.type, payload.due_date, payload.due_time)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.patch('/api/deadlines/{deadline_id}/toggle', response_model=DeadlineOut)
def toggle_deadline(deadline_id: str, db: Session = Depends(get_session)):
    svc = services.DeadlineService(SqlPreferencesStore(db))
    try:
        return svc.toggle(deadline_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.post('/api/deadlines/move', response_model=list[DeadlineOut])
def move_deadline(payload: DeadlineMove, db: Session = Depends(get_session)):
    """Reorder the list by moving one deadline to a new position."""
    svc = services.DeadlineService(SqlPreferencesStore(db))
    try:
        return svc.move(payload.from_index, payload.to_index)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.delete('/api/deadlines/completed')
def clear_completed_deadlines(db: Session = Depends(get_session)):
    removed = services.DeadlineService(SqlPreferencesStore(db)).clear_completed()
    return {'removed': removed}


@app.delete('/api/deadlines/{deadline_id}')
def delete_deadline(deadline_id: str, db: Session = Depends(get_session)):
    svc = services.DeadlineService(SqlPreferencesStore(db))
    try:
        svc.delete(deadline_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {'message': 'Deadline deleted successfully'}


@app.post('/api/seed')
def seed(db: Session = Depends(get_session)):
    """Replace all course data with the demo course list."""
    _require_data_reset()
    return services.SeedService(db).seed()


@app.post('/api/clear')
def clear(db: Session = Depends(get_session)):
    """Delete every course, document, important date and grade."""
    _require_data_reset()
    services.SeedService(db).clear()
    return {'message': 'All data cleared successfully'}
