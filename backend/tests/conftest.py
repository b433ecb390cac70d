import os
import shutil
import tempfile
from pathlib import Path

import pytest

# Point the app at a throwaway database and documents folder before it is imported.
_TMP = Path(tempfile.mkdtemp(prefix="studyplanner-tests-"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TMP / 'test.db'}")
os.environ.setdefault("DOCUMENTS_DIR", str(_TMP / "documents"))
os.environ.setdefault("UPLOAD_RATE_LIMIT_PER_MIN", "1000")

from studyplanner.config import settings  # noqa: E402
from studyplanner.database import reset_db  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_db():
    """Start every test with empty tables and no stored documents."""
    reset_db()
    shutil.rmtree(settings.DOCUMENTS_DIR, ignore_errors=True)
    yield


@pytest.fixture
def session():
    from sqlmodel import Session
    from studyplanner.database import engine

    with Session(engine) as s:
        yield s
