import hashlib
import io

from fastapi.testclient import TestClient
from PIL import Image

from studyplanner.config import settings
from studyplanner.main import app
from studyplanner.utils.rate_limit import UploadRateLimiter

client = TestClient(app)

PDF_BYTES = b"%PDF-1.4\n1 0 obj << /Type /Catalog >> endobj\n%%EOF\n"


def _make_png() -> bytes:
    img = Image.new("RGB", (32, 16), "white")
    bio = io.BytesIO()
    img.save(bio, format="PNG")
    return bio.getvalue()


def _create_course(name='Software Testing'):
    payload = {
        'name': name, 'credits': 6, 'semester': 'SS25',
        'instructor': 'n.a.', 'day': 'n.a.', 'time': 'n.a.', 'room': 'n.a.',
    }
    return client.post('/api/courses', json=payload).json()['id']


def _stored_path(payload: bytes, suffix: str):
    return settings.DOCUMENTS_DIR / (hashlib.sha256(payload).hexdigest() + suffix)


def test_upload_list_download_delete():
    course_id = _create_course()
    files = {'file': ('week1.pdf', PDF_BYTES, 'application/pdf')}
    r = client.post(f'/api/courses/{course_id}/documents', files=files, data={'name': 'Week 1 slides', 'type': 'LECTURE_SLIDES'})
    assert r.status_code == 201
    doc = r.json()
    assert doc['name'] == 'Week 1 slides'
    assert doc['type'] == 'LECTURE_SLIDES'
    assert doc['size_bytes'] == len(PDF_BYTES)
    assert _stored_path(PDF_BYTES, '.pdf').exists()

    listed = client.get(f'/api/courses/{course_id}/documents').json()
    assert [d['id'] for d in listed] == [doc['id']]
    assert len(client.get(f'/api/courses/{course_id}').json()['documents']) == 1
    assert client.get('/api/dashboard').json()['total_documents'] == 1

    dl = client.get(f"/api/documents/{doc['id']}/download")
    assert dl.status_code == 200
    assert dl.content == PDF_BYTES
    assert 'week1.pdf' in dl.headers['content-disposition']

    assert client.delete(f"/api/documents/{doc['id']}").status_code == 200
    assert not _stored_path(PDF_BYTES, '.pdf').exists()
    assert client.get(f"/api/documents/{doc['id']}/download").status_code == 404


def test_image_and_text_uploads_default_name_and_type():
    course_id = _create_course()
    png = _make_png()
    r = client.post(f'/api/courses/{course_id}/documents', files={'file': ('board.png', png, 'image/png')})
    assert r.status_code == 201
    assert r.json()['name'] == 'board.png'
    assert r.json()['type'] == 'OTHER'
    r = client.post(f'/api/courses/{course_id}/documents', files={'file': ('notes.md', b'# Notes\n', 'text/markdown')})
    assert r.status_code == 201


def test_shared_file_kept_until_last_reference_goes():
    first = _create_course('A')
    second = _create_course('B')
    files = {'file': ('summary.pdf', PDF_BYTES, 'application/pdf')}
    client.post(f'/api/courses/{first}/documents', files=files)
    client.post(f'/api/courses/{second}/documents', files=files)
    client.delete(f'/api/courses/{first}')
    assert _stored_path(PDF_BYTES, '.pdf').exists()
    client.delete(f'/api/courses/{second}')
    assert not _stored_path(PDF_BYTES, '.pdf').exists()


def test_upload_guardrails(monkeypatch):
    course_id = _create_course()
    r = client.post(f'/api/courses/{course_id}/documents', files={'file': ('blob.bin', b'not a document', 'application/octet-stream')})
    assert r.status_code == 415
    r = client.post(f'/api/courses/{course_id}/documents', files={'file': ('empty.pdf', b'', 'application/pdf')})
    assert r.status_code == 400
    r = client.post('/api/courses/999/documents', files={'file': ('a.pdf', PDF_BYTES, 'application/pdf')})
    assert r.status_code == 404
    r = client.post(f'/api/courses/{course_id}/documents', files={'file': ('a.pdf', PDF_BYTES, 'application/pdf')}, data={'type': 'NOPE'})
    assert r.status_code == 422
    monkeypatch.setattr(settings, 'MAX_UPLOAD_BYTES', 10)
    r = client.post(f'/api/courses/{course_id}/documents', files={'file': ('a.pdf', PDF_BYTES, 'application/pdf')})
    assert r.status_code == 400
    assert r.json()['detail'] == 'file too large'


def test_pdf_content_type_alone_is_not_trusted():
    course_id = _create_course()
    r = client.post(f'/api/courses/{course_id}/documents', files={'file': ('fake.pdf', b'MZ\x90\x00 executable', 'application/pdf')})
    assert r.status_code == 415
    assert client.get(f'/api/courses/{course_id}/documents').json() == []


def test_upload_rate_limit(monkeypatch):
    monkeypatch.setattr('studyplanner.main._upload_limiter', UploadRateLimiter(1, window_seconds=60))
    course_id = _create_course()
    files = {'file': ('a.pdf', PDF_BYTES, 'application/pdf')}
    first = client.post(f'/api/courses/{course_id}/documents', files=files)
    assert first.status_code == 201
    second = client.post(f'/api/courses/{course_id}/documents', files=files)
    assert second.status_code == 429
    assert 'Retry-After' in second.headers


def test_rate_limiter_window():
    now = [100.0]
    limiter = UploadRateLimiter(2, window_seconds=10, clock=lambda: now[0])
    assert limiter.check('k') == (True, 0)
    assert limiter.check('k') == (True, 0)
    allowed, retry_after = limiter.check('k')
    assert not allowed and retry_after == 10
    assert limiter.check('other')[0]
    now[0] = 110.0
    assert limiter.check('k')[0]
