from fastapi.testclient import TestClient

from studyplanner.config import settings
from studyplanner.main import app

client = TestClient(app)


def test_seed_creates_demo_courses_in_semester_order():
    r = client.post('/api/seed')
    assert r.status_code == 200
    assert r.json() == {'message': 'Your courses created successfully', 'courses': 14, 'events': 0}

    groups = client.get('/api/courses/grouped').json()
    assert [g['semester'] for g in groups] == ['WS24/25', 'SS25', 'WS25/26', 'SS26']
    assert [c['name'] for c in groups[0]['courses']] == [
        'Design Workshop 1',
        'Human Centered Security',
        'Information Visualization',
        'Mensch-Maschine Interaktion',
        'Wissenschaftliches Arbeiten',
    ]
    assert all(c['credits'] == 6 and c['status'] == 'ENROLLED' for g in groups for c in g['courses'])
    assert client.get('/api/grades/summary').json()['total_credits'] == 84


def test_seed_replaces_existing_data_and_grades():
    client.post('/api/seed')
    first = client.get('/api/courses').json()[0]['id']
    client.put(f'/api/grades/{first}', json={'grade': '1.3'})

    client.post('/api/seed')
    assert len(client.get('/api/courses').json()) == 14
    assert all(e['grade'] == '' for e in client.get('/api/grades').json())


def test_clear_removes_everything():
    client.post('/api/seed')
    r = client.post('/api/clear')
    assert r.status_code == 200
    assert client.get('/api/courses').json() == []
    assert client.get('/api/semesters').json() == []
    assert client.get('/api/dashboard').json() == {'total_courses': 0, 'total_documents': 0, 'upcoming_events': 0}


def test_data_reset_can_be_disabled(monkeypatch):
    monkeypatch.setattr(settings, 'ALLOW_DATA_RESET', False)
    assert client.post('/api/seed').status_code == 403
    assert client.post('/api/clear').status_code == 403


def test_preference_defaults_and_updates():
    assert client.get('/api/preferences/courses_view_mode').json() == {'key': 'courses_view_mode', 'value': 'grid'}
    assert client.get('/api/preferences/courses_semester_filter').json()['value'] == ''
    assert client.get('/api/preferences/unknown').json()['value'] is None

    r = client.put('/api/preferences/courses_view_mode', json={'value': 'list'})
    assert r.status_code == 200
    assert client.get('/api/preferences/courses_view_mode').json()['value'] == 'list'

    client.put('/api/preferences/courses_semester_filter', json={'value': 'SS25'})
    assert client.get('/api/preferences/courses_semester_filter').json()['value'] == 'SS25'


def test_preference_validation():
    assert client.put('/api/preferences/courses_view_mode', json={'value': 'table'}).status_code == 400
    assert client.put('/api/preferences/dashboard_view_mode', json={'value': 'list'}).status_code == 400
    assert client.put('/api/preferences/course_grades', json={'value': []}).status_code == 400
    assert client.put('/api/preferences/deadlines', json={'value': []}).status_code == 400
    assert client.get('/api/preferences/bad key!').status_code == 400


def test_debug_and_health():
    assert client.get('/health').json() == {'status': 'ok'}
    body = client.get('/api/debug').json()
    assert body['env'] == settings.ENV
    assert body['database_configured'] is True
    assert 'DATABASE_URL' not in body


def test_request_id_is_echoed():
    r = client.get('/api/dashboard', headers={'X-Request-ID': 'abc123'})
    assert r.headers['X-Request-ID'] == 'abc123'
