import logging
import uuid

import pytest
from fastapi.testclient import TestClient

from nonprofit_manager.config import settings
from nonprofit_manager.main import app, rate_limiter


def test_register_login_and_reject_duplicates(client):
    username = f"user-{uuid.uuid4().hex[:8]}"
    r = client.post('/auth/register', json={'username': username, 'password': 'pass123'})
    assert r.status_code == 200
    assert r.json()['username'] == username

    r = client.post('/auth/register', json={'username': username, 'password': 'other'})
    assert r.status_code == 400

    r = client.post('/auth/login', json={'username': username, 'password': 'wrong'})
    assert r.status_code == 401
    r = client.post('/auth/login', json={'username': username, 'password': 'pass123'})
    assert r.status_code == 200
    assert r.json()['token_type'] == 'bearer'


def test_api_requires_a_valid_token(client):
    assert client.get('/api/funds').status_code in (401, 403)
    r = client.get('/api/funds', headers={'Authorization': 'Bearer not-a-jwt'})
    assert r.status_code == 401
    assert r.json()['detail'] == 'invalid token'


def test_health_carries_request_id_and_security_headers(client):
    r = client.get('/health', headers={'X-Request-ID': 'abc123'})
    assert r.status_code == 200
    assert r.json() == {'status': 'ok'}
    assert r.headers['X-Request-ID'] == 'abc123'
    assert r.headers['X-Content-Type-Options'] == 'nosniff'
    assert r.headers['X-Frame-Options'] == 'SAMEORIGIN'
    assert r.headers['Referrer-Policy'] == 'strict-origin-when-cross-origin'
    assert r.headers['Permissions-Policy'] == 'camera=(), microphone=(), geolocation=()'
    assert 'Content-Security-Policy' in r.headers
    assert 'X-RateLimit-Limit' not in r.headers


def test_domain_errors_map_to_status_codes(client, auth_headers):
    r = client.get('/api/funds/999999', headers=auth_headers)
    assert r.status_code == 404
    assert r.json()['detail'] == 'Fund 999999 not found'

    r = client.post('/api/funds', json={'name': ''}, headers=auth_headers)
    assert r.status_code == 422

    r = client.get('/api/reports/trends', params={'start': '2024-01-01', 'end': '2024-02-01',
                                                  'interval': 'hourly'}, headers=auth_headers)
    assert r.status_code == 400


def test_import_bucket_is_rate_limited(client, auth_headers, monkeypatch):
    monkeypatch.setattr(settings, 'IMPORT_RATE_LIMIT_PER_MIN', 1)
    rate_limiter.reset()
    files = {'file': ('donors.csv', b'Name\n', 'text/csv')}
    try:
        first = client.post('/api/import/donors', files=files, headers=auth_headers)
        second = client.post('/api/import/donors', files=files, headers=auth_headers)
    finally:
        rate_limiter.reset()
    assert first.status_code == 200
    assert second.status_code == 429
    assert int(second.headers['Retry-After']) >= 1
    assert second.headers['X-RateLimit-Remaining'] == '0'
    assert second.headers['X-Content-Type-Options'] == 'nosniff'
    assert second.headers['X-Frame-Options'] == 'SAMEORIGIN'
    assert 'X-Request-ID' in second.headers
    # the general bucket is unaffected
    assert client.get('/api/funds', headers=auth_headers).status_code == 200


@pytest.fixture
def failing_route():
    async def explode():
        raise RuntimeError("boom")

    app.add_api_route('/__explode', explode)
    yield '/__explode'
    app.router.routes[:] = [r for r in app.router.routes if getattr(r, 'path', None) != '/__explode']


def test_unexpected_errors_return_generic_500(failing_route, caplog):
    quiet_client = TestClient(app, raise_server_exceptions=False)
    with caplog.at_level(logging.ERROR, logger='nonprofit_manager.api'):
        r = quiet_client.get(failing_route, headers={'X-Request-ID': 'req-500'})
    assert r.status_code == 500
    assert r.json() == {'detail': 'An unexpected error occurred', 'request_id': 'req-500'}
    handled = [rec for rec in caplog.records if rec.getMessage().startswith('unhandled error (request req-500)')]
    assert len(handled) == 1
    assert handled[0].exc_info is not None
