import pytest
from fastapi.testclient import TestClient
from nepal_mcq.main import app

client = TestClient(app)


@pytest.fixture(autouse=True)
def fresh_db(app_db):
    yield


def test_register_login_and_fetch_categories():
    # register
    r = client.post('/auth/register', json={'username': 'testuser', 'password': 'pass123'})
    assert r.status_code == 200
    # registering again returns the same user
    again = client.post('/auth/register', json={'username': 'testuser', 'password': 'other'})
    assert again.json()['id'] == r.json()['id']
    # login
    r2 = client.post('/auth/login', json={'username': 'testuser', 'password': 'pass123'})
    assert r2.status_code == 200
    assert 'access_token' in r2.json()
    # categories are public and come back in their fixed order
    r3 = client.get('/categories')
    assert r3.status_code == 200
    assert [c['id'] for c in r3.json()][:3] == ['universe', 'geography', 'world-history']
    assert sum(c['daily_questions'] for c in r3.json()) == 10


def test_login_rejects_wrong_password():
    client.post('/auth/register', json={'username': 'gita', 'password': 'right'})
    r = client.post('/auth/login', json={'username': 'gita', 'password': 'wrong'})
    assert r.status_code == 401


def test_protected_endpoint_rejects_bad_token():
    r = client.get('/quiz/economy', headers={'Authorization': 'Bearer not-a-token'})
    assert r.status_code == 401
