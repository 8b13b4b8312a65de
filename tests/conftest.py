import pytest

from game_analytics.core.warehouse import get_warehouse
from game_analytics.main import app
from game_analytics.middleware.auth import get_auth_config, get_token_verifier
from game_analytics.services.sessions import AuthConfig, issue_token

ALLOWED_EMAIL = "analyst@example.com"


class RecordingWarehouse:
    """Stands in for the warehouse; remembers every query it was asked to run"""

    def __init__(self, rows=None, error=None):
        self.rows = rows if rows is not None else []
        self.error = error
        self.calls = []

    def query(self, sql, params):
        self.calls.append((sql, params))
        if self.error is not None:
            raise self.error
        return self.rows


class FakeVerifier:
    def __init__(self, identity=None):
        self.identity = identity
        self.credentials = []

    def __call__(self, credential):
        self.credentials.append(credential)
        return self.identity


@pytest.fixture
def auth_config():
    return AuthConfig(session_secret="test-secret", allowed_emails=frozenset({ALLOWED_EMAIL}))


@pytest.fixture
def warehouse():
    return RecordingWarehouse()


@pytest.fixture
def verifier():
    return FakeVerifier({"email": ALLOWED_EMAIL, "name": "Ana Lyst", "picture": "https://example.com/a.png", "sub": "42"})


@pytest.fixture
def api(auth_config, warehouse, verifier):
    """App wired to the fakes above; overrides are removed afterwards"""
    app.dependency_overrides[get_warehouse] = lambda: warehouse
    app.dependency_overrides[get_auth_config] = lambda: auth_config
    app.dependency_overrides[get_token_verifier] = lambda: verifier
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def session_cookie(auth_config):
    token = issue_token(auth_config, {"email": ALLOWED_EMAIL, "name": "Ana Lyst"})
    return {"Cookie": f"auth_token={token}"}
