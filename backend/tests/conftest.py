"""Shared test fixtures and configuration for backend tests."""
import jwt
import pytest
from fastapi.testclient import TestClient

from app.config import AppSettings, JWTSecrets, Secrets, get_config, set_config

# Pin settings before the app module is imported, so a local
# chat.settings.yaml never leaks into the test run.
set_config(AppSettings(secrets=Secrets(jwt=JWTSecrets(secret_key="test-signing-key-0123456789abcdefghij"))))

from app.images.service import ImageStorageService  # noqa: E402
from app.main import app  # noqa: E402
from app.messages.service import MessageService  # noqa: E402
from app.realtime.registry import SessionRegistry  # noqa: E402
from app.users.service import UserService  # noqa: E402


class FakeWebSocket:
    """Stands in for a WebSocket: records what is sent, optionally fails."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(data)

    def types(self):
        return [frame["type"] for frame in self.sent]


def make_token(user_id: str, **claims) -> str:
    """Sign a session token the way the account system does at login."""
    secrets = get_config().secrets.jwt
    payload = {"userId": user_id, **claims}
    return jwt.encode(payload, secrets.secret_key, algorithm=secrets.algorithm)


def auth_headers(user_id: str) -> dict:
    """Cookie header carrying a valid session token for *user_id*."""
    return {"cookie": f"jwt={make_token(user_id)}"}


@pytest.fixture(autouse=True)
def in_memory_services(tmp_path):
    """Use in-memory DuckDB services and a temporary upload dir per test."""
    MessageService.reset_instance()
    UserService.reset_instance()
    ImageStorageService.reset_instance()
    MessageService.get_instance(db_path=":memory:")
    UserService.get_instance(db_path=":memory:")
    ImageStorageService.get_instance(upload_dir=str(tmp_path / "uploads"), db_path=":memory:")
    yield
    MessageService.reset_instance()
    UserService.reset_instance()
    ImageStorageService.reset_instance()


@pytest.fixture
def api_client():
    """Provide a TestClient with the application lifespan running."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def store() -> MessageService:
    return MessageService.get_instance()


@pytest.fixture
def users():
    """Three registered users: alice, bob and carol."""
    service = UserService.get_instance()
    return {
        "alice": service.create_user("Alice Anders", "alice@example.com"),
        "bob": service.create_user("Bob Brown", "bob@example.com"),
        "carol": service.create_user("Carol Chen", "carol@example.com", avatar="https://cdn/carol.png"),
    }


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry(max_sessions_per_user=5)


@pytest.fixture
def connect(registry):
    """Admit a session backed by a FakeWebSocket into the registry."""
    def _connect(user_id: str, fail: bool = False):
        session, _ = registry.admit(user_id, FakeWebSocket(fail=fail))
        return session
    return _connect


@pytest.fixture
def admit(registry):
    """Like ``connect`` but also returns whether the user came online."""
    def _admit(user_id: str):
        return registry.admit(user_id, FakeWebSocket())
    return _admit


@pytest.fixture
def token_for():
    return make_token


@pytest.fixture
def auth_for():
    """Build request headers authenticating as a given user id."""
    return auth_headers
