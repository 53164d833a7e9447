import pytest

from app import create_app
from config import Config
from models import db
from security.event_store import MemoryEventStore


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class UnitTestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    DB_AUTO_CREATE = True
    BCRYPT_ROUNDS = 4
    EVENT_STORE_BACKEND = "memory"
    ORIGIN_ATTEMPT_THRESHOLD = 20
    ACCOUNT_ATTEMPT_THRESHOLD = 5
    ORIGIN_WINDOW_SECONDS = 900
    ACCOUNT_WINDOW_SECONDS = 900
    LOG_LEVEL = "WARNING"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def event_store(clock):
    return MemoryEventStore(clock=clock)


@pytest.fixture
def app(event_store):
    app = create_app(UnitTestConfig, event_store=event_store)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def register(client, email="player@example.com", username="player", password="correct-horse"):
    return client.post(
        "/auth/register",
        json={"email": email, "username": username, "password": password},
    )


def login(client, identity, password, ip="10.0.0.1", headers=None):
    return client.post(
        "/auth/login",
        json={"identity": identity, "password": password},
        headers=headers,
        environ_base={"REMOTE_ADDR": ip},
    )


def bearer(token):
    return {"Authorization": f"Bearer {token}"}
