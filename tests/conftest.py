"""Shared pytest fixtures.

Redis is simulated with fakeredis; each test gets its own FakeServer so no
state leaks between tests. The database is a throwaway SQLite file.
"""
import os
import tempfile

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-jwt-signing-0123456789")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{tempfile.gettempdir()}/accounts-import.db")
os.environ.setdefault("LOG_FORMAT", "console")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from unittest import mock

import fakeredis
import pytest
import pytest_asyncio

from core.config import Settings
from core.database import Database
from core.exceptions import DeliveryFailed
from core.locks import DistributedLock
from core.rate_limit import RateLimiter
from core.store import StoreRegistry
from services.messaging import EmailSender, SmsSender

TEST_SECRET = "test-secret-key-for-jwt-signing-0123456789"


def make_settings(tmp_path, **overrides) -> Settings:
    values = {
        "jwt_secret_key": TEST_SECRET,
        "database_url": f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        "log_format": "console",
        "log_level": "WARNING",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def fake_client_factory(server: fakeredis.FakeServer):
    def factory(**kwargs):
        return fakeredis.FakeAsyncRedis(server=server, decode_responses=True)
    return factory


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def fake_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture
def registry(settings, fake_server) -> StoreRegistry:
    return StoreRegistry(settings, client_factory=fake_client_factory(fake_server))


@pytest.fixture
def store(registry):
    return registry.get("test")


@pytest.fixture
def down_store(settings):
    """A store whose server refuses every command."""
    server = fakeredis.FakeServer()
    server.connected = False
    return StoreRegistry(settings, client_factory=fake_client_factory(server)).get("down")


@pytest.fixture
def rate_limiter(store) -> RateLimiter:
    return RateLimiter(store)


@pytest.fixture
def lock(store) -> DistributedLock:
    return DistributedLock(store)


@pytest_asyncio.fixture
async def database(settings):
    db = Database(settings)
    await db.startup()
    yield db
    await db.shutdown()


@pytest.fixture
def sms_sender():
    sender = mock.AsyncMock(spec=SmsSender)
    sender.send.return_value = "SM0000000000"
    return sender


@pytest.fixture
def failing_sms_sender():
    sender = mock.AsyncMock(spec=SmsSender)
    sender.send.side_effect = DeliveryFailed("sms", "carrier rejected message")
    return sender


@pytest.fixture
def email_sender():
    return mock.AsyncMock(spec=EmailSender)


def sent_code(sender) -> str:
    """Last OTP code passed to a mocked SmsSender."""
    body = sender.send.call_args.args[1]
    return body.rsplit(" ", 1)[-1]
