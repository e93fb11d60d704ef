"""
WhisperLog Backend — Test Configuration (conftest.py)
=======================================================

What:  Shared pytest fixtures for the entire test suite.
Why:   Services run against a real (in-memory SQLite) database so queries,
       joins and aggregates are exercised for real; vendor SDKs are replaced
       with FakeAdapter or unittest.mock objects, so nothing leaves the box.

Fixture Hierarchy (all function-scoped):
    db_engine ─▶ session_factory ─▶ db_session
                       │
                       └──────────▶ test_client (create_app + DB override)
    fake_adapter ─▶ registry ─▶ services
    user_factory, format_factory: persisted rows for service tests
"""

import os
import tempfile

# Must happen before any whisperlog import: Settings() reads the environment
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""
os.environ["GEMINI_API_KEY"] = ""
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RETRY_BASE_DELAY"] = "0"
os.environ["RATE_LIMIT_REQUESTS"] = "10000"
os.environ["MAIL_HOST"] = ""
os.environ["MAIL_FROM"] = ""
os.environ["AUDIO_STORAGE_MODE"] = "inline"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="whisperlog_test_")
os.environ["LOG_LEVEL"] = "WARNING"

from typing import List, Optional, Sequence  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from whisperlog.config import settings  # noqa: E402
from whisperlog.database import Base, get_db_session  # noqa: E402
from whisperlog.dependencies import build_services  # noqa: E402
from whisperlog.models import User, UserFormat  # noqa: E402
from whisperlog.security import hash_password  # noqa: E402
from whisperlog.services.providers.base import (  # noqa: E402
    ProviderAdapter,
    ProviderError,
    ProviderErrorKind,
)
from whisperlog.services.providers.registry import ProviderRegistry  # noqa: E402

MEETING_TEMPLATE = """# Meeting Notes - {date}

## Attendees
{attendees}

## Action Items
- {action_item}
"""

FORMATTED_OUTPUT = """# Meeting Notes - October 17, 2026

## Attendees
Dana, Lee

## Action Items
- Ship the release
"""


# ══════════════════════════════════════════════════════════════════════════
# Fake provider
# ══════════════════════════════════════════════════════════════════════════

class FakeAdapter(ProviderAdapter):
    """
    Scripted provider for orchestrator and API tests.

    `responses` and `probe_failures` are consumed one per call; an exception
    instance in either list is raised instead of returned. The last response
    is repeated once the list runs out.
    """

    name = "fake"
    supports_text = True
    supports_audio = True

    def __init__(
        self,
        responses: Optional[Sequence[object]] = None,
        probe_failures: Optional[Sequence[Optional[BaseException]]] = None,
        configured: bool = True,
        model_name: str = "fake-model-1",
    ):
        super().__init__(model_name=model_name, api_key="fake-key" if configured else "")
        self.responses: List[object] = list(responses or [FORMATTED_OUTPUT])
        self.probe_failures: List[Optional[BaseException]] = list(probe_failures or [])
        self.prompts: List[str] = []
        self.audio_calls: List[str] = []
        self.probe_calls = 0

    def _next_response(self) -> str:
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, BaseException):
            raise item
        return item

    async def format_audio(self, base64_audio, template, instruction=None) -> str:
        self._require_configured()
        self.audio_calls.append(base64_audio)
        return self._next_response()

    async def _complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self._next_response()

    async def _send_probe(self) -> None:
        self.probe_calls += 1
        if self.probe_failures:
            failure = self.probe_failures.pop(0)
            if failure is not None:
                raise failure

    def classify_error(self, exc: BaseException) -> ProviderError:
        if isinstance(exc, ProviderError):
            return exc
        return ProviderError(ProviderErrorKind.UNKNOWN, self.name, str(exc))


def provider_error(kind: ProviderErrorKind, message: str = "scripted failure") -> ProviderError:
    return ProviderError(kind, "fake", message)


@pytest.fixture
def make_provider_error():
    return provider_error


@pytest.fixture
def fake_adapter():
    return FakeAdapter()


@pytest.fixture
def registry(fake_adapter):
    return ProviderRegistry({"fake": fake_adapter}, text_preference=["fake"], audio_preference=["fake"])


@pytest.fixture
def services(registry):
    return build_services(settings, registry=registry)


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def temp_storage(tmp_path):
    """Fresh storage root for audio file-mode tests."""
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return str(storage_dir)


@pytest.fixture
def user_factory(db_session):
    """Persist a user: `await user_factory("dana")`."""

    async def _create(username: str = "dana", email: Optional[str] = None, password: str = "secret123") -> User:
        user = User(
            username=username,
            email=(email or f"{username}@example.com").lower(),
            password_hash=hash_password(password, rounds=4),
        )
        db_session.add(user)
        await db_session.flush()
        return user

    return _create


@pytest.fixture
def format_factory(db_session):
    """Persist a template owned by `user`."""

    async def _create(
        user: User,
        title: str = "Meeting Notes",
        template: str = MEETING_TEMPLATE,
        instruction: Optional[str] = "Keep it short",
        icon_name: str = "users",
        description: Optional[str] = "Weekly sync",
    ) -> UserFormat:
        fmt = UserFormat(
            user_id=user.id,
            title=title,
            description=description,
            instruction=instruction,
            icon_name=icon_name,
            format=template,
        )
        db_session.add(fmt)
        await db_session.flush()
        return fmt

    return _create


# ══════════════════════════════════════════════════════════════════════════
# HTTP client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(session_factory, services):
    """
    HTTPX AsyncClient bound to a fresh app whose services use FakeAdapter
    and whose sessions come from the in-memory test database.
    """
    from whisperlog.main import create_app

    app = create_app(services)

    async def _override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = _override_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def auth_headers(test_client):
    """Registers an account through the API and returns its bearer header."""
    response = await test_client.post(
        "/auth/register",
        json={"username": "dana", "email": "dana@example.com", "password": "secret123"},
    )
    assert response.status_code == 201, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
