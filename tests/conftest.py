"""Shared fixtures for NoteByPine tests."""

import pytest

from fake_pocketbase import FakePocketBase

from notebypine import database
from notebypine.config import get_settings
from notebypine.pocketbase import PocketBaseClient
from notebypine.queries import query_cache

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin123456"
PB_URL = "http://pocketbase.test"


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point file output at a temp dir and use a fixed JWT secret."""
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "out"))
    monkeypatch.setenv("JWT_SECRET_KEY", "test-signing-key-not-for-production")
    monkeypatch.setenv("POCKETBASE_URL", PB_URL)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def clear_caches():
    """Query results must not leak between tests."""
    from notebypine import mcp_server

    query_cache.invalidate()
    mcp_server.response_cache.invalidate()
    mcp_server.rate_limiter.reset()
    yield
    query_cache.invalidate()
    mcp_server.response_cache.invalidate()
    mcp_server.rate_limiter.reset()


@pytest.fixture
def fake_pb():
    """Empty in-memory PocketBase."""
    return FakePocketBase(ADMIN_EMAIL, ADMIN_PASSWORD)


@pytest.fixture
def pb_client(fake_pb):
    """Unauthenticated client wired to the fake; it logs in on first use."""
    return PocketBaseClient(PB_URL, ADMIN_EMAIL, ADMIN_PASSWORD, transport=fake_pb.transport)


@pytest.fixture
def db(pb_client, monkeypatch):
    """Install the fake-backed client as the shared database."""
    monkeypatch.setattr(database, "_database", pb_client)
    return pb_client


@pytest.fixture
def seeded(fake_pb, db):
    """A small knowledge base: three incidents, one solution, one lesson."""
    timeout = fake_pb.seed(
        "incidents",
        title="Database connection timeout on checkout",
        category="Backend",
        description="Postgres pool exhausted during peak traffic",
        severity="high",
        status="open",
        root_cause="",
    )
    pool = fake_pb.seed(
        "incidents",
        title="Connection pool exhausted on orders service",
        category="Backend",
        description="Orders API returns 500 when the database pool is full",
        severity="critical",
        status="investigating",
        root_cause="",
    )
    css = fake_pb.seed(
        "incidents",
        title="Login button misaligned on Safari",
        category="Frontend",
        description="Flexbox gap unsupported in older Safari",
        severity="low",
        status="resolved",
        root_cause="Old WebKit",
    )
    solution = fake_pb.seed(
        "solutions",
        incident_id=timeout["id"],
        solution_title="Raise pool size",
        solution_description="Increase max connections and add a queue timeout",
        steps='["Edit pool config", "Restart service"]',
    )
    lesson = fake_pb.seed(
        "lessons_learned",
        incident_id=timeout["id"],
        lesson_type="prevention",
        lesson_text=(
            "Problem Summary: Pool exhausted\n\n"
            "Root Cause: Pool too small\n\n"
            "Prevention: Alert on pool saturation"
        ),
    )
    return {"timeout": timeout, "pool": pool, "css": css, "solution": solution, "lesson": lesson}
