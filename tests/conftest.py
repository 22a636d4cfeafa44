"""
tests/conftest.py — Shared Test Fixtures
=========================================

Everything runs against an in-memory SQLite database.  External services
(identity provider, profile service, project-info service) are served by
:class:`FakeUpstream` through ``httpx.MockTransport``.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import httpx
import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.pool import StaticPool

from itinerary.config import ItineraryConfig
from itinerary.database.engine import get_session
from itinerary.database.models import Base, Jam, Manager, Project, Upvote, User
from itinerary.engine.sessions import SessionStore

NOW = datetime.now(UTC)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------
@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all Itinerary tables.

    Uses StaticPool so every thread (``run_db``, the TestClient threadpool)
    shares the same in-memory database.
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def store(db_engine: Engine) -> SessionStore:
    s = SessionStore(db_engine)
    s.load_all()
    return s


@pytest.fixture
def cfg() -> ItineraryConfig:
    return ItineraryConfig(
        community_name="Itinerary",
        frontend_url="https://itinerary.test",
        backend_url="https://api.itinerary.test",
        auth_provider_url="https://auth.test",
        profile_api_url="https://profiles.test",
        project_api_url="https://projects.test/v3",
    )


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------
@pytest.fixture
def make_user(db_engine: Engine):
    def _make(name: str, *, admin: bool = False, banned: bool = False) -> User:
        with get_session(db_engine) as session:
            user = User(name=name, admin=admin, banned=banned)
            session.add(user)
        return user

    return _make


@pytest.fixture
def make_jam(db_engine: Engine):
    """Insert a jam.  ``phase`` picks sensible dates: open, ended or upcoming."""

    def _make(
        slug: str = "winter-jam",
        *,
        phase: str = "open",
        name: str | None = None,
        enable_mystery: bool = False,
        featured: bool = False,
        starts_at: datetime | None = None,
        ends_at: datetime | None = None,
    ) -> Jam:
        default_dates = {
            "open": (NOW - timedelta(days=1), NOW + timedelta(days=1)),
            "ended": (NOW - timedelta(days=10), NOW - timedelta(days=1)),
            "upcoming": (NOW + timedelta(days=1), NOW + timedelta(days=10)),
        }[phase]
        with get_session(db_engine) as session:
            jam = Jam(
                name=name or slug.replace("-", " ").title(),
                slug=slug,
                starts_at=starts_at or default_dates[0],
                ends_at=ends_at or default_dates[1],
                body="Make a game about snow.",
                colors=[{"color": "#ffffff", "function": "background"}],
                header_image="https://img.test/header.png",
                description="A cold one",
                enable_mystery=enable_mystery,
                featured=featured,
            )
            session.add(jam)
        return jam

    return _make


@pytest.fixture
def make_project(db_engine: Engine):
    def _make(
        slug: str,
        project_id: int,
        by: str = "alice",
        *,
        submitted_at: datetime | None = None,
        selected: bool = False,
    ) -> Project:
        with get_session(db_engine) as session:
            project = Project(
                jam=slug,
                project_id=project_id,
                submitted_by=by,
                submitted_at=submitted_at or NOW - timedelta(days=5),
                selected=selected,
            )
            session.add(project)
        return project

    return _make


@pytest.fixture
def add_upvotes(db_engine: Engine):
    """Insert raw upvote rows, bypassing the cap (for winner scenarios)."""

    def _add(slug: str, project_id: int, *voters: str) -> None:
        with get_session(db_engine) as session:
            for voter in voters:
                session.add(Upvote(jam=slug, project_id=project_id, upvoted_by=voter))

    return _add


@pytest.fixture
def make_manager(db_engine: Engine):
    def _make(slug: str, name: str) -> None:
        with get_session(db_engine) as session:
            session.add(Manager(jam=slug, name=name))

    return _make


# ---------------------------------------------------------------------------
# External services
# ---------------------------------------------------------------------------
class FakeUpstream:
    """In-process stand-in for the identity, profile and project services."""

    def __init__(self) -> None:
        self.private_codes: dict[str, str] = {}   # code → username (any case)
        self.profiles: dict[str, str] = {}        # lower name → canonical name
        self.projects: dict[int, str] = {}        # project id → owner
        self.down = False
        self.calls: list[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(str(request.url))
        if self.down:
            raise httpx.ConnectError("upstream down", request=request)

        host, path = request.url.host, request.url.path
        if host == "auth.test" and path == "/api/auth/verifyToken":
            code = request.url.params.get("privateCode", "")
            username = self.private_codes.get(code)
            if username is None:
                return httpx.Response(200, json={"valid": False})
            return httpx.Response(200, json={"valid": True, "username": username})

        if host == "profiles.test" and path.startswith("/users/"):
            name = path.removeprefix("/users/").strip("/")
            canonical = self.profiles.get(name.lower())
            if canonical is None:
                return httpx.Response(404, json={"code": "NotFound"})
            return httpx.Response(200, json={
                "username": canonical,
                "profile": {"images": {"90x90": f"https://cdn.test/{canonical}_90x90.png"}},
            })

        if host == "projects.test" and path.startswith("/v3/project/info/"):
            project_id = int(path.rsplit("/", 1)[-1])
            owner = self.projects.get(project_id)
            if owner is None:
                return httpx.Response(200, json={"error": "no project"})
            return httpx.Response(200, json={"id": project_id, "username": owner})

        return httpx.Response(404)


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def http_client(upstream: FakeUpstream) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler))


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------
@pytest.fixture
def client(db_engine, store, cfg, upstream):
    """FastAPI TestClient wired to the test database, store and fake upstream."""
    from fastapi.testclient import TestClient

    from itinerary.api.deps import get_config, get_engine, get_http_client, get_session_store
    from itinerary.api.main import app

    async def _http_client():
        async with httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler)) as c:
            yield c

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_config] = lambda: cfg
    app.dependency_overrides[get_session_store] = lambda: store
    app.dependency_overrides[get_http_client] = _http_client
    yield TestClient(app, raise_server_exceptions=False, follow_redirects=False)
    app.dependency_overrides.clear()


@pytest.fixture
def login(store: SessionStore, make_user):
    """Create a user (unless it exists) and return auth headers for them."""
    created: set[str] = set()

    def _login(name: str, *, admin: bool = False, exists: bool = False) -> dict:
        if not exists and name not in created:
            make_user(name, admin=admin)
            created.add(name)
        token = store.issue(name).token
        return {"Authorization": f"Bearer {token}"}

    return _login
