"""
itinerary.database.models — SQLAlchemy 2.0 Data Models
========================================================

Tables:
- users     — Community members (case-insensitive unique name)
- sessions  — Bearer tokens + single-use hand-off tokens
- jams      — Time-boxed competitions, addressed by slug
- managers  — Per-jam elevated permission
- projects  — Submissions (external numeric project id) per jam
- upvotes   — One row per (jam, project, user)

Child rows reference their jam by **slug**, not by primary key, so a rename
that changes the slug has to re-link them (see ``jam_service.update_jam``).
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Shared base for all Itinerary ORM models."""


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    banned: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    updated_by: Mapped[str | None] = mapped_column(String(64), default=None)

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.name!r} admin={self.admin}>"


# Names are unique regardless of case ("Griffpatch" == "griffpatch")
Index("ix_users_name_lower", func.lower(User.name), unique=True)


# ---------------------------------------------------------------------------
# AuthSession — bearer tokens (named to avoid clashing with orm.Session)
# ---------------------------------------------------------------------------
class AuthSession(Base):
    __tablename__ = "sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    one_time_token: Mapped[str | None] = mapped_column(
        String(128), nullable=True, unique=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_sessions_name", "name"),
    )

    def __repr__(self) -> str:
        return f"<AuthSession name={self.name!r} token={self.token[:8]!r}...>"


# ---------------------------------------------------------------------------
# Jams
# ---------------------------------------------------------------------------
class Jam(Base):
    __tablename__ = "jams"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(140), nullable=False, unique=True)

    # dates.*
    starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    voting_starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    voting_ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # content.*
    body: Mapped[str] = mapped_column(Text, nullable=False)
    colors: Mapped[list | None] = mapped_column(JSON, default=None)  # [{"color", "function"}]
    header_image: Mapped[str | None] = mapped_column(String(500), default=None)
    description: Mapped[str | None] = mapped_column(Text, default=None)

    # options.*
    enable_mystery: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    featured: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    updated_by: Mapped[str | None] = mapped_column(String(64), default=None)

    __table_args__ = (
        Index("ix_jams_starts_at", "starts_at"),
    )

    def __repr__(self) -> str:
        return f"<Jam id={self.id} slug={self.slug!r}>"


# ---------------------------------------------------------------------------
# Managers — per-jam elevated permission
# ---------------------------------------------------------------------------
class Manager(Base):
    __tablename__ = "managers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    jam: Mapped[str] = mapped_column(String(140), nullable=False)
    name: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        UniqueConstraint("jam", "name", name="uq_managers_jam_name"),
    )

    def __repr__(self) -> str:
        return f"<Manager jam={self.jam!r} name={self.name!r}>"


# ---------------------------------------------------------------------------
# Projects — submissions
# ---------------------------------------------------------------------------
class Project(Base):
    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    jam: Mapped[str] = mapped_column(String(140), nullable=False)
    project_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    submitted_by: Mapped[str] = mapped_column(String(64), nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    selected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    selected_by_community: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("jam", "project_id", name="uq_projects_jam_project"),
        Index("ix_projects_jam_submitted", "jam", "submitted_at"),
    )

    def __repr__(self) -> str:
        return f"<Project jam={self.jam!r} project={self.project_id}>"


# ---------------------------------------------------------------------------
# Upvotes — one per (jam, project, user)
# ---------------------------------------------------------------------------
class Upvote(Base):
    __tablename__ = "upvotes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    jam: Mapped[str] = mapped_column(String(140), nullable=False)
    project_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    upvoted_by: Mapped[str] = mapped_column(String(64), nullable=False)
    upvoted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "jam", "project_id", "upvoted_by",
            name="uq_upvotes_jam_project_user",
        ),
        Index("ix_upvotes_jam_user", "jam", "upvoted_by"),
    )

    def __repr__(self) -> str:
        return (
            f"<Upvote jam={self.jam!r} project={self.project_id} "
            f"by={self.upvoted_by!r}>"
        )
