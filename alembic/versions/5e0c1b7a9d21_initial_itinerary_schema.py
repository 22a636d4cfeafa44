"""Initial schema: users, sessions, jams, managers, projects, upvotes

Revision ID: 5e0c1b7a9d21
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5e0c1b7a9d21"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    """Create every Itinerary table."""
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("banned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_by", sa.String(64), nullable=True),
    )
    op.create_index(
        "ix_users_name_lower", "users", [sa.text("lower(name)")], unique=True
    )

    op.create_table(
        "sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("token", sa.String(128), nullable=False, unique=True),
        sa.Column("one_time_token", sa.String(128), nullable=True, unique=True),
        _created_at("created_at"),
    )
    op.create_index("ix_sessions_name", "sessions", ["name"])

    op.create_table(
        "jams",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(140), nullable=False, unique=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("voting_starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("voting_ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("colors", sa.JSON(), nullable=True),
        sa.Column("header_image", sa.String(500), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("enable_mystery", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("featured", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_by", sa.String(64), nullable=True),
    )
    op.create_index("ix_jams_starts_at", "jams", ["starts_at"])

    op.create_table(
        "managers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("jam", sa.String(140), nullable=False),
        sa.Column("name", sa.String(64), nullable=False),
        sa.UniqueConstraint("jam", "name", name="uq_managers_jam_name"),
    )

    op.create_table(
        "projects",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("jam", sa.String(140), nullable=False),
        sa.Column("project_id", sa.BigInteger(), nullable=False),
        sa.Column("submitted_by", sa.String(64), nullable=False),
        _created_at("submitted_at"),
        sa.Column("selected", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "selected_by_community", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.UniqueConstraint("jam", "project_id", name="uq_projects_jam_project"),
    )
    op.create_index("ix_projects_jam_submitted", "projects", ["jam", "submitted_at"])

    op.create_table(
        "upvotes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("jam", sa.String(140), nullable=False),
        sa.Column("project_id", sa.BigInteger(), nullable=False),
        sa.Column("upvoted_by", sa.String(64), nullable=False),
        _created_at("upvoted_at"),
        sa.UniqueConstraint(
            "jam", "project_id", "upvoted_by", name="uq_upvotes_jam_project_user"
        ),
    )
    op.create_index("ix_upvotes_jam_user", "upvotes", ["jam", "upvoted_by"])


def downgrade() -> None:
    """Drop every Itinerary table."""
    op.drop_index("ix_upvotes_jam_user", table_name="upvotes")
    op.drop_table("upvotes")
    op.drop_index("ix_projects_jam_submitted", table_name="projects")
    op.drop_table("projects")
    op.drop_table("managers")
    op.drop_index("ix_jams_starts_at", table_name="jams")
    op.drop_table("jams")
    op.drop_index("ix_sessions_name", table_name="sessions")
    op.drop_table("sessions")
    op.drop_index("ix_users_name_lower", table_name="users")
    op.drop_table("users")
