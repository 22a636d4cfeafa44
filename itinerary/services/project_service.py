"""
itinerary.services.project_service — Submissions & manual winners
==================================================================

Submitting is gated by the jam's window (``starts_at <= now < ends_at``) and
by ownership of the external project.  The ownership lookup is an HTTP call,
so the API layer performs it *before* calling :func:`submit_project`; this
module only ever touches the database.

Every mutation here is followed by a community winner recomputation.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError

from itinerary.database.engine import get_session
from itinerary.database.models import Project, Upvote
from itinerary.engine.lifecycle import as_utc, submission_open, utcnow
from itinerary.engine.locks import jam_locks
from itinerary.engine.permissions import Identity, Role, Scope
from itinerary.errors import Conflict, Forbidden, NotFound, PreconditionFailed
from itinerary.services.authz_service import require_role
from itinerary.services.jam_service import load_jam
from itinerary.services.winner_service import resolve_community_winner

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def project_not_found() -> NotFound:
    return NotFound("projectNotFound", "The requested project could not be found.")


def _already_submitted() -> Conflict:
    return Conflict("alreadySubmitted", "This project is already submitted!")


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def list_projects(engine: Engine, slug: str, limit: int | None = None) -> list[Project]:
    """Projects of a jam, newest submission first (winners recomputed first)."""
    with get_session(engine) as session:
        load_jam(session, slug)
    resolve_community_winner(engine, slug)

    query = (
        select(Project)
        .where(Project.jam == slug)
        .order_by(Project.submitted_at.desc(), Project.id.desc())
    )
    if limit:
        query = query.limit(limit)
    with get_session(engine) as session:
        return list(session.scalars(query).all())


def get_project(engine: Engine, slug: str, project_id: int) -> Project:
    with get_session(engine) as session:
        load_jam(session, slug)
    resolve_community_winner(engine, slug)

    with get_session(engine) as session:
        project = session.scalar(
            select(Project).where(Project.jam == slug, Project.project_id == project_id)
        )
        if project is None:
            raise project_not_found()
        return project


def list_winners(engine: Engine, slug: str) -> list[Project]:
    """Manual and community winners of a jam."""
    with get_session(engine) as session:
        load_jam(session, slug)
    resolve_community_winner(engine, slug)

    with get_session(engine) as session:
        return list(session.scalars(
            select(Project)
            .where(
                Project.jam == slug,
                Project.selected.is_(True) | Project.selected_by_community.is_(True),
            )
            .order_by(Project.selected.desc(), Project.submitted_at)
        ).all())


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------
def ensure_jam_open(engine: Engine, slug: str, now: datetime | None = None) -> None:
    """Raise unless jam *slug* exists and is accepting submissions.

    Lets the API reject early before spending an external ownership lookup.
    """
    with get_session(engine) as session:
        jam = load_jam(session, slug)
        if not submission_open(jam, now):
            raise PreconditionFailed("jamNotOpen", "This jam is not accepting submissions!")


def submit_project(
    engine: Engine,
    slug: str,
    project_id: int,
    identity: Identity,
    *,
    owner: str,
    now: datetime | None = None,
) -> Project:
    """Record *identity*'s submission of external project *project_id*.

    *owner* is the project's author as reported by the project-info
    service; it must match the submitter.
    """
    now = as_utc(now) or utcnow()
    if owner.lower() != identity.name.lower():
        raise Forbidden("illegalRequest", "You can only submit projects YOU own!")

    with jam_locks.hold(slug), get_session(engine) as session:
        jam = load_jam(session, slug)
        if not submission_open(jam, now):
            raise PreconditionFailed("jamNotOpen", "This jam is not accepting submissions!")

        exists = session.scalar(
            select(Project.id).where(Project.jam == slug, Project.project_id == project_id)
        )
        if exists is not None:
            raise _already_submitted()

        project = Project(
            jam=slug,
            project_id=project_id,
            submitted_by=identity.name,
            submitted_at=now,
            selected=False,
            selected_by_community=False,
        )
        session.add(project)
        try:
            session.flush()
        except IntegrityError as exc:
            raise _already_submitted() from exc

    logger.info("Project %d submitted to %s by %s", project_id, slug, identity.name)
    return project


def withdraw_project(engine: Engine, slug: str, project_id: int, identity: Identity) -> None:
    """Delete a submission and its upvotes (submitter, jam manager or admin)."""
    with jam_locks.hold(slug), get_session(engine) as session:
        load_jam(session, slug)
        project = session.scalar(
            select(Project).where(Project.jam == slug, Project.project_id == project_id)
        )
        if project is None:
            raise project_not_found()
        require_role(
            session, identity, Scope(jam=slug, owner=project.submitted_by), Role.OWNER,
            "This action can only be performed by an admin, a manager, "
            "or the person who submitted the project!",
        )
        session.execute(
            delete(Upvote).where(Upvote.jam == slug, Upvote.project_id == project_id)
        )
        session.delete(project)

    logger.info("Project %d withdrawn from %s by %s", project_id, slug, identity.name)
    resolve_community_winner(engine, slug)


# ---------------------------------------------------------------------------
# Manual winners
# ---------------------------------------------------------------------------
def select_winner(engine: Engine, slug: str, project_id: int, identity: Identity) -> None:
    """Mark *project_id* as the jam's manually selected winner (manager/admin).

    Any previous manual winner is cleared, and the chosen project loses its
    community flag (it is no longer eligible for the community pick).
    """
    with jam_locks.hold(slug), get_session(engine) as session:
        load_jam(session, slug)
        require_role(session, identity, Scope(jam=slug), Role.MANAGER)
        project = session.scalar(
            select(Project).where(Project.jam == slug, Project.project_id == project_id)
        )
        if project is None:
            raise project_not_found()
        session.execute(
            update(Project)
            .where(Project.jam == slug, Project.project_id != project_id)
            .values(selected=False)
        )
        project.selected = True
        project.selected_by_community = False

    logger.info("Project %d selected as winner of %s by %s", project_id, slug, identity.name)
    resolve_community_winner(engine, slug)


def clear_winner(engine: Engine, slug: str, project_id: int, identity: Identity) -> None:
    """Strip the manual winner status from *project_id* (manager/admin)."""
    with jam_locks.hold(slug), get_session(engine) as session:
        load_jam(session, slug)
        require_role(session, identity, Scope(jam=slug), Role.MANAGER)
        project = session.scalar(
            select(Project).where(Project.jam == slug, Project.project_id == project_id)
        )
        if project is None:
            raise project_not_found()
        project.selected = False

    resolve_community_winner(engine, slug)
