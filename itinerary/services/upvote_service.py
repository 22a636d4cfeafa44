"""
itinerary.services.upvote_service — Upvote ledger
==================================================

One upvote per (jam, project, user), and at most ``cap`` upvotes per user
per jam (3 by default).  The cap exists to make voters weigh each project
instead of upvoting everything.

The cap check and the insert run inside a per-(jam, user) critical section,
so two concurrent casts by the same user can't both pass the check.  A cast
also holds the jam lock (always taken first), which keeps a concurrent
withdrawal from deleting the project between the existence check and the
insert.  The unique constraint on ``upvotes`` backs up the duplicate check.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from itinerary.constants import MAX_UPVOTES_PER_JAM
from itinerary.database.engine import get_session
from itinerary.database.models import Project, Upvote
from itinerary.engine.lifecycle import as_utc, utcnow
from itinerary.engine.locks import jam_locks, upvote_locks
from itinerary.engine.permissions import Identity
from itinerary.errors import Conflict, NotFound, PreconditionFailed
from itinerary.services.jam_service import load_jam
from itinerary.services.winner_service import resolve_community_winner

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def _already_cast() -> Conflict:
    return Conflict("alreadySubmitted", "You have already cast a vote on this project!")


def _too_many(cap: int) -> PreconditionFailed:
    noun = "project" if cap == 1 else "projects"
    return PreconditionFailed(
        "tooManyUpvotes",
        f"You can only upvote {cap} {noun} per game jam! This limit exists to "
        "encourage users to evaluate each project and carefully consider "
        "which projects they should upvote.",
    )


def _count_for_jam(session: Session, slug: str, name: str) -> int:
    return session.scalar(
        select(func.count()).select_from(Upvote).where(
            Upvote.jam == slug, func.lower(Upvote.upvoted_by) == name.lower()
        )
    ) or 0


def _has_upvoted(session: Session, slug: str, project_id: int, name: str) -> bool:
    return session.scalar(
        select(Upvote.id).where(
            Upvote.jam == slug,
            Upvote.project_id == project_id,
            func.lower(Upvote.upvoted_by) == name.lower(),
        )
    ) is not None


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------
def cast(
    engine: Engine,
    slug: str,
    project_id: int,
    identity: Identity,
    *,
    cap: int = MAX_UPVOTES_PER_JAM,
    now: datetime | None = None,
) -> Upvote:
    """Record an upvote.

    Raises
    ------
    NotFound
        The jam or the project (within that jam) doesn't exist.
    Conflict
        ``alreadySubmitted`` — the user already upvoted this project.
    PreconditionFailed
        ``tooManyUpvotes`` — the user has used all ``cap`` upvotes in this jam.
    """
    now = as_utc(now) or utcnow()
    # Jam lock first: a concurrent withdrawal can't delete the project mid-cast
    with (
        jam_locks.hold(slug),
        upvote_locks.hold((slug, identity.name.lower())),
        get_session(engine) as session,
    ):
        load_jam(session, slug)
        project = session.scalar(
            select(Project.id).where(Project.jam == slug, Project.project_id == project_id)
        )
        if project is None:
            raise NotFound("projectNotFound", "The requested project could not be found.")

        if _has_upvoted(session, slug, project_id, identity.name):
            raise _already_cast()
        if _count_for_jam(session, slug, identity.name) >= cap:
            raise _too_many(cap)

        upvote = Upvote(
            jam=slug,
            project_id=project_id,
            upvoted_by=identity.name,
            upvoted_at=now,
        )
        session.add(upvote)
        try:
            session.flush()
        except IntegrityError as exc:
            raise _already_cast() from exc

    logger.debug("Upvote %s → %s/%d", identity.name, slug, project_id)
    resolve_community_winner(engine, slug)
    return upvote


def revoke(engine: Engine, slug: str, project_id: int, identity: Identity) -> None:
    """Withdraw the caller's upvote for *project_id*."""
    with upvote_locks.hold((slug, identity.name.lower())), get_session(engine) as session:
        result = session.execute(
            delete(Upvote).where(
                Upvote.jam == slug,
                Upvote.project_id == project_id,
                func.lower(Upvote.upvoted_by) == identity.name.lower(),
            )
        )
        if result.rowcount == 0:
            raise NotFound(
                "upvoteNeverCast",
                "No upvotes were cast for this project during this jam.",
            )

    resolve_community_winner(engine, slug)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def count_for_project(
    engine: Engine, slug: str, project_id: int, viewer: str | None = None
) -> tuple[int, bool | None]:
    """Return ``(count, upvoted)``; ``upvoted`` is ``None`` without a *viewer*."""
    with get_session(engine) as session:
        count = session.scalar(
            select(func.count()).select_from(Upvote).where(
                Upvote.jam == slug, Upvote.project_id == project_id
            )
        ) or 0
        upvoted = (
            _has_upvoted(session, slug, project_id, viewer) if viewer else None
        )
        return count, upvoted


def count_for_jam(engine: Engine, slug: str, name: str) -> int:
    with get_session(engine) as session:
        return _count_for_jam(session, slug, name)


def count_remaining(engine: Engine, slug: str, name: str, cap: int = MAX_UPVOTES_PER_JAM) -> int:
    return max(0, cap - count_for_jam(engine, slug, name))


def list_for_user(engine: Engine, slug: str, name: str) -> list[Upvote]:
    with get_session(engine) as session:
        return list(session.scalars(
            select(Upvote)
            .where(Upvote.jam == slug, func.lower(Upvote.upvoted_by) == name.lower())
            .order_by(Upvote.upvoted_at, Upvote.id)
        ).all())
