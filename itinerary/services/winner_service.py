"""
itinerary.services.winner_service — Community winner persistence
=================================================================

Recomputes ``selected_by_community`` for one jam.  Called on every read of a
jam's projects or winners and after anything that changes its upvotes or
projects.  The selection itself is :func:`itinerary.engine.winners.pick_winner`.

The whole read-tally-write sequence runs under the jam's lock so two
concurrent recomputations can't interleave their flag writes.  Only rows
whose flag actually changes are written, so repeated calls with unchanged
inputs are no-ops.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select

from itinerary.database.engine import get_session
from itinerary.database.models import Jam, Project, Upvote
from itinerary.engine.lifecycle import has_ended
from itinerary.engine.locks import jam_locks
from itinerary.engine.winners import pick_winner

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def resolve_community_winner(
    engine: Engine, slug: str, now: datetime | None = None
) -> int | None:
    """Recompute and persist the community winner of jam *slug*.

    Returns the winning external project id, or ``None`` when there is no
    community winner (jam still running, no eligible upvotes, …).
    """
    with jam_locks.hold(slug), get_session(engine) as session:
        jam = session.scalar(select(Jam).where(Jam.slug == slug))
        if jam is None or not has_ended(jam, now):
            return None

        projects = session.scalars(select(Project).where(Project.jam == slug)).all()
        eligible = {p.project_id: p.submitted_at for p in projects if not p.selected}
        upvoted = session.scalars(
            select(Upvote.project_id).where(Upvote.jam == slug)
        ).all()
        winner = pick_winner(eligible, upvoted)
        winner_id = winner.project_id if winner else None

        changed = 0
        for project in projects:
            should_be = project.project_id == winner_id
            if project.selected_by_community != should_be:
                project.selected_by_community = should_be
                changed += 1

    if changed:
        logger.info(
            "Community winner for %s → %s (%d rows updated)",
            slug, winner_id, changed,
        )
    return winner_id
