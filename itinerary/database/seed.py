"""
itinerary.database.seed — Bootstrap Admins
===========================================

Admins are normally promoted by other admins, so a fresh database needs a
first one.  Names listed under ``bootstrap_admins`` in ``config.yaml`` are
created (or promoted) on startup.  Idempotent.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import Engine, delete, func, select

from itinerary.database.engine import get_session
from itinerary.database.models import Manager, User

logger = logging.getLogger(__name__)


def seed_bootstrap_admins(engine: Engine, names: Iterable[str]) -> int:
    """Ensure every name in *names* exists with ``admin=True``.

    Returns the number of rows created or promoted.  As with a promotion
    through the API, a new admin keeps no per-jam Manager rows.
    """
    changed = 0
    with get_session(engine) as session:
        for name in names:
            name = name.strip()
            if not name:
                continue
            user = session.scalar(
                select(User).where(func.lower(User.name) == name.lower())
            )
            if user is None:
                session.add(User(name=name, admin=True, updated_by=None))
                changed += 1
            elif not user.admin:
                user.admin = True
                changed += 1
            else:
                continue
            # Admins manage every jam implicitly
            session.execute(
                delete(Manager).where(func.lower(Manager.name) == name.lower())
            )
    if changed:
        logger.info("Bootstrap admins: %d created or promoted", changed)
    return changed
