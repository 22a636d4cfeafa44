"""
itinerary.services.user_service — Profiles, bans & provisioning
================================================================

User names are unique regardless of case; every lookup here goes through
:func:`find_user`.  Banning or deleting a user also revokes all of their
sessions through the :class:`~itinerary.engine.sessions.SessionStore`
(after the user row change has committed).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from itinerary.database.engine import get_session
from itinerary.database.models import Manager, User
from itinerary.engine.lifecycle import utcnow
from itinerary.engine.permissions import GLOBAL, Identity, Role, Scope
from itinerary.errors import Conflict, Forbidden, NotFound
from itinerary.services.authz_service import require_role

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from itinerary.engine.sessions import SessionStore

logger = logging.getLogger(__name__)


def _not_found(name: str) -> NotFound:
    return NotFound("userNotFound", f"The user {name!r} could not be found.")


def find_user(session: Session, name: str) -> User | None:
    """Case-insensitive lookup by name."""
    return session.scalar(select(User).where(func.lower(User.name) == name.lower()))


def to_identity(user: User) -> Identity:
    return Identity(name=user.name, admin=bool(user.admin), banned=bool(user.banned))


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_user(engine: Engine, name: str) -> User:
    with get_session(engine) as session:
        user = find_user(session, name)
        if user is None:
            raise _not_found(name)
        return user


def get_identity(engine: Engine, name: str) -> Identity | None:
    """Load the caller's :class:`Identity`, or ``None`` if the user row is gone."""
    with get_session(engine) as session:
        user = find_user(session, name)
        return to_identity(user) if user else None


def list_users(engine: Engine, identity: Identity) -> list[User]:
    """All users, most recently updated first.  Admin only."""
    with get_session(engine) as session:
        require_role(
            session, identity, GLOBAL, Role.ADMIN,
            "Only admins can get a list of users!",
        )
        return list(session.scalars(
            select(User).order_by(User.updated_at.desc(), User.id.desc())
        ).all())


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def get_or_create_user(engine: Engine, name: str) -> tuple[User, bool]:
    """Return ``(user, created)`` for a verified *name* (canonical case)."""
    with get_session(engine) as session:
        user = find_user(session, name)
        if user is not None:
            return user, False
        user = User(name=name, updated_by=None)
        session.add(user)
        try:
            session.flush()
        except IntegrityError:
            # Lost a race with a concurrent first login for the same name
            session.rollback()
            user = find_user(session, name)
            if user is None:
                raise
            return user, False
        logger.info("Created user %s on first login", name)
        return user, True


def provision_user(engine: Engine, name: str, identity: Identity) -> User:
    """Admin-only creation of a user who has never logged in.

    *name* must already be the canonical casing from the profile service.
    """
    with get_session(engine) as session:
        require_role(session, identity, GLOBAL, Role.ADMIN)
        if find_user(session, name) is not None:
            raise Conflict("userAlreadyExists", "This user already exists.")
        user = User(name=name, updated_by=identity.name)
        session.add(user)
        session.flush()
        logger.info("User %s provisioned by %s", name, identity.name)
        return user


def update_user(
    engine: Engine,
    store: SessionStore,
    name: str,
    identity: Identity,
    *,
    banned: bool | None = None,
    admin: bool | None = None,
) -> User:
    """Touch or modify a user.

    Anyone may "update" their own record (refreshes the audit fields);
    only admins may change ``banned`` / ``admin``.  Banning revokes every
    session the target holds.
    """
    ban_applied = False
    with get_session(engine) as session:
        user = find_user(session, name)
        if user is None:
            raise _not_found(name)
        require_role(
            session, identity, Scope(owner=user.name), Role.OWNER,
            "You cannot edit other users unless you are an admin!",
        )
        if (banned is not None or admin is not None) and not identity.admin:
            raise Forbidden(
                "insufficientPermissions",
                "Only admins can ban users or change admin status!",
            )
        if banned is not None:
            ban_applied = banned
            user.banned = banned
        if admin is not None:
            user.admin = admin
            if admin:
                # Admins manage every jam implicitly
                session.execute(
                    delete(Manager).where(func.lower(Manager.name) == user.name.lower())
                )
        user.updated_by = identity.name
        user.updated_at = utcnow()
        session.flush()

    if ban_applied:
        revoked = store.revoke_all(user.name)
        logger.info("User %s banned by %s (%d sessions revoked)", user.name, identity.name, revoked)
    return user


def delete_user(engine: Engine, store: SessionStore, name: str, identity: Identity) -> None:
    """Remove a user (self or admin); cascades to sessions and manager rows."""
    with get_session(engine) as session:
        user = find_user(session, name)
        if user is None:
            raise _not_found(name)
        require_role(
            session, identity, Scope(owner=user.name), Role.OWNER,
            "This action can only be performed by an admin or the account owner!",
        )
        canonical = user.name
        session.execute(delete(Manager).where(func.lower(Manager.name) == canonical.lower()))
        session.delete(user)

    store.revoke_all(canonical)
    logger.info("User %s deleted by %s", canonical, identity.name)
