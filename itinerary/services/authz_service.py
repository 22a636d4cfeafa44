"""
itinerary.services.authz_service — Manager lookups & role checks
=================================================================

Bridges :mod:`itinerary.engine.permissions` (pure) to the ``managers``
table.  Services call :func:`require_role` inside their own DB session.
"""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from itinerary.database.models import Manager
from itinerary.engine.permissions import Identity, Role, Scope, require, resolve_role


def is_manager(session: Session, jam: str, name: str) -> bool:
    """True if *name* holds a Manager row for *jam*."""
    return session.scalar(
        select(func.count())
        .select_from(Manager)
        .where(Manager.jam == jam, func.lower(Manager.name) == name.lower())
    ) > 0


def role_for(session: Session, identity: Identity | None, scope: Scope) -> Role:
    """Resolve *identity*'s role over *scope*, consulting ``managers`` when needed."""
    if identity is None or identity.banned:
        return Role.NONE
    manager = False
    if scope.jam is not None and not identity.admin:
        manager = is_manager(session, scope.jam, identity.name)
    return resolve_role(identity, scope, is_manager=manager)


def require_role(
    session: Session,
    identity: Identity | None,
    scope: Scope,
    minimum: Role,
    detail: str | None = None,
) -> Role:
    """Resolve the role and raise ``Forbidden`` if it is below *minimum*."""
    role = role_for(session, identity, scope)
    require(role, minimum, detail)
    return role


def can_see_mystery(session: Session, identity: Identity | None, jam: str) -> bool:
    """Admins and the jam's managers see unredacted upcoming jams."""
    return role_for(session, identity, Scope(jam=jam)) >= Role.MANAGER
