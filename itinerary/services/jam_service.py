"""
itinerary.services.jam_service — Jams & managers
=================================================

Jams are addressed by slug everywhere.  Creating a jam derives the slug from
its name; renaming it derives a new one and re-links every child row
(managers, projects, upvotes) in the same transaction.

Partial updates are a flat ``column → value`` mapping checked against
:data:`JAM_FIELDS`; the API layer builds it from typed request models.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from itinerary.constants import slugify
from itinerary.database.engine import get_session
from itinerary.database.models import Jam, Manager, Project, Upvote
from itinerary.engine.lifecycle import as_utc, utcnow
from itinerary.engine.permissions import GLOBAL, Identity, Role, Scope
from itinerary.errors import Conflict, InvalidRequest, NotFound
from itinerary.services.authz_service import is_manager, require_role
from itinerary.services.user_service import find_user

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

# Columns a create / update may set
JAM_FIELDS: frozenset[str] = frozenset({
    "name",
    "starts_at", "ends_at", "voting_starts_at", "voting_ends_at",
    "body", "colors", "header_image", "description",
    "enable_mystery",
})

_REQUIRED_ON_CREATE = ("name", "body")


def jam_not_found() -> NotFound:
    return NotFound("jamNotFound", "The requested jam could not be found.")


def load_jam(session: Session, slug: str) -> Jam:
    jam = session.scalar(select(Jam).where(Jam.slug == slug))
    if jam is None:
        raise jam_not_found()
    return jam


def _unique_slug(session: Session, name: str, *, exclude_id: int | None = None) -> str:
    """Slugify *name*, appending ``-2``, ``-3`` … until it is free."""
    base = slugify(name)
    query = select(Jam.slug).where(
        (Jam.slug == base) | Jam.slug.like(f"{base}-%")
    )
    if exclude_id is not None:
        query = query.where(Jam.id != exclude_id)
    taken = set(session.scalars(query).all())
    if base not in taken:
        return base
    n = 2
    while f"{base}-{n}" in taken:
        n += 1
    return f"{base}-{n}"


def _check_fields(changes: dict[str, Any]) -> None:
    unknown = set(changes) - JAM_FIELDS
    if unknown:
        raise InvalidRequest(
            "invalidParameters",
            f"Unknown jam field(s): {', '.join(sorted(unknown))}",
        )
    start, end = as_utc(changes.get("starts_at")), as_utc(changes.get("ends_at"))
    if start is not None and end is not None and end <= start:
        raise InvalidRequest("invalidDates", "A jam must end after it starts!")


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_jam(engine: Engine, slug: str) -> Jam:
    with get_session(engine) as session:
        return load_jam(session, slug)


def list_jams(
    engine: Engine,
    *,
    limit: int,
    offset: int = 0,
    featured: bool | None = None,
) -> tuple[int, list[Jam]]:
    """Page of jams ordered by start date (newest first) plus the matching total."""
    offset = max(0, offset)
    query = select(Jam)
    if featured is True:
        query = query.where(Jam.featured.is_(True))
    elif featured is False:
        query = query.where(Jam.featured.is_(False))

    with get_session(engine) as session:
        total = session.scalar(
            select(func.count()).select_from(query.subquery())
        ) or 0
        jams = session.scalars(
            query.order_by(Jam.starts_at.desc(), Jam.id.desc())
            .offset(offset)
            .limit(limit)
        ).all()
        return total, list(jams)


def managed_slugs(engine: Engine, identity: Identity | None, slugs: list[str]) -> set[str]:
    """Subset of *slugs* whose mystery content *identity* may see."""
    if identity is None or identity.banned or not slugs:
        return set()
    if identity.admin:
        return set(slugs)
    with get_session(engine) as session:
        return set(session.scalars(
            select(Manager.jam).where(
                Manager.jam.in_(slugs),
                func.lower(Manager.name) == identity.name.lower(),
            )
        ).all())


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def create_jam(engine: Engine, identity: Identity, changes: dict[str, Any]) -> Jam:
    """Create a jam (admin only).  ``name`` and ``body`` are required."""
    _check_fields(changes)
    missing = [k for k in _REQUIRED_ON_CREATE if not changes.get(k)]
    if missing:
        raise InvalidRequest(
            "missingParameters",
            f"Missing required jam field(s): {', '.join(missing)}",
        )

    with get_session(engine) as session:
        require_role(session, identity, GLOBAL, Role.ADMIN)
        jam = Jam(
            slug=_unique_slug(session, changes["name"]),
            updated_by=identity.name,
            **changes,
        )
        session.add(jam)
        try:
            session.flush()
        except IntegrityError as exc:
            raise Conflict("recordAlreadyExists", "A jam with this slug already exists.") from exc
        logger.info("Jam %s created by %s", jam.slug, identity.name)
        return jam


def update_jam(
    engine: Engine,
    slug: str,
    identity: Identity,
    changes: dict[str, Any],
    now: datetime | None = None,
) -> Jam:
    """Apply a partial update (admin or the jam's manager).

    * A new name re-derives the slug and re-links managers, projects and
      upvotes.
    * Moving the end date into the future re-opens the jam, so every winner
      flag is cleared.
    """
    _check_fields(changes)
    if "name" in changes and not changes["name"]:
        raise InvalidRequest("missingParameters", "A jam needs a name!")
    if "body" in changes and not changes["body"]:
        raise InvalidRequest("missingParameters", "A jam needs a body!")
    now = as_utc(now) or utcnow()

    with get_session(engine) as session:
        jam = load_jam(session, slug)
        require_role(session, identity, Scope(jam=slug), Role.MANAGER)

        new_end = as_utc(changes.get("ends_at"))
        if new_end is not None and new_end > now:
            session.execute(
                update(Project)
                .where(Project.jam == slug)
                .values(selected=False, selected_by_community=False)
            )

        for key, value in changes.items():
            setattr(jam, key, value)
        start, end = as_utc(jam.starts_at), as_utc(jam.ends_at)
        if start is not None and end is not None and end <= start:
            raise InvalidRequest("invalidDates", "A jam must end after it starts!")

        if "name" in changes:
            new_slug = _unique_slug(session, jam.name, exclude_id=jam.id)
            if new_slug != slug:
                jam.slug = new_slug
                for model in (Manager, Project, Upvote):
                    session.execute(
                        update(model).where(model.jam == slug).values(jam=new_slug)
                    )
                logger.info("Jam %s renamed → %s (children re-linked)", slug, new_slug)

        jam.updated_by = identity.name
        jam.updated_at = now
        session.flush()
        return jam


def delete_jam(engine: Engine, slug: str, identity: Identity) -> None:
    """Delete a jam and every manager, project and upvote attached to it."""
    with get_session(engine) as session:
        require_role(session, identity, GLOBAL, Role.ADMIN)
        jam = load_jam(session, slug)
        for model in (Upvote, Project, Manager):
            session.execute(delete(model).where(model.jam == slug))
        session.delete(jam)
    logger.info("Jam %s deleted by %s", slug, identity.name)


def set_featured(engine: Engine, slug: str, identity: Identity, featured: bool) -> Jam:
    with get_session(engine) as session:
        require_role(session, identity, GLOBAL, Role.ADMIN)
        jam = load_jam(session, slug)
        jam.featured = featured
        return jam


# ---------------------------------------------------------------------------
# Managers
# ---------------------------------------------------------------------------
def list_managers(engine: Engine, slug: str) -> list[Manager]:
    with get_session(engine) as session:
        load_jam(session, slug)
        return list(session.scalars(
            select(Manager).where(Manager.jam == slug).order_by(Manager.id)
        ).all())


def add_manager(engine: Engine, slug: str, name: str, identity: Identity) -> Manager:
    """Grant *name* manager rights on the jam (admin or existing manager)."""
    with get_session(engine) as session:
        load_jam(session, slug)
        require_role(
            session, identity, Scope(jam=slug), Role.MANAGER,
            "This action can only be performed by an admin or a manager!",
        )
        user = find_user(session, name)
        if user is None:
            raise NotFound("userNotFound", "This user doesn't exist in Itinerary's database!")
        if user.admin:
            raise Conflict(
                "userIsAdmin",
                "This user is an administrator thus they already have access "
                "to manager tools on every jam!",
            )
        if is_manager(session, slug, user.name):
            raise Conflict(
                "recordAlreadyExists",
                "The requested user is already a manager in this jam!",
            )
        manager = Manager(jam=slug, name=user.name)
        session.add(manager)
        session.flush()
        logger.info("%s added as manager of %s by %s", user.name, slug, identity.name)
        return manager


def remove_manager(engine: Engine, slug: str, name: str, identity: Identity) -> None:
    with get_session(engine) as session:
        load_jam(session, slug)
        require_role(
            session, identity, Scope(jam=slug), Role.MANAGER,
            "This action can only be performed by an admin or a manager!",
        )
        result = session.execute(
            delete(Manager).where(
                Manager.jam == slug, func.lower(Manager.name) == name.lower()
            )
        )
        if result.rowcount == 0:
            raise NotFound("managerNotFound", "The requested manager could not be found.")


def user_jam_data(engine: Engine, slug: str, identity: Identity) -> dict[str, bool]:
    """Whether the caller has submitted to the jam and whether they manage it."""
    with get_session(engine) as session:
        load_jam(session, slug)
        submitted = session.scalar(
            select(func.count()).select_from(Project).where(
                Project.jam == slug,
                func.lower(Project.submitted_by) == identity.name.lower(),
            )
        ) or 0
        return {
            "hasParticipated": submitted > 0,
            "manager": is_manager(session, slug, identity.name),
        }
