"""
itinerary.api.routes.jams — Jam CRUD, featuring, managers
==========================================================

Reads apply mystery redaction per jam: a jam that hasn't started and has
``options.enableMystery`` set loses ``content.body`` / ``content.colors``
unless the caller is an admin or that jam's manager.  ``bypassMystery=true``
asks for the unredacted view explicitly and is refused (never silently
redacted) when the caller lacks the rights.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Engine

from itinerary.api.deps import (
    get_config,
    get_current_identity,
    get_engine,
    get_optional_identity,
)
from itinerary.api.serializers import jam_dict, manager_dict
from itinerary.config import ItineraryConfig
from itinerary.database.engine import get_session
from itinerary.engine.lifecycle import as_utc, is_mystery
from itinerary.engine.permissions import GLOBAL, Identity, Role, Scope
from itinerary.errors import Unauthenticated
from itinerary.services import jam_service
from itinerary.services.authz_service import can_see_mystery, require_role

router = APIRouter(prefix="/jams", tags=["jams"])

_BYPASS_DETAIL = "Only admins and managers can view the details of upcoming jams!"


# ---------------------------------------------------------------------------
# Pydantic schemas (typed partial updates)
# ---------------------------------------------------------------------------
class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class JamDates(_Wire):
    start: datetime | None = None
    end: datetime | None = None
    voting_start: datetime | None = Field(None, alias="votingStart")
    voting_end: datetime | None = Field(None, alias="votingEnd")


class JamColor(_Wire):
    color: str
    function: str | None = None


class JamContent(_Wire):
    header_image: str | None = Field(None, alias="headerImage")
    colors: list[JamColor] | None = None
    description: str | None = None
    body: str | None = None


class JamOptions(_Wire):
    enable_mystery: bool | None = Field(None, alias="enableMystery")


class JamWrite(_Wire):
    """Create / update payload.  Omitted or null fields are left untouched."""

    name: str | None = None
    dates: JamDates | None = None
    content: JamContent | None = None
    options: JamOptions | None = None

    def to_columns(self) -> dict[str, Any]:
        """Flatten into ``Jam`` column → value (only the fields that were sent)."""
        cols: dict[str, Any] = {}
        if self.name is not None:
            cols["name"] = self.name.strip()
        if self.dates is not None:
            for field, column in _DATE_COLUMNS.items():
                value = getattr(self.dates, field)
                if value is not None:
                    cols[column] = as_utc(value).astimezone(UTC)
        if self.content is not None:
            cols.update(self.content.model_dump(exclude_unset=True, exclude_none=True))
        if self.options is not None:
            cols.update(self.options.model_dump(exclude_unset=True, exclude_none=True))
        return cols


_DATE_COLUMNS = {
    "start": "starts_at",
    "end": "ends_at",
    "voting_start": "voting_starts_at",
    "voting_end": "voting_ends_at",
}


class ManagerAdd(BaseModel):
    name: str


# ---------------------------------------------------------------------------
# Jams
# ---------------------------------------------------------------------------
@router.get("")
def list_jams(
    limit: int | None = Query(None, ge=1),
    offset: int = 0,
    featured: bool | None = None,
    bypass_mystery: bool = Query(False, alias="bypassMystery"),
    identity: Identity | None = Depends(get_optional_identity),
    engine: Engine = Depends(get_engine),
    cfg: ItineraryConfig = Depends(get_config),
):
    if bypass_mystery:
        if identity is None:
            raise Unauthenticated("missingAuth", "Authentication needed!")
        with get_session(engine) as session:
            require_role(session, identity, GLOBAL, Role.ADMIN, _BYPASS_DETAIL)

    total, jams = jam_service.list_jams(
        engine, limit=limit or cfg.jam_page_size, offset=offset, featured=featured
    )
    if bypass_mystery:
        privileged = {j.slug for j in jams}
    else:
        privileged = jam_service.managed_slugs(
            engine, identity, [j.slug for j in jams if is_mystery(j)]
        )
    return {
        "total": total,
        "jams": [jam_dict(j, privileged=j.slug in privileged) for j in jams],
    }


@router.put("")
def create_jam(
    body: JamWrite,
    identity: Identity = Depends(get_current_identity),
    engine: Engine = Depends(get_engine),
):
    jam = jam_service.create_jam(engine, identity, body.to_columns())
    return {"ok": "The jam was created!", "jam": jam_dict(jam, privileged=True)}


@router.get("/{slug}")
def get_jam(
    slug: str,
    bypass_mystery: bool = Query(False, alias="bypassMystery"),
    identity: Identity | None = Depends(get_optional_identity),
    engine: Engine = Depends(get_engine),
):
    jam = jam_service.get_jam(engine, slug)
    if bypass_mystery:
        if identity is None:
            raise Unauthenticated("missingAuth", "Authentication needed!")
        with get_session(engine) as session:
            require_role(session, identity, Scope(jam=slug), Role.MANAGER, _BYPASS_DETAIL)
        return jam_dict(jam, privileged=True)

    with get_session(engine) as session:
        privileged = can_see_mystery(session, identity, slug)
    return jam_dict(jam, privileged=privileged)


@router.put("/{slug}")
def update_jam(
    slug: str,
    body: JamWrite,
    identity: Identity = Depends(get_current_identity),
    engine: Engine = Depends(get_engine),
):
    jam = jam_service.update_jam(engine, slug, identity, body.to_columns())
    return {"ok": "The jam was updated!", "jam": jam_dict(jam, privileged=True)}


@router.delete("/{slug}")
def delete_jam(
    slug: str,
    identity: Identity = Depends(get_current_identity),
    engine: Engine = Depends(get_engine),
):
    jam_service.delete_jam(engine, slug, identity)
    return {"ok": "The jam and all of its submissions were deleted."}


@router.put("/{slug}/feature")
def feature_jam(
    slug: str,
    identity: Identity = Depends(get_current_identity),
    engine: Engine = Depends(get_engine),
):
    jam_service.set_featured(engine, slug, identity, True)
    return {"ok": "The requested jam was featured."}


@router.delete("/{slug}/feature")
def unfeature_jam(
    slug: str,
    identity: Identity = Depends(get_current_identity),
    engine: Engine = Depends(get_engine),
):
    jam_service.set_featured(engine, slug, identity, False)
    return {"ok": "The requested jam was unfeatured."}


# ---------------------------------------------------------------------------
# Managers
# ---------------------------------------------------------------------------
@router.get("/{slug}/managers")
def list_managers(slug: str, engine: Engine = Depends(get_engine)):
    return {"managers": [manager_dict(m) for m in jam_service.list_managers(engine, slug)]}


@router.put("/{slug}/managers")
def add_manager(
    slug: str,
    body: ManagerAdd,
    identity: Identity = Depends(get_current_identity),
    engine: Engine = Depends(get_engine),
):
    manager = jam_service.add_manager(engine, slug, body.name, identity)
    return {"ok": "The manager was added to the jam!", "manager": manager_dict(manager)}


@router.delete("/{slug}/managers/{name}")
def remove_manager(
    slug: str,
    name: str,
    identity: Identity = Depends(get_current_identity),
    engine: Engine = Depends(get_engine),
):
    jam_service.remove_manager(engine, slug, name, identity)
    return {"ok": "The manager was removed from the jam."}


@router.get("/{slug}/user-data")
def user_data(
    slug: str,
    identity: Identity = Depends(get_current_identity),
    engine: Engine = Depends(get_engine),
):
    return jam_service.user_jam_data(engine, slug, identity)
