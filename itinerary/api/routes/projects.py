"""
itinerary.api.routes.projects — Submissions, upvotes & winners
===============================================================

Submitting checks ownership with the external project-info service.  That
call happens here, outside any lock, between the cheap "is the jam open"
check and the locked insert in :func:`project_service.submit_project`.
"""

from __future__ import annotations

import httpx
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import Engine

from itinerary.api.deps import (
    get_config,
    get_current_identity,
    get_engine,
    get_http_client,
    get_optional_identity,
)
from itinerary.api.serializers import project_dict, upvote_dict
from itinerary.config import ItineraryConfig
from itinerary.database.engine import run_db
from itinerary.engine.permissions import Identity
from itinerary.errors import InvalidRequest
from itinerary.services import identity_service, project_service, upvote_service

router = APIRouter(prefix="/jams/{slug}", tags=["projects"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ProjectRef(BaseModel):
    project: int


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------
@router.get("/projects")
def list_projects(
    slug: str,
    limit: int | None = Query(None, ge=1),
    engine: Engine = Depends(get_engine),
):
    return [project_dict(p) for p in project_service.list_projects(engine, slug, limit)]


@router.put("/projects")
async def submit_project(
    slug: str,
    body: ProjectRef,
    identity: Identity = Depends(get_current_identity),
    engine: Engine = Depends(get_engine),
    cfg: ItineraryConfig = Depends(get_config),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    await run_db(project_service.ensure_jam_open, engine, slug)

    owner = await identity_service.fetch_project_owner(client, cfg, body.project)
    if owner is None:
        raise InvalidRequest("projectNotFound", "This project probably doesn't exist!")

    project = await run_db(
        project_service.submit_project, engine, slug, body.project, identity, owner=owner
    )
    return {"ok": "Your submission was recorded", "project": project_dict(project)}


@router.get("/projects/{project}")
def get_project(slug: str, project: int, engine: Engine = Depends(get_engine)):
    return project_dict(project_service.get_project(engine, slug, project))


@router.delete("/projects/{project}")
def withdraw_project(
    slug: str,
    project: int,
    identity: Identity = Depends(get_current_identity),
    engine: Engine = Depends(get_engine),
):
    project_service.withdraw_project(engine, slug, project, identity)
    return {"ok": "The submission was removed."}


# ---------------------------------------------------------------------------
# Upvotes
# ---------------------------------------------------------------------------
@router.get("/upvotes")
def my_upvotes(
    slug: str,
    identity: Identity = Depends(get_current_identity),
    engine: Engine = Depends(get_engine),
    cfg: ItineraryConfig = Depends(get_config),
):
    """The caller's upvotes in this jam and how many they have left."""
    upvotes = upvote_service.list_for_user(engine, slug, identity.name)
    return {
        "upvotes": [upvote_dict(u) for u in upvotes],
        "remainingUpvotes": max(0, cfg.max_upvotes_per_jam - len(upvotes)),
    }


@router.get("/upvotes/{project}")
def project_upvotes(
    slug: str,
    project: int,
    identity: Identity | None = Depends(get_optional_identity),
    engine: Engine = Depends(get_engine),
):
    count, upvoted = upvote_service.count_for_project(
        engine, slug, project, identity.name if identity else None
    )
    out: dict = {"count": count}
    if upvoted is not None:
        out["upvoted"] = upvoted
    return out


@router.put("/upvotes/{project}")
def cast_upvote(
    slug: str,
    project: int,
    identity: Identity = Depends(get_current_identity),
    engine: Engine = Depends(get_engine),
    cfg: ItineraryConfig = Depends(get_config),
):
    upvote_service.cast(engine, slug, project, identity, cap=cfg.max_upvotes_per_jam)
    return {
        "ok": "Your vote was saved",
        "remainingUpvotes": upvote_service.count_remaining(
            engine, slug, identity.name, cfg.max_upvotes_per_jam
        ),
    }


@router.delete("/upvotes/{project}")
def revoke_upvote(
    slug: str,
    project: int,
    identity: Identity = Depends(get_current_identity),
    engine: Engine = Depends(get_engine),
):
    upvote_service.revoke(engine, slug, project, identity)
    return {"ok": "Your upvote was removed!"}


# ---------------------------------------------------------------------------
# Winners
# ---------------------------------------------------------------------------
@router.get("/winners")
def list_winners(slug: str, engine: Engine = Depends(get_engine)):
    return {"winners": [project_dict(p) for p in project_service.list_winners(engine, slug)]}


@router.put("/winners")
def select_winner(
    slug: str,
    body: ProjectRef,
    identity: Identity = Depends(get_current_identity),
    engine: Engine = Depends(get_engine),
):
    project_service.select_winner(engine, slug, body.project, identity)
    return {"ok": "The requested project was selected as the winner."}


@router.delete("/winners/{project}")
def clear_winner(
    slug: str,
    project: int,
    identity: Identity = Depends(get_current_identity),
    engine: Engine = Depends(get_engine),
):
    project_service.clear_winner(engine, slug, project, identity)
    return {"ok": "The requested project was stripped of the winner status."}
