"""
itinerary.api.routes.users — User listing, moderation & avatars
================================================================
"""

from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from sqlalchemy import Engine

from itinerary.api.deps import (
    get_config,
    get_current_identity,
    get_engine,
    get_http_client,
    get_session_store,
)
from itinerary.api.serializers import user_dict
from itinerary.config import ItineraryConfig
from itinerary.constants import DEFAULT_AVATAR_URL
from itinerary.database.engine import run_db
from itinerary.engine.permissions import Identity
from itinerary.engine.sessions import SessionStore
from itinerary.errors import Forbidden, NotFound, UpstreamUnavailable
from itinerary.services import identity_service, user_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/users", tags=["users"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class UserUpdate(BaseModel):
    banned: bool | None = None
    admin: bool | None = None


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.get("")
def list_users(
    identity: Identity = Depends(get_current_identity),
    engine: Engine = Depends(get_engine),
):
    return [user_dict(u) for u in user_service.list_users(engine, identity)]


@router.put("/{name}")
async def put_user(
    name: str,
    body: UserUpdate | None = None,
    identity: Identity = Depends(get_current_identity),
    engine: Engine = Depends(get_engine),
    store: SessionStore = Depends(get_session_store),
    cfg: ItineraryConfig = Depends(get_config),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """Update a user, or (admins only) provision one who never logged in."""
    body = body or UserUpdate()
    target = await run_db(user_service.get_identity, engine, name)

    if target is None:
        if not identity.admin:
            raise Forbidden(
                "insufficientPermissions",
                "You cannot edit other users unless you are an admin!",
            )
        # Canonical casing comes from the profile service, not the URL
        profile = await identity_service.lookup_profile(client, cfg, name)
        if profile is None:
            raise NotFound("userNotFound", "This user could not be found on the profile service.")
        user = await run_db(user_service.provision_user, engine, profile.username, identity)
        if body.banned is not None or body.admin is not None:
            user = await run_db(
                user_service.update_user, engine, store, user.name, identity,
                banned=body.banned, admin=body.admin,
            )
        return {"ok": "User added!", "user": user_dict(user)}

    user = await run_db(
        user_service.update_user, engine, store, name, identity,
        banned=body.banned, admin=body.admin,
    )
    return {"ok": "User updated!", "user": user_dict(user)}


@router.delete("/{name}")
def delete_user(
    name: str,
    identity: Identity = Depends(get_current_identity),
    engine: Engine = Depends(get_engine),
    store: SessionStore = Depends(get_session_store),
):
    user_service.delete_user(engine, store, name, identity)
    return {"ok": "User deleted!"}


@router.get("/{name}/picture")
async def picture(
    name: str,
    cfg: ItineraryConfig = Depends(get_config),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """Redirect to the user's avatar (or the default one)."""
    try:
        profile = await identity_service.lookup_profile(client, cfg, name)
    except UpstreamUnavailable:
        logger.warning("Profile service unavailable; default avatar for %s", name)
        profile = None
    return RedirectResponse(profile.avatar_url if profile else DEFAULT_AVATAR_URL)
