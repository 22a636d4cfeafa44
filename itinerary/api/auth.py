"""
itinerary.api.auth — Identity-provider login + session hand-off
================================================================

The durable bearer token never appears in a URL.  After the provider calls
us back, the browser is redirected with a **one-time** token, which the
frontend immediately exchanges for ``{name, token}`` via ``/auth/info``.
"""

from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
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
from itinerary.database.engine import run_db
from itinerary.engine.permissions import Identity
from itinerary.engine.sessions import SessionStore
from itinerary.errors import InvalidRequest
from itinerary.services import identity_service, user_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


def _require_token(token: str | None) -> str:
    if not token:
        raise InvalidRequest("missingParameters", "Requires query parameter token")
    return token


@router.get("/begin")
def begin(request: Request, cfg: ItineraryConfig = Depends(get_config)):
    """Redirect to the identity provider's consent page."""
    return RedirectResponse(identity_service.build_begin_url(cfg, request.headers.get("host")))


@router.get("/handle")
async def handle(
    private_code: str | None = Query(None, alias="privateCode"),
    cfg: ItineraryConfig = Depends(get_config),
    engine: Engine = Depends(get_engine),
    store: SessionStore = Depends(get_session_store),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """Provider callback: verify the code, issue a session, bounce to the frontend."""
    try:
        if not private_code:
            raise identity_service.AuthFailure(
                identity_service.AuthFailureReason.INVALID, "No privateCode supplied"
            )
        verified = await identity_service.complete_auth(client, cfg, engine, private_code)
    except identity_service.AuthFailure as exc:
        logger.info("Login failed (%s): %s", exc.reason, exc)
        return RedirectResponse(f"{cfg.frontend_url}/login?error={exc.login_error_code}")

    issued = await run_db(store.issue, verified.name)
    logger.info("Login succeeded for %s%s", verified.name, " (new user)" if verified.created else "")
    return RedirectResponse(f"{cfg.frontend_url}/confirm-login?token={issued.one_time_token}")


@router.get("/info")
def info(
    token: str | None = None,
    store: SessionStore = Depends(get_session_store),
):
    """Exchange a one-time token for the durable one.  Works exactly once."""
    name, durable = store.exchange_one_time(_require_token(token))
    return {"name": name, "token": durable}


@router.post("/remove")
def remove(
    token: str | None = None,
    store: SessionStore = Depends(get_session_store),
):
    """Log out.  Removing an already-gone session is not an error."""
    removed = store.revoke(_require_token(token))
    return {"ok": "Session removed" if removed else "Session was already removed"}


@router.get("/me")
def me(
    identity: Identity = Depends(get_current_identity),
    engine: Engine = Depends(get_engine),
):
    """Return the caller's user record."""
    return user_dict(user_service.get_user(engine, identity.name))
