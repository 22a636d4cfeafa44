"""
itinerary.api.deps — FastAPI dependency injection
==================================================
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from functools import lru_cache
from typing import Annotated

import httpx
from fastapi import Depends, Header, Request
from sqlalchemy import Engine

from itinerary.config import ItineraryConfig, load_config
from itinerary.database.engine import create_db_engine
from itinerary.engine.permissions import Identity
from itinerary.engine.sessions import SessionStore
from itinerary.errors import Forbidden, Unauthenticated
from itinerary.services.identity_service import make_http_client
from itinerary.services.user_service import get_identity


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> ItineraryConfig:
    return load_config()


def get_session_store(request: Request) -> SessionStore:
    """The process-wide store built in the app lifespan."""
    return request.app.state.sessions


async def get_http_client(
    cfg: Annotated[ItineraryConfig, Depends(get_config)],
) -> AsyncIterator[httpx.AsyncClient]:
    async with make_http_client(cfg) as client:
        yield client


def _bearer_token(authorization: str | None) -> str | None:
    """Accept ``Bearer <token>`` and, for older clients, a bare token."""
    if not authorization:
        return None
    value = authorization.strip()
    if value[:7].lower() == "bearer ":
        value = value[7:].strip()
    return value or None


def get_optional_identity(
    authorization: Annotated[str | None, Header()] = None,
    store: SessionStore = Depends(get_session_store),
    engine: Engine = Depends(get_engine),
) -> Identity | None:
    """Resolve the caller if a valid token was sent, otherwise ``None``.

    An unknown token is ignored rather than rejected: public endpoints
    simply fall back to the anonymous view.
    """
    token = _bearer_token(authorization)
    if token is None:
        return None
    record = store.find_by_token(token)
    if record is None:
        return None
    return get_identity(engine, record.name)


def get_current_identity(
    authorization: Annotated[str | None, Header()] = None,
    store: SessionStore = Depends(get_session_store),
    engine: Engine = Depends(get_engine),
) -> Identity:
    """Resolve the caller or raise.  Banned users are refused outright."""
    token = _bearer_token(authorization)
    if token is None:
        raise Unauthenticated("missingAuth", "You need to be logged in to do this!")
    record = store.find_by_token(token)
    if record is None:
        raise Unauthenticated("invalidAuth", "Invalid or expired session token.")
    identity = get_identity(engine, record.name)
    if identity is None:
        raise Unauthenticated("invalidAuth", "The user for this session no longer exists.")
    if identity.banned:
        raise Forbidden("banned", "You are banned from Itinerary!", name=identity.name)
    return identity
