"""
itinerary.services.identity_service — External identity, profiles & projects
=============================================================================

Everything that talks to a third-party HTTP service lives here:

* the identity-verification provider (login handshake),
* the profile service (canonical name casing, avatars),
* the project-info service (who owns a submitted project).

All calls share one ``httpx.AsyncClient`` with an explicit timeout and a
single transport retry.  None of these functions hold a lock; callers ship
the resulting DB work to a thread with :func:`~itinerary.database.engine.run_db`
afterwards.

Login flow::

    GET /auth/begin    → redirect to provider with base64(callback)
    GET /auth/handle   → complete_auth(privateCode) → issue session
                       → redirect <frontend>/confirm-login?token=<one-time>
                       or  redirect <frontend>/login?error=<n>
"""

from __future__ import annotations

import base64
import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import quote, urlencode

import httpx

from itinerary.constants import DEFAULT_AVATAR_URL, LOGIN_ERROR_CODES
from itinerary.database.engine import run_db
from itinerary.errors import UpstreamUnavailable
from itinerary.services import user_service

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from itinerary.config import ItineraryConfig

logger = logging.getLogger(__name__)

_LOCAL_HOSTS = ("localhost", "127.0.0.1")


class AuthFailureReason(enum.StrEnum):
    INVALID = "invalid"
    UPSTREAM_UNAVAILABLE = "upstreamUnavailable"
    BANNED = "banned"
    USER_NOT_FOUND = "userNotFound"


class AuthFailure(Exception):
    """The login handshake did not yield a session."""

    def __init__(self, reason: AuthFailureReason, detail: str = "") -> None:
        super().__init__(detail or reason.value)
        self.reason = reason

    @property
    def login_error_code(self) -> int:
        """Numeric code for the frontend's ``/login?error=<n>`` page."""
        return LOGIN_ERROR_CODES[self.reason.value]


@dataclass(frozen=True, slots=True)
class Profile:
    username: str
    avatar_url: str


@dataclass(frozen=True, slots=True)
class VerifiedIdentity:
    name: str
    created: bool


# ---------------------------------------------------------------------------
# HTTP plumbing
# ---------------------------------------------------------------------------
def make_http_client(cfg: ItineraryConfig) -> httpx.AsyncClient:
    """Shared outbound client (explicit timeout + one transport retry)."""
    transport = httpx.AsyncHTTPTransport(retries=1)
    return httpx.AsyncClient(timeout=cfg.http_timeout_seconds, transport=transport)


async def _get_json(client: httpx.AsyncClient, url: str) -> tuple[int, Any]:
    """GET *url* and return ``(status, body)``.

    Transport failures, 5xx responses and non-JSON bodies raise
    :class:`UpstreamUnavailable`.  A 404 returns ``(404, None)``.
    """
    try:
        resp = await client.get(url)
    except httpx.HTTPError as exc:
        logger.warning("Upstream call failed: %s (%s)", url, exc)
        raise UpstreamUnavailable(
            "upstreamUnavailable", "An external service could not be reached."
        ) from exc

    if resp.status_code == 404:
        return 404, None
    if resp.status_code >= 500:
        logger.warning("Upstream %s returned %d", url, resp.status_code)
        raise UpstreamUnavailable(
            "upstreamUnavailable", "An external service returned an error."
        )
    try:
        return resp.status_code, resp.json()
    except ValueError as exc:
        logger.warning("Upstream %s returned a non-JSON body", url)
        raise UpstreamUnavailable(
            "upstreamUnavailable", "An external service returned an invalid response."
        ) from exc


# ---------------------------------------------------------------------------
# Login handshake
# ---------------------------------------------------------------------------
def build_begin_url(cfg: ItineraryConfig, request_host: str | None) -> str:
    """URL of the provider's consent page, with our callback encoded in it.

    Requests arriving on a local development host (``localhost:8081``) get
    called back on that same host; everything else goes to ``backend_url``.
    """
    host = (request_host or "").strip()
    if host.split(":", 1)[0] in _LOCAL_HOSTS:
        callback = f"{host}/auth/handle"
    else:
        bare = cfg.backend_url.split("://", 1)[-1]
        callback = f"{bare}/auth/handle"
    encoded = base64.b64encode(callback.encode()).decode()
    query = urlencode({"redirect": encoded, "name": cfg.community_name})
    return f"{cfg.auth_provider_url}/auth/?{query}"


async def verify_private_code(
    client: httpx.AsyncClient, cfg: ItineraryConfig, private_code: str
) -> str | None:
    """Ask the provider whether *private_code* is genuine.

    Returns the verified username, or ``None`` when the provider says no.
    """
    url = (
        f"{cfg.auth_provider_url}/api/auth/verifyToken"
        f"?{urlencode({'privateCode': private_code})}"
    )
    _, data = await _get_json(client, url)
    if not isinstance(data, dict) or not data.get("valid"):
        return None
    return data.get("username") or None


async def lookup_profile(
    client: httpx.AsyncClient, cfg: ItineraryConfig, name: str
) -> Profile | None:
    """Canonical username and avatar for *name*, or ``None`` if unknown."""
    _, data = await _get_json(client, f"{cfg.profile_api_url}/users/{quote(name)}/")
    if not isinstance(data, dict) or not data.get("username"):
        return None
    images = (data.get("profile") or {}).get("images") or {}
    return Profile(
        username=data["username"],
        avatar_url=images.get("90x90") or DEFAULT_AVATAR_URL,
    )


async def fetch_project_owner(
    client: httpx.AsyncClient, cfg: ItineraryConfig, project_id: int
) -> str | None:
    """Author of external project *project_id*, or ``None`` if it doesn't exist."""
    _, data = await _get_json(client, f"{cfg.project_api_url}/project/info/{project_id}")
    if not isinstance(data, dict) or data.get("error"):
        return None
    return data.get("username") or None


async def complete_auth(
    client: httpx.AsyncClient,
    cfg: ItineraryConfig,
    engine: Engine,
    private_code: str,
) -> VerifiedIdentity:
    """Turn a provider *private_code* into a known, non-banned user.

    Creates the user row on first login.  Issuing the session is left to
    the caller so this stays independent of the session store.

    Raises
    ------
    AuthFailure
        With the reason the frontend should show.
    """
    try:
        username = await verify_private_code(client, cfg, private_code)
        if username is None:
            raise AuthFailure(AuthFailureReason.INVALID, "Verification failed")
        profile = await lookup_profile(client, cfg, username)
    except UpstreamUnavailable as exc:
        raise AuthFailure(AuthFailureReason.UPSTREAM_UNAVAILABLE, exc.detail) from exc

    if profile is None:
        raise AuthFailure(AuthFailureReason.USER_NOT_FOUND, f"No profile for {username}")

    user, created = await run_db(user_service.get_or_create_user, engine, profile.username)
    if user.banned:
        logger.info("Login refused for banned user %s", user.name)
        raise AuthFailure(AuthFailureReason.BANNED, f"{user.name} is banned")
    return VerifiedIdentity(name=user.name, created=created)
