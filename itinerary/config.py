"""
itinerary.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for service-level settings: public URLs, the external
services we talk to, and jam tuning (upvote cap, page size).  Secrets and the
database URL stay in the environment (``.env``).

Usage::

    from itinerary.config import load_config

    cfg = load_config()              # reads ./config.yaml by default
    print(cfg.community_name)        # "Itinerary"
    print(cfg.max_upvotes_per_jam)   # 3
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from itinerary.constants import MAX_UPVOTES_PER_JAM

DEFAULT_AUTH_PROVIDER_URL = "https://auth.itinerary.eu.org"
DEFAULT_PROFILE_API_URL = "https://api.scratch.mit.edu"
DEFAULT_PROJECT_API_URL = "https://scratchdb.lefty.one/v3"


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ItineraryConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # Public URLs
    frontend_url: str
    backend_url: str

    # External services
    auth_provider_url: str = DEFAULT_AUTH_PROVIDER_URL
    profile_api_url: str = DEFAULT_PROFILE_API_URL
    project_api_url: str = DEFAULT_PROJECT_API_URL
    http_timeout_seconds: float = 10.0

    # Jams
    max_upvotes_per_jam: int = MAX_UPVOTES_PER_JAM
    jam_page_size: int = 40

    # Users promoted to admin on startup (the first admin has to come from somewhere)
    bootstrap_admins: tuple[str, ...] = field(default_factory=tuple)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path | None = None) -> ItineraryConfig:
    """Read *path* and return an :class:`ItineraryConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.  Defaults to the
        ``ITINERARY_CONFIG`` env var, then ``config.yaml`` in the current
        working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If the upvote cap or page size is not a positive integer.
    """
    if path is None:
        path = os.getenv("ITINERARY_CONFIG", "config.yaml")
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    max_upvotes = int(raw.get("max_upvotes_per_jam", MAX_UPVOTES_PER_JAM))
    page_size = int(raw.get("jam_page_size", 40))
    if max_upvotes < 1:
        raise ValueError(f"max_upvotes_per_jam must be >= 1 (got {max_upvotes})")
    if page_size < 1:
        raise ValueError(f"jam_page_size must be >= 1 (got {page_size})")

    return ItineraryConfig(
        community_name=raw["community_name"],
        frontend_url=str(raw["frontend_url"]).rstrip("/"),
        backend_url=str(raw["backend_url"]).rstrip("/"),
        auth_provider_url=str(
            raw.get("auth_provider_url", DEFAULT_AUTH_PROVIDER_URL)
        ).rstrip("/"),
        profile_api_url=str(
            raw.get("profile_api_url", DEFAULT_PROFILE_API_URL)
        ).rstrip("/"),
        project_api_url=str(
            raw.get("project_api_url", DEFAULT_PROJECT_API_URL)
        ).rstrip("/"),
        http_timeout_seconds=float(raw.get("http_timeout_seconds", 10.0)),
        max_upvotes_per_jam=max_upvotes,
        jam_page_size=page_size,
        bootstrap_admins=tuple(raw.get("bootstrap_admins") or ()),
    )
