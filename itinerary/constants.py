"""
itinerary.constants — Shared Constants & Helpers
=================================================

Single source of truth for values shared by services and routes.
"""

from __future__ import annotations

import re

# Upvotes one user may cast within a single jam (overridable in config.yaml)
MAX_UPVOTES_PER_JAM = 3

# Fallback avatar when the profile service has no picture for a user
DEFAULT_AVATAR_URL = "https://cdn2.scratch.mit.edu/get_image/user/0_90x90.png"

# Login error codes understood by the frontend's /login?error=<n> page
LOGIN_ERROR_CODES: dict[str, int] = {
    "invalid": 0,
    "upstreamUnavailable": 1,
    "banned": 2,
    "userNotFound": 3,
}


# ---------------------------------------------------------------------------
# Slugs
# ---------------------------------------------------------------------------
_SLUG_STRIP = re.compile(r"[^a-z0-9\s-]")
_SLUG_DASHES = re.compile(r"[\s_-]+")


def slugify(name: str) -> str:
    """Convert a jam name into a URL slug (``"Winter Jam 2024!"`` → ``"winter-jam-2024"``)."""
    slug = _SLUG_STRIP.sub("", name.strip().lower())
    slug = _SLUG_DASHES.sub("-", slug).strip("-")
    return slug[:120] or "jam"
