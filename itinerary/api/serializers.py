"""
itinerary.api.serializers — ORM rows → JSON wire shapes
========================================================

The database stores jams flat; clients see the nested document shape
(``dates`` / ``content`` / ``options`` / ``meta``).
"""

from __future__ import annotations

from datetime import datetime

from itinerary.database.models import Jam, Manager, Project, Upvote, User
from itinerary.engine.lifecycle import as_utc, is_mystery, redact


def _iso(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


def user_dict(user: User) -> dict:
    return {
        "name": user.name,
        "admin": bool(user.admin),
        "banned": bool(user.banned),
        "meta": {"updated": _iso(user.updated_at), "updatedBy": user.updated_by},
    }


def jam_dict(jam: Jam, *, privileged: bool = False) -> dict:
    """Serialize *jam*, redacting mystery content unless *privileged*.

    ``mystery`` is reported either way so the frontend can badge the jam.
    """
    out = {
        "name": jam.name,
        "slug": jam.slug,
        "dates": {
            "start": _iso(jam.starts_at),
            "end": _iso(jam.ends_at),
            "votingStart": _iso(jam.voting_starts_at),
            "votingEnd": _iso(jam.voting_ends_at),
        },
        "content": {
            "headerImage": jam.header_image,
            "colors": jam.colors or [],
            "description": jam.description,
            "body": jam.body,
        },
        "options": {"enableMystery": bool(jam.enable_mystery)},
        "featured": bool(jam.featured),
        "meta": {"updated": _iso(jam.updated_at), "updatedBy": jam.updated_by},
        "mystery": is_mystery(jam),
    }
    if out["mystery"] and not privileged:
        return redact(out)
    return out


def manager_dict(manager: Manager) -> dict:
    return {"jam": manager.jam, "name": manager.name}


def project_dict(project: Project) -> dict:
    return {
        "jam": project.jam,
        "project": project.project_id,
        "selected": bool(project.selected),
        "selectedByTheCommunity": bool(project.selected_by_community),
        "meta": {
            "submitted": _iso(project.submitted_at),
            "submittedBy": project.submitted_by,
        },
    }


def upvote_dict(upvote: Upvote) -> dict:
    return {
        "jam": upvote.jam,
        "project": upvote.project_id,
        "meta": {"upvoted": _iso(upvote.upvoted_at), "upvotedBy": upvote.upvoted_by},
    }
