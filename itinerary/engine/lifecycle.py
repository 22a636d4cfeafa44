"""
itinerary.engine.lifecycle — Jam phases & mystery redaction
============================================================

Pure functions of ``(jam, now)``.  ``jam`` is anything exposing
``starts_at``, ``ends_at`` and ``enable_mystery`` (the ORM :class:`Jam` in
practice).

Phases::

    now < starts_at              → UPCOMING
    starts_at <= now < ends_at   → OPEN      (submissions accepted)
    ends_at <= now               → CLOSED    (winners computed)

A jam with a missing start or end date never accepts submissions, and a jam
without an end date is never considered closed.
"""

from __future__ import annotations

import copy
import enum
from datetime import UTC, datetime
from typing import Any, Protocol


class JamPhase(enum.StrEnum):
    UPCOMING = "upcoming"
    OPEN = "open"
    CLOSED = "closed"


class _Dated(Protocol):
    starts_at: datetime | None
    ends_at: datetime | None
    enable_mystery: bool


# Fields hidden from non-privileged callers while a jam is a mystery
MYSTERY_FIELDS: tuple[str, ...] = ("body", "colors")


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def utcnow() -> datetime:
    return datetime.now(UTC)


def jam_phase(jam: _Dated, now: datetime | None = None) -> JamPhase:
    now = as_utc(now) or utcnow()
    start, end = as_utc(jam.starts_at), as_utc(jam.ends_at)
    if end is not None and end <= now:
        return JamPhase.CLOSED
    if start is not None and end is not None and start <= now:
        return JamPhase.OPEN
    return JamPhase.UPCOMING


def submission_open(jam: _Dated, now: datetime | None = None) -> bool:
    """True while ``starts_at <= now < ends_at``."""
    now = as_utc(now) or utcnow()
    start, end = as_utc(jam.starts_at), as_utc(jam.ends_at)
    if start is None or end is None:
        return False
    return start <= now < end


def has_ended(jam: _Dated, now: datetime | None = None) -> bool:
    now = as_utc(now) or utcnow()
    end = as_utc(jam.ends_at)
    return end is not None and end <= now


def is_mystery(jam: _Dated, now: datetime | None = None) -> bool:
    """True when the jam hasn't started yet and has opted into mystery mode."""
    now = as_utc(now) or utcnow()
    start = as_utc(jam.starts_at)
    return bool(jam.enable_mystery) and start is not None and start > now


def redact(jam_dict: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of a serialized jam with its mystery fields removed.

    The header image stays visible.
    """
    out = copy.deepcopy(jam_dict)
    content = out.get("content") or {}
    for key in MYSTERY_FIELDS:
        content.pop(key, None)
    out["content"] = content
    return out
