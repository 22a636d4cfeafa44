"""
itinerary.engine.sessions — In-Memory Session Store (write-through)
====================================================================

Every authenticated request resolves its bearer token here, so lookups are
served from an in-memory index instead of the database.  The index is warmed
from the ``sessions`` table once at process start and kept in step with every
mutation:

* Mutations are serialized by a single writer lock.
* The durable write is committed **before** the index is touched, so a
  failed commit never leaves a token in memory that the table doesn't have.
* Reads take only the short index lock and never wait on the database.

Usage::

    store = SessionStore(engine)
    store.load_all()                 # sets store.ready
    issued = store.issue("griffpatch")
    name, token = store.exchange_one_time(issued.one_time_token)
    store.find_by_token(token)       # → SessionRecord
"""

from __future__ import annotations

import logging
import secrets
import threading
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select, update

from itinerary.database.engine import get_session
from itinerary.database.models import AuthSession
from itinerary.errors import NotFound

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

# 32 random bytes → 64 hex chars, 256 bits of entropy per token
TOKEN_BYTES = 32


def generate_token() -> str:
    """Return a fresh unguessable token."""
    return secrets.token_hex(TOKEN_BYTES)


@dataclass(frozen=True, slots=True)
class SessionRecord:
    """Immutable snapshot of one session row."""

    name: str
    token: str
    one_time_token: str | None = None


@dataclass(frozen=True, slots=True)
class IssuedSession:
    token: str
    one_time_token: str


class SessionStore:
    """Process-wide session index backed by the ``sessions`` table.

    Construct once at startup and call :meth:`load_all`; until then
    :attr:`ready` is unset and every operation raises ``RuntimeError``.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._write_lock = threading.Lock()
        self._index_lock = threading.Lock()
        self._ready = threading.Event()

        # token → SessionRecord
        self._by_token: dict[str, SessionRecord] = {}
        # one_time_token → token
        self._by_one_time: dict[str, str] = {}

    # -------------------------------------------------------------------
    # Startup
    # -------------------------------------------------------------------
    @property
    def ready(self) -> threading.Event:
        """Set once :meth:`load_all` has populated the index."""
        return self._ready

    def load_all(self) -> None:
        """(Re)build the index from the database."""
        with self._write_lock:
            with get_session(self._engine) as session:
                rows = session.scalars(select(AuthSession)).all()
                by_token = {
                    r.token: SessionRecord(r.name, r.token, r.one_time_token)
                    for r in rows
                }
            by_one_time = {
                rec.one_time_token: rec.token
                for rec in by_token.values()
                if rec.one_time_token
            }
            with self._index_lock:
                self._by_token = by_token
                self._by_one_time = by_one_time
            self._ready.set()
        logger.info("SessionStore loaded: %d sessions", len(by_token))

    def _check_ready(self) -> None:
        if not self._ready.is_set():
            raise RuntimeError("SessionStore not loaded; call load_all() first")

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def find_by_token(self, token: str) -> SessionRecord | None:
        self._check_ready()
        with self._index_lock:
            return self._by_token.get(token)

    def find_by_one_time_token(self, one_time_token: str) -> SessionRecord | None:
        self._check_ready()
        with self._index_lock:
            token = self._by_one_time.get(one_time_token)
            return self._by_token.get(token) if token else None

    def __len__(self) -> int:
        with self._index_lock:
            return len(self._by_token)

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    def issue(self, name: str) -> IssuedSession:
        """Create a session for *name* and return both of its tokens.

        ``token`` is the durable bearer credential.  ``one_time_token`` is
        handed to the browser in the login redirect and exchanged exactly
        once for ``token`` (see :meth:`exchange_one_time`), which keeps the
        durable token out of URLs and browser history.
        """
        self._check_ready()
        issued = IssuedSession(token=generate_token(), one_time_token=generate_token())
        record = SessionRecord(name, issued.token, issued.one_time_token)
        with self._write_lock:
            with get_session(self._engine) as session:
                session.add(AuthSession(
                    name=name,
                    token=issued.token,
                    one_time_token=issued.one_time_token,
                ))
            with self._index_lock:
                self._by_token[record.token] = record
                self._by_one_time[issued.one_time_token] = record.token
        logger.info("Session issued for %s", name)
        return issued

    def exchange_one_time(self, one_time_token: str) -> tuple[str, str]:
        """Trade a one-time token for ``(name, token)``.

        The one-time token is cleared durably and in memory before this
        returns, so a replay raises :class:`NotFound`.
        """
        self._check_ready()
        with self._write_lock:
            record = self.find_by_one_time_token(one_time_token)
            if record is None:
                raise NotFound(
                    "sessionNotFound",
                    "No session found! Invalid or expired one-time token.",
                )
            with get_session(self._engine) as session:
                session.execute(
                    update(AuthSession)
                    .where(AuthSession.token == record.token)
                    .values(one_time_token=None)
                )
            with self._index_lock:
                self._by_one_time.pop(one_time_token, None)
                self._by_token[record.token] = replace(record, one_time_token=None)
        return record.name, record.token

    def revoke(self, token: str) -> bool:
        """Remove the session for *token*.  Returns False if it was already gone."""
        self._check_ready()
        with self._write_lock:
            with get_session(self._engine) as session:
                result = session.execute(
                    delete(AuthSession).where(AuthSession.token == token)
                )
            with self._index_lock:
                record = self._by_token.pop(token, None)
                if record is not None and record.one_time_token:
                    self._by_one_time.pop(record.one_time_token, None)
        removed = record is not None or result.rowcount > 0
        if removed:
            logger.info("Session revoked for %s", record.name if record else "<unindexed>")
        return removed

    def revoke_all(self, name: str) -> int:
        """Remove every session owned by *name* (case-insensitive).

        Used when a user is banned or deleted.  Returns the number removed.
        """
        self._check_ready()
        lowered = name.lower()
        with self._write_lock:
            with get_session(self._engine) as session:
                result = session.execute(
                    delete(AuthSession).where(func.lower(AuthSession.name) == lowered)
                )
            with self._index_lock:
                doomed = [
                    rec for rec in self._by_token.values()
                    if rec.name.lower() == lowered
                ]
                for rec in doomed:
                    del self._by_token[rec.token]
                    if rec.one_time_token:
                        self._by_one_time.pop(rec.one_time_token, None)
        count = max(len(doomed), result.rowcount or 0)
        if count:
            logger.info("Revoked %d session(s) for %s", count, name)
        return count
