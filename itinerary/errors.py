"""
itinerary.errors — Error Taxonomy
==================================

Every failure a caller can see is one of the classes below.  Each carries a
stable machine-readable ``code`` (``"jamNotOpen"``, ``"tooManyUpvotes"`` …)
and a human-readable ``detail``.  The API layer renders them as::

    {"error": {"status": 412, "kind": "preconditionFailed",
               "code": "jamNotOpen", "detail": "..."}}

Services raise these directly; nothing else leaks to clients.
"""

from __future__ import annotations


class ItineraryError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500
    kind: str = "internal"

    def __init__(self, code: str, detail: str = "", **extra: object) -> None:
        super().__init__(detail or code)
        self.code = code
        self.detail = detail or code
        # Additional fields rendered next to "detail" (e.g. the banned user's name)
        self.extra = extra

    def to_dict(self) -> dict:
        return {
            "status": self.status_code,
            "kind": self.kind,
            "code": self.code,
            "detail": self.detail,
            **self.extra,
        }


class Unauthenticated(ItineraryError):
    """No session, or the presented token is unknown."""

    status_code = 401
    kind = "unauthenticated"


class Forbidden(ItineraryError):
    """Valid session, insufficient role (or banned)."""

    status_code = 403
    kind = "forbidden"


class NotFound(ItineraryError):
    status_code = 404
    kind = "notFound"


class Conflict(ItineraryError):
    """Duplicate submission / upvote, or a uniqueness violation."""

    status_code = 409
    kind = "conflict"


class InvalidRequest(ItineraryError):
    status_code = 400
    kind = "invalidRequest"


class UpstreamUnavailable(ItineraryError):
    """An external identity / profile / project-info call failed."""

    status_code = 502
    kind = "upstreamUnavailable"


class PreconditionFailed(ItineraryError):
    """Jam not open for submissions, or the upvote cap is reached."""

    status_code = 412
    kind = "preconditionFailed"
