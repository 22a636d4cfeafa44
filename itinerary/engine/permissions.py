"""
itinerary.engine.permissions — Role resolution
===============================================

Given *who* is asking (an :class:`Identity`) and *what* they act on (a
:class:`Scope`), decide the strongest role that applies::

    ADMIN   — user.admin flag; manager rights on every jam
    MANAGER — a Manager row exists for the scoped jam
    OWNER   — the scoped resource belongs to the caller
    NONE

Roles are ordered, so "owner, manager or admin" is ``role >= Role.OWNER``.
Banned users resolve to ``NONE`` everywhere.

This module is pure; the Manager lookup lives in
:mod:`itinerary.services.authz_service`.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from itinerary.errors import Forbidden


class Role(enum.IntEnum):
    NONE = 0
    OWNER = 1
    MANAGER = 2
    ADMIN = 3


@dataclass(frozen=True, slots=True)
class Identity:
    """The resolved caller: a snapshot of their user row."""

    name: str
    admin: bool = False
    banned: bool = False


@dataclass(frozen=True, slots=True)
class Scope:
    """Target of an action.

    ``jam`` — slug for jam-scoped checks (enables MANAGER).
    ``owner`` — name of the resource owner (enables OWNER).
    Both ``None`` means the global scope.
    """

    jam: str | None = None
    owner: str | None = None


GLOBAL = Scope()


def resolve_role(identity: Identity | None, scope: Scope, *, is_manager: bool = False) -> Role:
    """Return the strongest :class:`Role` *identity* holds over *scope*."""
    if identity is None or identity.banned:
        return Role.NONE
    if identity.admin:
        return Role.ADMIN
    if scope.jam is not None and is_manager:
        return Role.MANAGER
    if scope.owner is not None and scope.owner.lower() == identity.name.lower():
        return Role.OWNER
    return Role.NONE


def require(role: Role, minimum: Role, detail: str | None = None) -> None:
    """Raise :class:`Forbidden` unless ``role >= minimum``."""
    if role < minimum:
        raise Forbidden(
            "insufficientPermissions",
            detail or _DEFAULT_DETAIL[minimum],
        )


_DEFAULT_DETAIL: dict[Role, str] = {
    Role.NONE: "This action is not allowed.",
    Role.OWNER: "This action can only be performed by the owner, a manager, or an admin!",
    Role.MANAGER: "This action can only be performed by an admin or a manager!",
    Role.ADMIN: "This action can only be performed by an admin!",
}
