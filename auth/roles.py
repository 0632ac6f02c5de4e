"""
auth/roles.py -- Role resolution and small per-user rules.

There is no role column. A user is an admin iff their email is in the
operator set from core.config (loaded once at startup, never mutated), and a
member otherwise. Everything here is a pure function of its arguments.
"""

from __future__ import annotations

from collections.abc import Set

from auth.models import User

ROLE_ADMIN = "admin"
ROLE_MEMBER = "member"


def user_role(user: User, operators: Set[str]) -> str:
    if user.email and user.email.lower() in operators:
        return ROLE_ADMIN
    return ROLE_MEMBER


def is_admin(user: User, operators: Set[str]) -> bool:
    return user_role(user, operators) == ROLE_ADMIN


def can_modify(owner_id: str, user: User, operators: Set[str]) -> bool:
    """True if user owns the resource or is an admin."""
    return owner_id == user.user_id or is_admin(user, operators)


def display_name(user: User) -> str:
    """Nickname if set, otherwise username."""
    return user.nickname or user.username
