"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the session
issuer do the work; auth/roles.py owns the role and display-name rules.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered identity.

    user_id is a uuid4 string assigned at registration. email is optional, but
    when present it is unique case-insensitively, as is username.

    encrypted_password is None for users who only ever signed in through an
    external identity provider (github_id set instead).

    session_id is transient: it names the session that authenticated the
    current request (or the one just created by register/login) and is never
    written to the users table.
    """

    user_id: str
    username: str
    email: str | None = None
    nickname: str = ""
    biography: str = ""
    encrypted_password: str | None = None
    github_id: str | None = None
    groups_count: int = 0
    created_at: str = ""  # ISO 8601 UTC, microsecond precision
    updated_at: str = ""

    session_id: str = ""  # not persisted


@dataclass
class Session:
    """One client's login, bound to the public key it submitted.

    secret is the hex-encoded PKIX DER public key exactly as the client sent
    it. It is validated by auth/keys.py before insert and is the only key that
    may verify tokens carrying this session_id. Rows are never updated.
    """

    session_id: str
    user_id: str
    secret: str
    created_at: str = ""
