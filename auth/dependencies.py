"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Only one auth method exists: an `Authorization: Bearer <jwt>` header signed
with the private key of one of the caller's sessions. See auth/tokens.py.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.
require_admin() wraps get_current_user() and raises HTTP 403 if not admin.

PersistenceFailure from token verification is NOT turned into a 401: it
propagates to the AuthError handler in api/main.py and becomes a 500, so a
client can tell "rejected" from "try again".

Layer rule: auth/dependencies.py may import from fastapi (for
HTTPException/Request) because this module is part of the FastAPI dependency
injection system. No other auth/ module does.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import User
from auth.roles import is_admin
from auth.store import AuthDatabase
from auth.tokens import authenticate_token
from core.config import get_settings


def try_get_current_user(request: Request) -> User | None:
    """Authenticate the request via its Bearer header. Returns None on any rejection."""
    auth_header = request.headers.get("Authorization", "")
    # Auth scheme names are case-insensitive (RFC 7235).
    if auth_header[:7].lower() != "bearer ":
        return None
    token = auth_header[7:].strip()
    if not token:
        return None
    db: AuthDatabase = request.app.state.db
    return authenticate_token(db, token)


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_admin(request: Request) -> User:
    """Require admin role. Raises HTTP 401 if unauthenticated, HTTP 403 if not admin."""
    user = get_current_user(request)
    if not is_admin(user, get_settings().operator_set):
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    return user
