"""
api/routes/v1/auth.py -- Registration, login and account REST endpoints.

Routes:
  POST /api/v1/users               -- register; creates user + first session
  POST /api/v1/sessions            -- login; creates another session
  GET  /api/v1/me                  -- current account (requires auth)
  POST /api/v1/me                  -- update nickname/biography (requires auth)
  GET  /api/v1/me/sessions         -- the caller's sessions (requires auth)
  GET  /api/v1/users               -- cursor page of users (requires auth)
  GET  /api/v1/users/{user_id}     -- one user (requires auth)

Handlers are plain `def`, not `async def`: bcrypt and the database calls
block, and FastAPI runs sync handlers in its threadpool.

Security:
  Register and login are rate-limited per IP (slowapi).
  Login failures for unknown identities and wrong passwords produce the same
  401 body -- see auth/errors.py.
  Cache-Control: no-store on responses that hand out a session id.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    AccountResponse,
    LoginRequest,
    ProfileUpdate,
    RegisterRequest,
    SessionResponse,
    UserPageResponse,
    UserResponse,
)
from auth import sessions
from auth.dependencies import get_current_user
from auth.models import User
from auth.store import AuthDatabase
from core.config import get_settings

# Auth policy:
# - POST /api/v1/users:            public -- registration
# - POST /api/v1/sessions:         public -- login
# - everything else:               requires auth (get_current_user)
router = APIRouter()


def _session_created(user: User) -> JSONResponse:
    resp = JSONResponse(
        status_code=201,
        content=AccountResponse.from_account(user, get_settings().operator_set).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(lambda: get_settings().register_rate_limit)
@router.post("/users", response_model=AccountResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account and its first session bound to body.session_secret."""
    db: AuthDatabase = request.app.state.db
    user = sessions.register(
        db,
        email=body.email,
        username=body.username,
        nickname=body.nickname,
        biography=body.biography,
        password=body.password,
        session_secret=body.session_secret,
    )
    return _session_created(user)


@limiter.limit(lambda: get_settings().login_rate_limit)
@router.post("/sessions", response_model=AccountResponse, status_code=201)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Open a new session for an existing account, bound to body.session_secret."""
    db: AuthDatabase = request.app.state.db
    user = sessions.login(db, body.identity, body.password, body.session_secret)
    return _session_created(user)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/me", response_model=AccountResponse)
def me(current_user: User = Depends(get_current_user)) -> AccountResponse:
    """Return the authenticated account, including the session used for this request."""
    return AccountResponse.from_account(current_user, get_settings().operator_set)


@router.post("/me", response_model=AccountResponse)
def update_me(
    request: Request,
    body: ProfileUpdate,
    current_user: User = Depends(get_current_user),
) -> AccountResponse:
    db: AuthDatabase = request.app.state.db
    user = db.users.update_profile(current_user, body.nickname, body.biography)
    return AccountResponse.from_account(user, get_settings().operator_set)


@router.get("/me/sessions", response_model=list[SessionResponse])
def my_sessions(request: Request, current_user: User = Depends(get_current_user)) -> list[SessionResponse]:
    """List the caller's sessions. Secrets are never returned."""
    db: AuthDatabase = request.app.state.db
    rows = db.run_in_transaction(lambda conn: db.sessions.list_for_user(conn, current_user.user_id))
    return [
        SessionResponse(session_id=s.session_id, created_at=s.created_at, current=s.session_id == current_user.session_id)
        for s in rows
    ]


@router.get("/users", response_model=UserPageResponse)
def list_users(
    request: Request,
    before: Optional[datetime] = Query(default=None, description="Return users created strictly before this time."),
    before_id: Optional[str] = Query(default=None, description="Tie-breaker: user_id of the last user already seen."),
    limit: int = Query(default=100, ge=1, le=100),
    current_user: User = Depends(get_current_user),
) -> UserPageResponse:
    """Cursor-paginated user listing, newest first."""
    db: AuthDatabase = request.app.state.db
    users = db.users.list_page(before, limit=limit, before_id=before_id)
    return UserPageResponse(
        users=[UserResponse.from_user(u) for u in users],
        next_before=users[-1].created_at if users else None,
        next_before_id=users[-1].user_id if users else None,
    )


@router.get("/users/{user_id}", response_model=UserResponse)
def read_user(
    request: Request,
    user_id: str,
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    db: AuthDatabase = request.app.state.db
    user = db.users.read(user_id)
    if user is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "User not found."},
        )
    return UserResponse.from_user(user)
