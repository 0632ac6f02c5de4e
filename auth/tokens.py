"""
auth/tokens.py -- Bearer token verification against per-session public keys.

Security design decisions:
  There is no server signing key. Each client signs its own JWTs with the
  private half of the key pair it registered as its session secret; the
  server only ever verifies. Tokens carry two claims that matter here:
    uid -- the user id
    sid -- the session id
  The verification key is whatever the sessions table holds for exactly that
  (uid, sid) pair, loaded fresh on every call. Keys are never cached and never
  reused across sessions, so deleting a session row revokes it on the very
  next request.

  Only the ECDSA family (ES256/ES384/ES512) is accepted. A token whose header
  names any other algorithm -- HS*, RS*, "none" -- is not authenticated.

  authenticate_token() runs in three phases:
    PARSE   -- read the header and claims without trusting them
    RESOLVE -- load user and session in ONE transaction
    VERIFY  -- decode the stored key and check the signature with python-jose

  Every rejection returns None; callers never learn why. Storage faults are
  different: they raise PersistenceFailure so "not authenticated" and "could
  not tell, try again" stay distinguishable.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from jose import JWTError, jwt

from auth.errors import BadCredentialFormat, PersistenceFailure
from auth.keys import session_key_pem

if TYPE_CHECKING:
    from auth.models import Session, User
    from auth.store import AuthDatabase

logger = logging.getLogger("keybound.auth.tokens")

ALGORITHMS = ["ES256", "ES384", "ES512"]

# Curve -> the JWS algorithm that pairs with it (RFC 7518 section 3.4).
_CURVE_ALGORITHMS = {
    "secp256r1": "ES256",
    "secp384r1": "ES384",
    "secp521r1": "ES512",
}

# Registered time claims; python-jose assumes they are numeric when present.
_NUMERIC_CLAIMS = ("exp", "nbf", "iat")


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


def _parse(token: str) -> tuple[str, str] | None:
    """PARSE: return the claimed (uid, sid), or None if the token is unusable."""
    try:
        header = jwt.get_unverified_header(token)
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return None
    if header.get("alg") not in ALGORITHMS:
        return None
    if not isinstance(claims, dict):
        return None
    for name in _NUMERIC_CLAIMS:
        if name in claims and not _is_number(claims[name]):
            return None
    return str(claims.get("uid")), str(claims.get("sid"))


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _resolve(db: AuthDatabase, uid: str, sid: str) -> tuple[User, Session] | None:
    """RESOLVE: load the user and its session in one transaction."""
    with db.transaction() as conn:
        user = db.users.find_by_id(conn, uid)
        if user is None:
            return None
        session = db.sessions.find_by_user_and_session(conn, uid, sid)
        if session is None:
            return None
    return user, session


def authenticate_token(db: AuthDatabase, token: str) -> User | None:
    """Return the authenticated User (session_id set), or None.

    Raises PersistenceFailure if storage fails or a stored session key no
    longer decodes -- the latter is a data-integrity fault, not a bad token.
    """
    parsed = _parse(token)
    if parsed is None:
        return None
    uid, sid = parsed

    resolved = _resolve(db, uid, sid)
    if resolved is None:
        return None
    user, session = resolved

    try:
        key = session_key_pem(session.secret)
    except BadCredentialFormat as exc:
        logger.error("Stored key for session %s does not decode", session.session_id)
        raise PersistenceFailure("stored session key is corrupt") from exc

    try:
        jwt.decode(token, key, algorithms=ALGORITHMS)
    except JWTError:
        return None

    user.session_id = session.session_id
    return user


# ---------------------------------------------------------------------------
# Client side: key generation and token signing
#
# The server never calls these. They exist for the CLI (main.py keygen/token)
# and for tests, which need to act as a client holding a private key.
# ---------------------------------------------------------------------------


def generate_session_keypair(curve: ec.EllipticCurve | None = None) -> ec.EllipticCurvePrivateKey:
    """Generate a new client key pair (P-256 unless another curve is given)."""
    return ec.generate_private_key(curve or ec.SECP256R1())


def private_key_pem(private_key: ec.EllipticCurvePrivateKey) -> str:
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


def sign_session_token(
    private_key: ec.EllipticCurvePrivateKey,
    user_id: str,
    session_id: str,
    expire_seconds: int = 0,
) -> str:
    """Sign a bearer token for (user_id, session_id) with the session's private key.

    The algorithm follows the key's curve. expire_seconds > 0 adds an exp claim;
    python-jose enforces it during verification.
    """
    algorithm = _CURVE_ALGORITHMS.get(private_key.curve.name)
    if algorithm is None:
        raise ValueError(f"unsupported curve: {private_key.curve.name}")
    now = datetime.now(timezone.utc)
    payload: dict = {"uid": user_id, "sid": session_id, "iat": now}
    if expire_seconds > 0:
        payload["exp"] = now + timedelta(seconds=expire_seconds)
    return jwt.encode(payload, private_key_pem(private_key), algorithm=algorithm)
