"""
auth/sessions.py -- Registration and login: the two ways a session is created.

Both operations follow the same order:
  1. Validate the submitted session secret (auth/keys.py). Nothing else runs
     if the key is malformed.
  2. Validate credentials.
  3. Write inside ONE transaction, so a failure anywhere leaves no partial
     state: register() inserts the user and the session together; login()
     looks the user up, checks the password and inserts the session together.

Validation errors are raised before storage is touched. Storage faults come
back as PersistenceFailure from AuthDatabase.transaction(); a duplicate
username or email is one of those.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import re

from email_validator import EmailNotValidError
from email_validator import validate_email as check_email_syntax
from sqlalchemy.engine import Connection

from auth.errors import BadCredentialFormat, IdentityNotFound, InvalidPassword
from auth.keys import decode_session_key
from auth.models import Session, User
from auth.passwords import hash_password, verify_dummy, verify_password
from auth.store import AuthDatabase, new_id, now_iso

logger = logging.getLogger("keybound.auth.sessions")

USERNAME_RE = re.compile(r"^[a-z0-9][a-z0-9_]{3,63}$", re.IGNORECASE)
_MAX_EMAIL = 512


def validate_email(email: str) -> str | None:
    """Trim and normalize email; blank means "no email".

    Syntax only: no DNS lookups. Raise BadCredentialFormat if malformed.
    """
    email = email.strip()
    if not email:
        return None
    if len(email) > _MAX_EMAIL:
        raise BadCredentialFormat("email is invalid")
    try:
        checked = check_email_syntax(email, check_deliverability=False)
    except EmailNotValidError as exc:
        raise BadCredentialFormat("email is invalid") from exc
    return checked.normalized


def validate_username(username: str) -> str:
    username = username.strip()
    if len(username) < 3 or not USERNAME_RE.match(username):
        raise BadCredentialFormat("username is invalid")
    return username


def add_session(conn: Connection, db: AuthDatabase, user: User, secret: str) -> Session:
    """Insert a session for user inside conn's transaction and attach its id to user."""
    session = Session(session_id=new_id(), user_id=user.user_id, secret=secret, created_at=now_iso())
    db.sessions.insert(conn, session)
    user.session_id = session.session_id
    return session


def register(
    db: AuthDatabase,
    email: str,
    username: str,
    nickname: str,
    biography: str,
    password: str,
    session_secret: str,
) -> User:
    """Create a user and its first session atomically.

    Returns the new User with session_id set. Raises BadCredentialFormat,
    PasswordTooSimple or PersistenceFailure.
    """
    decode_session_key(session_secret)
    email_value = validate_email(email)
    username = validate_username(username)
    nickname = nickname.strip() or username
    encrypted = hash_password(password)

    t = now_iso()
    user = User(
        user_id=new_id(),
        email=email_value,
        username=username,
        nickname=nickname,
        biography=biography.strip(),
        encrypted_password=encrypted,
        created_at=t,
        updated_at=t,
    )

    with db.transaction() as conn:
        db.users.insert(conn, user)
        add_session(conn, db, user, session_secret)

    logger.info("Registered user %s with session %s", user.user_id, user.session_id)
    return user


def login(db: AuthDatabase, identity: str, password: str, session_secret: str) -> User:
    """Check credentials and open a new session for an existing user.

    The lookup, the password check and the session insert share one
    transaction; a failed check raises inside it, so nothing is written.
    Unknown identities still pay for one bcrypt comparison so response time
    does not reveal whether an account exists.

    Returns the User with the new session_id set. Raises BadCredentialFormat,
    IdentityNotFound, InvalidPassword or PersistenceFailure.
    """
    decode_session_key(session_secret)
    identity = identity.strip().lower()

    with db.transaction() as conn:
        user = db.users.find_by_identity(conn, identity)
        if user is None:
            verify_dummy(password)
            logger.info("Login rejected: %s", IdentityNotFound.reason)
            raise IdentityNotFound()
        if user.encrypted_password is None:
            # External-identity account with no local password.
            verify_dummy(password)
            logger.info("Login rejected for user %s: %s", user.user_id, InvalidPassword.reason)
            raise InvalidPassword()
        if not verify_password(password, user.encrypted_password):
            logger.info("Login rejected for user %s: %s", user.user_id, InvalidPassword.reason)
            raise InvalidPassword()
        add_session(conn, db, user, session_secret)

    logger.info("User %s logged in with session %s", user.user_id, user.session_id)
    return user
