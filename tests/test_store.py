"""Unit tests for auth/store.py -- user and session repositories.

Covers:
- find_by_id short-circuits on malformed ids
- find_by_identity matches username or email case-insensitively
- find_by_user_and_session rejects nil and malformed ids
- list_page cursor pagination over more than one page
- update_profile blank-field rules
- transaction(): storage errors become PersistenceFailure, domain errors pass through
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from auth.errors import InvalidPassword, PersistenceFailure
from auth.models import Session, User
from auth.store import AuthDatabase, new_id, now_iso

NIL = str(uuid.UUID(int=0))

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _insert_user(db: AuthDatabase, username: str, created_at: str, email: str | None = None) -> User:
    user = User(user_id=new_id(), username=username, email=email, created_at=created_at, updated_at=created_at)
    with db.transaction() as conn:
        db.users.insert(conn, user)
    return user


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class TestFindUser:
    def test_find_by_id(self, db, registered):
        found = db.users.read(registered.user_id)
        assert found is not None
        assert found.username == "alice"
        assert found.session_id == ""  # transient, never loaded from the table

    @pytest.mark.parametrize("bad_id", ["", "not-a-uuid", "None", "1234"])
    def test_find_by_malformed_id(self, db, registered, bad_id):
        assert db.users.read(bad_id) is None

    def test_find_by_id_normalizes_uuid_form(self, db, registered):
        found = db.users.read(registered.user_id.upper())
        assert found is not None
        assert found.user_id == registered.user_id
        sessions = db.run_in_transaction(lambda conn: db.sessions.list_for_user(conn, registered.user_id.upper()))
        assert [s.session_id for s in sessions] == [registered.session_id]

    def test_find_by_unknown_id(self, db, registered):
        assert db.users.read(new_id()) is None

    @pytest.mark.parametrize("identity", ["alice", "ALICE", "  Alice ", "alice@example.com", "ALICE@EXAMPLE.COM"])
    def test_find_by_identity_case_insensitive(self, db, registered, identity):
        user = db.run_in_transaction(lambda conn: db.users.find_by_identity(conn, identity))
        assert user is not None
        assert user.user_id == registered.user_id

    @pytest.mark.parametrize("identity", ["al", " a ", ""])
    def test_short_identity_never_matches(self, db, identity):
        _insert_user(db, "al", now_iso())
        assert db.run_in_transaction(lambda conn: db.users.find_by_identity(conn, identity)) is None

    def test_users_without_email_do_not_collide(self, db):
        _insert_user(db, "first", now_iso())
        _insert_user(db, "second", now_iso())
        assert db.users.count() == 2

    def test_duplicate_username_case_insensitive(self, db):
        _insert_user(db, "carol", now_iso())
        with pytest.raises(PersistenceFailure):
            _insert_user(db, "CAROL", now_iso())


class TestListPage:
    def test_pages_have_no_overlap_and_no_gap(self, db):
        base = datetime(2020, 1, 1, tzinfo=timezone.utc)
        for i in range(250):
            _insert_user(db, f"user{i:04d}", (base + timedelta(seconds=i)).isoformat(timespec="microseconds"))

        seen: list[str] = []
        before = None
        page_sizes = []
        while True:
            page = db.users.list_page(before)
            if not page:
                break
            page_sizes.append(len(page))
            seen.extend(u.username for u in page)
            before = page[-1].created_at

        assert page_sizes == [100, 100, 50]
        assert len(seen) == len(set(seen)) == 250
        assert seen == [f"user{i:04d}" for i in reversed(range(250))]

    def test_cursor_is_exclusive(self, db):
        t = "2021-06-01T00:00:00.000000+00:00"
        _insert_user(db, "exactly", t)
        assert db.users.list_page(t) == []

    def test_shared_created_at_across_page_boundary(self, db):
        t = "2021-06-01T00:00:00.000000+00:00"
        for i in range(5):
            _insert_user(db, f"twin{i}", t)
        _insert_user(db, "older", "2021-05-01T00:00:00.000000+00:00")

        seen: list[str] = []
        before, before_id = None, None
        while True:
            page = db.users.list_page(before, limit=2, before_id=before_id)
            if not page:
                break
            seen.extend(u.username for u in page)
            before, before_id = page[-1].created_at, page[-1].user_id

        assert len(seen) == len(set(seen)) == 6
        assert seen[-1] == "older"

    def test_cursor_accepts_datetime(self, db):
        _insert_user(db, "old_one", "2019-01-01T00:00:00.000000+00:00")
        page = db.users.list_page(datetime(2019, 1, 2, tzinfo=timezone.utc))
        assert [u.username for u in page] == ["old_one"]

    def test_limit_capped(self, db):
        for i in range(5):
            _insert_user(db, f"capped{i}", f"2019-01-0{i + 1}T00:00:00.000000+00:00")
        assert len(db.users.list_page(None, limit=2)) == 2
        assert len(db.users.list_page(None, limit=1000)) == 5


class TestUpdateProfile:
    def test_blank_fields_unchanged(self, db, registered):
        before = registered.updated_at
        user = db.users.update_profile(registered, "  ", "")
        assert user.nickname == "alice"
        assert user.updated_at == before

    def test_update_nickname_only(self, db, registered):
        db.users.update_profile(registered, " Ally ", "")
        stored = db.users.read(registered.user_id)
        assert stored.nickname == "Ally"
        assert stored.biography == "hello"
        assert stored.updated_at >= stored.created_at


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class TestFindSession:
    def test_found(self, db, registered):
        session = db.run_in_transaction(
            lambda conn: db.sessions.find_by_user_and_session(conn, registered.user_id, registered.session_id)
        )
        assert session is not None
        assert session.user_id == registered.user_id

    @pytest.mark.parametrize("which", ["uid", "sid"])
    def test_nil_ids_return_none(self, db, registered, which):
        uid = NIL if which == "uid" else registered.user_id
        sid = NIL if which == "sid" else registered.session_id
        assert db.run_in_transaction(lambda conn: db.sessions.find_by_user_and_session(conn, uid, sid)) is None

    def test_session_of_other_user(self, db, registered):
        other = _insert_user(db, "mallory", now_iso())
        assert (
            db.run_in_transaction(
                lambda conn: db.sessions.find_by_user_and_session(conn, other.user_id, registered.session_id)
            )
            is None
        )

    def test_session_requires_existing_user(self, db):
        session = Session(session_id=new_id(), user_id=new_id(), secret="00", created_at=now_iso())
        with pytest.raises(PersistenceFailure):
            with db.transaction() as conn:
                db.sessions.insert(conn, session)


# ---------------------------------------------------------------------------
# Transaction boundary
# ---------------------------------------------------------------------------


class TestTransaction:
    def test_storage_error_wrapped(self, db):
        def boom(conn):
            raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))

        with pytest.raises(PersistenceFailure) as excinfo:
            db.run_in_transaction(boom)
        assert isinstance(excinfo.value.__cause__, OperationalError)

    def test_domain_error_passes_through_and_rolls_back(self, db):
        user = User(user_id=new_id(), username="rollback", created_at=now_iso(), updated_at=now_iso())
        with pytest.raises(InvalidPassword):
            with db.transaction() as conn:
                db.users.insert(conn, user)
                raise InvalidPassword()
        assert db.users.read(user.user_id) is None

    def test_ping(self, db):
        assert db.ping() is True
