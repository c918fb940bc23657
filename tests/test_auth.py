"""
Session authenticator tests.

Guards against:
1. Expired sessions being treated as valid
2. Expired rows surviving a resolution attempt
3. Logout failing on unknown or already-deleted tokens
4. Cookie attributes drifting from the session TTL
"""
from datetime import timedelta

import pytest

from notscared import auth
from notscared.exceptions import AuthenticationError
from notscared.models import Session as SessionModel, utcnow


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------

def test_create_session_sets_thirty_day_expiry(db, make_user):
    user = make_user()
    now = utcnow()

    session = auth.create_session(db, user.id, now=now)

    assert session.user_id == user.id
    assert session.expires_at == now + timedelta(days=30)
    assert len(session.id) == 32


def test_session_tokens_are_unique(db, make_user):
    user = make_user()
    tokens = {auth.create_session(db, user.id).id for _ in range(20)}
    assert len(tokens) == 20


def test_resolve_fresh_session_returns_user(db, make_user):
    user = make_user()
    session = auth.create_session(db, user.id)

    assert auth.resolve_session(db, session.id).id == user.id


def test_resolve_unknown_or_empty_token_returns_none(db):
    assert auth.resolve_session(db, "does-not-exist") is None
    assert auth.resolve_session(db, "") is None
    assert auth.resolve_session(db, None) is None


def test_session_still_valid_just_before_expiry(db, make_user):
    user = make_user()
    now = utcnow()
    session = auth.create_session(db, user.id, now=now)

    later = now + auth.SESSION_TTL - timedelta(seconds=1)
    assert auth.resolve_session(db, session.id, now=later) is not None


def test_session_invalid_exactly_at_expiry(db, make_user):
    user = make_user()
    now = utcnow()
    session = auth.create_session(db, user.id, now=now)

    assert auth.resolve_session(db, session.id, now=session.expires_at) is None


def test_expired_session_is_deleted_on_resolution(db, make_user):
    """Login, advance past the TTL: resolve returns None and the row is gone."""
    user = make_user()
    now = utcnow()
    session = auth.create_session(db, user.id, now=now)
    token = session.id

    assert auth.resolve_session(db, token, now=now).id == user.id

    later = now + auth.SESSION_TTL + timedelta(minutes=1)
    assert auth.resolve_session(db, token, now=later) is None
    assert db.query(SessionModel).filter(SessionModel.id == token).count() == 0


def test_resolve_returns_none_when_user_deleted(db, make_user):
    user = make_user()
    session = auth.create_session(db, user.id)
    token = session.id

    db.delete(user)
    db.commit()

    assert auth.resolve_session(db, token) is None
    # Sessions go with their user
    assert db.query(SessionModel).filter(SessionModel.id == token).count() == 0


def test_destroy_session_is_idempotent(db, make_user):
    user = make_user()
    session = auth.create_session(db, user.id)
    token = session.id

    auth.destroy_session(db, token)
    auth.destroy_session(db, token)
    auth.destroy_session(db, "never-existed")

    assert auth.resolve_session(db, token) is None


def test_delete_user_sessions_only_touches_that_user(db, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    auth.create_session(db, alice.id)
    auth.create_session(db, alice.id)
    bob_session = auth.create_session(db, bob.id)

    assert auth.delete_user_sessions(db, alice.id) == 2
    assert auth.resolve_session(db, bob_session.id).id == bob.id


def test_cleanup_expired_sessions_removes_only_expired(db, make_user):
    user = make_user()
    now = utcnow()
    old = auth.create_session(db, user.id, now=now - timedelta(days=31))
    fresh = auth.create_session(db, user.id, now=now)
    old_token, fresh_token = old.id, fresh.id

    assert auth.cleanup_expired_sessions(db, now=now) == 1
    assert db.get(SessionModel, old_token) is None
    assert db.get(SessionModel, fresh_token) is not None


# ---------------------------------------------------------------------------
# Login and passwords
# ---------------------------------------------------------------------------

def test_password_hash_roundtrip():
    hashed = auth.hash_password("s3cret-passphrase")
    assert hashed != "s3cret-passphrase"
    assert auth.verify_password("s3cret-passphrase", hashed)
    assert not auth.verify_password("wrong", hashed)


def test_verify_password_rejects_non_argon2_hash():
    assert not auth.verify_password("password", "cGFzc3dvcmQ=")


def test_login_returns_session_for_valid_credentials(db, make_user, password):
    user = make_user("grace")
    session = auth.login(db, "Grace@Example.com", password)
    assert auth.resolve_session(db, session.id).id == user.id


@pytest.mark.parametrize("email,wrong_password", [
    ("nobody@example.com", None),
    ("grace@example.com", "wrong password"),
])
def test_login_rejects_with_generic_message(db, make_user, password, email, wrong_password):
    make_user("grace")
    with pytest.raises(AuthenticationError) as exc:
        auth.login(db, email, wrong_password or password)
    assert exc.value.message == "Invalid email or password"
    assert db.query(SessionModel).count() == 0


# ---------------------------------------------------------------------------
# Cookie transport
# ---------------------------------------------------------------------------

def test_session_cookie_header_attributes():
    assert auth.session_cookie_header("abc") == (
        "notscared_session=abc; Path=/; HttpOnly; SameSite=Lax; Max-Age=2592000"
    )


def test_clear_session_cookie_header():
    assert auth.clear_session_cookie_header() == (
        "notscared_session=; Path=/; HttpOnly; SameSite=Lax; Max-Age=0"
    )


def test_session_max_age_matches_ttl():
    assert auth.SESSION_MAX_AGE == 2_592_000


@pytest.mark.parametrize("header,expected", [
    ("notscared_session=tok123", "tok123"),
    ("theme=dark; notscared_session=tok-_123; other=1", "tok-_123"),
    ("theme=dark", None),
    ('theme={"a":1}; notscared_session=tok123', "tok123"),
    ("x=a b; notscared_session=tok123", "tok123"),
    ("a@b=1; notscared_session=tok123", "tok123"),
    ("notscared_session=", None),
    ("", None),
    (None, None),
])
def test_parse_session_cookie(header, expected):
    assert auth.parse_session_cookie(header) == expected
