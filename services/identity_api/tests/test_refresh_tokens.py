from datetime import timedelta

import pytest

from identity_api.dao.refresh_tokens import RefreshTokenDAO
from identity_api.errors import (
    DaoConstraintError,
    DaoInvalidArgumentError,
    DaoInvalidTokenError,
)
from identity_api.models import RefreshToken, Session
from identity_api.tokens import as_utc, build_expiry, generate_raw_token, utcnow

from .utils import create_session, create_user, in_the_past, issue_token, set_columns

pytestmark = pytest.mark.asyncio


async def test_issue_rotate_and_replay(user_dao, session_dao, refresh_token_dao, hasher):
    user = await create_user(user_dao)
    record = await create_session(session_dao, user.id)
    raw1, first = await issue_token(refresh_token_dao, record)
    hash1 = hasher.hash(raw1)
    assert first.token_hash == hash1
    assert await refresh_token_dao.is_refresh_token_valid(hash1) is True

    raw2 = generate_raw_token()
    second = await refresh_token_dao.rotate_refresh_token(hash1, build_expiry(3600), raw2)

    assert await refresh_token_dao.is_refresh_token_valid(hash1) is False
    assert await refresh_token_dao.is_refresh_token_valid(hasher.hash(raw2)) is True
    old = await refresh_token_dao.get_refresh_token(hash1)
    assert old.replaced_by_id == second.id
    assert old.used_at is not None
    assert second.session_id == record.id

    with pytest.raises(DaoInvalidTokenError):
        await refresh_token_dao.rotate_refresh_token(
            hash1, build_expiry(3600), generate_raw_token()
        )


async def test_rotate_and_return_raw_token(user_dao, session_dao, refresh_token_dao, hasher):
    user = await create_user(user_dao)
    record = await create_session(session_dao, user.id)
    raw1, _ = await issue_token(refresh_token_dao, record)

    raw2 = await refresh_token_dao.rotate_and_return_raw_token(
        hasher.hash(raw1), build_expiry(3600)
    )

    assert raw2 != raw1
    assert await refresh_token_dao.is_refresh_token_valid(hasher.hash(raw2)) is True


async def test_rotating_revoked_or_expired_token_fails(
    user_dao, session_dao, refresh_token_dao, hasher, sessionmaker
):
    user = await create_user(user_dao)
    record = await create_session(session_dao, user.id)
    revoked_raw, _ = await issue_token(refresh_token_dao, record)
    expired_raw, expired = await issue_token(refresh_token_dao, record)

    assert await refresh_token_dao.revoke_refresh_token(hasher.hash(revoked_raw)) is True
    await set_columns(sessionmaker, RefreshToken, expired.id, expires_at=in_the_past())

    for raw in (revoked_raw, expired_raw, "never-issued"):
        with pytest.raises(DaoInvalidTokenError):
            await refresh_token_dao.rotate_refresh_token(
                hasher.hash(raw), build_expiry(3600), generate_raw_token()
            )


async def test_invalid_token_error_is_a_constraint_error():
    assert issubclass(DaoInvalidTokenError, DaoConstraintError)


@pytest.mark.parametrize(
    "column, value",
    [
        ("revoked_at", "now"),
        ("used_at", "now"),
        ("expires_at", "past"),
    ],
)
async def test_validity_flips_with_each_consumed_field(
    user_dao, session_dao, refresh_token_dao, hasher, sessionmaker, column, value
):
    user = await create_user(user_dao)
    record = await create_session(session_dao, user.id)
    raw, token = await issue_token(refresh_token_dao, record)
    assert await refresh_token_dao.is_refresh_token_valid(hasher.hash(raw)) is True

    stamp = utcnow() if value == "now" else in_the_past()
    await set_columns(sessionmaker, RefreshToken, token.id, **{column: stamp})

    assert await refresh_token_dao.is_refresh_token_valid(hasher.hash(raw)) is False


async def test_issue_requires_raw_token_and_matching_session(
    user_dao, session_dao, refresh_token_dao
):
    alice = await create_user(user_dao, "alice")
    bob = await create_user(user_dao, "bob")
    record = await create_session(session_dao, alice.id)

    with pytest.raises(DaoInvalidArgumentError):
        await refresh_token_dao.issue_refresh_token(record.id, alice.id, build_expiry(60), "  ")
    with pytest.raises(DaoConstraintError):
        await refresh_token_dao.issue_refresh_token(
            record.id, bob.id, build_expiry(60), generate_raw_token()
        )
    with pytest.raises(DaoConstraintError):
        await refresh_token_dao.issue_refresh_token(
            "missing-session", alice.id, build_expiry(60), generate_raw_token()
        )


async def test_issue_on_revoked_session_fails(user_dao, session_dao, refresh_token_dao):
    user = await create_user(user_dao)
    record = await create_session(session_dao, user.id)
    await session_dao.revoke_session(record.id)

    with pytest.raises(DaoConstraintError):
        await refresh_token_dao.issue_refresh_token(
            record.id, user.id, build_expiry(60), generate_raw_token()
        )


async def test_issue_on_session_past_expiry_fails(
    user_dao, session_dao, refresh_token_dao, sessionmaker
):
    user = await create_user(user_dao)
    record = await create_session(session_dao, user.id)
    await set_columns(sessionmaker, Session, record.id, expires_at=in_the_past())

    with pytest.raises(DaoConstraintError):
        await refresh_token_dao.issue_refresh_token(
            record.id, user.id, build_expiry(60), generate_raw_token()
        )
    assert await refresh_token_dao.get_refresh_tokens_by_session(record.id) == []


async def test_issue_and_rotate_default_to_configured_lifetime(
    user_dao, session_dao, sessionmaker, hasher
):
    dao = RefreshTokenDAO(sessionmaker, hasher, token_ttl_seconds=600)
    user = await create_user(user_dao)
    record = await create_session(session_dao, user.id)
    raw = generate_raw_token()

    token = await dao.issue_refresh_token(record.id, user.id, None, raw)
    assert utcnow() < as_utc(token.expires_at) <= utcnow() + timedelta(seconds=600)
    assert token.token_hash == dao.hash_token(raw)

    raw_next = await dao.rotate_and_return_raw_token(dao.hash_token(raw))
    successor = await dao.get_refresh_token(dao.hash_token(raw_next))
    assert as_utc(successor.expires_at) <= utcnow() + timedelta(seconds=600)


async def test_revoke_with_session_cascade(user_dao, session_dao, refresh_token_dao, hasher):
    user = await create_user(user_dao)
    record = await create_session(session_dao, user.id)
    raw1, _ = await issue_token(refresh_token_dao, record)
    raw2, _ = await issue_token(refresh_token_dao, record)

    assert await refresh_token_dao.revoke_refresh_token(hasher.hash(raw1), revoke_session=True)

    stored = await session_dao.get_session(record.id)
    assert stored.is_active is False
    assert stored.revoked_at is not None
    assert await refresh_token_dao.is_refresh_token_valid(hasher.hash(raw2)) is False


async def test_revoking_revoked_token_with_cascade_returns_false(
    user_dao, session_dao, refresh_token_dao, hasher
):
    user = await create_user(user_dao)
    record = await create_session(session_dao, user.id)
    raw, _ = await issue_token(refresh_token_dao, record)
    await refresh_token_dao.revoke_refresh_token(hasher.hash(raw))

    revoked = await refresh_token_dao.revoke_refresh_token(hasher.hash(raw), revoke_session=True)

    assert revoked is False
    stored = await session_dao.get_session(record.id)
    assert stored.is_active is False
    assert stored.revoked_at is not None


async def test_revoke_unknown_token_returns_false(refresh_token_dao):
    assert await refresh_token_dao.revoke_refresh_token("0" * 64) is False


async def test_mark_used_only_once(user_dao, session_dao, refresh_token_dao, hasher):
    user = await create_user(user_dao)
    record = await create_session(session_dao, user.id)
    raw, _ = await issue_token(refresh_token_dao, record)

    assert await refresh_token_dao.mark_refresh_token_used(hasher.hash(raw)) is True
    assert await refresh_token_dao.mark_refresh_token_used(hasher.hash(raw)) is False
    assert await refresh_token_dao.is_refresh_token_valid(hasher.hash(raw)) is False


async def test_replace_refresh_token_links_and_consumes(
    user_dao, session_dao, refresh_token_dao, hasher
):
    user = await create_user(user_dao)
    record = await create_session(session_dao, user.id)
    raw_old, old = await issue_token(refresh_token_dao, record)
    _, new = await issue_token(refresh_token_dao, record)

    replaced = await refresh_token_dao.replace_refresh_token(hasher.hash(raw_old), new.id)

    assert [t.id for t in replaced] == [old.id]
    assert replaced[0].replaced_by_id == new.id
    assert replaced[0].used_at is not None
    assert await refresh_token_dao.is_refresh_token_valid(hasher.hash(raw_old)) is False
    assert await refresh_token_dao.replace_refresh_token("0" * 64, new.id) == []
    with pytest.raises(DaoInvalidArgumentError):
        await refresh_token_dao.replace_refresh_token(hasher.hash(raw_old), old.id)


async def test_tokens_by_session_and_history(user_dao, session_dao, refresh_token_dao, sessionmaker):
    user = await create_user(user_dao)
    first_session = await create_session(session_dao, user.id)
    second_session = await create_session(session_dao, user.id)
    _, t1 = await issue_token(refresh_token_dao, first_session)
    _, t2 = await issue_token(refresh_token_dao, first_session)
    _, t3 = await issue_token(refresh_token_dao, second_session)
    now = utcnow()
    for offset, token in ((3, t1), (2, t2), (1, t3)):
        await set_columns(
            sessionmaker, RefreshToken, token.id, issued_at=now - timedelta(minutes=offset)
        )

    by_session = await refresh_token_dao.get_refresh_tokens_by_session(first_session.id)
    assert [t.id for t in by_session] == [t1.id, t2.id]

    history = await refresh_token_dao.get_user_token_history(user.id)
    assert [t.id for t in history] == [t3.id, t2.id, t1.id]
    limited = await refresh_token_dao.get_user_token_history(user.id, limit=1)
    assert [t.id for t in limited] == [t3.id]
    for bad_limit in (0, -1):
        with pytest.raises(DaoInvalidArgumentError):
            await refresh_token_dao.get_user_token_history(user.id, limit=bad_limit)

    pairs = await refresh_token_dao.get_sessions_with_refresh_tokens(user.id)
    latest = {p.session.id: p.last_token.id for p in pairs}
    assert latest == {first_session.id: t2.id, second_session.id: t3.id}


async def test_revoke_tokens_by_session(user_dao, session_dao, refresh_token_dao, hasher):
    user = await create_user(user_dao)
    record = await create_session(session_dao, user.id)
    raw, _ = await issue_token(refresh_token_dao, record)

    assert await refresh_token_dao.revoke_tokens_by_session(record.id) is True
    assert await refresh_token_dao.revoke_tokens_by_session(record.id) is False
    assert await refresh_token_dao.is_refresh_token_valid(hasher.hash(raw)) is False
    assert (await session_dao.get_session(record.id)).is_active is True


async def test_token_cleanup_runs_once(
    user_dao, session_dao, refresh_token_dao, hasher, sessionmaker
):
    user = await create_user(user_dao)
    record = await create_session(session_dao, user.id)
    raw, token = await issue_token(refresh_token_dao, record)
    await set_columns(sessionmaker, RefreshToken, token.id, expires_at=in_the_past())

    assert await refresh_token_dao.cleanup_expired_sessions_tokens() is True
    assert await refresh_token_dao.cleanup_expired_sessions_tokens() is False

    stored = await refresh_token_dao.get_refresh_token(hasher.hash(raw))
    assert stored.revoked_at is not None
    assert (await session_dao.get_session(record.id)).is_active is True
