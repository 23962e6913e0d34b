"""Refresh tokens, stored as the HMAC of their raw value."""
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from identity_api.dao.base import BaseDAO
from identity_api.dao.cleanup import revoke_session_tokens, sweep_expired
from identity_api.errors import (
    DaoConstraintError,
    DaoInvalidArgumentError,
    DaoInvalidTokenError,
)
from identity_api.models import RefreshToken, Session
from identity_api.tokens import (
    RefreshTokenHasher,
    as_utc,
    build_expiry,
    generate_raw_token,
    utcnow,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionWithLastToken:
    session: Session
    last_token: RefreshToken | None


def _valid_at(now: datetime):
    return (
        RefreshToken.revoked_at.is_(None),
        RefreshToken.used_at.is_(None),
        RefreshToken.expires_at > now,
    )


def _require_raw_token(raw_token: str) -> None:
    if not isinstance(raw_token, str) or not raw_token.strip():
        raise DaoInvalidArgumentError("raw refresh token must be a non-empty string")


class RefreshTokenDAO(BaseDAO):
    def __init__(
        self,
        sessionmaker,
        hasher: RefreshTokenHasher,
        history_limit: int = 1000,
        token_ttl_seconds: int = 30 * 24 * 60 * 60,
    ) -> None:
        super().__init__(sessionmaker)
        self._hasher = hasher
        self._history_limit = history_limit
        self._token_ttl_seconds = token_ttl_seconds

    def hash_token(self, raw_token: str) -> str:
        return self._hasher.hash(raw_token)

    def _expiry(self, expires_at: datetime | None) -> datetime:
        if expires_at is None:
            return build_expiry(self._token_ttl_seconds)
        return as_utc(expires_at)

    async def issue_refresh_token(
        self,
        session_id: str,
        user_id: int,
        expires_at: datetime | None,
        raw_token: str,
    ) -> RefreshToken:
        """Store the HMAC of ``raw_token`` for a live session of ``user_id``.

        ``expires_at=None`` uses the configured token lifetime.
        """
        _require_raw_token(raw_token)
        token = RefreshToken(
            token_hash=self._hasher.hash(raw_token),
            user_id=user_id,
            session_id=session_id,
            expires_at=self._expiry(expires_at),
        )
        async with self._session() as session:
            owner = await session.get(Session, session_id)
            if owner is None or owner.user_id != user_id:
                raise DaoConstraintError(
                    f"session {session_id} does not exist for user {user_id}"
                )
            if not owner.is_active or owner.revoked_at is not None:
                raise DaoConstraintError(f"session {session_id} is not active")
            if as_utc(owner.expires_at) <= utcnow():
                raise DaoConstraintError(f"session {session_id} has expired")
            session.add(token)
            await session.commit()
        logger.info("refresh token issued session_id=%s token_id=%s", session_id, token.id)
        return token

    async def rotate_refresh_token(
        self,
        old_token_hash: str,
        new_expires_at: datetime | None,
        new_raw_token: str,
    ) -> RefreshToken:
        """Consume ``old_token_hash`` and issue its successor in one transaction.

        Raises ``DaoInvalidTokenError`` when the old token is unknown, used,
        revoked or expired.
        """
        _require_raw_token(new_raw_token)
        now = utcnow()
        async with self._session() as session:
            result = await session.execute(
                select(RefreshToken).where(
                    RefreshToken.token_hash == old_token_hash, *_valid_at(now)
                )
            )
            old = result.scalar_one_or_none()
            if old is None:
                raise DaoInvalidTokenError("refresh token is not valid for rotation")

            # conditional claim: only one concurrent rotation can flip used_at
            claimed = await session.execute(
                update(RefreshToken)
                .where(
                    RefreshToken.id == old.id,
                    RefreshToken.used_at.is_(None),
                    RefreshToken.revoked_at.is_(None),
                )
                .values(used_at=now)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount != 1:
                raise DaoInvalidTokenError("refresh token was consumed concurrently")

            successor = RefreshToken(
                token_hash=self._hasher.hash(new_raw_token),
                user_id=old.user_id,
                session_id=old.session_id,
                expires_at=self._expiry(new_expires_at),
            )
            session.add(successor)
            await session.flush()
            await session.execute(
                update(RefreshToken)
                .where(RefreshToken.id == old.id)
                .values(replaced_by_id=successor.id)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        logger.info("refresh token rotated old_id=%s new_id=%s", old.id, successor.id)
        return successor

    async def rotate_and_return_raw_token(
        self,
        old_token_hash: str,
        new_expires_at: datetime | None = None,
    ) -> str:
        raw_token = generate_raw_token()
        await self.rotate_refresh_token(old_token_hash, new_expires_at, raw_token)
        return raw_token

    async def is_refresh_token_valid(self, token_hash: str) -> bool:
        async with self._session() as session:
            found = await session.scalar(
                select(
                    exists().where(RefreshToken.token_hash == token_hash, *_valid_at(utcnow()))
                )
            )
        return bool(found)

    async def get_refresh_token(self, token_hash: str) -> RefreshToken | None:
        async with self._session() as session:
            return await self._by_hash(session, token_hash)

    async def revoke_refresh_token(self, token_hash: str, revoke_session: bool = False) -> bool:
        now = utcnow()
        async with self._session() as session:
            token = await self._by_hash(session, token_hash)
            if token is None:
                return False
            revoked = token.revoked_at is None
            if revoked:
                token.revoked_at = now
            if revoke_session:
                await session.execute(
                    update(Session)
                    .where(Session.id == token.session_id, Session.revoked_at.is_(None))
                    .values(revoked_at=now, is_active=False)
                    .execution_options(synchronize_session=False)
                )
                await revoke_session_tokens(session, [token.session_id], now)
            await session.commit()
        logger.info(
            "refresh token revoked token_id=%s cascade_session=%s", token.id, revoke_session
        )
        return revoked

    async def mark_refresh_token_used(self, token_hash: str) -> bool:
        async with self._session() as session:
            result = await session.execute(
                update(RefreshToken)
                .where(RefreshToken.token_hash == token_hash, RefreshToken.used_at.is_(None))
                .values(used_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        return result.rowcount > 0

    async def replace_refresh_token(
        self,
        old_token_hash: str,
        new_token_id: str,
    ) -> list[RefreshToken]:
        """Link an old token to an already issued successor.

        The old token is consumed as well, so the two-step issue-then-link
        path gives the same replay protection as ``rotate_refresh_token``.
        An unknown ``new_token_id`` raises ``DaoConstraintError``.
        """
        async with self._session() as session:
            token = await self._by_hash(session, old_token_hash)
            if token is None:
                return []
            if token.id == new_token_id:
                raise DaoInvalidArgumentError("a refresh token cannot replace itself")
            token.replaced_by_id = new_token_id
            if token.used_at is None:
                token.used_at = utcnow()
            await session.commit()
        return [token]

    async def get_refresh_tokens_by_session(self, session_id: str) -> list[RefreshToken]:
        async with self._session() as session:
            result = await session.execute(
                select(RefreshToken)
                .where(RefreshToken.session_id == session_id)
                .order_by(RefreshToken.issued_at)
            )
            return list(result.scalars().all())

    async def get_user_token_history(
        self,
        user_id: int,
        limit: int | None = None,
    ) -> list[RefreshToken]:
        if limit is None:
            limit = self._history_limit
        elif isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise DaoInvalidArgumentError("history limit must be a positive integer")
        async with self._session() as session:
            result = await session.execute(
                select(RefreshToken)
                .where(RefreshToken.user_id == user_id)
                .order_by(RefreshToken.issued_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def get_sessions_with_refresh_tokens(self, user_id: int) -> list[SessionWithLastToken]:
        async with self._session() as session:
            sessions = list(
                (
                    await session.execute(
                        select(Session)
                        .where(Session.user_id == user_id, Session.is_active.is_(True))
                        .order_by(Session.created_at.desc())
                    )
                )
                .scalars()
                .all()
            )
            if not sessions:
                return []
            tokens = (
                await session.execute(
                    select(RefreshToken)
                    .where(RefreshToken.session_id.in_([s.id for s in sessions]))
                    .order_by(RefreshToken.issued_at.desc())
                )
            ).scalars()
            latest: dict[str, RefreshToken] = {}
            for token in tokens:
                latest.setdefault(token.session_id, token)
        return [SessionWithLastToken(s, latest.get(s.id)) for s in sessions]

    async def revoke_tokens_by_session(self, session_id: str) -> bool:
        async with self._session() as session:
            revoked = await revoke_session_tokens(session, [session_id], utcnow())
            await session.commit()
        return revoked > 0

    async def cleanup_expired_sessions_tokens(self) -> bool:
        async with self._session() as session:
            changed = await sweep_expired(session)
            await session.commit()
        return changed

    async def _by_hash(self, session: AsyncSession, token_hash: str) -> RefreshToken | None:
        result = await session.execute(
            select(RefreshToken).where(RefreshToken.token_hash == token_hash)
        )
        return result.scalar_one_or_none()
