import logging
from datetime import datetime

from sqlalchemy import select, update

from identity_api.dao.base import BaseDAO
from identity_api.dao.cleanup import revoke_session_tokens, sweep_expired
from identity_api.models import Session
from identity_api.tokens import as_utc, build_expiry, utcnow

logger = logging.getLogger(__name__)


class SessionDAO(BaseDAO):
    def __init__(self, sessionmaker, default_ttl_seconds: int = 30 * 24 * 60 * 60) -> None:
        super().__init__(sessionmaker)
        self._default_ttl_seconds = default_ttl_seconds

    async def create_session(
        self,
        user_id: int,
        expires_at: datetime,
        ip_address: str | None = None,
        user_agent: str | None = None,
        device_info: str | None = None,
    ) -> Session:
        """Open a session; an unknown ``user_id`` raises ``DaoConstraintError``."""
        record = Session(
            user_id=user_id,
            expires_at=as_utc(expires_at),
            ip_address=ip_address,
            user_agent=user_agent,
            device_info=device_info,
        )
        async with self._session() as session:
            session.add(record)
            await session.commit()
        logger.info("session created user_id=%s session_id=%s", user_id, record.id)
        return record

    async def get_session(self, session_id: str) -> Session | None:
        async with self._session() as session:
            return await session.get(Session, session_id)

    async def extend_session(
        self,
        session_id: str,
        new_expires_at: datetime | None = None,
    ) -> Session | None:
        if new_expires_at is None:
            new_expires_at = build_expiry(self._default_ttl_seconds)
        async with self._session() as session:
            record = await self._get_active(session, session_id)
            if record is None:
                return None
            record.expires_at = as_utc(new_expires_at)
            await session.commit()
            return record

    async def touch_session_last_used(self, session_id: str) -> Session | None:
        async with self._session() as session:
            record = await self._get_active(session, session_id)
            if record is None:
                return None
            record.last_used_at = utcnow()
            await session.commit()
            return record

    async def revoke_session(self, session_id: str) -> bool:
        now = utcnow()
        async with self._session() as session:
            result = await session.execute(
                update(Session)
                .where(
                    Session.id == session_id,
                    Session.is_active.is_(True),
                    Session.revoked_at.is_(None),
                )
                .values(revoked_at=now, is_active=False)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return False
            await revoke_session_tokens(session, [session_id], now)
            await session.commit()
        logger.info("session revoked session_id=%s", session_id)
        return True

    async def revoke_all_user_sessions(self, user_id: int) -> bool:
        now = utcnow()
        async with self._session() as session:
            result = await session.execute(
                select(Session.id).where(
                    Session.user_id == user_id,
                    Session.is_active.is_(True),
                )
            )
            session_ids = list(result.scalars().all())
            if not session_ids:
                return False
            await session.execute(
                update(Session)
                .where(Session.id.in_(session_ids))
                .values(revoked_at=now, is_active=False)
                .execution_options(synchronize_session=False)
            )
            await revoke_session_tokens(session, session_ids, now)
            await session.commit()
        logger.info("revoked %d sessions user_id=%s", len(session_ids), user_id)
        return True

    async def get_active_sessions(self, user_id: int) -> list[Session]:
        async with self._session() as session:
            result = await session.execute(
                select(Session)
                .where(Session.user_id == user_id, Session.is_active.is_(True))
                .order_by(Session.created_at.desc())
            )
            return list(result.scalars().all())

    async def cleanup_expired_sessions_and_tokens(self) -> bool:
        async with self._session() as session:
            changed = await sweep_expired(session)
            await session.commit()
        if changed:
            logger.info("expired sessions and tokens swept")
        return changed

    async def _get_active(self, session, session_id: str) -> Session | None:
        result = await session.execute(
            select(Session).where(
                Session.id == session_id,
                Session.is_active.is_(True),
                Session.revoked_at.is_(None),
                Session.expires_at > utcnow(),
            )
        )
        return result.scalar_one_or_none()
