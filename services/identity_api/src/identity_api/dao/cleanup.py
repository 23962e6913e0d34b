from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from identity_api.models import RefreshToken, Session
from identity_api.tokens import utcnow


async def revoke_session_tokens(session: AsyncSession, session_ids, now) -> int:
    """Revoke every unrevoked refresh token of the given sessions.

    ``session_ids`` may be a list of ids or a select of ``Session.id``.
    """
    result = await session.execute(
        update(RefreshToken)
        .where(RefreshToken.session_id.in_(session_ids), RefreshToken.revoked_at.is_(None))
        .values(revoked_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def sweep_expired(session: AsyncSession) -> bool:
    """Move time-expired sessions and tokens to their terminal state.

    Expired sessions only lose ``is_active``; ``revoked_at`` stays NULL so an
    audit can tell them apart from sessions that were revoked on purpose.
    Unused tokens that expired, or whose session expired, get ``revoked_at``.
    Returns True iff any row changed. The caller commits.
    """
    now = utcnow()
    expired_sessions = select(Session.id).where(
        Session.is_active.is_(True),
        Session.expires_at <= now,
    )
    tokens = await session.execute(
        update(RefreshToken)
        .where(
            RefreshToken.revoked_at.is_(None),
            RefreshToken.used_at.is_(None),
            or_(
                RefreshToken.expires_at <= now,
                RefreshToken.session_id.in_(expired_sessions),
            ),
        )
        .values(revoked_at=now)
        .execution_options(synchronize_session=False)
    )
    sessions = await session.execute(
        update(Session)
        .where(Session.is_active.is_(True), Session.expires_at <= now)
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    return (tokens.rowcount + sessions.rowcount) > 0
