from datetime import datetime

from pydantic import BaseModel, ConfigDict


class UserRecord(BaseModel):
    """Cache-safe snapshot of a ``users`` row."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    email: str
    username: str
    password_hash: str
    created_at: datetime
    avatar: str = ""
    profile_banner: str = ""
    description: str = ""
    is_banned: bool = False
    ban_reason: str | None = None
    ban_expires_at: datetime | None = None
    stream_token: str | None = None


class HealthOut(BaseModel):
    status: str
