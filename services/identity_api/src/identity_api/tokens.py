import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to already be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def build_expiry(seconds: int) -> datetime:
    return utcnow() + timedelta(seconds=seconds)


def hmac_sha256(secret: str, value: str) -> str:
    return hmac.new(secret.encode("utf-8"), value.encode("utf-8"), hashlib.sha256).hexdigest()


def generate_raw_token() -> str:
    return secrets.token_urlsafe(32)


class RefreshTokenHasher:
    """Derives the stored fingerprint of a raw refresh token.

    Only the HMAC digest ever reaches the store; the raw secret is handed
    back to the caller once, at issue or rotation time.
    """

    def __init__(self, secret: str) -> None:
        self._secret = secret

    def hash(self, raw_token: str) -> str:
        return hmac_sha256(self._secret, raw_token)

    def matches(self, raw_token: str, token_hash: str) -> bool:
        return hmac.compare_digest(self.hash(raw_token), token_hash)
