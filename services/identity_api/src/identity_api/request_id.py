import uuid
from contextvars import ContextVar, Token

REQUEST_ID_HEADER = "X-Request-ID"
_MAX_REQUEST_ID_LENGTH = 128

_request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")


def resolve_request_id(incoming: str | None) -> str:
    if incoming and len(incoming) <= _MAX_REQUEST_ID_LENGTH and incoming.isprintable():
        return incoming
    return uuid.uuid4().hex


def bind_request_id(value: str) -> Token[str]:
    return _request_id_ctx.set(value)


def reset_request_id(token: Token[str]) -> None:
    _request_id_ctx.reset(token)


def get_request_id() -> str:
    return _request_id_ctx.get()
