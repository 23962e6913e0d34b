import logging
import logging.config
import re

from .request_id import get_request_id

_EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
_SECRET_KV_RE = re.compile(
    r"(?i)\b(authorization|raw_token|token_hash|token|secret|password|password_hash|stream_token)\b"
    r"\s*[:=]\s*([^\s,;]+)"
)
_BEARER_RE = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9\-._~+/]+=*")
_BCRYPT_RE = re.compile(r"\$2[aby]\$\d{2}\$[./A-Za-z0-9]{53}")


def redact(text: str) -> str:
    text = _EMAIL_RE.sub("[redacted_email]", text)
    text = _BCRYPT_RE.sub("[redacted_hash]", text)
    text = _BEARER_RE.sub("Bearer [redacted]", text)
    text = _SECRET_KV_RE.sub(r"\1=[redacted]", text)
    return text


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


class RedactionFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact(record.getMessage())
        record.args = ()
        return True


def configure_logging(log_level: str) -> None:
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "request_id": {"()": "identity_api.logging_config.RequestIdFilter"},
                "redact": {"()": "identity_api.logging_config.RedactionFilter"},
            },
            "formatters": {
                "standard": {
                    "format": "%(asctime)s %(levelname)s %(name)s request_id=%(request_id)s %(message)s"
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "standard",
                    "filters": ["request_id", "redact"],
                    "level": log_level,
                }
            },
            "loggers": {
                "identity_api": {"level": log_level},
                "sqlalchemy.engine": {"level": "WARNING"},
                "uvicorn.access": {
                    "handlers": ["console"],
                    "level": log_level,
                    "propagate": False,
                },
            },
            "root": {"handlers": ["console"], "level": log_level},
        }
    )
