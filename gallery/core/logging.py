"""Structured logging for the gallery API.

Every record is emitted as one JSON object carrying the request id of the
request that produced it. Extra fields go through two scrubbing tiers before
they reach a handler:

- secrets (API keys, signing secrets, raw cookies) become ``[REDACTED]``;
- visitor identifiers (visitor id, client IP) become a short SHA-256
  fingerprint, so repeat views and throttled clients stay correlatable
  without ever writing the raw value.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, Mapping

from gallery.core.config import LogSettings

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

REDACTED = "[REDACTED]"
FINGERPRINT_PREFIX = "sha256:"

SECRET_KEYS: frozenset[str] = frozenset(
    {
        "api_key",
        "x-api-key",
        "admin_api_keys",
        "authorization",
        "password",
        "secret",
        "token",
        "public_id_secret",
        "id_secret",
        "cookie",
        "set-cookie",
    }
)

IDENTIFIER_KEYS: frozenset[str] = frozenset({"visitor_id", "cookie_value", "client_ip"})

# Attributes every LogRecord has; anything else was passed through ``extra``
_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


def fingerprint(value: str | None, length: int = 16) -> str | None:
    """Return a short SHA-256 digest of an identifier for log correlation.

    Visitor ids, client IPs and admin keys are never logged verbatim.
    """

    if not value:
        return None
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:length]


def set_request_id(request_id: str | None) -> None:
    _request_id_var.set(request_id)


def get_request_id() -> str | None:
    return _request_id_var.get()


def clear_request_id() -> None:
    _request_id_var.set(None)


class Scrubber:
    """Applies the secret and identifier tiers to extra fields, recursively."""

    def __init__(
        self,
        secret_keys: Iterable[str] = SECRET_KEYS,
        identifier_keys: Iterable[str] = IDENTIFIER_KEYS,
    ) -> None:
        self.secret_keys = {key.lower() for key in secret_keys}
        self.identifier_keys = {key.lower() for key in identifier_keys}

    def field(self, key: str, value: Any) -> Any:
        name = key.lower()
        if name in self.secret_keys:
            return REDACTED
        if name in self.identifier_keys:
            return self._fingerprint(value)
        return self.value(value)

    def value(self, value: Any) -> Any:
        if isinstance(value, Mapping):
            return {k: self.field(str(k), v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return type(value)(self.value(v) for v in value)
        return value

    @staticmethod
    def _fingerprint(value: Any) -> Any:
        if value is None:
            return None
        text = str(value)
        # Idempotent when several handlers share one record
        if text.startswith(FINGERPRINT_PREFIX) or text == REDACTED:
            return text
        return f"{FINGERPRINT_PREFIX}{fingerprint(text)}"


def extra_fields(record: LogRecord) -> dict[str, Any]:
    """Fields passed via ``extra=``, without the standard LogRecord attributes."""

    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


class RequestIdFilter(logging.Filter):
    """Attach request_id from context when absent on the record."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if getattr(record, "request_id", None) is None:
            request_id = get_request_id()
            if request_id:
                record.request_id = request_id
        return True


class SensitiveDataFilter(logging.Filter):
    """Scrub extra fields on the record before any formatter sees them."""

    def __init__(self, scrubber: Scrubber | None = None) -> None:
        super().__init__()
        self.scrubber = scrubber or Scrubber()

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        for key, value in extra_fields(record).items():
            setattr(record, key, self.scrubber.field(key, value))
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record: envelope fields plus the (scrubbed) extras."""

    def format(self, record: LogRecord) -> str:  # noqa: D401
        data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = getattr(record, "request_id", None) or get_request_id()
        if request_id:
            data["request_id"] = request_id
        data.update(extra_fields(record))
        if record.exc_info:
            data["exc_type"] = record.exc_info[0].__name__ if record.exc_info[0] else None
        return json.dumps(data, default=str)


def _build_handler(cfg: LogSettings) -> logging.Handler:
    if cfg.output.lower() != "file":
        return logging.StreamHandler(sys.stdout)

    file_path = Path(cfg.file_path or "logs/gallery.log")
    file_path.parent.mkdir(parents=True, exist_ok=True)
    if cfg.max_bytes:
        return RotatingFileHandler(
            file_path,
            maxBytes=cfg.max_bytes,
            backupCount=cfg.backup_count,
            encoding="utf-8",
        )
    return logging.FileHandler(file_path, encoding="utf-8")


def configure_logging(log_settings: LogSettings | None = None) -> None:
    """Install one scrubbing, request-id aware handler on the root logger.

    Args:
        log_settings: Log section of the app settings; read from the
            environment when omitted.
    """

    cfg = log_settings or LogSettings()

    handler = _build_handler(cfg)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    if cfg.format.lower() == "plain":
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    else:
        handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))

    # Avoid double logging from uvicorn if it gets re-configured
    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.access").propagate = False
