# auth_service/core/logging.py
from __future__ import annotations

import logging
import re
import sys
from contextvars import ContextVar
from typing import Any, Optional

import structlog

from auth_service.core.config import Settings, get_settings

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)

REDACTED = "***REDACTED***"

_JWT_RE = re.compile(r"\beyJ[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+\b")
_BEARER_RE = re.compile(r"(?i)\bBearer\s+([A-Za-z0-9_\-\.=]+)")
_KV_RE = re.compile(
    r"(?i)\b(refresh_?token|access_?token|id_?token|identity_?token|token|secret|app_secret|password)\b\s*[=:]\s*([^\s,;&]+)"
)
_SENSITIVE_KEYS = {
    "token",
    "refresh_token",
    "refreshtoken",
    "access_token",
    "accesstoken",
    "id_token",
    "idtoken",
    "identity_token",
    "identitytoken",
    "authorization",
    "cookie",
    "secret",
}


def set_request_id(rid: Optional[str]) -> None:
    request_id_var.set(rid)


def set_user_id(uid: Optional[str]) -> None:
    user_id_var.set(uid)


# filled by setup_logging from the settings the app runs with
_secret_values: Optional[list[str]] = None


def configure_secrets(settings: Settings) -> None:
    global _secret_values
    vals = [settings.SECRET_KEY, settings.FACEBOOK_APP_SECRET, settings.CRON_SECRET]
    # ignore tiny values to avoid over-redaction
    _secret_values = [v for v in vals if v and len(v) >= 8]


def _secret_literals() -> list[str]:
    if _secret_values is None:
        configure_secrets(get_settings())
    return _secret_values or []


def redact_str(s: str) -> str:
    for lit in _secret_literals():
        if lit in s:
            s = s.replace(lit, REDACTED)
    s = _JWT_RE.sub(REDACTED, s)
    s = _BEARER_RE.sub(f"Bearer {REDACTED}", s)
    s = _KV_RE.sub(lambda m: f"{m.group(1)}={REDACTED}", s)
    return s


def redact_event(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    for k, v in list(event_dict.items()):
        if k.lower() in _SENSITIVE_KEYS:
            event_dict[k] = REDACTED
        elif isinstance(v, str):
            event_dict[k] = redact_str(v)
    return event_dict


def add_contextvars(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    rid = request_id_var.get()
    uid = user_id_var.get()
    if rid:
        event_dict.setdefault("request_id", rid)
    if uid:
        event_dict.setdefault("user_id", uid)
    return event_dict


def setup_logging(settings: Optional[Settings] = None) -> None:
    s = settings or get_settings()
    configure_secrets(s)
    root = logging.getLogger()
    root.setLevel(s.LOG_LEVEL)

    shared = [
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
        structlog.stdlib.add_log_level,
        add_contextvars,
        redact_event,
        structlog.processors.format_exc_info,
    ]
    renderer = structlog.processors.JSONRenderer() if s.LOG_JSON else structlog.dev.ConsoleRenderer()
    formatter = structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=shared)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root.handlers.clear()
    root.addHandler(handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            *shared,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
