"""JSON logging with redaction of patient identifiers and secrets."""

import logging
import re
import sys
from typing import Any

from pythonjsonlogger import jsonlogger

from dentflow.core.config import settings

REDACTED = "***REDACTED***"

# Matched as substrings of lower-cased keys, so "new_bsn" and "x_api_key" hit too
SENSITIVE_KEYS = frozenset(
    {
        "authorization",
        "password",
        "secret",
        "token",
        "api_key",
        "bsn",
        "plaintext",
        "justification",
        "reason",
        "first_name",
        "last_name",
        "patient_name",
        "date_of_birth",
        "email",
        "phone",
    }
)

# Nine digits, optionally dotted (123.456.789): what a BSN looks like in free text
_BSN_IN_TEXT = re.compile(r"(?<![\w.])\d{3}\.?\d{3}\.?\d{3}(?![\w.])")

_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "aiosqlite": logging.INFO,
}


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in SENSITIVE_KEYS)


def redact(value: Any) -> Any:
    """Redact sensitive keys at any depth and BSN-shaped digits in strings."""
    if isinstance(value, dict):
        return {k: REDACTED if _is_sensitive(str(k)) else redact(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [redact(item) for item in value]
    if isinstance(value, str):
        return _BSN_IN_TEXT.sub(REDACTED, value)
    return value


class SanitizingFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that never emits a BSN or patient name."""

    def process_log_record(self, log_record: dict[str, Any]) -> dict[str, Any]:
        record = redact(log_record)
        record["service"] = settings.APP_NAME
        record["environment"] = settings.APP_ENV
        record["version"] = settings.APP_VERSION
        return record


def setup_logging() -> logging.Logger:
    """Install one JSON handler on the root logger at ``settings.LOG_LEVEL``."""
    root = logging.getLogger()
    root.setLevel(settings.LOG_LEVEL)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(SanitizingFormatter(fmt="%(asctime)s %(levelname)s %(name)s %(message)s"))
    root.addHandler(handler)

    for name, level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    return root
