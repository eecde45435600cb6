"""
Structured Logging Utilities

This module centralizes logging setup for binding acquisition. Console output
keeps the short ``[prebuilt-bindings] => message`` form on stderr so it never
mixes with command output on stdout; the optional JSON formatter emits one
object per line with masked secrets and the ``binding``/``url``/``stage``
context attached by the pipeline.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Dict, Optional, TextIO

from .settings import LoggingSettings

LOGGER_NAME = "PrebuiltBindings"
CONSOLE_FORMAT = "[prebuilt-bindings] => %(message)s"
_CONTEXT_FIELDS = ("binding", "url", "stage", "status", "elapsed_ms")


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Remove secrets from structured payloads prior to logging.

    Args:
        payload: Arbitrary key-value pairs that may contain credentials or
            tokens, for example URLs carrying access tokens.

    Returns:
        Copy of the payload where common secret fields are replaced with
        `***masked***`.

    Examples:
        >>> mask_sensitive_data({"token": "secret", "status": "ok"})
        {'token': '***masked***', 'status': 'ok'}
    """
    sensitive_keys = {"authorization", "api_key", "apikey", "token", "secret", "password"}
    masked: Dict[str, object] = {}
    for key, value in payload.items():
        lower = key.lower()
        if lower in sensitive_keys:
            masked[key] = "***masked***"
        elif isinstance(value, str) and ("access_token=" in value or "apikey" in value.lower()):
            masked[key] = "***masked***"
        else:
            masked[key] = value
    return masked


class JSONFormatter(logging.Formatter):
    """Formatter emitting JSON structured logs.

    Examples:
        >>> formatter = JSONFormatter()
        >>> isinstance(formatter.format(logging.makeLogRecord({'msg': 'test'})), str)
        True
    """

    def format(self, record: logging.LogRecord) -> str:
        """Serialize a logging record into a JSON line."""
        now = datetime.now(timezone.utc)
        log_obj: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in _CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_obj[field] = value
        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(log_obj), default=str)


def setup_logging(config: LoggingSettings, stream: Optional[TextIO] = None) -> logging.Logger:
    """Configure the package logger.

    Handlers installed by a previous call are replaced, so calling this twice
    (as the CLI test-suite does) does not duplicate output.

    Args:
        config: Level and output format.
        stream: Destination stream; defaults to ``sys.stderr``.

    Returns:
        The configured ``PrebuiltBindings`` logger.

    Examples:
        >>> logger = setup_logging(LoggingSettings(level="INFO"))
        >>> logger.name
        'PrebuiltBindings'
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(config.level_int())

    for handler in list(logger.handlers):
        if getattr(handler, "_prebuilt_managed", False):
            logger.removeHandler(handler)
            handler.close()

    handler = logging.StreamHandler(stream or sys.stderr)
    if config.json_logs:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    handler._prebuilt_managed = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.propagate = True
    return logger


__all__ = ["setup_logging", "mask_sensitive_data", "JSONFormatter", "LOGGER_NAME"]
