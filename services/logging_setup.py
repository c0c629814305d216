"""Structured logging and optional error monitoring setup."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
import sentry_sdk
from flask import has_request_context, request

# LogRecord attributes that are not caller-supplied context.
_RESERVED = set(vars(logging.makeLogRecord({}))) | {'message', 'asctime'}


class JsonFormatter(logging.Formatter):
    """One JSON object per line, with request path and `extra=` fields when present."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        if has_request_context():
            payload['method'] = request.method
            payload['path'] = request.path
        for key, value in vars(record).items():
            if key not in _RESERVED and not key.startswith('_'):
                payload[key] = value if isinstance(value, (str, int, float, bool, type(None))) else str(value)
        if record.exc_info:
            payload['exception'] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


def configure_logging(structured: bool = True, level: int = logging.INFO) -> None:
    root = logging.getLogger()
    root.setLevel(level)
    if not root.handlers:
        root.addHandler(logging.StreamHandler())
    if structured:
        for handler in root.handlers:
            handler.setFormatter(JsonFormatter())


def configure_error_monitoring(dsn: str, environment: str | None = None) -> bool:
    """Send unhandled errors to Sentry when a DSN is configured."""
    if not dsn:
        return False
    sentry_sdk.init(dsn=dsn, environment=environment, traces_sample_rate=0.0)
    logging.getLogger(__name__).info('Error monitoring enabled')
    return True
