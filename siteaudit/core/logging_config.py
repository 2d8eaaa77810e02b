from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

correlation_id_ctx_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_STANDARD_RECORD_KEYS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}
_MAX_TEXT = 2000


class CorrelationIdFilter(logging.Filter):
    """Stamp the active audit/request correlation id onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_ctx_var.get() or "-"
        return True


@contextmanager
def bind_correlation_id(value: str | None = None) -> Iterator[str]:
    """Bind a correlation id for the duration of an audit run or HTTP request."""
    correlation_id = value or uuid.uuid4().hex
    token = correlation_id_ctx_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        correlation_id_ctx_var.reset(token)


def _extra_value(value: Any) -> Any:
    if value is None or isinstance(value, (int, float, bool)):
        return value
    text = value if isinstance(value, str) else repr(value)
    return text[:_MAX_TEXT]


class JsonFormatter(logging.Formatter):
    """One JSON object per line: event name, correlation id and the event's extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", "-"),
        }
        for key, value in record.__dict__.items():
            if key not in _STANDARD_RECORD_KEYS and key not in payload:
                payload[key] = _extra_value(value)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(json_logs: bool = False, level: int = logging.INFO) -> None:
    """Configure the root logger with a correlation-id aware formatter."""
    handler = logging.StreamHandler()
    handler.addFilter(CorrelationIdFilter())
    if json_logs:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s [%(correlation_id)s] %(message)s")
        )

    logging.basicConfig(level=level, handlers=[handler], force=True)
    # httpx logs every request at INFO; probes would drown the audit events.
    logging.getLogger("httpx").setLevel(logging.WARNING)
