"""Logging setup for s3proxy.

Two output formats are supported: ``text`` for people and ``json`` for log
shippers. Both carry the object context (bucket and key) attached to
records by the fetch and streaming code.
"""

import json
import logging
import sys
from datetime import datetime, timezone

# Per-request attributes set by the server middleware.
REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "request_id")

# Object attributes set wherever a bucket key is touched.
OBJECT_FIELDS = ("bucket", "key")

# Client libraries that log every connection and retry at DEBUG/INFO.
CHATTY_LOGGERS = ("botocore", "aiobotocore", "urllib3", "httpx", "httpcore")

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _record_fields(record: logging.LogRecord, names: tuple[str, ...]) -> dict:
    return {
        name: getattr(record, name)
        for name in names
        if getattr(record, name, None) is not None
    }


class TextFormatter(logging.Formatter):
    """Plain text lines, with ``bucket=... key=...`` appended when known."""

    def __init__(self) -> None:
        super().__init__(TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _record_fields(record, OBJECT_FIELDS)
        if not context:
            return line
        suffix = " ".join(f"{name}={value}" for name, value in context.items())
        return f"{line} [{suffix}]"


class JSONFormatter(logging.Formatter):
    """One JSON object per line.

    Always has ``timestamp``, ``level``, ``logger`` and ``message``; request
    and object attributes are added when the record carries them, and
    ``exception`` holds the formatted traceback.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_record_fields(record, REQUEST_FIELDS))
        entry.update(_record_fields(record, OBJECT_FIELDS))
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: str = "INFO", fmt: str = "text") -> None:
    """Install a single stderr handler on the root logger.

    Any handlers already on the root logger are replaced. Unless ``level`` is
    DEBUG, the AWS and HTTP client libraries are held at WARNING.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Unknown names fall back to INFO.
        fmt: ``text`` or ``json``.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)
    handler.setFormatter(JSONFormatter() if fmt == "json" else TextFormatter())

    root = logging.getLogger()
    root.setLevel(numeric_level)
    for old in root.handlers[:]:
        root.removeHandler(old)
    root.addHandler(handler)

    library_level = logging.NOTSET if numeric_level <= logging.DEBUG else logging.WARNING
    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)
