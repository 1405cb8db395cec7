"""
Logging setup: one stream handler on the root logger whose records carry the
id of the request being served.
"""
from __future__ import annotations

import logging
import uuid

from flask import g, has_request_context

LOG_FORMAT = "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"
REQUEST_ID_HEADER = "X-Request-ID"


class RequestIdFilter(logging.Filter):
    """Stamp records with g.request_id, or '-' outside a request."""

    def filter(self, record: logging.LogRecord) -> bool:
        request_id = "-"
        if has_request_context():
            request_id = getattr(g, "request_id", None) or "-"
        record.request_id = request_id
        return True


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())
    for handler in root.handlers:
        if getattr(handler, "_fintrack", False):
            return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestIdFilter())
    handler._fintrack = True
    root.addHandler(handler)


def new_request_id(incoming: str | None = None) -> str:
    # accept a caller supplied id only if it is short and printable
    if incoming and len(incoming) <= 64 and incoming.isprintable():
        return incoming
    return str(uuid.uuid4())
