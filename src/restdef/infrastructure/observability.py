"""Logging for the routing pipeline.

Records about a route carry `method`, `path` and `endpoint` extras (see
route_extra); decode failures add `error_code`, `location` and
`status_code`. JSONFormatter nests them under "route" and "error";
RouteFormatter appends them to plain text lines.

The library itself only emits records through module loggers; applications
(and the restdef CLI) call setup_logging once at startup.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

_ROUTE_FIELDS = ("method", "path", "endpoint")
_ERROR_FIELDS = (("error_code", "code"), ("location", "location"), ("status_code", "status"))


def route_extra(method: str, path: str, endpoint: Optional[str] = None, **fields: Any) -> dict[str, Any]:
    """Build the `extra=` mapping for a record about one route."""
    extra: dict[str, Any] = {"method": method, "path": path, **fields}
    if endpoint:
        extra["endpoint"] = endpoint
    return extra


def _route_of(record: logging.LogRecord) -> dict[str, Any]:
    return {k: record.__dict__[k] for k in _ROUTE_FIELDS if record.__dict__.get(k) is not None}


def _error_of(record: logging.LogRecord) -> dict[str, Any]:
    return {
        name: record.__dict__[attr]
        for attr, name in _ERROR_FIELDS
        if record.__dict__.get(attr) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with route and error context nested."""

    def format(self, record: logging.LogRecord) -> str:
        log: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        route = _route_of(record)
        if route:
            log["route"] = route
        error = _error_of(record)
        if error:
            log["error"] = error
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


class RouteFormatter(logging.Formatter):
    """
    Plain text lines; route records end with "[POST /items -> add_item]",
    decode failures with "(DECODE_ERROR at body)".
    """

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s - %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        route = _route_of(record)
        if "method" in route and "path" in route:
            tag = f"{route['method']} {route['path']}"
            if "endpoint" in route:
                tag += f" -> {route['endpoint']}"
            line += f" [{tag}]"
        error = _error_of(record)
        if "code" in error:
            where = f" at {error['location']}" if "location" in error else ""
            line += f" ({error['code']}{where})"
        return line


def setup_logging(level: str = "INFO", fmt: str = "text") -> logging.Handler:
    """Attach a stream handler to the root logger and set its level."""
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if fmt == "json" else RouteFormatter())
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
    return handler
