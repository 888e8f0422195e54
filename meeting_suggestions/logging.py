"""JSON log lines for the suggestion worker, plus a per-request access log."""

from __future__ import annotations

import json
import logging
import os
import time
import uuid
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

LEVEL_ENV = "SUGGEST_LOG_LEVEL"

# pipeline stages each log under their own name
PIPELINE_LOGGERS = (
    "app",
    "app.access",
    "app.extractor",
    "app.pipeline",
    "app.suggestions",
    "app.notifications",
)


class JsonFormatter(logging.Formatter):
    """One JSON object per record: level, epoch-ms, logger, message."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "level": record.levelname,
            "ts": int(record.created * 1000),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def level_from_name(name: Optional[str], default: int = logging.INFO) -> int:
    """Map "debug", "WARNING" or "10" to a logging level; unknown names give `default`."""
    name = (name or "").strip()
    if not name:
        return default
    if name.isdigit():
        return int(name)
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else default


def setup_logging(level_name: Optional[str] = None) -> int:
    """Route every pipeline logger through one JSON stream handler.

    Without an explicit name the level comes from SUGGEST_LOG_LEVEL.
    Returns the level that was applied.
    """
    level = level_from_name(level_name if level_name is not None else os.getenv(LEVEL_ENV))
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)
    for name in PIPELINE_LOGGERS:
        logging.getLogger(name).setLevel(level)
    return level


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tag each request with a short id and write one access line when it completes."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex[:12]
        request.state.request_id = request_id
        started = time.perf_counter()
        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        logging.getLogger("app.access").info(json.dumps({
            "request_id": request_id,
            "user": request.headers.get("X-User-Id", "anonymous"),
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": int((time.perf_counter() - started) * 1000),
        }))
        return response


def install_app_logging(app: FastAPI) -> None:
    app.add_middleware(RequestContextMiddleware)
