from __future__ import annotations

import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pathlib import Path
from typing import Optional
import os

from .routers.meetings import router as meetings_router
from .routers.suggestions import router as suggestions_router
from .routers.reasoning_config import router as reasoning_config_router
from .config import Settings, load_settings
from .logging import setup_logging, install_app_logging
from .errors import install_error_handlers
from .services.extractor import HttpPost
from .state import State
from .db import configure_db_path, initialize_db


def _load_env_file(env_path: Path) -> None:
    """Minimal .env loader: KEY=VALUE lines into os.environ if not set.
    - Ignores comments and blank lines
    - Strips surrounding quotes
    - Supports optional 'export ' prefix
    """
    if not env_path.exists():
        return
    try:
        content = env_path.read_text(encoding="utf-8")
    except OSError as e:
        logging.getLogger("app").warning(f"could not read {env_path}: {e}")
        return
    for raw in content.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.lower().startswith("export "):
            line = line[7:].lstrip()
        if "=" not in line:
            continue
        k, v = line.split("=", 1)
        key = k.strip()
        val = v.strip().strip('"').strip("'")
        os.environ.setdefault(key, val)


def create_app(settings: Optional[Settings] = None, http_post: Optional[HttpPost] = None) -> FastAPI:
    if settings is None:
        # Load environment from an optional .env file at the project root
        _load_env_file(Path(__file__).resolve().parent.parent / ".env")
        settings = load_settings()
    setup_logging(settings.log_level)

    app = FastAPI(title="Meeting Suggestions Worker", version="1.0.0")

    # Attach config/state
    app.state.settings = settings
    app.state.state = State.from_settings(settings, http_post=http_post)
    if not settings.reasoning_config().configured:
        logging.getLogger("app").warning("reasoning service not configured; local extraction only")

    # Ensure database schema exists before handling requests
    if settings.db_path:
        configure_db_path(settings.db_path)
    initialize_db()

    # CORS
    allow = [o.strip() for o in settings.cors_allow_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    install_app_logging(app)
    install_error_handlers(app)

    # Versioned API
    app.include_router(meetings_router, prefix="/v1")
    app.include_router(suggestions_router, prefix="/v1")
    app.include_router(reasoning_config_router, prefix="/v1")

    @app.get("/health")
    def health():  # pragma: no cover - trivial
        return {"status": "ok"}
    return app


# Convenience for `uvicorn meeting_suggestions.app:app`
app = create_app()
