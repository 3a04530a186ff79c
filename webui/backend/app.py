"""Litestar ASGI application: canvasplan chat API."""
from __future__ import annotations

import sys
from pathlib import Path

from litestar import Litestar
from litestar.config.cors import CORSConfig
from litestar.logging import LoggingConfig

# Ensure the repo root is on sys.path so `canvasplan` can be imported
REPO_ROOT = Path(__file__).parent.parent.parent
sys.path.insert(0, str(REPO_ROOT))

from webui.backend.routes.config import get_config, save_config
from webui.backend.routes.registry import list_models
from webui.backend.routes.sessions import (
    apply_fix, create_session, delete_session, get_session, send_message,
)


app = Litestar(
    route_handlers=[
        get_config,
        save_config,
        list_models,
        create_session,
        get_session,
        send_message,
        apply_fix,
        delete_session,
    ],
    cors_config=CORSConfig(
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type"],
    ),
    logging_config=LoggingConfig(
        loggers={
            "canvasplan": {"level": "INFO", "handlers": ["queue_listener"]},
            "webui": {"level": "INFO", "handlers": ["queue_listener"]},
        }
    ),
)
