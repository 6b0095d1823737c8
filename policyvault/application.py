"""Application factory used when serving PolicyVault behind a front end."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI

from .api import create_app as create_api_app
from .config import Settings, load_settings
from .database import Database

API_MOUNT_PATH = "/api"


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_application(
    *,
    settings: Optional[Settings] = None,
    config_path: Optional[Path] = None,
) -> FastAPI:
    """Create the ASGI application with the JSON API mounted under ``/api``."""

    if settings is None:
        settings = load_settings(config_path=config_path)
    configure_logging(settings.log_level)

    database = Database(settings.database_path)
    database.initialize()

    api_app = create_api_app(database=database, settings=settings)

    app = FastAPI(
        title="PolicyVault",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.database = database
    app.state.api = api_app

    app.mount(API_MOUNT_PATH, api_app)

    return app


__all__ = ["API_MOUNT_PATH", "configure_logging", "create_application"]
