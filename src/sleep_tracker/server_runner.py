"""Helpers to launch the local web API."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import uvicorn

from .config import AnalysisSettings
from .paths import get_db_path
from .webapp import create_app

logger = logging.getLogger(__name__)


def run_dashboard(
    *,
    host: str = "127.0.0.1",
    port: int = 8765,
    db_path: Optional[Path] = None,
    settings: Optional[AnalysisSettings] = None,
    log_level: str = "info",
) -> None:
    """Serve the sleep API until interrupted, analysing in the background."""
    resolved_db_path = db_path or get_db_path()
    app = create_app(db_path=resolved_db_path, settings=settings or AnalysisSettings())

    logging.getLogger("uvicorn.error").setLevel(log_level.upper())
    logger.info("Serving sleep API on http://%s:%d using %s", host, port, resolved_db_path)
    uvicorn.run(app, host=host, port=port, log_level=log_level)
