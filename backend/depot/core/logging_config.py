from __future__ import annotations

import logging

from backend.depot.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Install a single stream handler on the root logger (idempotent)."""
    root = logging.getLogger()
    root.setLevel((level or settings.LOG_LEVEL).upper())
    if any(getattr(h, "_depot", False) for h in root.handlers):
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._depot = True  # type: ignore[attr-defined]
    root.addHandler(handler)

    # uvicorn's access log duplicates RequestIDMiddleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
