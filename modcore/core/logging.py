from __future__ import annotations

import logging

from modcore.core.config import get_settings


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging() -> None:
    # Install one stream handler on the package logger so repeated app factories do not duplicate lines.
    settings = get_settings()
    root = logging.getLogger("modcore")
    root.setLevel(settings.log_level.upper())
    if any(getattr(handler, "_modcore_handler", False) for handler in root.handlers):
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    handler._modcore_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
