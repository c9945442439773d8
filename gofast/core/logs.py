"""Process-wide logging configuration."""

from __future__ import annotations

import logging

_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
_HANDLER_NAME = "gofast"


def configure_logging(level: str = "INFO") -> None:
    """Attach a single stream handler to the root logger."""

    root = logging.getLogger()
    # Reloads in tests would otherwise stack duplicate handlers.
    if not any(handler.get_name() == _HANDLER_NAME for handler in root.handlers):
        handler = logging.StreamHandler()
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(handler)
    root.setLevel(level)


__all__ = ["configure_logging"]
