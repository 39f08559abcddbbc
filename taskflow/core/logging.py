"""Process-wide logging setup.

Modules log through `logging.getLogger(__name__)`; entrypoints call
`configure_logging` once before doing anything else.
"""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str | int = "INFO") -> None:
    """Install a single stdout handler on the root logger.

    Calling it again only updates the level, so tests and reloads do not stack
    duplicate handlers.
    """
    root = logging.getLogger()
    root.setLevel(level.upper() if isinstance(level, str) else level)

    if any(getattr(h, "_taskflow", False) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._taskflow = True  # type: ignore[attr-defined]
    root.addHandler(handler)

    # aiormq logs every heartbeat/frame problem at debug; keep it at warning.
    logging.getLogger("aiormq").setLevel(logging.WARNING)
