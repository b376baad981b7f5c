from __future__ import annotations

import logging

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | int = "INFO") -> None:
    """Configure root logging once for the server process."""
    if isinstance(level, str):
        resolved = logging.getLevelName(level.strip().upper())
        if not isinstance(resolved, int):
            resolved = logging.INFO
    else:
        resolved = level
    logging.basicConfig(level=resolved, format=_FORMAT, datefmt="%H:%M:%S")
    # httpx logs every request at INFO; keep it quiet unless debugging.
    logging.getLogger("httpx").setLevel(max(resolved, logging.WARNING))
