"""Logging setup and structured event helper."""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from marquee.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for scripts and the API process."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format=LOG_FORMAT,
    )


def log_event(logger: logging.Logger, level: int, event: str, **data: Any) -> None:
    """
    Emit a structured log line.

    Text format renders ``[event] {"key": ...}``; with ``log_format="json"``
    the whole record is a single JSON object carrying ``event`` and
    ``timestamp`` keys.
    """
    if settings.log_format == "json":
        payload = {
            "event": event,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **data,
        }
        logger.log(level, json.dumps(payload, default=str))
    else:
        logger.log(level, f"[{event}] {json.dumps(data, default=str)}")
