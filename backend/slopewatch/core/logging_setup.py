"""Root logger configuration with one-line JSON records."""

from __future__ import annotations

import datetime
import json
import logging
import sys


class JsonFormatter(logging.Formatter):
    """Render a record as ``{"t", "lvl", "name", "msg"[, "exc_info"]}``."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "t": datetime.datetime.fromtimestamp(
                record.created, tz=datetime.UTC
            ).isoformat(),
            "lvl": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger once; later calls only adjust the level.

    Args:
        level: Level name such as "DEBUG" or "INFO". Unknown names fall
            back to INFO.
    """
    root = logging.getLogger()
    root.setLevel(
        logging.getLevelNamesMapping().get(level.upper(), logging.INFO)
    )
    if getattr(root, "_slopewatch_configured", False):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.handlers.clear()
    root.addHandler(handler)
    root._slopewatch_configured = True  # type: ignore[attr-defined]
