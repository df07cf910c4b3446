from __future__ import annotations

import logging

from musterai.core.config import get_settings


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | None = None) -> None:
    # Configure the root logger once; later calls only adjust the level.
    resolved = (level or get_settings().log_level or "INFO").upper()
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=resolved, format=_LOG_FORMAT)
    root.setLevel(resolved)
    # Keep SDK transport chatter out of request logs.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("anthropic").setLevel(logging.WARNING)
