"""Logging initialization."""

from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging() -> None:
    level = (os.getenv("LOG_LEVEL") or "INFO").strip().upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # dashscope can be noisy at INFO.
    logging.getLogger("dashscope").setLevel(logging.WARNING)


__all__ = ["configure_logging", "LOG_FORMAT"]
