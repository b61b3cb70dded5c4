from __future__ import annotations

import logging
import sys
import uuid
from typing import TextIO

LOG_FORMAT = "%(asctime)s %(levelname)s %(threadName)s %(message)s"
DATE_FORMAT = "%Y/%m/%d %H:%M:%S"


def new_run_id() -> str:
    return uuid.uuid4().hex[:12]


def create_run_logger(
    debug: bool = False,
    run_id: str | None = None,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Build a logger scoped to one collection run.

    Handlers are replaced on every call so a repeated run id does not double
    its output, and records do not propagate to the root logger.
    """
    logger = logging.getLogger(f"hgcollect.{run_id or new_run_id()}")
    logger.handlers.clear()
    logger.propagate = False

    level = logging.DEBUG if debug else logging.INFO
    logger.setLevel(level)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)
    return logger
