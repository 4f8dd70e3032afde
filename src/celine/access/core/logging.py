# access/core/logging.py
import logging
import sys
from typing import Optional, TextIO

from celine.access.core.config import settings


def setup_logging(level: Optional[str] = None, stream: Optional[TextIO] = None) -> None:
    """
    Configure logging with:
    - root logger = INFO, lowered to match ``level``
    - application logs (celine.*) = LOG_LEVEL, or ``level`` when given
    - noisy libraries reduced
    """

    app_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)

    handler = logging.StreamHandler(stream or sys.stdout)
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(min(app_level, logging.INFO))
    root.addHandler(handler)

    logging.getLogger("celine").setLevel(app_level)

    # request URLs only, keep them quiet anyway
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
