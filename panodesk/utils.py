"""
Small helpers shared across features.
"""
import logging
import sys
from datetime import datetime, timezone

from panodesk.core import config


_handler = logging.StreamHandler(sys.stdout)
_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))

_root = logging.getLogger("panodesk")
_root.addHandler(_handler)
_root.setLevel(config.LOG_LEVEL.upper())
_root.propagate = False


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the ``panodesk`` hierarchy."""
    if name == "__main__" or not name.startswith("panodesk"):
        name = f"panodesk.{name}"
    return logging.getLogger(name)


def utcnow() -> datetime:
    """Naive UTC timestamp, comparable with what SQLite hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
