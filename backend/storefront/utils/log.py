"""
Logging setup shared by the API and the standalone scripts.

Everything logs under the "storefront" logger tree; the health monitor adds a
size-rotated file on top of stdout.
"""
import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"


def configure_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 1,
) -> logging.Logger:
    root = logging.getLogger("storefront")
    root.setLevel(level.upper())
    formatter = logging.Formatter(FORMAT)

    if not any(getattr(h, "_storefront_stdout", False) for h in root.handlers):
        h = logging.StreamHandler(sys.stdout)
        h.setFormatter(formatter)
        h._storefront_stdout = True
        root.addHandler(h)

    if log_file and not any(
        isinstance(h, RotatingFileHandler) and h.baseFilename == os.path.abspath(log_file)
        for h in root.handlers
    ):
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        fh = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
        fh.setFormatter(formatter)
        root.addHandler(fh)

    root.propagate = False
    return root


def with_data(message: str, data: dict) -> str:
    """Append a JSON payload to a log message."""
    return f"{message} {json.dumps(data, default=str)}"
