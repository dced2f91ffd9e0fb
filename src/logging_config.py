"""Logging configuration for the insight scripts.

Console output is always attached. A timestamped DEBUG log file is added when a
log directory is given.
"""

from __future__ import annotations

from datetime import datetime
import logging
from pathlib import Path


def setup_logging(console_level: int = logging.INFO, log_dir: Path | None = None) -> Path | None:
    """Configure the root logger and return the log file path, if any.

    Existing root handlers are cleared first so repeated calls do not duplicate
    output.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.handlers.clear()

    console = logging.StreamHandler()
    console.setLevel(console_level)
    console.setFormatter(
        logging.Formatter(
            "%(asctime)s %(levelname)-5s %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root.addHandler(console)

    # Keep SQLAlchemy quiet unless it warns.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    if log_dir is None:
        return None

    log_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y-%m-%d-%H%M%S")
    log_file = log_dir / f"insights-{timestamp}.log"

    file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)-5s [%(name)s] %(message)s")
    )
    root.addHandler(file_handler)
    return log_file
