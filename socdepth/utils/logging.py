from __future__ import annotations

import logging
from pathlib import Path

from rich.logging import RichHandler

LOG_FORMAT = "[%(asctime)s] %(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(output_dir: Path, level: int = logging.INFO, name: str = "socdepth") -> Path:
    """Log to ``output_dir/logs.txt`` and to the console.

    Handlers from a previous call are replaced, so repeated runs in one
    process do not duplicate log lines.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    log_path = output_dir / "logs.txt"
    logger = logging.getLogger(name)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    file_handler = logging.FileHandler(log_path, mode="w")
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(file_handler)
    logger.addHandler(RichHandler(show_path=False, markup=False))
    logger.propagate = False
    return log_path
