"""Logging for the formula OCR service.

Records go to stderr and to a size-rotated UTF-8 file; model replies and
prompts are routinely Chinese, so the file handler never raises on encoding.
"""
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from core.config import settings

LOG_FILE = settings.base_dir / "formula_ocr.log"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def init_logging(log_file: Path | None = None) -> None:
    """Attach console and rotating file handlers once."""
    if logger.handlers:
        return

    path = log_file or LOG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    logger.setLevel(settings.log_level)
    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    file_handler = RotatingFileHandler(
        path,
        maxBytes=1_000_000,
        backupCount=3,
        encoding="utf-8",
        errors="replace",
    )
    file_handler.setFormatter(formatter)

    logger.addHandler(console_handler)
    logger.addHandler(file_handler)


logger = logging.getLogger("formula_ocr")
