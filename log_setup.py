"""Centralised logging configuration.

Call configure() once at startup (from material_cli.py or any embedding host).
All modules then use logging.getLogger(__name__) normally.

Output:
  console  — INFO  level, compact single-line format
  logs/app.log — DEBUG level, full format, rotating (5 × 5 MB)
"""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path
from typing import Optional

LOGS_DIR = Path(__file__).parent / "logs"
LOG_FILE  = LOGS_DIR / "app.log"

_CONSOLE_FMT = "%(asctime)s  %(levelname)-7s  %(name)s — %(message)s"
_FILE_FMT    = "%(asctime)s  %(levelname)-7s  %(name)-20s  %(filename)s:%(lineno)d — %(message)s"
_DATE_FMT    = "%Y-%m-%d %H:%M:%S"

_NOISY_LOGGERS = ("urllib3", "requests", "PIL", "charset_normalizer", "asyncio")


def configure(level: str = "INFO", log_file: Optional[Path] = None) -> None:
    """Set up console + rotating file handlers.  Safe to call multiple times."""
    root = logging.getLogger()
    if root.handlers:
        return  # Already configured

    target = Path(log_file) if log_file else LOG_FILE
    target.parent.mkdir(parents=True, exist_ok=True)

    root.setLevel(logging.DEBUG)  # lowest gate; handlers apply their own levels

    # ── Console ──
    ch = logging.StreamHandler()
    ch.setLevel(getattr(logging, level.upper(), logging.INFO))
    ch.setFormatter(logging.Formatter(_CONSOLE_FMT, datefmt=_DATE_FMT))
    root.addHandler(ch)

    # ── Rotating file ──
    fh = logging.handlers.RotatingFileHandler(
        target,
        maxBytes=5 * 1024 * 1024,   # 5 MB
        backupCount=5,
        encoding="utf-8",
    )
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter(_FILE_FMT, datefmt=_DATE_FMT))
    root.addHandler(fh)

    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)
