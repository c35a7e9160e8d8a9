"""Centralised logging for nya-chat (console + rotating file)."""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

_LOG_DIR = Path(os.environ.get("NYA_CHAT_LOG_DIR", Path.home() / ".config" / "nya_chat"))
_LOG_FILE = _LOG_DIR / "nya_chat.log"


def setup(name: str = "nya_chat") -> logging.Logger:
    logger = logging.getLogger(name)
    if logger.handlers:          # already initialised
        return logger
    logger.setLevel(logging.DEBUG)

    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s",
                            datefmt="%Y-%m-%d %H:%M:%S")

    # Rotating file handler (1 MB, 3 backups); read-only homes get console only
    try:
        _LOG_DIR.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(_LOG_FILE, maxBytes=1_048_576, backupCount=3,
                                 encoding="utf-8")
    except OSError:
        fh = None
    if fh is not None:
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    # Console handler
    ch = logging.StreamHandler()
    ch.setLevel(logging.INFO)
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    return logger


log = setup()
