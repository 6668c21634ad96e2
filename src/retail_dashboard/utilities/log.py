# src/retail_dashboard/utilities/log.py
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

ROOT_LOGGER = "retail_dashboard"

_FORMAT = logging.Formatter(
    fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def get_logger(name: str) -> logging.Logger:
    """
    Module loggers live under the package root logger, so a single
    setup_logging() call configures all of them.
    """
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def setup_logging(
    *,
    verbose: bool,
    log_to_file: bool = False,
    log_file_path: Optional[Path] = None,
    debug: bool = False,
) -> logging.Logger:
    """
    Configure the package root logger:

    - verbose=True     -> log to stderr
    - log_to_file=True -> also log to a rotating file (log_file_path)
    - both False       -> logger disabled (no output at all)

    Safe to call multiple times: existing handlers are replaced.
    """
    logger = logging.getLogger(ROOT_LOGGER)

    # reset handlers to avoid duplicates (tests, repeated runs)
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()

    if not verbose and not log_to_file:
        logger.addHandler(logging.NullHandler())
        logger.propagate = False
        logger.disabled = True
        return logger

    level = logging.DEBUG if debug else logging.INFO
    logger.disabled = False
    logger.setLevel(level)
    logger.propagate = False

    if verbose:
        sh = logging.StreamHandler()
        sh.setLevel(level)
        sh.setFormatter(_FORMAT)
        logger.addHandler(sh)

    if log_to_file:
        if log_file_path is None:
            raise ValueError("log_file_path is required when log_to_file=True")
        path = Path(log_file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(
            path,
            maxBytes=5_000_000,
            backupCount=3,
            encoding="utf-8",
        )
        fh.setLevel(level)
        fh.setFormatter(_FORMAT)
        logger.addHandler(fh)

    return logger
