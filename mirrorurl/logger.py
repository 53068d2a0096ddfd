# === FILE: mirrorurl/logger.py ===
"""Logging setup for **mirrorurl**.

* One named logger ``mirrorurl``; modules log through children obtained
  with :func:`get_logger` (``mirrorurl.fetcher``, ``mirrorurl.writer`` ...).
* Console output goes to *stderr*, so ``stdout`` only carries the run
  summary (``mirrorurl mirror ... --pretty`` prints JSON there).
* An optional log file rotates at 5 MiB and keeps three backups.
* :data:`logger` is ready to use right after import::

      from mirrorurl.logger import logger
      logger.info("Mirroring started")

* The CLI calls :func:`init_logging` again with the user's level and file.
"""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Final, Union

_DEFAULT_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_LOGGER_NAME: Final[str] = "mirrorurl"
_MAX_BYTES: Final[int] = 5 * 1024 * 1024
_BACKUPS: Final[int] = 3

_LevelT = Union[int, str]


def _console_handler(fmt: str) -> logging.StreamHandler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def _rotating_handler(file: Path | str, fmt: str) -> RotatingFileHandler:
    path = Path(file).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(path),
        maxBytes=_MAX_BYTES,
        backupCount=_BACKUPS,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def configure(
    *,
    level: _LevelT = "INFO",
    log_file: str | Path | None = None,
    log_format: str = _DEFAULT_FORMAT,
    replace_handlers: bool = True,
) -> logging.Logger:
    """(Re)configure the ``mirrorurl`` logger.

    Parameters
    ----------
    level
        Numeric or textual logging level (e.g. ``"DEBUG"``).
    log_file
        Path to a rotating log file. *None* means console only.
    log_format
        Format string for :class:`logging.Formatter`.
    replace_handlers
        Close and drop the handlers installed by a previous call first.
    """
    root = logging.getLogger(_LOGGER_NAME)
    root.setLevel(level.upper() if isinstance(level, str) else level)

    if replace_handlers:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()

    root.addHandler(_console_handler(log_format))
    if log_file is not None:
        root.addHandler(_rotating_handler(log_file, log_format))

    root.propagate = False
    return root


def init_logging(
    level: _LevelT = "INFO",
    log_file: str | Path | None = None,
    log_format: str = _DEFAULT_FORMAT,
) -> logging.Logger:
    """Shortcut used by the CLI: replace all handlers and apply *level*."""
    return configure(level=level, log_file=log_file, log_format=log_format, replace_handlers=True)


def get_logger(name: str | None = None) -> logging.Logger:
    """Project logger or one of its children (``mirrorurl.<name>``)."""
    if not name:
        return logging.getLogger(_LOGGER_NAME)
    return logging.getLogger(f"{_LOGGER_NAME}.{name}")


logger: logging.Logger = init_logging()

__all__ = ["logger", "configure", "init_logging", "get_logger"]
