"""Centralized logging for VenueMap."""

from __future__ import annotations

import logging
import os
import sys
import tempfile
from logging.handlers import RotatingFileHandler

LOG_FILENAME = "venuemap.log"
LOG_DIR_ENV = "VENUEMAP_LOG_DIR"


def _candidate_dirs() -> list[str]:
  """Log folders in order of preference: override, app dir, per-user state dir."""
  candidates = []
  if os.environ.get(LOG_DIR_ENV):
    candidates.append(os.environ[LOG_DIR_ENV])
  if getattr(sys, "frozen", False):
    candidates.append(os.path.dirname(sys.executable))
  else:
    candidates.append(os.path.dirname(os.path.abspath(__file__)))
  if sys.platform == "win32":
    if os.environ.get("APPDATA"):
      candidates.append(os.path.join(os.environ["APPDATA"], "VenueMap"))
  else:
    state = os.environ.get("XDG_STATE_HOME", os.path.expanduser("~/.local/state"))
    candidates.append(os.path.join(state, "venuemap"))
  return candidates


def _resolve_log_dir() -> str:
  """First candidate the log file can be appended in, else the temp dir."""
  for folder in _candidate_dirs():
    try:
      os.makedirs(folder, exist_ok=True)
      with open(os.path.join(folder, LOG_FILENAME), "a"):
        pass
      return folder
    except OSError:
      continue
  return tempfile.gettempdir()


_log_dir = _resolve_log_dir()
LOG_PATH = os.path.join(_log_dir, LOG_FILENAME)

_formatter = logging.Formatter(
  "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
  datefmt="%Y-%m-%d %H:%M:%S",
)

try:
  _file_handler = RotatingFileHandler(
    LOG_PATH, maxBytes=1_000_000, backupCount=3, encoding="utf-8",
  )
  _file_handler.setFormatter(_formatter)
except OSError:
  _file_handler = None

_console_handler = logging.StreamHandler()
_console_handler.setFormatter(_formatter)
_console_handler.setLevel(logging.INFO)


def get_logger(name: str) -> logging.Logger:
  """Get a named logger with file and console handlers."""
  logger = logging.getLogger(f"venuemap.{name}")
  if not logger.handlers:
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    if _file_handler:
      logger.addHandler(_file_handler)
    logger.addHandler(_console_handler)
  return logger


def set_console_level(level: int) -> None:
  """The log file always gets everything; this only changes stderr."""
  _console_handler.setLevel(level)
