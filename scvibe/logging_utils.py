from __future__ import annotations

import logging
import os
import platform
import sys
import traceback
from datetime import datetime
from pathlib import Path

_LOGGER = logging.getLogger("scvibe.logging")
LOG_DIR_ENV = "SCVIBE_LOG_DIR"
DEBUG_ENV = "SCVIBE_DEBUG"
_LOG_FILE = "scvibe.log"
_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def debug_enabled() -> bool:
    return bool(os.environ.get(DEBUG_ENV))


def default_log_dir() -> Path:
    env_dir = os.environ.get(LOG_DIR_ENV)
    if env_dir:
        return Path(env_dir).expanduser()
    if platform.system() == "Darwin":
        return Path.home() / "Library" / "Logs" / "scvibe"
    return Path.home() / ".scvibe" / "logs"


def log_path(filename: str, log_dir: str | Path | None = None) -> Path:
    base_dir = Path(log_dir) if log_dir else default_log_dir()
    return base_dir / filename


def configure_logging(level: int | None = None) -> None:
    """Route records to stderr; stdout belongs to the MCP transport."""
    if level is None:
        level = logging.DEBUG if debug_enabled() else logging.INFO
    root = logging.getLogger("scvibe")
    root.setLevel(level)
    if any(getattr(handler, "_scvibe_stderr", False) for handler in root.handlers):
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT))
    setattr(handler, "_scvibe_stderr", True)
    root.addHandler(handler)


def setup_file_logger(
    name: str,
    filename: str,
    *,
    level: int = logging.INFO,
    log_dir: str | Path | None = None,
    propagate: bool = True,
) -> Path:
    logger = logging.getLogger(name)
    path = log_path(filename, log_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    logger.propagate = propagate
    if logger.handlers:
        return path
    logger.setLevel(level)
    handler = logging.FileHandler(path)
    handler.setFormatter(logging.Formatter("%(asctime)s %(message)s"))
    logger.addHandler(handler)
    return path


def log_exception(context: str, exc: BaseException) -> Path | None:
    try:
        path = log_path(_LOG_FILE)
        path.parent.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().isoformat()
        with path.open("a", encoding="utf-8") as handle:
            handle.write(f"[{timestamp}] {context} failed: {type(exc).__name__}: {exc}\n")
            traceback.print_exception(type(exc), exc, exc.__traceback__, file=handle)
            handle.write("\n")
        return path
    except Exception as log_exc:
        _LOGGER.warning("Failed to write log file: %s", log_exc, exc_info=True)
        return None
