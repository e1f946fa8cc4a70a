from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Tuple, Union

LOG_DIR = ".tool-warden"
LOG_NAME = "warden.log"
FALLBACK_LOG_NAME = "tool-warden.log"
DEFAULT_LOG_PATH = f"{LOG_DIR}/{LOG_NAME}"

FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# Markers left on the root logger by configure_logging().
_CONFIGURED = "_tool_warden_configured"
_LOG_PATH = "_tool_warden_log_path"
_HANDLERS = "_tool_warden_handlers"


def default_log_path(workspace_root: Union[str, os.PathLike]) -> Path:
    return Path(os.fspath(workspace_root)) / LOG_DIR / LOG_NAME


def level_for(verbose: bool, configured: int = logging.INFO) -> int:
    return logging.DEBUG if verbose else configured


def _open_log_file(log_path: str) -> Tuple[logging.Handler, str]:
    # A read-only checkout cannot take the log; use the working directory then.
    try:
        Path(os.path.dirname(log_path) or ".").mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_path, encoding="utf-8"), log_path
    except OSError:
        fallback = str(Path.cwd() / FALLBACK_LOG_NAME)
        return logging.FileHandler(fallback, encoding="utf-8"), fallback


def configure_logging(
    log_path: Union[str, os.PathLike] = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    also_console: bool = True,
) -> str:
    """Send sandbox refusals and accepted writes/commands to a log file.

    The console, when enabled, only shows warnings and up unless ``level``
    is DEBUG. Calling this again only adjusts the level; call
    :func:`reset_logging` first to move the log.

    Returns the actual file path being used.
    """

    logger = logging.getLogger()
    logger.setLevel(level)

    if getattr(logger, _CONFIGURED, False):
        return getattr(logger, _LOG_PATH)

    requested = os.fspath(log_path)
    file_handler, chosen_path = _open_log_file(requested)
    file_handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
    handlers: List[logging.Handler] = [file_handler]

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        console.setLevel(level if level <= logging.DEBUG else logging.WARNING)
        handlers.append(console)

    for h in handlers:
        logger.addHandler(h)

    setattr(logger, _CONFIGURED, True)
    setattr(logger, _LOG_PATH, chosen_path)
    setattr(logger, _HANDLERS, handlers)

    logging.getLogger(__name__).info("Logging initialized (requested=%s, actual=%s)", requested, chosen_path)
    return chosen_path


def reset_logging() -> None:
    """Detach and close the handlers configure_logging() installed."""

    logger = logging.getLogger()
    for h in getattr(logger, _HANDLERS, []):
        logger.removeHandler(h)
        h.close()
    for attr in (_CONFIGURED, _LOG_PATH, _HANDLERS):
        if hasattr(logger, attr):
            delattr(logger, attr)
