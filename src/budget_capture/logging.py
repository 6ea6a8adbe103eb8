"""Console/file logging for the ``budget_capture`` package.

Handlers live on the package logger only; ``get_logger("web")`` returns the
child ``budget_capture.web``, which propagates to it. Level and optional log
file come from LOG_LEVEL / LOG_FILE unless passed explicitly.
"""

import logging
import os
import threading
from typing import Optional, Union

ROOT_NAME = "budget_capture"
LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_lock = threading.Lock()
_configured = False


def _parse_level(value: Union[str, int, None]) -> int:
    if isinstance(value, int):
        return value
    name = (value or "INFO").strip().upper()
    if name == "WARN":
        name = "WARNING"
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def configure_logging(
    level: Union[str, int, None] = None,
    log_file: Optional[str] = None,
    *,
    force: bool = False,
) -> logging.Logger:
    """Attach handlers to the package logger (once, unless ``force``)."""
    global _configured
    root = logging.getLogger(ROOT_NAME)
    with _lock:
        if _configured and not force:
            return root
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()

        resolved = _parse_level(level if level is not None else os.environ.get("LOG_LEVEL"))
        formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
        root.setLevel(resolved)

        console = logging.StreamHandler()
        console.setFormatter(formatter)
        root.addHandler(console)

        path = log_file if log_file is not None else os.environ.get("LOG_FILE")
        file_error = None
        if path:
            try:
                file_handler = logging.FileHandler(path, encoding="utf-8")
            except OSError as exc:
                file_error = exc
            else:
                file_handler.setFormatter(formatter)
                root.addHandler(file_handler)

        # Records stop at the package logger.
        root.propagate = False
        _configured = True

    if file_error is not None:
        root.warning(f"LOG_FILE {path!r} could not be opened ({file_error}); logging to console only")
    return root


def get_logger(name: str) -> logging.Logger:
    """Return ``budget_capture.<name>``, configuring the package logger on first use."""
    configure_logging()
    if name == ROOT_NAME or name.startswith(ROOT_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_NAME}.{name}")


def enable_http_debug() -> None:
    """Raise httpx/httpcore loggers to DEBUG (OPENAI_LOG=debug)."""
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.DEBUG)
