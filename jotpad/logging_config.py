"""
Logging configuration for jotpad.

Suppress verbose library output by default for better UX.
"""

import logging
import os
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

# HTTP and vendor SDK loggers that are chatty at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "anthropic", "google_genai", "urllib3")


def configure_quiet_mode(quiet: bool = True):
    """
    Configure logging to suppress verbose library output.

    Args:
        quiet: If True, suppress verbose output. If False, show everything.
    """
    if quiet:
        warnings.filterwarnings("ignore")
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.ERROR)
    else:
        warnings.filterwarnings("default")
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.NOTSET)


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    warnings.filterwarnings("default")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Add stderr handler if not already present
    if not any(isinstance(h, logging.StreamHandler) and h.stream == sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    for name in ("jotpad",) + _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG)


def verbose_requested() -> bool:
    return os.environ.get("JOTPAD_VERBOSE", "") not in ("", "0")


def configure_ops_log(app_path) -> RotatingFileHandler:
    """
    Attach the operations log ({app_path}/jotpad-ops.log) to the jotpad logger.

    Sign-ins, migrations, provider switches and fallbacks are recorded at
    INFO whatever the console verbosity. Rotates at 1 MB, keeping three old
    files. The caller owns the returned handler and removes it on close.
    """
    app_path = Path(app_path)
    app_path.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        app_path / "jotpad-ops.log",
        maxBytes=1_000_000,
        backupCount=3,
        encoding="utf-8",
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    logger = logging.getLogger("jotpad")
    logger.addHandler(handler)
    if logger.getEffectiveLevel() > logging.INFO:
        logger.setLevel(logging.INFO)
    return handler
