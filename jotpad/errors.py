"""
Error types and error logging for jotpad.

Persistence errors are raised at storage seams and handled by the component
that owns the seam (hybrid store, migration). The CLI logs full stack traces
for debugging while showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class PersistenceError(Exception):
    """A local or remote storage read/write could not be completed."""


class LocalStorageError(PersistenceError):
    """A local storage entry is missing its backing store or is undecodable."""


class CollectionSchemaError(PersistenceError):
    """A stored or received collection does not match its item schema."""


class RemoteStoreError(PersistenceError):
    """Error communicating with the remote collection or settings endpoints."""


def _error_log_path() -> Path:
    """Error log in the app directory (JOTPAD_HOME or ~/.jotpad)."""
    from .config import get_home
    return get_home() / "jotpad-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Append an exception and its traceback to the error log.

    The file is created owner-readable only, since tracebacks can include
    request URLs and user ids. Failure to write is ignored.

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    header = f"[{datetime.now(timezone.utc).isoformat()}]"
    if context:
        header += f" {context}"
    header += f": {type(exc).__name__}: {exc}"
    lines = traceback.format_exception(type(exc), exc, exc.__traceback__)
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write("\n" + "-" * 72 + "\n")
            f.write(header + "\n")
            f.writelines(lines)
    except OSError:
        pass
    return log_path
