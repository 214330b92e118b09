"""
Error types and error logging for annokeep.

Load-time problems (unreadable files, corrupt JSON, foreign data) are
absorbed by the settings store and only logged. Validation errors raised by
explicit user actions such as import or restore propagate to the caller.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class AnnokeepError(Exception):
    """Base class for annokeep errors."""


class StorageError(AnnokeepError):
    """The byte storage failed to read or write."""

    def __init__(self, path: str, cause: BaseException):
        super().__init__(f"Storage error on {path}: {cause}")
        self.path = path
        self.cause = cause


class SettingsParseError(AnnokeepError):
    """Persisted bytes are not valid JSON."""


class UnrecognizedFormatError(AnnokeepError):
    """Valid JSON that matches no known settings schema."""


class ValidationError(AnnokeepError, ValueError):
    """Imported or restored data is not a settings object."""


class MarkdownFormatError(AnnokeepError, ValueError):
    """The Markdown annotations file has a malformed block."""

    def __init__(self, message: str, line: int | None = None):
        super().__init__(f"{message} (line {line})" if line else message)
        self.line = line


def _error_log_path() -> Path:
    """Resolve error log path, respecting ANNOKEEP_STORE_PATH."""
    store = os.environ.get("ANNOKEEP_STORE_PATH")
    if store:
        return Path(store) / "annokeep-errors.log"
    return Path.home() / ".annokeep" / "annokeep-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write error log, don't crash over it
    return log_path
