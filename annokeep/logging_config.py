"""
Logging configuration for annokeep.

Quiet by default; debug output and a persistent operations log on request.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path


def configure_quiet_mode(quiet: bool = True):
    """
    Configure logging for normal CLI use.

    Args:
        quiet: If True, only warnings and errors from annokeep are shown.
            If False, informational messages are shown too.
    """
    level = logging.WARNING if quiet else logging.INFO
    if quiet:
        warnings.filterwarnings("ignore")
    logging.getLogger("annokeep").setLevel(level)


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    # Re-enable warnings
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

    logging.getLogger("annokeep").setLevel(logging.DEBUG)


def configure_ops_log(store_path):
    """Configure a persistent operations log for a store directory.

    Writes to {store_path}/annokeep-ops.log using a rotating file handler
    (1MB max, 3 backups). Migrations, backups and pruning are recorded at
    INFO. Returns the handler so it can be removed on close().
    """
    log_path = Path(store_path) / "annokeep-ops.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        str(log_path),
        maxBytes=1_000_000,
        backupCount=3,
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    annokeep_logger = logging.getLogger("annokeep")
    annokeep_logger.addHandler(handler)
    # Let INFO through even in quiet mode
    if annokeep_logger.level == logging.NOTSET or annokeep_logger.level > logging.INFO:
        annokeep_logger.setLevel(logging.INFO)

    return handler
