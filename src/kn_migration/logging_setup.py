"""
Logging for a kn-migration run.

Every run gets its own DEBUG log file; the console only shows warnings
and errors unless --verbose is given.  Operator progress lines are
printed by the CLI, not logged.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime

# Relative to the working directory the command is run from
DEFAULT_LOG_DIR = "logs"

_DETAILED_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"

# Third-party loggers that are too chatty at DEBUG
_QUIET_LOGGERS = {
    "kubernetes": logging.INFO,  # dumps request and response bodies
    "urllib3": logging.WARNING,
}


def _file_handler(log_path: str) -> logging.Handler:
    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(_DETAILED_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def _console_handler(verbose: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    if verbose:
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(_DETAILED_FORMAT, datefmt="%H:%M:%S"))
    else:
        handler.setLevel(logging.WARNING)
        handler.setFormatter(logging.Formatter("%(levelname)-8s  %(message)s"))
    return handler


def setup_logging(
    verbose: bool = False,
    log_prefix: str = "kn_migration",
    log_dir: str | None = None,
) -> str:
    """Send all records to a per-run log file and warnings to stderr.

    The file is ``<log_dir>/<prefix>_<timestamp>.log``; *log_dir*
    defaults to ``logs/`` in the working directory and is created when
    missing.  Handlers installed earlier (e.g. by ``basicConfig``) are
    replaced.

    Returns the path to the log file.

    Raises:
        OSError: If the log directory or file cannot be created.
    """
    log_dir = log_dir or DEFAULT_LOG_DIR
    os.makedirs(log_dir, exist_ok=True)
    timestamp = datetime.now().strftime("%Y-%m-%d-%H%M%S")
    log_path = os.path.abspath(os.path.join(log_dir, f"{log_prefix}_{timestamp}.log"))

    file_handler = _file_handler(log_path)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()
    root_logger.addHandler(file_handler)
    root_logger.addHandler(_console_handler(verbose))

    for name, level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    return log_path
