# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Logging configuration for etag-runner.

Console lines are timestamped and tagged so they stand out from the
target program's own output, which shares the terminal.
"""

import logging
import logging.config
from typing import Any, Dict, Optional

LOG_FORMAT = "%(asctime)s [ETagRunner] %(levelname)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"


def get_logging_config(verbose: bool = False, log_file: Optional[str] = None) -> Dict[str, Any]:
    """Build a dictConfig for the etag_runner logger tree."""
    level = "DEBUG" if verbose else "INFO"
    handlers: Dict[str, Any] = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "stream": "ext://sys.stderr",
        }
    }
    if log_file:
        handlers["file"] = {
            "class": "logging.FileHandler",
            "formatter": "file",
            "filename": log_file,
            "encoding": "utf-8",
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": LOG_FORMAT, "datefmt": DATE_FORMAT},
            "file": {"format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"},
        },
        "handlers": handlers,
        "loggers": {
            "etag_runner": {
                "handlers": list(handlers),
                "level": level,
                "propagate": True,
            },
            # urllib3 logs every retry at WARNING
            "urllib3": {"level": "ERROR"},
        },
    }


def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    """Configure logging for the CLI process."""
    logging.config.dictConfig(get_logging_config(verbose=verbose, log_file=log_file))
