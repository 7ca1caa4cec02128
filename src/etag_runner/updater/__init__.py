"""ETag-driven update-and-run loop.

Checks a remote file's ETag, downloads it again when it changes and runs
the local copy, over and over.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

from etag_runner.updater.executor import (
    ExecutionResult,
    ScriptExecutor,
)
from etag_runner.updater.fetcher import (
    CheckResult,
    FetchedContent,
    Fetcher,
    FetchError,
    RetryStrategy,
)
from etag_runner.updater.loop import (
    CycleReport,
    DownloadResult,
    UpdateLoop,
)
from etag_runner.updater.state import UpdaterState
from etag_runner.updater.target import (
    RemoteTarget,
    TargetValidationError,
    validate_filename,
)

__all__ = [
    "RemoteTarget",
    "TargetValidationError",
    "validate_filename",
    "UpdaterState",
    "Fetcher",
    "FetchError",
    "FetchedContent",
    "CheckResult",
    "RetryStrategy",
    "ScriptExecutor",
    "ExecutionResult",
    "UpdateLoop",
    "CycleReport",
    "DownloadResult",
]
