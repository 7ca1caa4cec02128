"""Update-and-run loop.

Each iteration walks the same phases:

    CHECK_TIMING -> MAYBE_CHECK_ETAG -> MAYBE_DOWNLOAD -> EXECUTE -> SLEEP

The remote check is throttled by ``check_interval``; execution is not.
A quickly exiting target is therefore re-run every ``idle_sleep`` seconds,
while a slow one naturally pushes the next check past the interval.

Check failures fail open: they are logged and treated as "update needed".
Nothing short of a stop request, KeyboardInterrupt or a kill ends the loop.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import logging
import os
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from etag_runner.config import RunnerConfig
from etag_runner.event_client import EventClient, NullEventClient
from etag_runner.updater.executor import ExecutionResult, ScriptExecutor
from etag_runner.updater.fetcher import CheckResult, Fetcher, FetchError, RetryStrategy
from etag_runner.updater.state import UpdaterState
from etag_runner.updater.target import RemoteTarget

logger = logging.getLogger(__name__)


@dataclass
class DownloadResult:
    """Outcome of the MAYBE_DOWNLOAD phase."""

    ok: bool
    etag: Optional[str] = None
    size: int = 0
    saved: bool = False
    status_code: Optional[int] = None
    error: Optional[str] = None


@dataclass
class CycleReport:
    """What one loop iteration did."""

    cycle: int
    checked: bool = False
    check: Optional[CheckResult] = None
    needs_download: bool = False
    download: Optional[DownloadResult] = None
    execution: Optional[ExecutionResult] = None

    @property
    def downloaded(self) -> bool:
        return self.download is not None and self.download.ok

    @property
    def executed(self) -> bool:
        return self.execution is not None


class UpdateLoop:
    """Keeps one remote target fresh and runs it repeatedly."""

    def __init__(
        self,
        target: RemoteTarget,
        config: Optional[RunnerConfig] = None,
        fetcher: Optional[Fetcher] = None,
        executor: Optional[ScriptExecutor] = None,
        state: Optional[UpdaterState] = None,
        events=None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the loop.

        Args:
            target: Remote file to track and run
            config: Loop settings (default: RunnerConfig())
            fetcher: HTTP fetcher (default: built from config)
            executor: Target executor (default: built from config)
            state: Starting state (default: empty, forces a first download)
            events: Event client (default: JSONL log if events_path is set)
            clock: Returns epoch seconds; injectable for tests
        """
        self.target = target
        self.config = config or RunnerConfig()
        self.fetcher = fetcher or Fetcher(
            timeout=self.config.request_timeout,
            retry_strategy=RetryStrategy(max_retries=self.config.max_retries),
        )
        self.executor = executor or ScriptExecutor(
            interpreter=self.config.interpreter,
            timeout=self.config.execution_timeout,
        )
        self.state = state or UpdaterState()
        if events is None:
            if self.config.events_path:
                events = EventClient(Path(self.config.events_path), target=self.target.url)
            else:
                events = NullEventClient()
        self.events = events
        self.clock = clock
        self._stop = threading.Event()

    # -- phases ---------------------------------------------------------

    def check_timing(self, now: float) -> bool:
        """Return True when enough time has passed for another remote check."""
        elapsed = self.state.seconds_since_check(now)
        if elapsed < self.config.check_interval:
            logger.debug(
                f"Minimum interval ({self.config.check_interval}s) not met "
                f"({elapsed}s elapsed). Skipping check."
            )
            return False
        return True

    def check_etag(self, now: float) -> CheckResult:
        """Check the remote ETag. Failures are reported, never raised."""
        self.state.mark_checked(now)
        logger.info("Checking headers for updates...")
        result = self.fetcher.check(self.target.url, now=now)

        if result.ok:
            logger.info(f"Received Headers - ETag: {result.etag or 'N/A'}")
            self.events.emit(
                "update.checked", "succeeded",
                payload={"etag": result.etag, "status_code": result.status_code},
            )
        else:
            logger.warning(f"Header check failed ({result.error}). Assuming download needed.")
            self.events.emit(
                "update.checked", "failed",
                payload={"status_code": result.status_code},
                error_message=result.error,
            )
        return result

    def needs_download(self, check: Optional[CheckResult], local_exists: bool) -> bool:
        """Decide whether the local copy must be (re)downloaded.

        A missing local file always forces a download, even in iterations
        where the interval throttle skipped the check.
        """
        if not local_exists:
            logger.info(f"Local file '{self.target.local_path}' missing.")
            return True
        if check is None:
            return False
        if not check.ok:
            return True
        if self.state.tokens_match(check.etag):
            logger.info("ETag unchanged.")
            return False
        if check.etag:
            logger.info("ETag changed or first check.")
        else:
            logger.info("ETag unavailable.")
        return True

    def download(self, check: Optional[CheckResult], now: float) -> DownloadResult:
        """Download the target and update the stored ETag.

        The stored token becomes the download's ETag, else the check's
        ETag, else None. A failed request leaves it untouched.
        """
        logger.info(f"Attempting download from {self.target.url}")
        check_etag = check.etag if check is not None and check.ok else None

        try:
            fetched = self.fetcher.download(self.target.url, now=now)
        except FetchError as e:
            logger.error(f"Download failed: {e}")
            self.events.emit(
                "update.download_failed", "failed",
                payload={"status_code": e.status_code},
                error_message=str(e),
            )
            return DownloadResult(ok=False, status_code=e.status_code, error=str(e))

        size = len(fetched.content)
        logger.info(f"Download successful ({size} bytes). Saving to {self.target.local_path}")
        saved = self._save(fetched.content)

        # Token follows the response even when saving failed
        etag = self.state.update_token(fetched.etag, check_etag)
        self.state.downloads += 1
        if etag:
            logger.info(f"Stored ETag updated to: {etag}")
        else:
            logger.info("Could not get valid ETag from check or download.")

        self.events.emit(
            "update.downloaded", "succeeded" if saved else "save_failed",
            payload={"etag": etag, "size": size, "saved": saved},
        )
        return DownloadResult(
            ok=True,
            etag=etag,
            size=size,
            saved=saved,
            status_code=fetched.status_code,
        )

    def _save(self, content: bytes) -> bool:
        """Overwrite the local file with content. Returns False on failure."""
        path = self.target.local_path
        partial = path.with_name(path.name + ".part")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            partial.write_bytes(content)
            os.chmod(partial, 0o755)
            os.replace(partial, path)
        except OSError as e:
            logger.error(f"Failed to save file: {e}")
            partial.unlink(missing_ok=True)
            return False
        logger.info("File saved successfully.")
        return True

    def execute(self) -> Optional[ExecutionResult]:
        """Run the local copy if it exists. Failures are logged, not raised."""
        path = self.target.local_path
        if not path.exists():
            logger.error(f"Target file '{path}' does not exist. Cannot execute.")
            self.events.emit("target.missing", "skipped", payload={"path": str(path)})
            return None

        result = self.executor.run(
            path,
            env={
                "ETAG_RUNNER_URL": self.target.url,
                "ETAG_RUNNER_ETAG": self.state.etag or "",
            },
        )
        self.state.executions += 1

        if result.ok:
            logger.info(f"Target program finished in {result.duration_ms}ms")
            self.events.emit(
                "target.completed", "succeeded",
                payload={"exit_code": 0, "duration_ms": result.duration_ms},
            )
        else:
            self.state.failures += 1
            logger.error(f"Target program '{path.name}' failed: {result.error}")
            self.events.emit(
                "target.failed", "timed_out" if result.timed_out else "failed",
                payload={"exit_code": result.returncode, "duration_ms": result.duration_ms},
                error_message=result.error,
            )
        return result

    # -- driving --------------------------------------------------------

    def run_once(self) -> CycleReport:
        """Run a single iteration, excluding the trailing sleep."""
        now = self.clock()
        self.state.cycles += 1
        self.events.start_cycle()
        report = CycleReport(cycle=self.state.cycles)

        if self.check_timing(now):
            report.checked = True
            report.check = self.check_etag(now)

        local_exists = self.target.local_path.exists()
        report.needs_download = self.needs_download(report.check, local_exists)
        if report.needs_download:
            logger.info("Update required or first run/file missing.")
            report.download = self.download(report.check, now)
        elif report.checked:
            logger.info("No download required.")

        report.execution = self.execute()
        logger.debug("--- Cycle Complete ---")
        return report

    def run_forever(self, max_cycles: Optional[int] = None) -> UpdaterState:
        """Loop until stop() is called, max_cycles is reached or interrupted.

        Returns:
            The final loop state.
        """
        logger.info("Starting ETag check and run loop.")
        logger.info(f"Target URL: {self.target.url}")
        logger.info(f"Local file: {self.target.local_path}")
        logger.info(f"Check interval: {self.config.check_interval}s")
        logger.info("---")

        try:
            while not self._stop.is_set():
                self.run_once()
                if max_cycles is not None and self.state.cycles >= max_cycles:
                    break
                # SLEEP; wakes early on stop()
                if self._stop.wait(self.config.idle_sleep):
                    break
        except KeyboardInterrupt:
            logger.info("Interrupted, stopping.")
        finally:
            self.fetcher.close()

        logger.info(
            f"Stopped after {self.state.cycles} cycles "
            f"({self.state.downloads} downloads, {self.state.executions} runs, "
            f"{self.state.failures} failures)"
        )
        return self.state

    def stop(self) -> None:
        """Ask the loop to stop after the current iteration.

        A target that is already running is not interrupted; use
        execution_timeout to bound it.
        """
        self._stop.set()
