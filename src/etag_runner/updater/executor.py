"""Target program executor.

Runs the local copy of the target as a blocking subprocess and reports how
it went without ever raising.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import logging
import os
import shlex
import subprocess
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

OUTPUT_START_MARKER = "--- Target Program Output Starts ---"
OUTPUT_END_MARKER = "--- Target Program Output Ends ---"

# Interpreters picked by file suffix when none is configured
SUFFIX_INTERPRETERS: Dict[str, List[str]] = {
    ".py": [sys.executable],
    ".sh": ["bash"],
    ".lua": ["lua"],
}


@dataclass
class ExecutionResult:
    """Outcome of one target run."""

    returncode: Optional[int] = None
    duration_ms: int = 0
    error: Optional[str] = None
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and self.returncode == 0


class ScriptExecutor:
    """Runs a local script, blocking until it exits."""

    def __init__(
        self,
        interpreter: Optional[str] = None,
        timeout: Optional[float] = None,
        cwd: Optional[Path] = None,
    ):
        """
        Initialize executor.

        Args:
            interpreter: Command line used to run the script, e.g. "craftos --script".
                         When None the interpreter is chosen from the file suffix.
            timeout: Kill the target after this many seconds (None blocks forever)
            cwd: Working directory for the target (default: the script's directory)
        """
        self.interpreter = interpreter
        self.timeout = timeout
        self.cwd = cwd

    def build_command(self, path: Path, args: Sequence[str] = ()) -> List[str]:
        """Build the argv used to run path."""
        if self.interpreter:
            prefix = shlex.split(self.interpreter)
        else:
            prefix = list(SUFFIX_INTERPRETERS.get(path.suffix.lower(), []))
        return [*prefix, str(path), *args]

    def run(
        self,
        path: Path,
        args: Sequence[str] = (),
        env: Optional[Dict[str, str]] = None,
    ) -> ExecutionResult:
        """Run the script at path and wait for it to finish.

        Output is inherited from this process. Launch errors, timeouts and
        non-zero exits are reported in the result.
        """
        path = Path(path).resolve()
        command = self.build_command(path, args)
        run_env = os.environ.copy()
        if env:
            run_env.update(env)

        logger.info(f"Executing target program: {path}...")
        start_time = datetime.now(timezone.utc)
        result = ExecutionResult()

        print(OUTPUT_START_MARKER, flush=True)
        try:
            completed = subprocess.run(
                command,
                cwd=self.cwd or path.parent,
                env=run_env,
                timeout=self.timeout,
            )
            result.returncode = completed.returncode
            if completed.returncode != 0:
                result.error = f"exited with code {completed.returncode}"
        except subprocess.TimeoutExpired:
            result.timed_out = True
            result.error = f"timed out after {self.timeout}s"
        except OSError as e:
            result.error = f"could not start: {e}"
        finally:
            print(OUTPUT_END_MARKER, flush=True)

        result.duration_ms = int((datetime.now(timezone.utc) - start_time).total_seconds() * 1000)
        return result
