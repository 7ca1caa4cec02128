# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""JSONL event log for update cycles.

Every loop iteration gets its own correlation id, so a single cycle's
check, download and execution events can be grouped afterwards.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class EventClient:
    """Appends cycle events to a JSONL file."""

    def __init__(self, log_path: Path, target: str):
        self.log_path = Path(log_path).expanduser()
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self.target = target
        self.correlation_id = str(uuid.uuid4())

    def start_cycle(self) -> str:
        """Begin a new cycle and return its correlation id."""
        self.correlation_id = str(uuid.uuid4())
        return self.correlation_id

    def emit(
        self,
        event_type: str,
        status: str,
        payload: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> None:
        """Write one event for the current cycle."""
        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "correlation_id": self.correlation_id,
            "target": self.target,
            "status": status,
        }
        if payload:
            event["payload"] = payload
        if error_message:
            event["error_message"] = error_message

        try:
            with open(self.log_path, "a") as f:
                f.write(json.dumps(event) + "\n")
        except OSError as e:
            logger.warning(f"Could not write event to {self.log_path}: {e}")


class NullEventClient:
    """Stand-in used when no event log is configured."""

    correlation_id = ""

    def start_cycle(self) -> str:
        return ""

    def emit(self, *args, **kwargs) -> None:
        pass
