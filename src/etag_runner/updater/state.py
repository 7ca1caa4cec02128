"""Update loop state.

Holds the last-seen ETag and the time of the last remote check.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

from dataclasses import dataclass
from typing import Optional


def normalize_etag(etag: Optional[str]) -> Optional[str]:
    """Treat empty or whitespace-only ETags as absent."""
    if etag is None:
        return None
    etag = etag.strip()
    return etag or None


@dataclass
class UpdaterState:
    """In-memory state owned by one update loop.

    Tracks:
    - etag: Last known version token (None until a download succeeds)
    - last_check: Epoch seconds at the start of the last remote check
    - cycles/checks/downloads/executions/failures: Counters for reporting

    Nothing here is persisted. A restart starts from an unknown ETag, which
    forces a fresh download on the first cycle.
    """

    etag: Optional[str] = None
    last_check: int = 0
    cycles: int = 0
    checks: int = 0
    downloads: int = 0
    executions: int = 0
    failures: int = 0

    def seconds_since_check(self, now: float) -> int:
        return int(now) - self.last_check

    def mark_checked(self, now: float) -> None:
        """Record the start of a remote check."""
        self.last_check = int(now)
        self.checks += 1

    def tokens_match(self, etag: Optional[str]) -> bool:
        """Return True when both tokens are present and equal.

        Two absent tokens do not match; an unknown version is always
        treated as changed.
        """
        current = normalize_etag(etag)
        known = normalize_etag(self.etag)
        return current is not None and known is not None and current == known

    def update_token(
        self,
        download_etag: Optional[str],
        check_etag: Optional[str] = None,
    ) -> Optional[str]:
        """Update the stored token after a download response.

        Prefers the download's ETag, falls back to the check's ETag, and
        clears the token when neither is available.

        Returns:
            The new stored token.
        """
        self.etag = normalize_etag(download_etag) or normalize_etag(check_etag)
        return self.etag
