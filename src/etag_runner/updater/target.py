"""Remote target definition.

Maps a single filename onto the URL it is fetched from and the local path
it is saved to and executed from.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Union
from urllib.parse import quote


class TargetValidationError(Exception):
    """Raised when a target filename is unusable."""

    pass


@dataclass(frozen=True)
class RemoteTarget:
    """A remote file and where its local copy lives.

    Immutable once built; the loop never changes where it fetches from or
    what it runs.
    """

    url: str
    local_path: Path

    @property
    def filename(self) -> str:
        return self.local_path.name

    @classmethod
    def from_filename(
        cls,
        filename: str,
        base_url: str,
        work_dir: Union[str, Path] = ".",
    ) -> "RemoteTarget":
        """Build a target from a filename and the configured base URL.

        Args:
            filename: Relative file name, e.g. "test.lua" or "bin/tool.py".
            base_url: Base URL the filename is appended to.
            work_dir: Directory the local copy is stored under.

        Returns:
            RemoteTarget with url "<base_url>/<filename>".

        Raises:
            TargetValidationError: If the filename or base URL is invalid.
        """
        validate_filename(filename)
        if not base_url or not base_url.strip():
            raise TargetValidationError("base_url is required")

        url = f"{base_url.rstrip('/')}/{quote(filename)}"
        local_path = Path(work_dir).expanduser() / filename
        return cls(url=url, local_path=local_path)


def validate_filename(filename: str) -> None:
    """Validate a target filename.

    Filenames must be:
    - Non-empty
    - Relative (no leading /)
    - Free of .. path segments
    - Free of backslashes

    Raises:
        TargetValidationError: If the filename is invalid.
    """
    if not filename or not filename.strip():
        raise TargetValidationError("target filename cannot be empty")

    if "\\" in filename:
        raise TargetValidationError(f"backslashes not allowed in filename: {filename}")

    path = PurePosixPath(filename)
    if path.is_absolute():
        raise TargetValidationError(f"filename must be relative: {filename}")

    if ".." in path.parts:
        raise TargetValidationError(f"path traversal not allowed in filename: {filename}")

    if filename.endswith("/"):
        raise TargetValidationError(f"filename must name a file: {filename}")
