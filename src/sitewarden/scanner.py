"""Polling scanner for the watched definitions directory."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

DEFAULT_PATTERN = "*.toml"


class WatchDirectoryMissing(FileNotFoundError):
    """The watched directory does not exist, so no listing can be trusted."""


@dataclass(frozen=True)
class ScanEvent:
    """One file observed by a scan.

    ``read`` returns the file's text; it is only called when the file is new
    or its modification time changed.
    """

    path: str
    name: str
    mod_time: datetime
    read: Callable[[], str] = field(repr=False, compare=False)

    @classmethod
    def from_path(cls, path: Path) -> ScanEvent:
        path = path.resolve()
        stat = path.stat()
        return cls(
            path=str(path),
            name=path.stem,
            mod_time=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            read=lambda: path.read_text(encoding="utf-8"),
        )

    @classmethod
    def from_text(cls, path: str, content: str, mod_time: datetime) -> ScanEvent:
        """Build an event for in-memory content (path is used verbatim)."""
        return cls(path=path, name=Path(path).stem, mod_time=mod_time, read=lambda: content)


class Scanner:
    """List definition files in *directory* matching *pattern* (non-recursive)."""

    def __init__(self, directory: Path | str, pattern: str = DEFAULT_PATTERN) -> None:
        self.directory = Path(directory)
        self.pattern = pattern

    def scan(self) -> list[ScanEvent]:
        """Return one event per matching file, sorted by path.

        Raises:
            WatchDirectoryMissing: If *directory* is not a directory.
        """
        if not self.directory.is_dir():
            raise WatchDirectoryMissing(f"watch directory does not exist: {self.directory}")

        events: list[ScanEvent] = []
        for path in sorted(self.directory.glob(self.pattern)):
            if not path.is_file():
                continue
            try:
                events.append(ScanEvent.from_path(path))
            except FileNotFoundError:
                # Removed between listing and stat; the next scan reports it gone.
                continue
        return events
