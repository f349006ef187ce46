"""Domain models for the sitewarden database layer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

ARTIFACT_HTTP = "http"
ARTIFACT_HTTPS = "https"
ARTIFACT_KINDS: frozenset[str] = frozenset([ARTIFACT_HTTP, ARTIFACT_HTTPS])


def as_utc(value: datetime) -> datetime:
    """Return *value* in UTC, treating naive datetimes as already UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class File:
    """A discovered service-definition file."""

    id: int
    path: str
    name: str  # file name without extension
    content: str
    is_configured: bool
    last_modified: datetime


@dataclass
class Service:
    """One service table decoded from a File.

    ``file_id`` is None once the owning file is removed or the row has been
    superseded by a newer decode; such rows are only candidates for deletion.
    """

    id: int
    file_id: int | None
    name: str
    content: str  # canonical TOML of the definition
    state: str
    last_modified: datetime

    @property
    def is_orphan(self) -> bool:
        return self.file_id is None


@dataclass
class ConfigArtifact:
    """A generated proxy configuration fragment on disk."""

    id: int
    service_id: int | None
    type: str  # http | https
    path: str
    last_modified: datetime

    @property
    def is_orphan(self) -> bool:
        return self.service_id is None
