"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from sitewarden.db.connection import Database
from sitewarden.db.models import ConfigArtifact, Service
from sitewarden.db.store import Store


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".sitewarden.db")
    conn = db.connect()
    Store(conn).ensure_schema()
    yield conn
    conn.close()


@pytest.fixture
def store(tmp_db):
    return Store(tmp_db)


class RecordingWriter:
    """In-memory artifact writer: records calls, writes real files under *directory*.

    Set ``fail_apply`` to make every apply report failure, or add a path to
    ``fail_remove`` to make removing that artifact report failure.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self.calls: list[tuple[str, str, str]] = []
        self.fail_apply = False
        self.fail_remove: set[str] = set()

    def path_for(self, service: Service, kind: str) -> Path:
        return self.directory / f"{service.file_id}-{service.name}.{kind}.conf"

    def apply(self, service: Service, kind: str) -> bool:
        self.calls.append(("apply", service.name, kind))
        if self.fail_apply:
            return False
        self.directory.mkdir(parents=True, exist_ok=True)
        self.path_for(service, kind).write_text(service.content, encoding="utf-8")
        return True

    def remove(self, artifact: ConfigArtifact) -> bool:
        self.calls.append(("remove", artifact.path, artifact.type))
        if artifact.path in self.fail_remove:
            return False
        Path(artifact.path).unlink(missing_ok=True)
        return True


@pytest.fixture
def writer(tmp_path):
    return RecordingWriter(tmp_path / "sites-enabled")
