"""Store: all reads and writes of files, services and config artifacts.

Single interface for the three row kinds. Every mutation runs in an explicit
transaction; nothing outside this module issues SQL. Rows are addressed by
integer id and handed out as dataclass snapshots, never as live objects.

Orphan handling is explicit rather than trigger-driven:
  - removing a file nulls ``services.file_id`` before deleting the file row;
  - superseded services are disowned with ``orphan_services_of()``;
  - orphan deletes re-check ``IS NULL`` so a live row is never removed.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime, timezone

from sitewarden.db.models import ConfigArtifact, File, Service, as_utc
from sitewarden.db.schema import ensure_schema
from sitewarden.states import initial_state, validate_state

logger = logging.getLogger(__name__)

_FILE_COLUMNS = "id, path, name, content, is_configured, last_modified"
_SERVICE_COLUMNS = "id, file_id, name, content, state, last_modified"
_ARTIFACT_COLUMNS = "id, service_id, type, path, last_modified"


class StoreError(Exception):
    """A write was rejected by the database. Nothing was written."""


class StoreConstraintError(StoreError):
    """A unique, foreign-key or ownership constraint rejected a write."""


class StoreBusyError(StoreError):
    """Another writer held the database lock past the busy timeout."""


class Store:
    """Data access layer for files, services and config artifacts.

    Wraps an open sqlite3.Connection in autocommit mode (see
    ``Database.connect``). The connection is owned by the caller and must be
    closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def ensure_schema(self) -> None:
        """Create the schema if missing. Raises SchemaError on failure."""
        ensure_schema(self._conn)

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            self._conn.execute("BEGIN IMMEDIATE")
        except sqlite3.OperationalError as exc:
            raise StoreBusyError(str(exc)) from exc
        try:
            yield self._conn
        except sqlite3.IntegrityError as exc:
            self._conn.execute("ROLLBACK")
            raise StoreConstraintError(str(exc)) from exc
        except sqlite3.OperationalError as exc:
            if self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
            raise StoreBusyError(str(exc)) from exc
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise
        else:
            self._conn.execute("COMMIT")

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def add_file(self, path: str, name: str, content: str, last_modified: datetime) -> File:
        """Insert a newly discovered file, not yet fully applied.

        Raises:
            StoreConstraintError: If a file with *path* is already stored.
        """
        with self._transaction() as conn:
            cur = conn.execute(
                """
                INSERT INTO files (path, name, content, is_configured, last_modified)
                VALUES (?, ?, ?, FALSE, ?)
                """,
                (path, name, content, _to_text(last_modified)),
            )
            file_id = cur.lastrowid
        logger.info("file added", extra={"path": path, "file_id": file_id})
        return File(
            id=file_id,
            path=path,
            name=name,
            content=content,
            is_configured=False,
            last_modified=as_utc(last_modified),
        )

    def update_file(self, file: File, content: str, last_modified: datetime) -> File:
        """Store new content for *file* and reset its fully-applied flag."""
        with self._transaction() as conn:
            conn.execute(
                """
                UPDATE files SET content = ?, last_modified = ?, is_configured = FALSE
                WHERE id = ?
                """,
                (content, _to_text(last_modified), file.id),
            )
        logger.info("file updated", extra={"path": file.path, "file_id": file.id})
        return File(
            id=file.id,
            path=file.path,
            name=file.name,
            content=content,
            is_configured=False,
            last_modified=as_utc(last_modified),
        )

    def mark_file_configured(self, file_id: int) -> None:
        """Flag *file_id* as fully applied."""
        with self._transaction() as conn:
            conn.execute("UPDATE files SET is_configured = TRUE WHERE id = ?", (file_id,))

    def get_file(self, file_id: int) -> File | None:
        row = self._conn.execute(
            f"SELECT {_FILE_COLUMNS} FROM files WHERE id = ?", (file_id,)
        ).fetchone()
        return _row_to_file(row) if row else None

    def get_file_by_path(self, path: str) -> File | None:
        row = self._conn.execute(
            f"SELECT {_FILE_COLUMNS} FROM files WHERE path = ?", (path,)
        ).fetchone()
        return _row_to_file(row) if row else None

    def list_files(self) -> list[File]:
        rows = self._conn.execute(f"SELECT {_FILE_COLUMNS} FROM files ORDER BY path").fetchall()
        return [_row_to_file(r) for r in rows]

    def remove_file(self, path: str) -> File | None:
        """Delete the file stored at *path*, disowning its services first.

        Services are not deleted; they become orphans for the cleaner.

        Returns:
            The removed File, or None if *path* was not stored.
        """
        existing = self.get_file_by_path(path)
        if existing is None:
            return None
        with self._transaction() as conn:
            cur = conn.execute("UPDATE services SET file_id = NULL WHERE file_id = ?", (existing.id,))
            disowned = cur.rowcount
            conn.execute("DELETE FROM files WHERE id = ?", (existing.id,))
        logger.info(
            "file removed",
            extra={"path": path, "file_id": existing.id, "services": disowned},
        )
        return existing

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    def replace_services_for_file(self, file: File, definitions: Mapping[str, str]) -> list[Service]:
        """Insert one fresh service per ``name -> canonical content`` entry.

        Previous services of *file* are left untouched; the caller disowns
        superseded rows afterwards with ``orphan_services_of()``.

        Raises:
            StoreConstraintError: If *file* no longer exists.
        """
        state = initial_state()
        stamp = _to_text(file.last_modified)
        created: list[Service] = []
        with self._transaction() as conn:
            for name, content in definitions.items():
                cur = conn.execute(
                    """
                    INSERT INTO services (file_id, name, content, state, last_modified)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (file.id, name, content, state, stamp),
                )
                created.append(
                    Service(
                        id=cur.lastrowid,
                        file_id=file.id,
                        name=name,
                        content=content,
                        state=state,
                        last_modified=as_utc(file.last_modified),
                    )
                )
        logger.info(
            "services added",
            extra={"path": file.path, "file_id": file.id, "services": [s.name for s in created]},
        )
        return created

    def orphan_services_of(self, file_id: int, keep: Iterable[int] = ()) -> int:
        """Disown every service of *file_id* whose id is not in *keep*.

        Returns:
            Number of services disowned.
        """
        keep_ids = list(keep)
        sql = "UPDATE services SET file_id = NULL WHERE file_id = ?"
        params: list[int] = [file_id]
        if keep_ids:
            sql += f" AND id NOT IN ({','.join('?' * len(keep_ids))})"
            params.extend(keep_ids)
        with self._transaction() as conn:
            cur = conn.execute(sql, params)
        return cur.rowcount

    def get_service(self, service_id: int) -> Service | None:
        row = self._conn.execute(
            f"SELECT {_SERVICE_COLUMNS} FROM services WHERE id = ?", (service_id,)
        ).fetchone()
        return _row_to_service(row) if row else None

    def list_services(self, file_id: int | None = None) -> list[Service]:
        """Return all services, or only those owned by *file_id*."""
        if file_id is None:
            rows = self._conn.execute(f"SELECT {_SERVICE_COLUMNS} FROM services ORDER BY id").fetchall()
        else:
            rows = self._conn.execute(
                f"SELECT {_SERVICE_COLUMNS} FROM services WHERE file_id = ? ORDER BY id",
                (file_id,),
            ).fetchall()
        return [_row_to_service(r) for r in rows]

    def list_live_services(self) -> list[Service]:
        rows = self._conn.execute(
            f"SELECT {_SERVICE_COLUMNS} FROM services WHERE file_id IS NOT NULL ORDER BY id"
        ).fetchall()
        return [_row_to_service(r) for r in rows]

    def list_orphan_services(self) -> list[Service]:
        rows = self._conn.execute(
            f"SELECT {_SERVICE_COLUMNS} FROM services WHERE file_id IS NULL ORDER BY id"
        ).fetchall()
        return [_row_to_service(r) for r in rows]

    def set_service_state(self, service_id: int, state: str) -> None:
        """Persist *state* for a live service.

        Orphaned services are never transitioned; the update is skipped for them.
        """
        validate_state(state)
        with self._transaction() as conn:
            conn.execute(
                "UPDATE services SET state = ? WHERE id = ? AND file_id IS NOT NULL",
                (state, service_id),
            )

    def delete_orphan_services(self, service_ids: Iterable[int]) -> int:
        """Delete the given services if they are still orphaned.

        Returns:
            Number of rows deleted.
        """
        ids = list(service_ids)
        if not ids:
            return 0
        placeholders = ",".join("?" * len(ids))
        with self._transaction() as conn:
            cur = conn.execute(
                f"DELETE FROM services WHERE file_id IS NULL AND id IN ({placeholders})", ids
            )
        return cur.rowcount

    # ------------------------------------------------------------------
    # Config artifacts
    # ------------------------------------------------------------------

    def upsert_artifact(self, service_id: int, kind: str, path: str) -> ConfigArtifact:
        """Record that *path* holds the *kind* artifact of *service_id*.

        An existing row for the same path is re-pointed to *service_id* only
        when its current owner is gone or orphaned.

        Raises:
            StoreConstraintError: If another live service owns *path*.
        """
        now = datetime.now(timezone.utc)
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO config_artifacts (service_id, type, path, last_modified)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET
                    service_id = excluded.service_id,
                    type = excluded.type,
                    last_modified = excluded.last_modified
                WHERE config_artifacts.service_id IS NULL
                    OR config_artifacts.service_id = excluded.service_id
                    OR config_artifacts.service_id IN (SELECT id FROM services WHERE file_id IS NULL)
                """,
                (service_id, kind, path, _to_text(now)),
            )
            row = conn.execute(
                f"SELECT {_ARTIFACT_COLUMNS} FROM config_artifacts WHERE path = ?", (path,)
            ).fetchone()
            if row["service_id"] != service_id:
                raise StoreConstraintError(
                    f"artifact path {path} is owned by live service {row['service_id']}"
                )
        return _row_to_artifact(row)

    def list_artifacts(self, service_id: int | None = None) -> list[ConfigArtifact]:
        """Return all artifacts, or only those owned by *service_id*."""
        if service_id is None:
            rows = self._conn.execute(
                f"SELECT {_ARTIFACT_COLUMNS} FROM config_artifacts ORDER BY id"
            ).fetchall()
        else:
            rows = self._conn.execute(
                f"SELECT {_ARTIFACT_COLUMNS} FROM config_artifacts WHERE service_id = ? ORDER BY id",
                (service_id,),
            ).fetchall()
        return [_row_to_artifact(r) for r in rows]

    def list_orphan_artifacts(self) -> list[ConfigArtifact]:
        rows = self._conn.execute(
            f"SELECT {_ARTIFACT_COLUMNS} FROM config_artifacts WHERE service_id IS NULL ORDER BY id"
        ).fetchall()
        return [_row_to_artifact(r) for r in rows]

    def delete_artifact(self, artifact_id: int, service_id: int) -> bool:
        """Delete an artifact row if *service_id* still owns it.

        The file on disk must already be gone.

        Returns:
            False if the row was re-pointed to another service meanwhile.
        """
        with self._transaction() as conn:
            cur = conn.execute(
                "DELETE FROM config_artifacts WHERE id = ? AND service_id = ?",
                (artifact_id, service_id),
            )
        return cur.rowcount == 1

    def delete_orphan_artifacts(self, artifact_ids: Iterable[int]) -> int:
        """Delete the given artifact rows if they are still orphaned."""
        ids = list(artifact_ids)
        if not ids:
            return 0
        placeholders = ",".join("?" * len(ids))
        with self._transaction() as conn:
            cur = conn.execute(
                f"DELETE FROM config_artifacts WHERE service_id IS NULL AND id IN ({placeholders})",
                ids,
            )
        return cur.rowcount


# ------------------------------------------------------------------
# Timestamp + row → model helpers
# ------------------------------------------------------------------

def _to_text(value: datetime) -> str:
    return as_utc(value).isoformat()


def _from_text(value: str) -> datetime:
    return as_utc(datetime.fromisoformat(value))


def _row_to_file(row: sqlite3.Row) -> File:
    return File(
        id=row["id"],
        path=row["path"],
        name=row["name"],
        content=row["content"],
        is_configured=bool(row["is_configured"]),
        last_modified=_from_text(row["last_modified"]),
    )


def _row_to_service(row: sqlite3.Row) -> Service:
    return Service(
        id=row["id"],
        file_id=row["file_id"],
        name=row["name"],
        content=row["content"],
        state=row["state"],
        last_modified=_from_text(row["last_modified"]),
    )


def _row_to_artifact(row: sqlite3.Row) -> ConfigArtifact:
    return ConfigArtifact(
        id=row["id"],
        service_id=row["service_id"],
        type=row["type"],
        path=row["path"],
        last_modified=_from_text(row["last_modified"]),
    )
