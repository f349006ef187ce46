"""Database schema DDL and initialization.

All tables are created inside one explicit transaction: either the whole
schema exists afterwards or nothing was written.

Foreign keys never cascade deletes. A removed file leaves its services with
``file_id = NULL`` and a removed service leaves its artifacts with
``service_id = NULL``; the cleaner reaps those rows after tearing down the
artifacts on disk.
"""

from __future__ import annotations

import sqlite3

_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_CREATE_FILES = """
CREATE TABLE IF NOT EXISTS files (
    id              INTEGER NOT NULL PRIMARY KEY,
    path            TEXT NOT NULL UNIQUE,
    name            TEXT NOT NULL,
    content         TEXT NOT NULL,
    is_configured   BOOLEAN NOT NULL DEFAULT FALSE,
    last_modified   DATETIME NOT NULL
)
"""

# name is the table name of the service inside its file; content is the
# canonical TOML of that table.
_CREATE_SERVICES = """
CREATE TABLE IF NOT EXISTS services (
    id              INTEGER NOT NULL PRIMARY KEY,
    file_id         INTEGER REFERENCES files (id) ON DELETE SET NULL ON UPDATE CASCADE,
    name            TEXT NOT NULL,
    content         TEXT NOT NULL,
    state           TEXT NOT NULL,
    last_modified   DATETIME NOT NULL
)
"""

_CREATE_CONFIG_ARTIFACTS = """
CREATE TABLE IF NOT EXISTS config_artifacts (
    id              INTEGER NOT NULL PRIMARY KEY,
    service_id      INTEGER REFERENCES services (id) ON DELETE SET NULL ON UPDATE CASCADE,
    type            TEXT NOT NULL,
    path            TEXT NOT NULL UNIQUE,
    last_modified   DATETIME NOT NULL
)
"""

_CREATE_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_services_file_id ON services (file_id)",
    "CREATE INDEX IF NOT EXISTS idx_config_artifacts_service_id ON config_artifacts (service_id)",
)

_STATEMENTS: tuple[str, ...] = (
    _CREATE_SCHEMA_VERSION,
    _CREATE_FILES,
    _CREATE_SERVICES,
    _CREATE_CONFIG_ARTIFACTS,
    *_CREATE_INDEXES,
)

CURRENT_VERSION = 1


class SchemaError(RuntimeError):
    """Raised when the schema cannot be created. Fatal at startup."""


def ensure_schema(conn: sqlite3.Connection, statements: tuple[str, ...] = _STATEMENTS) -> None:
    """Create every table if missing, atomically and idempotently.

    Args:
        conn: Connection opened by ``Database.connect()`` (autocommit mode).
        statements: DDL to execute; overridable for tests.

    Raises:
        SchemaError: If any statement fails. The transaction is rolled back,
            so no partial schema is left behind.
    """
    try:
        conn.execute("BEGIN IMMEDIATE")
        for sql in statements:
            conn.execute(sql)
        row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        current = row[0] if row[0] is not None else 0
        if current < CURRENT_VERSION:
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (CURRENT_VERSION,))
        conn.execute("COMMIT")
    except sqlite3.Error as exc:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise SchemaError(f"Could not create database schema: {exc}") from exc
