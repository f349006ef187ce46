"""SQLite connection layer for the sitewarden store."""

from __future__ import annotations

import sqlite3
from pathlib import Path

# Milliseconds a writer waits for a competing transaction before failing.
_BUSY_TIMEOUT_MS = 5_000


class Database:
    """Per-deployment SQLite database holding files, services and artifacts."""

    def __init__(self, db_path: Path | str) -> None:
        """Remember where the store lives; nothing is opened until connect().

        Args:
            db_path: SQLite file for the store; parent directories are created.
                ``":memory:"`` opens a private in-memory database.
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Open a connection in autocommit mode and return it.

        Transactions are opened explicitly by the store (``BEGIN``/``COMMIT``),
        so the driver's implicit transaction handling is disabled.
        """
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path, isolation_level=None, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute(f"PRAGMA busy_timeout = {_BUSY_TIMEOUT_MS}")
        if isinstance(self.db_path, Path):
            conn.execute("PRAGMA journal_mode = WAL")
        return conn

    def __enter__(self) -> sqlite3.Connection:
        """Open a connection for the duration of a ``with`` block."""
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        """Close the connection opened by ``__enter__``."""
        if self._conn:
            self._conn.close()
            self._conn = None
