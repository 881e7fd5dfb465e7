"""SQLite connection management and the file_records schema."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from threading import Lock
from typing import Dict

SCHEMA = """
CREATE TABLE IF NOT EXISTS file_records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    remote_id TEXT UNIQUE NOT NULL,
    name TEXT,
    url TEXT,
    size INTEGER,
    content_type TEXT,
    created_time TEXT,
    modified_time TEXT,
    fingerprint TEXT,
    duplicate_of_remote_id TEXT,
    destination_folder_id TEXT,
    external_id TEXT,
    upload_status TEXT NOT NULL DEFAULT 'pending',
    processing_status TEXT,
    last_error TEXT,
    upload_response TEXT,
    verification_response TEXT,
    page_count INTEGER,
    discovered_at TEXT NOT NULL,
    uploaded_at TEXT,
    completed_at TEXT,
    last_checked_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_file_records_upload_status ON file_records(upload_status);
CREATE INDEX IF NOT EXISTS idx_file_records_processing_status ON file_records(processing_status);
CREATE INDEX IF NOT EXISTS idx_file_records_fingerprint ON file_records(fingerprint);
CREATE INDEX IF NOT EXISTS idx_file_records_external_id ON file_records(external_id);
"""


class SQLiteManager:
    """Manage SQLite connections with basic schema guarantees."""

    def __init__(self) -> None:
        self._connections: Dict[Path, sqlite3.Connection] = {}
        self._lock = Lock()

    def connect(self, path: Path) -> sqlite3.Connection:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            if path not in self._connections:
                conn = sqlite3.connect(path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                self._connections[path] = conn
                self._ensure_schema(conn)
            return self._connections[path]

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript(SCHEMA)
        conn.commit()

    def reset(self, path: Path) -> None:
        path = Path(path)
        with self._lock:
            if path in self._connections:
                self._connections[path].close()
                del self._connections[path]
        if path.exists():
            path.unlink()

    def close_all(self) -> None:
        with self._lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()


__all__ = ["SCHEMA", "SQLiteManager"]
