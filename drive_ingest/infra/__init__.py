"""Infra layer utilities (SQLite storage and the file record store)."""

from .records import FileRecord, FileRecordRepository
from .storage import SQLiteManager

__all__ = ["FileRecord", "FileRecordRepository", "SQLiteManager"]
