"""SQLite storage: the local key-value blob store and the server's chunk records."""

import sqlite3
from pathlib import Path
from typing import Any, Dict, Optional, Union


class KeyValueStore:
    """Namespaced string blobs in a single SQLite table."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._init_db()

    def _init_db(self) -> None:
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        self.conn.commit()

    def get(self, key: str) -> Optional[str]:
        row = self.conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        self.conn.execute("""
            INSERT INTO kv (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP
        """, (key, value))
        self.conn.commit()

    def close(self) -> None:
        """Close database connection."""
        self.conn.close()


class ChunkRecordStore:
    """Chunk metadata for the remote vector store, keyed by (file_id, chunk_id).

    The integer row id doubles as the vector index key.
    """

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database schema."""
        cursor = self.conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS chunks (
                id INTEGER PRIMARY KEY,
                file_id TEXT NOT NULL,
                chunk_id TEXT NOT NULL,
                file_name TEXT,
                text TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE (file_id, chunk_id)
            )
        """)
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_chunks_file_id ON chunks(file_id)")
        self.conn.commit()

    def upsert(self, file_id: str, chunk_id: str, file_name: str, text: str) -> int:
        """Insert or update a chunk. Returns its stable row id."""
        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT INTO chunks (file_id, chunk_id, file_name, text) VALUES (?, ?, ?, ?)
            ON CONFLICT(file_id, chunk_id) DO UPDATE SET
                file_name = excluded.file_name,
                text = excluded.text,
                updated_at = CURRENT_TIMESTAMP
        """, (file_id, chunk_id, file_name, text))
        row = cursor.execute(
            "SELECT id FROM chunks WHERE file_id = ? AND chunk_id = ?", (file_id, chunk_id)
        ).fetchone()
        return int(row["id"])

    def commit(self) -> None:
        self.conn.commit()

    def rollback(self) -> None:
        self.conn.rollback()

    def get_chunk(self, row_id: int) -> Optional[Dict[str, Any]]:
        """Get a chunk by row id."""
        row = self.conn.execute("SELECT * FROM chunks WHERE id = ?", (row_id,)).fetchone()
        return dict(row) if row else None

    def count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]

    def close(self) -> None:
        """Close database connection."""
        self.conn.close()
