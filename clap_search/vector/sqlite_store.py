"""
SQLite-backed record store. One file per named collection; each record keeps
its embedding as a float32 BLOB.
"""

import json
import sqlite3
import threading
from pathlib import Path
from typing import Iterable, Iterator, Optional

import numpy as np

from .index import IRecordStore
from .types import Record
from ..core import db
from ..core.errors import InitFailure, NotReadyError, StoreIOError
from ..util.logging import logger

SCAN_PAGE_SIZE = 256


class SqliteRecordStore(IRecordStore):
    """Persistent record store over a single SQLite collection file."""

    def __init__(self, path, name: Optional[str] = None, dimension: Optional[int] = None):
        """
        Args:
            path: SQLite file backing the collection
            name: Collection name used in logs and messages (defaults to the file stem)
            dimension: Pin the embedding dimension instead of taking it from the first insert
        """
        self.path = Path(path)
        self.name = name or self.path.stem
        self._pinned_dimension = dimension
        self._dimension = dimension
        self._conn: Optional[sqlite3.Connection] = None
        self._generation = 0
        self._lock = threading.RLock()

    @property
    def is_initialized(self) -> bool:
        return self._conn is not None

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def initialize(self) -> "SqliteRecordStore":
        with self._lock:
            if self._conn is not None:
                return self

            existed = db.health_check(self.path)
            try:
                conn = db.open_collection(self.path)
            except (sqlite3.Error, OSError) as e:
                logger.log_store_operation("initialize", self.name, {"error": str(e)}, status="failed")
                raise InitFailure(f"Failed to initialize vector database '{self.name}': {e}") from e

            try:
                row = conn.execute("SELECT value FROM meta WHERE key = 'dimension'").fetchone()
            except sqlite3.Error as e:
                db.close_collection(conn, self.path)
                raise InitFailure(f"Failed to read metadata of '{self.name}': {e}") from e

            stored = int(row[0]) if row else None
            if stored is not None and self._pinned_dimension is not None and stored != self._pinned_dimension:
                db.close_collection(conn, self.path)
                raise InitFailure(
                    f"Collection '{self.name}' holds {stored}-d vectors, expected {self._pinned_dimension}"
                )

            self._conn = conn
            self._dimension = stored if stored is not None else self._pinned_dimension

        logger.log_store_operation("initialize", self.name, {
            "path": str(self.path),
            "created": not existed,
            "dimension": self._dimension,
        })
        return self

    def insert(self, content: str, embedding, tags: Iterable[str] = ()) -> int:
        with self._lock:
            self._require_initialized("insert")
            vector = self._validate_embedding(embedding)
            dim = int(vector.shape[0])

            try:
                cursor = self._conn.execute(
                    "INSERT INTO records (content, embedding, dim, tags) VALUES (?, ?, ?, ?)",
                    (content, sqlite3.Binary(vector.tobytes()), dim, json.dumps(sorted(set(tags)))),
                )
                if self._dimension is None:
                    self._conn.execute(
                        "INSERT OR REPLACE INTO meta (key, value) VALUES ('dimension', ?)",
                        (str(dim),),
                    )
                self._conn.commit()
            except sqlite3.Error as e:
                self._conn.rollback()
                logger.log_store_operation("insert", self.name, {"content": content, "error": str(e)}, status="failed")
                raise StoreIOError(f"Error inserting into DB: {e}") from e

            if self._dimension is None:
                self._dimension = dim
            key = int(cursor.lastrowid)

        logger.debug(f"Inserted: {content} (key={key})")
        return key

    def scan(self) -> Iterator[Record]:
        with self._lock:
            self._require_initialized("scan")
            try:
                max_key = self._conn.execute("SELECT COALESCE(MAX(key), 0) FROM records").fetchone()[0]
            except sqlite3.Error as e:
                raise StoreIOError(f"Error searching DB: {e}") from e
            generation = self._generation
        return self._iter_pages(generation, int(max_key))

    def _iter_pages(self, generation: int, max_key: int) -> Iterator[Record]:
        last_key = 0
        while True:
            with self._lock:
                if generation != self._generation or self._conn is None:
                    raise NotReadyError(f"Store '{self.name}' was cleared during scan")
                try:
                    rows = self._conn.execute(
                        "SELECT key, content, embedding, dim, tags FROM records "
                        "WHERE key > ? AND key <= ? ORDER BY key LIMIT ?",
                        (last_key, max_key, SCAN_PAGE_SIZE),
                    ).fetchall()
                except sqlite3.Error as e:
                    raise StoreIOError(f"Error searching DB: {e}") from e

            if not rows:
                return

            for key, content, blob, dim, tags in rows:
                last_key = key
                yield Record(
                    key=int(key),
                    content=content,
                    embedding=np.frombuffer(blob, dtype=np.float32, count=int(dim)).copy(),
                    tags=frozenset(json.loads(tags)),
                )

    def count(self) -> int:
        with self._lock:
            self._require_initialized("count")
            try:
                return int(self._conn.execute("SELECT COUNT(*) FROM records").fetchone()[0])
            except sqlite3.Error as e:
                raise StoreIOError(f"Error counting records: {e}") from e

    def clear(self) -> None:
        with self._lock:
            own = 1 if self._conn is not None else 0
            db.ensure_droppable(self.path, own_handles=own)

            db.close_collection(self._conn, self.path)
            self._conn = None
            self._generation += 1
            self._dimension = self._pinned_dimension

            existed = db.drop_collection(self.path)

        logger.log_store_operation("clear", self.name, {"path": str(self.path), "existed": existed})

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            db.close_collection(self._conn, self.path)
            self._conn = None
            self._generation += 1
