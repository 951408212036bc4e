"""
SQLite collection handling: open, track open handles, and drop.

Each named collection is one SQLite file. Open handles are counted per file so
a drop can report that another session still holds the collection.
"""

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Generator, Optional

from .errors import ClearBlockedError, ClearFailure

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS records (
  key INTEGER PRIMARY KEY AUTOINCREMENT,
  content TEXT NOT NULL,
  embedding BLOB NOT NULL,
  dim INTEGER NOT NULL,
  tags TEXT NOT NULL DEFAULT '[]',
  created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS meta (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL
);
"""

# SQLite side files that belong to a collection
_SIDE_SUFFIXES = ("-wal", "-shm", "-journal")

_open_handles: Dict[str, int] = {}
_registry_lock = threading.Lock()


def _registry_key(path) -> str:
    return str(Path(path).resolve())


def open_handle_count(path) -> int:
    """Number of handles this process currently holds on the collection."""
    with _registry_lock:
        return _open_handles.get(_registry_key(path), 0)


def open_collection(path) -> sqlite3.Connection:
    """Open (creating if needed) the collection file and register the handle."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(p), check_same_thread=False)
    try:
        conn.executescript(SCHEMA_SQL)
    except sqlite3.Error:
        conn.close()
        raise

    with _registry_lock:
        key = _registry_key(p)
        _open_handles[key] = _open_handles.get(key, 0) + 1
    return conn


def close_collection(conn: Optional[sqlite3.Connection], path) -> None:
    """Close a handle obtained from open_collection and unregister it."""
    if conn is None:
        return
    try:
        conn.close()
    finally:
        with _registry_lock:
            key = _registry_key(path)
            remaining = _open_handles.get(key, 0) - 1
            if remaining > 0:
                _open_handles[key] = remaining
            else:
                _open_handles.pop(key, None)


@contextmanager
def get_db(path) -> Generator[sqlite3.Connection, None, None]:
    """Short-lived connection to an existing collection file."""
    conn = sqlite3.connect(str(path))
    try:
        yield conn
    finally:
        conn.close()


def ensure_droppable(path, own_handles: int = 0) -> None:
    """Raise ClearBlockedError if anything besides the caller holds the collection.

    Checks the in-process handle registry first, then probes for a lock held
    by another process with a zero-timeout exclusive transaction.
    """
    others = open_handle_count(path) - own_handles
    if others > 0:
        raise ClearBlockedError(
            f"Database clearing was blocked: {others} other open connection(s) on {Path(path).name}"
        )

    if not Path(path).exists():
        return

    probe = sqlite3.connect(str(path), timeout=0)
    try:
        probe.execute("BEGIN EXCLUSIVE")
        probe.rollback()
    except sqlite3.OperationalError as e:
        raise ClearBlockedError(f"Database clearing was blocked: {e}") from e
    except sqlite3.Error as e:
        raise ClearFailure(f"Error clearing DB: {e}") from e
    finally:
        probe.close()


def drop_collection(path) -> bool:
    """Delete the collection file and its side files. Returns False if nothing existed."""
    p = Path(path)
    existed = False
    for candidate in [p] + [Path(str(p) + suffix) for suffix in _SIDE_SUFFIXES]:
        try:
            candidate.unlink()
            existed = True
        except FileNotFoundError:
            continue
        except PermissionError as e:
            # Windows refuses to delete a file another process has open
            raise ClearBlockedError(f"Database clearing was blocked: {e}") from e
        except OSError as e:
            raise ClearFailure(f"Error clearing DB: {e}") from e
    return existed


def health_check(path) -> bool:
    """Check that the collection file exists and has the expected tables."""
    if not Path(path).exists():
        return False
    try:
        with get_db(path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            table_names = [row[0] for row in cursor.fetchall()]
            return all(table in table_names for table in ("records", "meta"))
    except sqlite3.Error:
        return False
