"""Key/value backends for the external feed cache.

CacheStore owns key derivation and TTL policy; a backend only stores opaque
strings with an expiry. Backends that can delete keys by glob pattern set
``supports_pattern_delete`` so CacheStore can offer operation-wide and
tenant-wide invalidation.
"""

import fnmatch
import logging
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

from ..config import Settings
from ..config import config as default_settings

logger = logging.getLogger(__name__)


class CacheBackend(ABC):
    """Minimal string key/value store with per-key TTL."""

    supports_pattern_delete: bool = False

    @abstractmethod
    def read(self, key: str) -> Optional[str]:
        """Return the stored value, or None if missing or expired."""

    @abstractmethod
    def write(self, key: str, value: str, ttl: int) -> None:
        """Store ``value`` for ``ttl`` seconds."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove one key. Returns True if it existed."""

    def exists(self, key: str) -> bool:
        return self.read(key) is not None

    def delete_matched(self, pattern: str) -> int:
        """Remove every key matching a glob pattern (``*`` wildcard).

        Only available when ``supports_pattern_delete`` is True.
        """
        raise NotImplementedError(f"{type(self).__name__} cannot delete by pattern")


class MemoryCacheBackend(CacheBackend):
    """Per-process in-memory backend.

    Args:
        clock: Callable returning the current time in seconds; tests inject
            a fake clock to check expiry without sleeping
    """

    supports_pattern_delete = True

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def read(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def write(self, key: str, value: str, ttl: int) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def delete_matched(self, pattern: str) -> int:
        with self._lock:
            keys = [k for k in self._entries if fnmatch.fnmatchcase(k, pattern)]
            for key in keys:
                del self._entries[key]
        return len(keys)

    def expires_at(self, key: str) -> Optional[float]:
        """Expiry timestamp of a key on this backend's clock."""
        with self._lock:
            entry = self._entries.get(key)
        return entry[1] if entry else None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class SQLiteCacheBackend(CacheBackend):
    """SQLite-based cache backend shared by processes on one host.

    Example:
        backend = SQLiteCacheBackend(cache_dir=Path(".cache"))
        backend.write("key", "value", ttl=3600)
        backend.read("key")

        # Clean up expired entries
        deleted = backend.prune_expired()
    """

    supports_pattern_delete = True

    def __init__(
        self,
        cache_dir: Optional[Path] = None,
        db_name: str = "external_feed.db",
    ):
        """Initialize the cache database.

        Args:
            cache_dir: Directory for the cache database (default ./.cache)
            db_name: Name of the SQLite database file
        """
        self.cache_dir = Path(cache_dir) if cache_dir else Path(".cache")
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.db_path = self.cache_dir / db_name

        self._init_db()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS cache_entries (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    stored_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    expires_at TIMESTAMP NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_expires ON cache_entries(expires_at)"
            )
            conn.commit()

    def read(self, key: str) -> Optional[str]:
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                "SELECT value FROM cache_entries WHERE key = ? AND expires_at > ?",
                (key, datetime.now().isoformat()),
            )
            row = cursor.fetchone()
        return row[0] if row else None

    def write(self, key: str, value: str, ttl: int) -> None:
        now = datetime.now()
        expires_at = now + timedelta(seconds=ttl)
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO cache_entries (key, value, stored_at, expires_at)
                VALUES (?, ?, ?, ?)
                """,
                (key, value, now.isoformat(), expires_at.isoformat()),
            )
            conn.commit()

    def delete(self, key: str) -> bool:
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
            conn.commit()
            return cursor.rowcount > 0

    def delete_matched(self, pattern: str) -> int:
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                "DELETE FROM cache_entries WHERE key GLOB ?", (pattern,)
            )
            conn.commit()
            deleted = cursor.rowcount

        if deleted > 0:
            logger.info(f"Deleted {deleted} cache entries matching {pattern}")
        return deleted

    def prune_expired(self) -> int:
        """Remove expired entries from the cache.

        Returns:
            Number of entries deleted
        """
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                "DELETE FROM cache_entries WHERE expires_at <= ?",
                (datetime.now().isoformat(),),
            )
            conn.commit()
            deleted = cursor.rowcount

        if deleted > 0:
            logger.info(f"Pruned {deleted} expired cache entries")
        return deleted

    def get_stats(self) -> dict:
        """Get cache statistics.

        Returns:
            Dict with entry counts, date range, and storage size
        """
        with sqlite3.connect(self.db_path) as conn:
            total = conn.execute("SELECT COUNT(*) FROM cache_entries").fetchone()[0]
            active = conn.execute(
                "SELECT COUNT(*) FROM cache_entries WHERE expires_at > ?",
                (datetime.now().isoformat(),),
            ).fetchone()[0]
            dates = conn.execute(
                "SELECT MIN(stored_at), MAX(stored_at) FROM cache_entries"
            ).fetchone()

        size_bytes = self.db_path.stat().st_size if self.db_path.exists() else 0

        return {
            "total_entries": total,
            "active_entries": active,
            "expired_entries": total - active,
            "oldest_entry": dates[0],
            "newest_entry": dates[1],
            "storage_bytes": size_bytes,
            "storage_mb": round(size_bytes / (1024 * 1024), 2),
        }


_shared_memory_backend: Optional[MemoryCacheBackend] = None


def create_backend(settings: Optional[Settings] = None) -> CacheBackend:
    """Build the backend selected by ``settings.cache_backend``.

    The memory backend is shared per process so that every Manager sees the
    same entries.
    """
    global _shared_memory_backend

    settings = settings or default_settings
    if settings.cache_backend == "sqlite":
        return SQLiteCacheBackend(
            cache_dir=settings.cache_dir, db_name=settings.cache_db_name
        )
    if _shared_memory_backend is None:
        _shared_memory_backend = MemoryCacheBackend()
    return _shared_memory_backend
