"""
Key-value storage for worlds, job records, manifests and caches.

Values are JSON-safe dicts. Every entry may carry a metadata dict (returned by
list()) and a TTL; expired entries behave as if absent.
"""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from taste_world.errors import WorldNotFound
from taste_world.interfaces import KeyValueStore
from taste_world.world.types import Track, WorldDefinition

logger = logging.getLogger(__name__)

TRACK_CACHE_TTL = 30 * 24 * 3600


class InMemoryStore:
    """Thread-safe dict-backed store (tests, single-process runs)."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._data: Dict[str, Tuple[str, Dict[str, Any], Optional[float]]] = {}

    def _alive(self, expires_at: Optional[float]) -> bool:
        return expires_at is None or expires_at > self._clock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            raw, _, expires_at = entry
            if not self._alive(expires_at):
                del self._data[key]
                return None
        return json.loads(raw)

    def set(
        self,
        key: str,
        value: Any,
        metadata: Optional[Dict[str, Any]] = None,
        ttl: Optional[float] = None,
    ) -> None:
        # Stored serialized so callers can't mutate what's persisted
        raw = json.dumps(value)
        expires_at = self._clock() + ttl if ttl is not None else None
        with self._lock:
            self._data[key] = (raw, dict(metadata or {}), expires_at)

    def list(self, prefix: str) -> List[Tuple[str, Dict[str, Any]]]:
        with self._lock:
            return sorted(
                (key, dict(meta))
                for key, (_, meta, expires_at) in self._data.items()
                if key.startswith(prefix) and self._alive(expires_at)
            )

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class SqliteStore:
    """Single-table SQLite store with JSON values."""

    def __init__(self, path: str = "data/taste_world.db", clock: Callable[[], float] = time.time):
        self.path = path
        self._clock = clock
        self._lock = threading.Lock()
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                metadata TEXT NOT NULL DEFAULT '{}',
                expires_at REAL
            )
            """
        )
        self._conn.commit()
        logger.debug(f"Opened SQLite store at {path}")

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            row = self._conn.execute(
                "SELECT value, expires_at FROM kv_store WHERE key = ?",
                (key,),
            ).fetchone()
        if row is None:
            return None
        value, expires_at = row
        if expires_at is not None and expires_at <= self._clock():
            self.delete(key)
            return None
        return json.loads(value)

    def set(
        self,
        key: str,
        value: Any,
        metadata: Optional[Dict[str, Any]] = None,
        ttl: Optional[float] = None,
    ) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO kv_store (key, value, metadata, expires_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    metadata = excluded.metadata,
                    expires_at = excluded.expires_at
                """,
                (key, json.dumps(value), json.dumps(metadata or {}), expires_at),
            )
            self._conn.commit()

    def list(self, prefix: str) -> List[Tuple[str, Dict[str, Any]]]:
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT key, metadata FROM kv_store
                WHERE key LIKE ? ESCAPE '\\'
                  AND (expires_at IS NULL OR expires_at > ?)
                ORDER BY key
                """,
                (escaped + "%", self._clock()),
            ).fetchall()
        return [(key, json.loads(meta)) for key, meta in rows]

    def delete(self, key: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()


def create_store(backend: str = "sqlite", path: str = "data/taste_world.db") -> KeyValueStore:
    if backend == "memory":
        return InMemoryStore()
    if backend == "sqlite":
        return SqliteStore(path)
    raise ValueError(f"Unsupported storage backend: {backend}")


# Key layout -----------------------------------------------------------------
def world_key(owner: str) -> str:
    return f"users/{owner}/world.json"


def job_key(job_id: str) -> str:
    return f"job:{job_id}"


def manifest_key(owner: str, job_id: str) -> str:
    return f"manifests/{owner}/{job_id}.json"


def track_key(track_id: str) -> str:
    return f"track:{track_id}"


def save_world(store: KeyValueStore, world: WorldDefinition) -> None:
    """Replace the owner's world wholesale."""
    store.set(
        world_key(world.owner),
        world.to_dict(),
        metadata={"world_id": world.id, "name": world.name, "created_at": world.created_at},
    )
    logger.info(f"Saved world '{world.name}' ({world.id})")


def load_world(store: KeyValueStore, owner: str) -> WorldDefinition:
    payload = store.get(world_key(owner))
    if payload is None:
        raise WorldNotFound(f"No world found for {owner}")
    return WorldDefinition.from_dict(payload)


def cache_tracks(store: KeyValueStore, tracks: List[Track], ttl: float = TRACK_CACHE_TTL) -> None:
    for track in tracks:
        store.set(track_key(track.id), track.to_dict(), ttl=ttl)


def get_cached_track(store: KeyValueStore, track_id: str) -> Optional[Track]:
    payload = store.get(track_key(track_id))
    return Track.from_dict(payload) if payload is not None else None
