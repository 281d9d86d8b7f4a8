"""
Durable storage for the persisted document.

- KeyValueStore: async get/set/remove/clear by string key
- SQLiteKeyValueStore: primary store (<data_dir>/state.db)
- JsonFileKeyValueStore: secondary store (<data_dir>/state.json)
- FallbackKeyValueStore: serves from the secondary when the primary fails
- PersistenceManager: load/migrate/save of the ProfileStore document

State transitions never wait on storage: the store is mutated in memory
and ``schedule_save`` mirrors it in the background.
"""

from __future__ import annotations

import asyncio
import json
import random
import sqlite3
import tempfile
from pathlib import Path
from typing import Any, Protocol

from loguru import logger
from pydantic import ValidationError

from config import Settings, get_settings
from src.requizle.errors import MigrationError, StorageError
from src.requizle.migrations import CURRENT_VERSION, detect_version, migrate
from src.requizle.profile_store import ProfileStore
from src.requizle.seed import sample_subjects
from src.requizle.session import DEFAULT_REQUEUE_OFFSETS


# =============================================================================
# Key-value stores
# =============================================================================

class KeyValueStore(Protocol):
    """Async string key-value store."""

    async def get(self, key: str) -> str | None:
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def remove(self, key: str) -> None:
        ...

    async def clear(self) -> None:
        ...


class SQLiteKeyValueStore:
    """Key-value store in a single SQLite table."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._initialized = False

    def _run(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        try:
            if not self._initialized:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with sqlite3.connect(str(self.db_path)) as conn:
                conn.row_factory = sqlite3.Row
                if not self._initialized:
                    conn.execute(
                        "CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
                    )
                    self._initialized = True
                return conn.execute(sql, params).fetchall()
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"SQLite store at {self.db_path} failed: {e}") from e

    async def get(self, key: str) -> str | None:
        rows = await asyncio.to_thread(self._run, "SELECT value FROM kv WHERE key = ?", (key,))
        return rows[0]["value"] if rows else None

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(
            self._run, "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)", (key, value)
        )

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self._run, "DELETE FROM kv WHERE key = ?", (key,))

    async def clear(self) -> None:
        await asyncio.to_thread(self._run, "DELETE FROM kv")


class JsonFileKeyValueStore:
    """Key-value store kept as one JSON object in a file."""

    def __init__(self, path: Path):
        self.path = path

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"{self.path} does not hold a JSON object")
        return data

    def _write(self, data: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Unique temp file per write so overlapping writers never share one
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=self.path.name + ".",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp.write(json.dumps(data))
            Path(tmp.name).replace(self.path)
        except OSError as e:
            raise StorageError(f"Cannot write {self.path}: {e}") from e

    async def get(self, key: str) -> str | None:
        data = await asyncio.to_thread(self._read)
        value = data.get(key)
        return value if isinstance(value, str) else None

    async def set(self, key: str, value: str) -> None:
        def _update() -> None:
            data = self._read()
            data[key] = value
            self._write(data)

        await asyncio.to_thread(_update)

    async def remove(self, key: str) -> None:
        def _update() -> None:
            data = self._read()
            if data.pop(key, None) is not None:
                self._write(data)

        await asyncio.to_thread(_update)

    async def clear(self) -> None:
        await asyncio.to_thread(self._write, {})


class FallbackKeyValueStore:
    """Use ``primary``; on StorageError log it and use ``secondary`` instead."""

    def __init__(self, primary: KeyValueStore, secondary: KeyValueStore):
        self.primary = primary
        self.secondary = secondary

    async def get(self, key: str) -> str | None:
        try:
            return await self.primary.get(key)
        except StorageError as e:
            logger.warning(f"Primary store read failed, using fallback: {e}")
            return await self.secondary.get(key)

    async def set(self, key: str, value: str) -> None:
        try:
            await self.primary.set(key, value)
        except StorageError as e:
            logger.warning(f"Primary store write failed, using fallback: {e}")
            await self.secondary.set(key, value)

    async def remove(self, key: str) -> None:
        try:
            await self.primary.remove(key)
        except StorageError as e:
            logger.warning(f"Primary store remove failed, using fallback: {e}")
            await self.secondary.remove(key)

    async def clear(self) -> None:
        try:
            await self.primary.clear()
        except StorageError as e:
            logger.warning(f"Primary store clear failed: {e}")
        await self.secondary.clear()


# =============================================================================
# Persistence
# =============================================================================

class PersistenceManager:
    """Round-trips a ProfileStore through a KeyValueStore."""

    def __init__(
        self,
        kv_store: KeyValueStore,
        key: str = "quiz-storage",
        seed: bool = True,
        rng: random.Random | None = None,
        requeue_offsets: tuple[int, int] = DEFAULT_REQUEUE_OFFSETS,
    ):
        """
        Args:
            kv_store: Backing store (usually a FallbackKeyValueStore)
            key: Key of the persisted document
            seed: Load the sample library into an empty active profile
            rng: Random source handed to the loaded ProfileStore
            requeue_offsets: Handed to the loaded ProfileStore
        """
        self.kv_store = kv_store
        self.key = key
        self.seed = seed
        self._rng = rng
        self._requeue_offsets = requeue_offsets
        self._pending: set[asyncio.Task] = set()
        self._save_lock = asyncio.Lock()
        self.dirty = False

    async def load(self) -> ProfileStore:
        """
        Read, migrate and build the ProfileStore.

        Missing or unreadable documents yield a fresh store.

        Raises:
            MigrationError: If the document was written by a newer version
        """
        state = await self._read_state()
        store_kwargs = {"rng": self._rng, "requeue_offsets": self._requeue_offsets}

        store: ProfileStore | None = None
        if state is not None:
            try:
                store = ProfileStore.from_state(state, **store_kwargs)
            except ValidationError as e:
                logger.error(f"Persisted state is corrupt, starting fresh: {e.error_count()} error(s)")
        if store is None:
            store = ProfileStore(**store_kwargs)
            self.dirty = True

        if self.seed and store.seed_if_empty(sample_subjects()):
            self.dirty = True

        store.on_change = lambda: self.schedule_save(store)
        return store

    async def _read_state(self) -> dict[str, Any] | None:
        try:
            raw = await self.kv_store.get(self.key)
        except StorageError as e:
            logger.error(f"Cannot read persisted state: {e}")
            return None
        if raw is None:
            logger.debug(f"No persisted state under {self.key!r}")
            return None

        try:
            document = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Persisted state is not valid JSON, starting fresh: {e}")
            return None
        if not isinstance(document, dict):
            logger.error("Persisted state is not an object, starting fresh")
            return None

        if "version" in document and isinstance(document.get("state"), dict):
            state, version = document["state"], document["version"]
        else:
            # Unversioned document written before the envelope existed
            state, version = document, detect_version(document)

        if version != CURRENT_VERSION:
            state = migrate(state, version)
            self.dirty = True
        return state

    async def save(self, store: ProfileStore) -> bool:
        """Write the store; returns False when storage failed."""
        # One write at a time, each serializing the latest state
        async with self._save_lock:
            payload = json.dumps(store.to_document())
            try:
                await self.kv_store.set(self.key, payload)
            except StorageError as e:
                logger.error(f"Failed to persist state: {e}")
                return False
        self.dirty = False
        logger.debug(f"Persisted state ({len(payload)} bytes)")
        return True

    def schedule_save(self, store: ProfileStore) -> asyncio.Task | None:
        """
        Save in the background without blocking the caller.

        Outside a running event loop the store is only marked dirty; call
        ``save`` or ``flush`` later.
        """
        self.dirty = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return None
        task = loop.create_task(self.save(store))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def flush(self, store: ProfileStore) -> None:
        """Wait for background saves, then write once more if still dirty."""
        if self._pending:
            await asyncio.gather(*self._pending)
        if self.dirty:
            await self.save(store)

    async def clear(self) -> None:
        await self.kv_store.clear()

    async def migrate_from_secondary(self) -> bool:
        """
        Move a document left in the secondary store into the primary.

        Returns:
            True if a document was moved
        """
        if not isinstance(self.kv_store, FallbackKeyValueStore):
            return False
        primary, secondary = self.kv_store.primary, self.kv_store.secondary

        try:
            data = await secondary.get(self.key)
            if data is None:
                return False
            await primary.set(self.key, data)
            await secondary.remove(self.key)
        except StorageError as e:
            logger.warning(f"Migration from secondary store failed, data left in place: {e}")
            return False
        logger.info("Moved persisted state from secondary to primary store")
        return True


def create_persistence(settings: Settings | None = None, **kwargs: Any) -> PersistenceManager:
    """PersistenceManager over SQLite with a JSON-file fallback."""
    settings = settings or get_settings()
    kv_store = FallbackKeyValueStore(
        SQLiteKeyValueStore(settings.state_db_path),
        JsonFileKeyValueStore(settings.fallback_file_path),
    )
    kwargs.setdefault("requeue_offsets", settings.get_requeue_offsets())
    return PersistenceManager(kv_store, key=settings.storage_key, **kwargs)
