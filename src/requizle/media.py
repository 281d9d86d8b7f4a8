"""
Media attachments: blob store and retrying loader.

Question ``media`` fields hold one of:
- an absolute http(s) URL
- an inline data URI
- a blob-store reference ``idb:<media id>``
- a bare relative path (unresolved import leftovers)

The blob store keeps large files out of the main persisted document.
Database location: <data_dir>/media.db
"""

from __future__ import annotations

import asyncio
import base64
import random
import re
import sqlite3
import string
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

import httpx
from loguru import logger

from src.requizle.errors import MediaLoadError, StorageError
from src.requizle.models import now_ms


MEDIA_REF_PREFIX = "idb:"
_BASE36 = string.digits + string.ascii_lowercase


# =============================================================================
# References
# =============================================================================

def is_stored_media(media_ref: str) -> bool:
    """Check if a media reference points into the blob store."""
    return media_ref.startswith(MEDIA_REF_PREFIX)


def extract_media_id(media_ref: str) -> str:
    """Strip the blob-store prefix from a reference."""
    return media_ref[len(MEDIA_REF_PREFIX):] if is_stored_media(media_ref) else media_ref


def create_media_ref(media_id: str) -> str:
    """Build a blob-store reference from a media ID."""
    return f"{MEDIA_REF_PREFIX}{media_id}"


def generate_media_id() -> str:
    suffix = "".join(random.choices(_BASE36, k=7))
    return f"media-{now_ms()}-{suffix}"


_MIME_RE = re.compile(r"^data:([^;,]+)[;,]")


def mime_type_of(data_uri: str) -> str:
    match = _MIME_RE.match(data_uri)
    return match.group(1) if match else "application/octet-stream"


# =============================================================================
# Store
# =============================================================================

@dataclass
class MediaEntry:
    """A stored media file."""
    id: str
    data: str  # data URI
    filename: str
    mime_type: str
    size: int
    created_at: int


class MediaStore(Protocol):
    """Async blob store keyed by generated media IDs."""

    async def store(self, data_uri: str, filename: str) -> str:
        ...

    async def get(self, media_id: str) -> MediaEntry | None:
        ...

    async def delete(self, media_id: str) -> None:
        ...

    async def list_ids(self) -> list[str]:
        ...

    async def clear(self) -> None:
        ...


class SQLiteMediaStore:
    """
    SQLite-backed media store.

    Blocking sqlite3 calls run in a worker thread; each call opens its own
    connection.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._run(self._init_schema)
        logger.debug(f"SQLiteMediaStore initialized at {self.db_path}")

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        return conn

    def _run(self, fn, *args):
        try:
            with self._connect() as conn:
                return fn(conn, *args)
        except sqlite3.Error as e:
            raise StorageError(f"Media store error: {e}") from e

    @staticmethod
    def _init_schema(conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS media (
                id TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                filename TEXT NOT NULL,
                mime_type TEXT NOT NULL,
                size INTEGER NOT NULL,
                created_at INTEGER NOT NULL
            )
        """)

    async def store(self, data_uri: str, filename: str) -> str:
        """Store a data URI; returns the new media ID (use as idb:<id>)."""
        entry = MediaEntry(
            id=generate_media_id(),
            data=data_uri,
            filename=filename,
            mime_type=mime_type_of(data_uri),
            size=len(data_uri),
            created_at=now_ms(),
        )

        def _insert(conn: sqlite3.Connection) -> None:
            conn.execute(
                "INSERT OR REPLACE INTO media VALUES (?, ?, ?, ?, ?, ?)",
                (entry.id, entry.data, entry.filename, entry.mime_type, entry.size, entry.created_at),
            )

        await asyncio.to_thread(self._run, _insert)
        logger.debug(f"Stored media {entry.id} ({entry.mime_type}, {entry.size} bytes)")
        return entry.id

    async def get(self, media_id: str) -> MediaEntry | None:
        def _select(conn: sqlite3.Connection):
            return conn.execute("SELECT * FROM media WHERE id = ?", (media_id,)).fetchone()

        row = await asyncio.to_thread(self._run, _select)
        if row is None:
            return None
        return MediaEntry(
            id=row["id"],
            data=row["data"],
            filename=row["filename"],
            mime_type=row["mime_type"],
            size=row["size"],
            created_at=row["created_at"],
        )

    async def delete(self, media_id: str) -> None:
        await asyncio.to_thread(
            self._run, lambda conn: conn.execute("DELETE FROM media WHERE id = ?", (media_id,))
        )

    async def list_ids(self) -> list[str]:
        rows = await asyncio.to_thread(
            self._run, lambda conn: conn.execute("SELECT id FROM media ORDER BY created_at").fetchall()
        )
        return [row["id"] for row in rows]

    async def clear(self) -> None:
        await asyncio.to_thread(self._run, lambda conn: conn.execute("DELETE FROM media"))


# =============================================================================
# Loader
# =============================================================================

class MediaLoadStatus(str, Enum):
    LOADED = "loaded"
    FAILED = "failed"


@dataclass
class MediaLoadResult:
    """Outcome of resolving a media reference."""
    status: MediaLoadStatus
    data: str | None = None  # data URI or URL content as data URI
    mime_type: str | None = None
    error: str | None = None
    attempts: int = 0

    @property
    def loaded(self) -> bool:
        return self.status is MediaLoadStatus.LOADED


class MediaLoader:
    """Resolve media references with a bounded, fixed-delay retry."""

    def __init__(
        self,
        media_store: MediaStore | None,
        retry_attempts: int = 3,
        retry_delay: float = 1.0,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
    ):
        """
        Args:
            media_store: Blob store for idb: references
            retry_attempts: Attempts before reporting failure
            retry_delay: Seconds to wait between attempts
            http_client: Client for remote URLs (created lazily if omitted)
            timeout_seconds: Timeout for the lazily created client
        """
        self.media_store = media_store
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = retry_delay
        self._client = http_client
        self._owns_client = http_client is None
        self._timeout = timeout_seconds

    async def close(self) -> None:
        """Close the HTTP client if this loader created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def load(self, media_ref: str) -> MediaLoadResult:
        """
        Resolve a media reference.

        Returns:
            A loaded result, or a failed result once every attempt is used.
        """
        if media_ref.startswith("data:"):
            return MediaLoadResult(
                status=MediaLoadStatus.LOADED,
                data=media_ref,
                mime_type=mime_type_of(media_ref),
                attempts=1,
            )

        if not (is_stored_media(media_ref) or media_ref.startswith(("http://", "https://"))):
            return MediaLoadResult(
                status=MediaLoadStatus.FAILED,
                error=f"Unresolved media path: {media_ref}",
                attempts=0,
            )

        last_error: Exception | None = None
        for attempt in range(1, self.retry_attempts + 1):
            try:
                data, mime_type = await self._load_once(media_ref)
                return MediaLoadResult(
                    status=MediaLoadStatus.LOADED,
                    data=data,
                    mime_type=mime_type,
                    attempts=attempt,
                )
            except (MediaLoadError, StorageError, httpx.HTTPError) as e:
                last_error = e
                logger.warning(
                    f"Media load failed on attempt {attempt}/{self.retry_attempts} "
                    f"for {media_ref[:80]}: {e}"
                )
                if attempt < self.retry_attempts:
                    await asyncio.sleep(self.retry_delay)

        logger.error(f"Media load failed after {self.retry_attempts} attempts: {last_error}")
        return MediaLoadResult(
            status=MediaLoadStatus.FAILED,
            error=str(last_error),
            attempts=self.retry_attempts,
        )

    async def _load_once(self, media_ref: str) -> tuple[str, str]:
        if is_stored_media(media_ref):
            if self.media_store is None:
                raise MediaLoadError("No media store configured")
            entry = await self.media_store.get(extract_media_id(media_ref))
            if entry is None:
                raise MediaLoadError(f"Media {extract_media_id(media_ref)} not found")
            return entry.data, entry.mime_type

        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
            )
        response = await self._client.get(media_ref)
        response.raise_for_status()
        mime_type = response.headers.get("content-type", "application/octet-stream").split(";")[0].strip()
        encoded = base64.b64encode(response.content).decode("ascii")
        return f"data:{mime_type};base64,{encoded}", mime_type
