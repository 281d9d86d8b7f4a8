"""
Unit tests for the media store and loader.
"""

import pytest
import pytest_asyncio
from httpx import AsyncClient, ConnectError, Request, Response

from src.requizle.media import (
    MediaLoader,
    MediaLoadStatus,
    SQLiteMediaStore,
    create_media_ref,
    extract_media_id,
    generate_media_id,
    is_stored_media,
    mime_type_of,
)

PNG_URI = "data:image/png;base64,iVBORw0KGgo="


@pytest.fixture
def media_store(tmp_path):
    return SQLiteMediaStore(tmp_path / "media.db")


@pytest_asyncio.fixture
async def http_client():
    client = AsyncClient()
    yield client
    await client.aclose()


class TestReferences:
    def test_ref_round_trip(self):
        ref = create_media_ref("media-1-abc")

        assert ref == "idb:media-1-abc"
        assert is_stored_media(ref)
        assert extract_media_id(ref) == "media-1-abc"

    def test_plain_values_pass_through(self):
        assert not is_stored_media("https://x")
        assert extract_media_id("media-1") == "media-1"

    def test_generated_id_shape(self):
        media_id = generate_media_id()
        prefix, stamp, suffix = media_id.split("-")

        assert prefix == "media"
        assert stamp.isdigit()
        assert len(suffix) == 7

    def test_mime_type(self):
        assert mime_type_of(PNG_URI) == "image/png"
        assert mime_type_of("data:,hello") == "application/octet-stream"
        assert mime_type_of("not a uri") == "application/octet-stream"


class TestSQLiteMediaStore:
    @pytest.mark.asyncio
    async def test_store_and_get(self, media_store):
        media_id = await media_store.store(PNG_URI, "logo.png")
        entry = await media_store.get(media_id)

        assert entry.data == PNG_URI
        assert entry.filename == "logo.png"
        assert entry.mime_type == "image/png"
        assert entry.size == len(PNG_URI)

    @pytest.mark.asyncio
    async def test_missing_entry(self, media_store):
        assert await media_store.get("media-0-missing") is None

    @pytest.mark.asyncio
    async def test_list_delete_clear(self, media_store):
        first = await media_store.store(PNG_URI, "a.png")
        second = await media_store.store(PNG_URI, "b.png")

        assert set(await media_store.list_ids()) == {first, second}

        await media_store.delete(first)
        assert await media_store.list_ids() == [second]

        await media_store.clear()
        assert await media_store.list_ids() == []


class TestMediaLoader:
    @pytest.mark.asyncio
    async def test_data_uri_inline(self):
        result = await MediaLoader(None).load(PNG_URI)

        assert result.status is MediaLoadStatus.LOADED
        assert result.data == PNG_URI
        assert result.mime_type == "image/png"

    @pytest.mark.asyncio
    async def test_relative_path_fails_without_retry(self):
        result = await MediaLoader(None, retry_delay=0).load("images/cat.png")

        assert result.status is MediaLoadStatus.FAILED
        assert result.attempts == 0
        assert "Unresolved" in result.error

    @pytest.mark.asyncio
    async def test_stored_media(self, media_store):
        media_id = await media_store.store(PNG_URI, "logo.png")

        result = await MediaLoader(media_store, retry_delay=0).load(create_media_ref(media_id))

        assert result.loaded
        assert result.data == PNG_URI
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_missing_stored_media_exhausts_retries(self, media_store, monkeypatch):
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)

        monkeypatch.setattr("src.requizle.media.asyncio.sleep", fake_sleep)

        result = await MediaLoader(media_store, retry_attempts=3, retry_delay=1.0).load("idb:media-0-gone")

        assert result.status is MediaLoadStatus.FAILED
        assert result.attempts == 3
        assert "not found" in result.error
        assert sleeps == [1.0, 1.0]

    @pytest.mark.asyncio
    async def test_remote_retry_then_success(self, http_client, monkeypatch):
        call_count = 0

        async def mock_get(url, **kwargs):
            nonlocal call_count
            call_count += 1
            if call_count < 2:
                raise ConnectError("Connection refused")
            return Response(
                200,
                content=b"GIF89a",
                headers={"content-type": "image/gif"},
                request=Request("GET", url),
            )

        monkeypatch.setattr(http_client, "get", mock_get)
        loader = MediaLoader(None, retry_delay=0, http_client=http_client)

        result = await loader.load("https://example.org/a.gif")

        assert call_count == 2
        assert result.loaded
        assert result.mime_type == "image/gif"
        assert result.data == "data:image/gif;base64,R0lGODlh"

    @pytest.mark.asyncio
    async def test_remote_http_error_fails(self, http_client, monkeypatch):
        call_count = 0

        async def mock_get(url, **kwargs):
            nonlocal call_count
            call_count += 1
            return Response(404, request=Request("GET", url))

        monkeypatch.setattr(http_client, "get", mock_get)
        loader = MediaLoader(None, retry_attempts=2, retry_delay=0, http_client=http_client)

        result = await loader.load("https://example.org/missing.png")

        assert call_count == 2
        assert result.status is MediaLoadStatus.FAILED
        assert result.error is not None

    @pytest.mark.asyncio
    async def test_close_leaves_injected_client_open(self, http_client):
        loader = MediaLoader(None, http_client=http_client)

        await loader.close()

        assert not http_client.is_closed
