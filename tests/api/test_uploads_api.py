"""
API tests for the upload endpoints.

Run through FastAPI's TestClient against the in-memory store, with the
10-byte chunk / 100-byte file limits from conftest.
"""

import asyncio
import logging
from uuid import uuid4

from castdrop.api.dependencies import get_storage_client
from castdrop.core.media import keys
from castdrop.infrastructure.storage.client import MockStorageClient, StorageError
from castdrop.main import app


class FailingPartStore(MockStorageClient):
    """Accepts chunks but fails every multipart part upload."""

    async def upload_part(self, key, upload_id, part_number, data):
        raise StorageError("Part upload failed: simulated")


class DownStore(MockStorageClient):
    async def put(self, key, data, content_type=None, metadata=None):
        raise StorageError("Upload failed: simulated")


def _chunked_upload(client, content: bytes, chunk_size: int = 10) -> str:
    init = client.post("/upload/init", json={"filename": "clip.mp4", "size": len(content)})
    assert init.status_code == 200
    upload_id = init.json()["id"]

    for index in range(init.json()["totalChunks"]):
        piece = content[index * chunk_size:(index + 1) * chunk_size]
        response = client.put(f"/upload/{upload_id}/chunk/{index}", content=piece)
        assert response.status_code == 200

    return upload_id


# ---------------------------------------------------------------------------
# Init
# ---------------------------------------------------------------------------

class TestInitEndpoint:
    """POST /upload/init"""

    def test_returns_id_and_chunk_count(self, client):
        response = client.post(
            "/upload/init",
            json={"filename": "clip.mp4", "contentType": "video/mp4", "size": 25},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["totalChunks"] == 3
        assert len(body["id"]) == 36

    def test_oversized_file_is_413(self, client, store):
        response = client.post("/upload/init", json={"size": 101})

        assert response.status_code == 413
        assert response.json()["error"].startswith("File too large")
        assert store.keys == []

    def test_empty_file_is_400(self, client):
        response = client.post("/upload/init", json={"size": 0})

        assert response.status_code == 400
        assert response.json() == {"error": "File is empty"}

    def test_negative_size_is_400(self, client):
        response = client.post("/upload/init", json={"size": -5})

        assert response.status_code == 400
        assert "size" in response.json()["error"]

    def test_malformed_json_is_400(self, client):
        response = client.post(
            "/upload/init",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid JSON"}


# ---------------------------------------------------------------------------
# Chunks and Finalize
# ---------------------------------------------------------------------------

class TestChunkEndpoint:
    """PUT /upload/{id}/chunk/{index}"""

    def test_stores_chunk(self, client, store):
        upload_id = uuid4()

        response = client.put(f"/upload/{upload_id}/chunk/0", content=b"abc")

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert store.keys == [keys.chunk_key(upload_id, 0)]

    def test_empty_chunk_is_400(self, client, store):
        response = client.put(f"/upload/{uuid4()}/chunk/0", content=b"")

        assert response.status_code == 400
        assert response.json() == {"error": "No data"}
        assert store.keys == []

    def test_chunk_over_chunk_size_is_413(self, client):
        response = client.put(f"/upload/{uuid4()}/chunk/0", content=b"x" * 11)

        assert response.status_code == 413

    def test_invalid_id_or_index_is_404(self, client):
        assert client.put("/upload/not-a-uuid/chunk/0", content=b"a").status_code == 404
        assert client.put(f"/upload/{uuid4()}/chunk/-1", content=b"a").status_code == 404
        assert client.put(f"/upload/{uuid4()}/chunk/10000", content=b"a").status_code == 404


class TestFinalizeEndpoint:
    """POST /upload/{id}/finalize"""

    def test_full_flow_produces_playable_video(self, client, store):
        content = bytes(range(35))
        upload_id = _chunked_upload(client, content)

        response = client.post(f"/upload/{upload_id}/finalize", json={"totalChunks": 4})

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == upload_id
        assert body["url"] == f"http://testserver/video/{upload_id}"
        assert store.keys == [f"videos/{upload_id}"]

        video = client.get(f"/video/{upload_id}")
        assert video.status_code == 200
        assert video.content == content

    def test_finalize_without_body(self, client):
        upload_id = _chunked_upload(client, b"0123456789abc")

        response = client.post(f"/upload/{upload_id}/finalize")

        assert response.status_code == 200

    def test_content_type_from_finalize_body(self, client):
        upload_id = _chunked_upload(client, b"0123456789abc")

        client.post(f"/upload/{upload_id}/finalize", json={"contentType": "video/webm"})

        assert client.head(f"/video/{upload_id}").headers["content-type"] == "video/webm"

    def test_no_chunks_is_400(self, client):
        response = client.post(f"/upload/{uuid4()}/finalize")

        assert response.status_code == 400
        assert response.json() == {"error": "No chunks found"}

    def test_missing_chunk_is_400_and_keeps_chunks(self, client, store):
        upload_id = uuid4()
        client.put(f"/upload/{upload_id}/chunk/0", content=b"a")
        client.put(f"/upload/{upload_id}/chunk/2", content=b"c")

        response = client.post(f"/upload/{upload_id}/finalize")

        assert response.status_code == 400
        assert response.json() == {"error": "Missing chunks: 1"}
        assert len(store.keys) == 2
        assert client.get(f"/video/{upload_id}").status_code == 404

    def test_fewer_chunks_than_declared_is_400(self, client):
        upload_id = uuid4()
        client.put(f"/upload/{upload_id}/chunk/0", content=b"a")

        response = client.post(f"/upload/{upload_id}/finalize", json={"totalChunks": 2})

        assert response.status_code == 400
        assert response.json() == {"error": "Missing chunks: 1"}

    def test_non_ascii_filename_in_body(self, client, store):
        upload_id = _chunked_upload(client, b"0123456789abc")

        response = client.post(f"/upload/{upload_id}/finalize", json={"filename": "vidéo 日本.mp4"})

        assert response.status_code == 200
        info = asyncio.run(store.head(keys.video_key(upload_id)))
        assert info.metadata["filename"] == "vid%C3%A9o%20%E6%97%A5%E6%9C%AC.mp4"

    def test_store_failure_is_500_and_leaves_no_video(self, client):
        store = FailingPartStore()
        app.dependency_overrides[get_storage_client] = lambda: store
        upload_id = _chunked_upload(client, b"0123456789abc")

        response = client.post(f"/upload/{upload_id}/finalize")

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to assemble video"}
        assert store.pending_multipart_uploads == 0
        assert keys.video_key(upload_id) not in store.keys
        assert client.get(f"/video/{upload_id}").status_code == 404


# ---------------------------------------------------------------------------
# Single-Shot Upload
# ---------------------------------------------------------------------------

class TestSingleShotUpload:
    """POST /upload with the whole file as the body."""

    def test_stores_video_with_headers(self, client, store):
        response = client.post(
            "/upload",
            content=b"tiny video",
            headers={"Content-Type": "video/webm", "X-Filename": "my%20clip.webm"},
        )

        assert response.status_code == 200
        video_id = response.json()["id"]
        assert response.json()["url"].endswith(f"/video/{video_id}")

        video = client.get(f"/video/{video_id}")
        assert video.content == b"tiny video"
        assert video.headers["content-type"] == "video/webm"

    def test_empty_body_is_400(self, client):
        response = client.post("/upload", content=b"")

        assert response.status_code == 400

    def test_oversized_body_is_413(self, client, store):
        response = client.post("/upload", content=b"x" * 101)

        assert response.status_code == 413
        assert store.keys == []

    def test_raw_utf8_filename_header(self, client, store):
        response = client.post(
            "/upload",
            content=b"tiny video",
            headers={"X-Filename": "ビデオ.mp4".encode("utf-8")},
        )

        assert response.status_code == 200
        info = asyncio.run(store.head(keys.video_key(response.json()["id"])))
        assert info.metadata["filename"] == keys.filename_metadata("ビデオ.mp4")["filename"]

    def test_storage_failure_is_500_and_logged(self, client, caplog):
        app.dependency_overrides[get_storage_client] = lambda: DownStore()

        with caplog.at_level(logging.ERROR, logger="castdrop.api.routes.uploads"):
            response = client.post("/upload", content=b"tiny video")

        assert response.status_code == 500
        assert response.json() == {"error": "Storage unavailable"}
        assert "Failed to store video" in caplog.text
