"""
Tests for upload init, chunk storage and single-shot uploads.
"""

from uuid import UUID, uuid4

import pytest

from castdrop.core.media import UploadSessionService, keys
from castdrop.core.media.errors import EmptyUploadError, FileTooLargeError


class TestInitUpload:
    """init_upload plans chunks and writes nothing."""

    def test_plans_chunks_from_declared_size(self, sessions):
        plan = sessions.init_upload(size=25, content_type="video/webm", filename="a.webm")

        assert isinstance(plan.id, UUID)
        assert plan.total_chunks == 3

    def test_writes_nothing_to_storage(self, sessions, store):
        sessions.init_upload(size=25)
        assert store.keys == []

    def test_ids_are_unique(self, sessions):
        ids = {sessions.init_upload(size=5).id for _ in range(50)}
        assert len(ids) == 50

    def test_rejects_size_over_limit(self, sessions):
        """A file one byte over the limit never gets an upload id."""
        with pytest.raises(FileTooLargeError):
            sessions.init_upload(size=101)

    def test_accepts_size_at_limit(self, sessions):
        assert sessions.init_upload(size=100).total_chunks == 10

    def test_rejects_empty_file(self, sessions):
        with pytest.raises(EmptyUploadError, match="empty"):
            sessions.init_upload(size=0)

    def test_uses_injected_id_factory(self, store, media_config):
        fixed = uuid4()
        sessions = UploadSessionService(store, media_config, id_factory=lambda: fixed)

        assert sessions.init_upload(size=1).id == fixed


class TestPutChunk:
    """Chunks are stored by (id, index) with no cross-chunk checks."""

    @pytest.mark.asyncio
    async def test_stores_chunk_under_index_key(self, sessions, store):
        upload_id = uuid4()

        key = await sessions.put_chunk(upload_id, 2, b"abc")

        assert key == keys.chunk_key(upload_id, 2)
        stored = await store.get(key)
        assert stored.read() == b"abc"
        assert "uploaded-at" in stored.info.metadata

    @pytest.mark.asyncio
    async def test_resending_an_index_overwrites(self, sessions, store):
        upload_id = uuid4()

        await sessions.put_chunk(upload_id, 0, b"first")
        await sessions.put_chunk(upload_id, 0, b"second")

        assert (await store.get(keys.chunk_key(upload_id, 0))).read() == b"second"
        assert len(store.keys) == 1

    @pytest.mark.asyncio
    async def test_rejects_empty_chunk(self, sessions, store):
        with pytest.raises(EmptyUploadError):
            await sessions.put_chunk(uuid4(), 0, b"")
        assert store.keys == []

    @pytest.mark.asyncio
    async def test_rejects_chunk_larger_than_chunk_size(self, sessions):
        with pytest.raises(FileTooLargeError):
            await sessions.put_chunk(uuid4(), 0, b"x" * 11)


class TestUploadSingle:
    """Single-shot uploads go straight to the video key."""

    @pytest.mark.asyncio
    async def test_writes_video_with_content_type_and_filename(self, sessions, store):
        video_id = await sessions.upload_single(b"movie", content_type="video/webm", filename="clip.webm")

        stored = await store.get(keys.video_key(video_id))
        assert stored.read() == b"movie"
        assert stored.info.content_type == "video/webm"
        assert stored.info.metadata["filename"] == "clip.webm"
        assert "uploaded-at" in stored.info.metadata

    @pytest.mark.asyncio
    async def test_defaults_content_type(self, sessions, store):
        video_id = await sessions.upload_single(b"movie")

        info = await store.head(keys.video_key(video_id))
        assert info.content_type == "video/mp4"

    @pytest.mark.asyncio
    async def test_rejects_empty_and_oversized_bodies(self, sessions, store):
        with pytest.raises(EmptyUploadError):
            await sessions.upload_single(b"")
        with pytest.raises(FileTooLargeError):
            await sessions.upload_single(b"x" * 101)

        assert store.keys == []

    @pytest.mark.asyncio
    async def test_non_ascii_filename_stored_percent_encoded(self, sessions, store):
        video_id = await sessions.upload_single(b"movie", filename="ビデオ.mp4")

        info = await store.head(keys.video_key(video_id))
        assert info.metadata["filename"] == "%E3%83%93%E3%83%87%E3%82%AA.mp4"
