"""
Chunk assembly (finalize).

Turns the chunks under ``chunks/{id}/`` into the single object at
``videos/{id}``:

1. List and order the chunks by their declared index
2. Refuse anything that is not a complete 0..N-1 sequence
3. One chunk: write its bytes straight to the video key
4. Several chunks: multipart upload, part number = index + 1
5. Delete the chunks (best effort, the sweeper catches leftovers)

Order always comes from the index in the key, never from upload time.
The multipart upload is completed or aborted on every path, so a failed
finalize never leaves a half-built object in the bucket.
"""

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from . import keys
from .errors import AssemblyError, IncompleteUploadError, NoChunksError
from .models import MediaConfig, ObjectStore, UploadedPart

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChunkRef:
    """A listed chunk object and the index parsed from its key."""
    index: int
    key: str
    size: int


class ChunkAssembler:
    """Finalizes chunked uploads into playable videos."""

    def __init__(self, store: ObjectStore, config: MediaConfig) -> None:
        self._store = store
        self._config = config

    async def finalize(
        self,
        upload_id: UUID,
        expected_chunks: Optional[int] = None,
        content_type: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> str:
        """
        Assemble all chunks of ``upload_id`` and return the video key.

        Raises:
            NoChunksError: nothing was uploaded under this id
            IncompleteUploadError: indices have gaps, or fewer/more chunks
                than ``expected_chunks`` when the client sent it
            AssemblyError: the store failed while building the video
        """
        chunks = self.list_chunks(upload_id)
        self._check_complete(chunks, expected_chunks)

        video_key = keys.video_key(upload_id)
        content_type = content_type or self._config.default_content_type
        metadata = keys.timestamp_metadata()
        metadata.update(keys.filename_metadata(filename))

        logger.info(
            "Assembling upload",
            extra={
                "upload_id": str(upload_id),
                "chunk_count": len(chunks),
                "size_bytes": sum(c.size for c in chunks),
            }
        )

        if len(chunks) == 1:
            await self._copy_single(chunks[0], video_key, content_type, metadata)
        else:
            await self._multipart_commit(chunks, video_key, content_type, metadata)

        await self._delete_chunks(upload_id, chunks)

        logger.info("Upload assembled", extra={"upload_id": str(upload_id), "key": video_key})

        return video_key

    def list_chunks(self, upload_id: UUID) -> list[ChunkRef]:
        """List the chunks of an upload, sorted by index."""
        chunks = []
        for info in self._store.list_objects(keys.chunk_prefix(upload_id)):
            index = keys.parse_chunk_index(info.key)
            if index is None:
                logger.warning("Ignoring unexpected key under chunk prefix", extra={"key": info.key})
                continue
            chunks.append(ChunkRef(index=index, key=info.key, size=info.size))

        chunks.sort(key=lambda c: c.index)
        return chunks

    def _check_complete(self, chunks: list[ChunkRef], expected: Optional[int]) -> None:
        if not chunks:
            raise NoChunksError()

        present = {c.index for c in chunks}
        total = max(chunks[-1].index + 1, expected or 0)
        missing = [i for i in range(total) if i not in present]

        if missing:
            raise IncompleteUploadError(missing=missing, found=len(chunks), expected=total)
        if expected is not None and len(chunks) != expected:
            raise IncompleteUploadError(missing=[], found=len(chunks), expected=expected)

    async def _read_chunk(self, chunk: ChunkRef) -> bytes:
        stored = await self._store.get(chunk.key)
        if stored is None:
            raise AssemblyError(f"Missing chunk {chunk.index}")
        return stored.read()

    async def _copy_single(
        self,
        chunk: ChunkRef,
        video_key: str,
        content_type: str,
        metadata: dict[str, str],
    ) -> None:
        try:
            data = await self._read_chunk(chunk)
            await self._store.put(video_key, data, content_type=content_type, metadata=metadata)
        except AssemblyError:
            raise
        except Exception as e:
            logger.error(
                "Failed to copy single chunk",
                extra={"key": chunk.key, "error": str(e)}
            )
            raise AssemblyError() from e

    async def _multipart_commit(
        self,
        chunks: list[ChunkRef],
        video_key: str,
        content_type: str,
        metadata: dict[str, str],
    ) -> None:
        try:
            upload_id = await self._store.create_multipart_upload(
                video_key, content_type=content_type, metadata=metadata
            )
        except Exception as e:
            logger.error(
                "Failed to start multipart upload",
                extra={"key": video_key, "error": str(e)}
            )
            raise AssemblyError() from e

        try:
            parts: list[UploadedPart] = []
            for chunk in chunks:
                data = await self._read_chunk(chunk)
                part = await self._store.upload_part(video_key, upload_id, chunk.index + 1, data)
                parts.append(part)

            await self._store.complete_multipart_upload(video_key, upload_id, parts)
        except Exception as e:
            logger.error(
                "Multipart assembly failed, aborting",
                extra={"key": video_key, "multipart_upload_id": upload_id, "error": str(e)}
            )
            await self._abort(video_key, upload_id)
            if isinstance(e, AssemblyError):
                raise
            raise AssemblyError() from e

    async def _abort(self, video_key: str, upload_id: str) -> None:
        try:
            await self._store.abort_multipart_upload(video_key, upload_id)
        except Exception as e:
            logger.warning(
                "Failed to abort multipart upload",
                extra={"key": video_key, "multipart_upload_id": upload_id, "error": str(e)}
            )

    async def _delete_chunks(self, upload_id: UUID, chunks: list[ChunkRef]) -> None:
        for chunk in chunks:
            try:
                await self._store.delete(chunk.key)
            except Exception as e:
                logger.warning(
                    "Failed to delete chunk after assembly",
                    extra={"upload_id": str(upload_id), "key": chunk.key, "error": str(e)}
                )
