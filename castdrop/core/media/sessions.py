"""
Upload sessions: init, chunk storage, and single-shot uploads.

A "session" is never stored. Init only mints an id and tells the client how
many chunks to send; the chunks themselves, keyed by id and index, are the
entire session state. An init that is never followed by uploads therefore
leaves nothing behind to clean up.
"""

import logging
from typing import Callable, Optional
from uuid import UUID, uuid4

from . import keys
from .errors import EmptyUploadError, FileTooLargeError
from .models import MediaConfig, ObjectStore, UploadPlan

logger = logging.getLogger(__name__)


class UploadSessionService:
    """Entry points a client calls before finalize."""

    def __init__(
        self,
        store: ObjectStore,
        config: MediaConfig,
        id_factory: Callable[[], UUID] = uuid4,
    ) -> None:
        self._store = store
        self._config = config
        self._id_factory = id_factory

    def init_upload(
        self,
        size: int,
        content_type: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> UploadPlan:
        """
        Plan a chunked upload for a file of ``size`` bytes.

        Rejects files over the size limit up front so the client never
        starts sending chunks that could not be accepted. Zero-byte files
        are rejected too: every chunk must carry data, so an empty file
        could never be finalized.
        """
        self._check_size(size)

        plan = UploadPlan.for_size(self._id_factory(), size, self._config.chunk_size)

        logger.info(
            "Upload initialized",
            extra={
                "upload_id": str(plan.id),
                "size_bytes": size,
                "total_chunks": plan.total_chunks,
                "content_type": content_type or self._config.default_content_type,
                "video_filename": filename,
            }
        )

        return plan

    async def put_chunk(self, upload_id: UUID, index: int, data: bytes) -> str:
        """
        Store one chunk. Re-sending the same index overwrites it.

        No check against the planned chunk count happens here; finalize is
        the only place that decides whether a set of chunks is complete.
        """
        if not data:
            raise EmptyUploadError("No data")
        if len(data) > self._config.chunk_size:
            raise FileTooLargeError(len(data), self._config.chunk_size)

        key = keys.chunk_key(upload_id, index)
        await self._store.put(key, data, metadata=keys.timestamp_metadata())

        logger.debug(
            "Stored chunk",
            extra={"upload_id": str(upload_id), "index": index, "size_bytes": len(data)}
        )

        return key

    async def upload_single(
        self,
        data: bytes,
        content_type: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> UUID:
        """Store a whole file directly as a video, skipping the chunk flow."""
        if not data:
            raise EmptyUploadError("No data")
        self._check_size(len(data))

        upload_id = self._id_factory()
        metadata = keys.timestamp_metadata()
        metadata.update(keys.filename_metadata(filename))

        await self._store.put(
            keys.video_key(upload_id),
            data,
            content_type=content_type or self._config.default_content_type,
            metadata=metadata,
        )

        logger.info(
            "Stored single-shot upload",
            extra={"upload_id": str(upload_id), "size_bytes": len(data)}
        )

        return upload_id

    def _check_size(self, size: int) -> None:
        if size < 0:
            raise ValueError("Size cannot be negative")
        if size == 0:
            raise EmptyUploadError("File is empty")
        if size > self._config.max_file_size:
            raise FileTooLargeError(size, self._config.max_file_size)
