"""
Video deletion.

Reached from an explicit delete and from the page-unload beacon, which may
fire any number of times (including zero). Both converge on the same
idempotent operation: afterwards neither the video nor any chunk for the id
exists. Individual delete failures are logged and left for the sweeper.
"""

import logging
from uuid import UUID

from . import keys
from .models import ObjectStore

logger = logging.getLogger(__name__)


class VideoDeleter:
    """Removes a video and any chunks still left for its id."""

    def __init__(self, store: ObjectStore) -> None:
        self._store = store

    async def delete(self, upload_id: UUID) -> int:
        """Delete everything stored for ``upload_id``. Returns successful deletes."""
        removed = 0

        if await self._delete_key(upload_id, keys.video_key(upload_id)):
            removed += 1

        try:
            chunk_keys = [info.key for info in self._store.list_objects(keys.chunk_prefix(upload_id))]
        except Exception as e:
            logger.warning(
                "Failed to list chunks for deletion",
                extra={"upload_id": str(upload_id), "error": str(e)}
            )
            chunk_keys = []

        for key in chunk_keys:
            if await self._delete_key(upload_id, key):
                removed += 1

        logger.info(
            "Deleted video",
            extra={"upload_id": str(upload_id), "orphan_chunks": len(chunk_keys)}
        )

        return removed

    async def _delete_key(self, upload_id: UUID, key: str) -> bool:
        try:
            await self._store.delete(key)
            return True
        except Exception as e:
            logger.warning(
                "Failed to delete object",
                extra={"upload_id": str(upload_id), "key": key, "error": str(e)}
            )
            return False
