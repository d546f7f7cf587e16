"""
Storage key layout.

    videos/{id}            assembled, playable video
    chunks/{id}/{index}    one uploaded slice, pending assembly
    meta/...               session metadata (never written by this service,
                           still swept so old artifacts expire)
"""

import time
from typing import Optional
from urllib.parse import quote
from uuid import UUID

VIDEOS_PREFIX = "videos/"
CHUNKS_PREFIX = "chunks/"
META_PREFIX = "meta/"

SWEPT_PREFIXES = (VIDEOS_PREFIX, CHUNKS_PREFIX, META_PREFIX)

UPLOADED_AT = "uploaded-at"
FILENAME = "filename"

# Reserved and unreserved URL characters, plus "%" so names that arrive
# already percent-encoded are kept as they are
_FILENAME_SAFE = "!#$&'()*+,/:;=?@[]~%"


def video_key(upload_id: UUID) -> str:
    return f"{VIDEOS_PREFIX}{upload_id}"


def chunk_prefix(upload_id: UUID) -> str:
    return f"{CHUNKS_PREFIX}{upload_id}/"


def chunk_key(upload_id: UUID, index: int) -> str:
    return f"{chunk_prefix(upload_id)}{index}"


def parse_chunk_index(key: str) -> Optional[int]:
    """Return the trailing chunk index of ``key``, or None if it has none."""
    suffix = key.rsplit("/", 1)[-1]
    if not suffix.isdigit():
        return None
    return int(suffix)


def timestamp_metadata(now: Optional[float] = None) -> dict[str, str]:
    """Creation timestamp as object metadata, epoch milliseconds."""
    millis = int((time.time() if now is None else now) * 1000)
    return {UPLOADED_AT: str(millis)}



def filename_metadata(filename: Optional[str]) -> dict[str, str]:
    """
    Original file name as object metadata, percent-encoded.

    S3 metadata values must be ASCII, so anything else (accents, CJK,
    control characters) is encoded as UTF-8 escapes.
    """
    if not filename:
        return {}
    return {FILENAME: quote(filename, safe=_FILENAME_SAFE)}
