"""
Domain models for video ingestion and delivery.

Everything here is a value: upload plans, byte ranges, object descriptions.
There is no session table anywhere in the system. An upload "exists" only
as the set of chunk keys under its prefix in object storage, so these
models describe what we read back from the store rather than what we keep
in memory.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterable, Iterator, Optional, Protocol
from uuid import UUID


MIB = 1024 * 1024

# S3/R2 multipart uploads accept part numbers 1..10000
MAX_PARTS = 10_000


@dataclass(frozen=True)
class MediaConfig:
    """
    Limits shared by every media component.

    Passed explicitly into each component instead of living as module
    constants, so a test can build a service with a 10-byte chunk size
    and a 50-byte file limit without touching global state.
    """
    max_file_size: int = 1024 * MIB
    chunk_size: int = 80 * MIB
    max_age: timedelta = timedelta(hours=1)
    default_content_type: str = "video/mp4"

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if self.max_file_size <= 0:
            raise ValueError("max_file_size must be positive")
        if self.max_age <= timedelta(0):
            raise ValueError("max_age must be positive")
        if math.ceil(self.max_file_size / self.chunk_size) > MAX_PARTS:
            raise ValueError(
                f"max_file_size needs more than {MAX_PARTS} chunks of chunk_size; "
                "raise chunk_size or lower max_file_size"
            )

    @property
    def max_file_size_mb(self) -> int:
        return round(self.max_file_size / MIB)


@dataclass(frozen=True)
class UploadPlan:
    """Result of initializing a chunked upload."""
    id: UUID
    total_chunks: int

    @classmethod
    def for_size(cls, upload_id: UUID, size: int, chunk_size: int) -> "UploadPlan":
        return cls(id=upload_id, total_chunks=max(1, math.ceil(size / chunk_size)))


@dataclass(frozen=True)
class ByteRange:
    """
    An inclusive byte window within an object.

    Mirrors HTTP semantics: ``bytes=0-99`` is ``ByteRange(0, 99)`` and
    covers 100 bytes.
    """
    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0:
            raise ValueError("Range start cannot be negative")
        if self.end < self.start:
            raise ValueError("Range end must not precede start")

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self, total_size: int) -> str:
        return f"bytes {self.start}-{self.end}/{total_size}"


@dataclass(frozen=True)
class ObjectInfo:
    """One entry from a store listing or head call."""
    key: str
    size: int
    last_modified: datetime
    content_type: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class StoredObject:
    """
    An object fetched from the store.

    ``body`` is an iterator of byte pieces so large videos can be streamed
    to the client without holding them in memory. ``byte_range`` is set
    when only a window of the object was fetched; ``info.size`` is always
    the full object size.

    ``closer`` releases the underlying stream (and its pooled connection)
    when the body is not read to the end.
    """
    info: ObjectInfo
    body: Iterable[bytes]
    byte_range: Optional[ByteRange] = None
    closer: Optional[Callable[[], None]] = None

    def read(self) -> bytes:
        try:
            return b"".join(self.body)
        finally:
            self.close()

    def close(self) -> None:
        if self.closer is not None:
            self.closer()


@dataclass(frozen=True)
class UploadedPart:
    """Completion token for one multipart part."""
    part_number: int
    etag: str


@dataclass
class PrefixSweepResult:
    """Counts for one storage prefix in a sweep run."""
    prefix: str
    scanned: int = 0
    expired: int = 0
    deleted: int = 0
    failed: int = 0


@dataclass
class SweepReport:
    """Outcome of one expiry sweep."""
    cutoff: datetime
    prefixes: list[PrefixSweepResult] = field(default_factory=list)

    @property
    def expired(self) -> int:
        return sum(p.expired for p in self.prefixes)

    @property
    def deleted(self) -> int:
        return sum(p.deleted for p in self.prefixes)

    @property
    def failed(self) -> int:
        return sum(p.failed for p in self.prefixes)


# ---------------------------------------------------------------------------
# Protocols (interfaces)
# ---------------------------------------------------------------------------

class ObjectStore(Protocol):
    """
    Interface for the S3-compatible object store.

    The media services only know this protocol. The R2 client and the
    in-memory client in ``castdrop.infrastructure.storage`` both satisfy it.
    ``get`` and ``head`` return ``None`` for missing keys; every other
    failure is raised as ``StorageError``.
    """

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> None:
        ...

    async def get(
        self,
        key: str,
        byte_range: Optional[ByteRange] = None,
    ) -> Optional[StoredObject]:
        ...

    async def head(self, key: str) -> Optional[ObjectInfo]:
        ...

    def list_objects(self, prefix: str) -> Iterator[ObjectInfo]:
        """Yield every object under ``prefix``, following pagination."""
        ...

    async def delete(self, key: str) -> None:
        """Delete ``key``. Deleting a missing key is not an error."""
        ...

    async def create_multipart_upload(
        self,
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> str:
        """Start a multipart upload and return its upload id."""
        ...

    async def upload_part(
        self,
        key: str,
        upload_id: str,
        part_number: int,
        data: bytes,
    ) -> UploadedPart:
        ...

    async def complete_multipart_upload(
        self,
        key: str,
        upload_id: str,
        parts: list[UploadedPart],
    ) -> None:
        ...

    async def abort_multipart_upload(self, key: str, upload_id: str) -> None:
        ...
