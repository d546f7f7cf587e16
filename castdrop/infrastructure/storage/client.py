"""
Object store clients.

``R2StorageClient`` talks to Cloudflare R2 through boto3; R2 has no egress
fees, which matters for a service whose main traffic is video playback.
``MockStorageClient`` keeps objects in a dict and is what tests and
``R2_MOCK_MODE=true`` use. Both satisfy ``ObjectStore``.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator, Optional, Protocol
from uuid import uuid4

from ...core.media.models import (
    ByteRange,
    ObjectInfo,
    ObjectStore,
    StoredObject,
    UploadedPart,
)

logger = logging.getLogger(__name__)

# Size of the pieces a response body is streamed in
STREAM_CHUNK_SIZE = 1024 * 1024

_NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404"}


class StorageError(Exception):
    """The store rejected or failed a request."""
    pass


@dataclass
class StorageConfig:
    """Bucket coordinates and credentials for an S3-compatible endpoint."""
    access_key_id: str
    secret_access_key: str
    bucket_name: str
    endpoint_url: str
    region: str = "auto"


class StorageClient(ObjectStore, Protocol):
    """``ObjectStore`` plus the bucket check used by the readiness check."""

    async def ping(self) -> None:
        """Raise StorageError if the bucket is unreachable."""
        ...


def _is_not_found(error: Exception) -> bool:
    response = getattr(error, "response", None) or {}
    return response.get("Error", {}).get("Code") in _NOT_FOUND_CODES


class R2StorageClient:
    """
    ``ObjectStore`` on top of a boto3 S3 client pointed at R2.

    boto3 calls block; the async methods exist to satisfy the protocol.
    ``list_objects`` is a plain generator over the paginator.
    """

    def __init__(self, config: StorageConfig, s3_client=None) -> None:
        """``s3_client`` replaces the boto3 client, for tests."""
        self._config = config

        if s3_client is None:
            try:
                import boto3
                from botocore.config import Config
            except ImportError:
                raise ImportError(
                    "R2 storage needs boto3 (pip install boto3)"
                )

            # R2 accepts only SigV4, and path-style keeps the bucket out of the hostname
            boto_config = Config(
                signature_version='s3v4',
                s3={'addressing_style': 'path'},
            )

            s3_client = boto3.client(
                's3',
                endpoint_url=config.endpoint_url,
                aws_access_key_id=config.access_key_id,
                aws_secret_access_key=config.secret_access_key,
                region_name=config.region,
                config=boto_config,
            )

        self._s3_client = s3_client

        logger.info(
            "R2 client ready",
            extra={
                "bucket": config.bucket_name,
                "endpoint": config.endpoint_url,
            }
        )

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> None:
        """Write an object, replacing any existing object at ``key``."""
        params = {
            'Bucket': self._config.bucket_name,
            'Key': key,
            'Body': data,
            'Metadata': metadata or {},
        }
        if content_type:
            params['ContentType'] = content_type

        try:
            self._s3_client.put_object(**params)

            logger.debug(
                "Uploaded object",
                extra={"key": key, "size_bytes": len(data)}
            )

        except Exception as e:
            logger.error(
                "Failed to upload object",
                extra={"key": key, "error": str(e)}
            )
            raise StorageError(f"Upload failed: {e}")

    async def get(
        self,
        key: str,
        byte_range: Optional[ByteRange] = None,
    ) -> Optional[StoredObject]:
        """
        Fetch an object, or only ``byte_range`` of it.

        The body is not read here; it is returned as an iterator over the
        streaming response so callers can forward it piece by piece.
        """
        params = {
            'Bucket': self._config.bucket_name,
            'Key': key,
        }
        if byte_range is not None:
            params['Range'] = f"bytes={byte_range.start}-{byte_range.end}"

        try:
            response = self._s3_client.get_object(**params)
        except Exception as e:
            if _is_not_found(e):
                return None
            logger.error(
                "Failed to download object",
                extra={"key": key, "error": str(e)}
            )
            raise StorageError(f"Download failed: {e}")

        size = response['ContentLength']
        served_range = None
        content_range = response.get('ContentRange')
        if byte_range is not None and content_range:
            # "bytes 0-99/1000"
            span, _, total = content_range.partition(' ')[2].partition('/')
            start, _, end = span.partition('-')
            served_range = ByteRange(int(start), int(end))
            size = int(total)

        info = ObjectInfo(
            key=key,
            size=size,
            last_modified=response.get('LastModified') or datetime.now(timezone.utc),
            content_type=response.get('ContentType'),
            metadata=response.get('Metadata', {}),
        )

        body = response['Body']
        return StoredObject(
            info=info,
            body=body.iter_chunks(chunk_size=STREAM_CHUNK_SIZE),
            byte_range=served_range,
            closer=body.close,
        )

    async def head(self, key: str) -> Optional[ObjectInfo]:
        """Fetch size, type and metadata without the body."""
        try:
            response = self._s3_client.head_object(
                Bucket=self._config.bucket_name,
                Key=key,
            )
        except Exception as e:
            if _is_not_found(e):
                return None
            logger.error(
                "Failed to read object metadata",
                extra={"key": key, "error": str(e)}
            )
            raise StorageError(f"Head failed: {e}")

        return ObjectInfo(
            key=key,
            size=response['ContentLength'],
            last_modified=response['LastModified'],
            content_type=response.get('ContentType'),
            metadata=response.get('Metadata', {}),
        )

    def list_objects(self, prefix: str) -> Iterator[ObjectInfo]:
        """
        List every object under ``prefix``.

        list_objects_v2 returns at most 1000 keys per call, so we
        follow continuation tokens through the paginator.
        """
        try:
            paginator = self._s3_client.get_paginator('list_objects_v2')
            for page in paginator.paginate(
                Bucket=self._config.bucket_name,
                Prefix=prefix,
            ):
                for obj in page.get('Contents', []):
                    yield ObjectInfo(
                        key=obj['Key'],
                        size=obj['Size'],
                        last_modified=obj['LastModified'],
                    )
        except Exception as e:
            logger.error(
                "Failed to list objects",
                extra={"prefix": prefix, "error": str(e)}
            )
            raise StorageError(f"List failed: {e}")

    async def delete(self, key: str) -> None:
        """Delete an object. S3 treats deleting a missing key as success."""
        try:
            self._s3_client.delete_object(
                Bucket=self._config.bucket_name,
                Key=key,
            )

            logger.debug("Deleted object", extra={"key": key})

        except Exception as e:
            if _is_not_found(e):
                return
            logger.error(
                "Failed to delete object",
                extra={"key": key, "error": str(e)}
            )
            raise StorageError(f"Delete failed: {e}")

    async def create_multipart_upload(
        self,
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> str:
        """Start a multipart upload. Returns the store's upload id."""
        params = {
            'Bucket': self._config.bucket_name,
            'Key': key,
            'Metadata': metadata or {},
        }
        if content_type:
            params['ContentType'] = content_type

        try:
            response = self._s3_client.create_multipart_upload(**params)

            logger.debug(
                "Created multipart upload",
                extra={"key": key, "multipart_upload_id": response['UploadId']}
            )

            return response['UploadId']

        except Exception as e:
            logger.error(
                "Failed to create multipart upload",
                extra={"key": key, "error": str(e)}
            )
            raise StorageError(f"Multipart create failed: {e}")

    async def upload_part(
        self,
        key: str,
        upload_id: str,
        part_number: int,
        data: bytes,
    ) -> UploadedPart:
        """Upload one part. Part numbers start at 1."""
        try:
            response = self._s3_client.upload_part(
                Bucket=self._config.bucket_name,
                Key=key,
                UploadId=upload_id,
                PartNumber=part_number,
                Body=data,
            )

            return UploadedPart(part_number=part_number, etag=response['ETag'])

        except Exception as e:
            logger.error(
                "Failed to upload part",
                extra={"key": key, "part_number": part_number, "error": str(e)}
            )
            raise StorageError(f"Part upload failed: {e}")

    async def complete_multipart_upload(
        self,
        key: str,
        upload_id: str,
        parts: list[UploadedPart],
    ) -> None:
        """Commit the parts, in the given order, as one object."""
        try:
            self._s3_client.complete_multipart_upload(
                Bucket=self._config.bucket_name,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={
                    'Parts': [
                        {'ETag': part.etag, 'PartNumber': part.part_number}
                        for part in parts
                    ]
                },
            )

            logger.debug(
                "Completed multipart upload",
                extra={"key": key, "parts": len(parts)}
            )

        except Exception as e:
            logger.error(
                "Failed to complete multipart upload",
                extra={"key": key, "error": str(e)}
            )
            raise StorageError(f"Multipart complete failed: {e}")

    async def abort_multipart_upload(self, key: str, upload_id: str) -> None:
        """Abort a multipart upload so the store releases its parts."""
        try:
            self._s3_client.abort_multipart_upload(
                Bucket=self._config.bucket_name,
                Key=key,
                UploadId=upload_id,
            )

            logger.info(
                "Aborted multipart upload",
                extra={"key": key, "multipart_upload_id": upload_id}
            )

        except Exception as e:
            logger.error(
                "Failed to abort multipart upload",
                extra={"key": key, "error": str(e)}
            )
            raise StorageError(f"Multipart abort failed: {e}")

    async def ping(self) -> None:
        """Check that the bucket exists and our credentials can reach it."""
        try:
            self._s3_client.head_bucket(Bucket=self._config.bucket_name)
        except Exception as e:
            raise StorageError(f"Bucket unreachable: {e}")


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------

@dataclass
class _MockObject:
    data: bytes
    content_type: Optional[str]
    metadata: dict[str, str]
    last_modified: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class _MockMultipartUpload:
    key: str
    content_type: Optional[str]
    metadata: dict[str, str]
    parts: dict[int, tuple[str, bytes]] = field(default_factory=dict)


class MockStorageClient:
    """
    Dict-backed ``ObjectStore``.

    Follows the S3 behaviour the media services depend on: missing keys
    come back as None, deleting twice is fine, and multipart parts only
    turn into an object on complete. Objects vanish with the process.
    """

    def __init__(self) -> None:
        # {key: object} and {multipart upload id: in-progress upload}
        self._objects: dict[str, _MockObject] = {}
        self._multipart: dict[str, _MockMultipartUpload] = {}
        logger.info("Using in-memory object store")

    @property
    def keys(self) -> list[str]:
        return sorted(self._objects)

    @property
    def pending_multipart_uploads(self) -> int:
        return len(self._multipart)

    def backdate(self, key: str, moment: datetime) -> None:
        """Set an object's last-modified time, for expiry testing."""
        if key not in self._objects:
            raise StorageError(f"Object not found: {key}")
        self._objects[key].last_modified = moment

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> None:
        """Store object in memory."""
        _check_metadata(key, metadata)
        self._objects[key] = _MockObject(bytes(data), content_type, dict(metadata or {}))

        logger.debug(
            "Stored object in mock storage",
            extra={"key": key, "size_bytes": len(data)}
        )

    async def get(
        self,
        key: str,
        byte_range: Optional[ByteRange] = None,
    ) -> Optional[StoredObject]:
        """Retrieve object from memory."""
        obj = self._objects.get(key)
        if obj is None:
            return None

        data = obj.data
        served_range = None
        if byte_range is not None:
            end = min(byte_range.end, len(obj.data) - 1)
            served_range = ByteRange(byte_range.start, end)
            data = obj.data[byte_range.start:end + 1]

        return StoredObject(
            info=self._info(key, obj),
            body=_pieces(data),
            byte_range=served_range,
        )

    async def head(self, key: str) -> Optional[ObjectInfo]:
        obj = self._objects.get(key)
        return None if obj is None else self._info(key, obj)

    def list_objects(self, prefix: str) -> Iterator[ObjectInfo]:
        for key in sorted(self._objects):
            obj = self._objects.get(key)
            if obj is not None and key.startswith(prefix):
                yield self._info(key, obj)

    async def delete(self, key: str) -> None:
        """Delete object from memory, ignoring missing keys."""
        self._objects.pop(key, None)

    async def create_multipart_upload(
        self,
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> str:
        _check_metadata(key, metadata)
        upload_id = uuid4().hex
        self._multipart[upload_id] = _MockMultipartUpload(key, content_type, dict(metadata or {}))
        return upload_id

    async def upload_part(
        self,
        key: str,
        upload_id: str,
        part_number: int,
        data: bytes,
    ) -> UploadedPart:
        upload = self._get_multipart(key, upload_id)
        etag = f'"{hashlib.md5(data).hexdigest()}"'
        upload.parts[part_number] = (etag, bytes(data))
        return UploadedPart(part_number=part_number, etag=etag)

    async def complete_multipart_upload(
        self,
        key: str,
        upload_id: str,
        parts: list[UploadedPart],
    ) -> None:
        """Concatenate the listed parts into an object, as S3 does."""
        upload = self._get_multipart(key, upload_id)

        numbers = [part.part_number for part in parts]
        if not parts or numbers != sorted(set(numbers)):
            raise StorageError("Parts must be listed in ascending order")

        data = []
        for part in parts:
            stored = upload.parts.get(part.part_number)
            if stored is None or stored[0] != part.etag:
                raise StorageError(f"Invalid part {part.part_number}")
            data.append(stored[1])

        del self._multipart[upload_id]
        self._objects[key] = _MockObject(b"".join(data), upload.content_type, upload.metadata)

    async def abort_multipart_upload(self, key: str, upload_id: str) -> None:
        self._get_multipart(key, upload_id)
        del self._multipart[upload_id]

    async def ping(self) -> None:
        return None

    def _get_multipart(self, key: str, upload_id: str) -> _MockMultipartUpload:
        upload = self._multipart.get(upload_id)
        if upload is None or upload.key != key:
            raise StorageError(f"No such multipart upload: {upload_id}")
        return upload

    @staticmethod
    def _info(key: str, obj: _MockObject) -> ObjectInfo:
        return ObjectInfo(
            key=key,
            size=len(obj.data),
            last_modified=obj.last_modified,
            content_type=obj.content_type,
            metadata=dict(obj.metadata),
        )


def _check_metadata(key: str, metadata: Optional[dict[str, str]]) -> None:
    """botocore refuses non-ASCII metadata before sending; so do we."""
    for name, value in (metadata or {}).items():
        if not (name + value).isascii():
            raise StorageError(
                f"Non ascii characters found in S3 metadata for key \"{name}\" of {key}"
            )


def _pieces(data: bytes) -> Iterator[bytes]:
    for offset in range(0, len(data), STREAM_CHUNK_SIZE):
        yield data[offset:offset + STREAM_CHUNK_SIZE]


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def create_storage_client(
    config: Optional[StorageConfig] = None,
    mock_mode: bool = False,
) -> StorageClient:
    """R2 client for ``config``, or the in-memory store when ``mock_mode`` is set."""
    if mock_mode:
        return MockStorageClient()

    if config is None:
        raise ValueError("config is required unless mock_mode is set")

    return R2StorageClient(config)
