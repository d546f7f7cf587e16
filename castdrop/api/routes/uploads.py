"""
Upload API endpoints.

Two ways in:

Chunked (any size up to the limit):
1. POST /upload/init              -> {id, totalChunks}
2. PUT  /upload/{id}/chunk/{n}    for n in 0..totalChunks-1, any order
3. POST /upload/{id}/finalize     -> {id, url}

Single-shot (small files):
    POST /upload                  raw body -> {id, url}

Chunks exist because the hosting edge caps request bodies well below the
size of a typical phone video. None of these endpoints keep anything in
memory between calls; each chunk request may hit a different instance.
"""

import logging
from typing import Annotated, Optional
from urllib.parse import unquote
from uuid import UUID

from fastapi import APIRouter, Header, HTTPException, Path, Request, status
from pydantic import BaseModel, ConfigDict, Field

from ...core.media.errors import (
    AssemblyError,
    EmptyUploadError,
    FileTooLargeError,
    IncompleteUploadError,
    NoChunksError,
)
from ...core.media.models import MAX_PARTS
from ...infrastructure.storage.client import StorageError
from ..dependencies import ChunkAssemblerDep, MediaConfigDep, UploadSessionsDep

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class InitUploadRequest(BaseModel):
    """Declared file details, sent before any chunk."""
    model_config = ConfigDict(populate_by_name=True)

    filename: Optional[str] = Field(default=None, description="Original file name")
    content_type: Optional[str] = Field(
        default=None,
        alias="contentType",
        description="MIME type of the video. Defaults to video/mp4."
    )
    size: int = Field(ge=0, description="Total file size in bytes")


class InitUploadResponse(BaseModel):
    """Upload id and how many chunks the client should send."""
    model_config = ConfigDict(populate_by_name=True)

    id: UUID = Field(description="Upload identifier, also the final video id")
    total_chunks: int = Field(alias="totalChunks", description="Number of chunks to upload")


class FinalizeRequest(BaseModel):
    """Optional details the client may send with finalize."""
    model_config = ConfigDict(populate_by_name=True)

    total_chunks: Optional[int] = Field(
        default=None,
        alias="totalChunks",
        ge=1,
        description="Chunk count from init. When sent, finalize also checks the count."
    )
    content_type: Optional[str] = Field(
        default=None,
        alias="contentType",
        description="MIME type stored on the assembled video"
    )
    filename: Optional[str] = Field(
        default=None,
        description="Original file name. Stored percent-encoded as object metadata."
    )


class UploadResult(BaseModel):
    """Where the finished video can be streamed from."""
    id: UUID = Field(description="Video identifier")
    url: str = Field(description="Playback URL")


class OkResponse(BaseModel):
    ok: bool = True


# ---------------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------------

def video_url(request: Request, video_id: UUID) -> str:
    """Playback URL on the same origin the request came in on."""
    return f"{str(request.base_url).rstrip('/')}/video/{video_id}"


def _reject_oversized(content_length: Optional[str], limit: int) -> None:
    """Fail before reading the body when the declared length is already too big."""
    if content_length and content_length.isdigit() and int(content_length) > limit:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=str(FileTooLargeError(int(content_length), limit)),
        )


def _header_text(value: Optional[str]) -> Optional[str]:
    """Undo Starlette's latin-1 header decoding for clients that send raw UTF-8."""
    if not value:
        return value
    try:
        return value.encode("latin-1").decode("utf-8")
    except UnicodeError:
        return value


def _storage_failure() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Storage unavailable",
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/init",
    response_model=InitUploadResponse,
    status_code=status.HTTP_200_OK,
    summary="Start a chunked upload",
    description="Validate the declared size and return an upload id and chunk count",
)
async def init_upload(
    body: InitUploadRequest,
    sessions: UploadSessionsDep,
) -> InitUploadResponse:
    """
    Begin a chunked upload.

    Nothing is written to storage here. The size check happens now so the
    client learns about an oversized file before sending any bytes.
    """
    try:
        plan = sessions.init_upload(
            size=body.size,
            content_type=body.content_type,
            filename=body.filename,
        )
    except FileTooLargeError as e:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=str(e),
        )
    except EmptyUploadError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return InitUploadResponse(id=plan.id, total_chunks=plan.total_chunks)


@router.put(
    "/{upload_id}/chunk/{index}",
    response_model=OkResponse,
    status_code=status.HTTP_200_OK,
    summary="Upload one chunk",
    description="Store raw bytes for one chunk. Re-sending an index replaces it.",
)
async def upload_chunk(
    upload_id: UUID,
    index: Annotated[int, Path(ge=0, lt=MAX_PARTS)],
    request: Request,
    sessions: UploadSessionsDep,
    config: MediaConfigDep,
    content_length: Annotated[Optional[str], Header()] = None,
) -> OkResponse:
    """Store chunk ``index`` of an upload. Completeness is checked at finalize."""
    _reject_oversized(content_length, config.chunk_size)

    data = await request.body()

    try:
        await sessions.put_chunk(upload_id, index, data)
    except EmptyUploadError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except FileTooLargeError as e:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=str(e),
        )
    except StorageError as e:
        logger.error(
            "Failed to store chunk",
            extra={"upload_id": str(upload_id), "index": index, "error": str(e)}
        )
        raise _storage_failure()

    return OkResponse()


@router.post(
    "/{upload_id}/finalize",
    response_model=UploadResult,
    status_code=status.HTTP_200_OK,
    summary="Assemble uploaded chunks",
    description="Combine chunks 0..N-1 into the playable video and remove the chunks",
)
async def finalize_upload(
    upload_id: UUID,
    request: Request,
    assembler: ChunkAssemblerDep,
    body: Optional[FinalizeRequest] = None,
) -> UploadResult:
    """
    Finalize a chunked upload.

    Fails with 400 when chunks are missing, leaving the uploaded chunks in
    place. Fails with 500 when the store breaks mid-assembly; in that case
    the client should start the whole upload again.
    """
    body = body or FinalizeRequest()

    try:
        await assembler.finalize(
            upload_id,
            expected_chunks=body.total_chunks,
            content_type=body.content_type,
            filename=body.filename,
        )
    except (NoChunksError, IncompleteUploadError) as e:
        logger.warning(
            "Finalize rejected",
            extra={"upload_id": str(upload_id), "reason": str(e)}
        )
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except AssemblyError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to assemble video",
        )
    except StorageError as e:
        logger.error(
            "Failed to list chunks",
            extra={"upload_id": str(upload_id), "error": str(e)}
        )
        raise _storage_failure()

    return UploadResult(id=upload_id, url=video_url(request, upload_id))


@router.post(
    "",
    response_model=UploadResult,
    status_code=status.HTTP_200_OK,
    summary="Upload a whole video",
    description="Single request upload for files small enough to send in one body",
)
async def upload_video(
    request: Request,
    sessions: UploadSessionsDep,
    config: MediaConfigDep,
    content_type: Annotated[Optional[str], Header()] = None,
    x_filename: Annotated[Optional[str], Header()] = None,
    content_length: Annotated[Optional[str], Header()] = None,
) -> UploadResult:
    """
    Store the request body as a finished video.

    ``X-Filename`` is usually URL-encoded by the client; a raw UTF-8 value
    is accepted too. Either way it is stored percent-encoded, because
    object metadata must stay ASCII.
    """
    _reject_oversized(content_length, config.max_file_size)

    data = await request.body()
    filename = _header_text(x_filename)

    try:
        video_id = await sessions.upload_single(
            data,
            content_type=content_type,
            filename=filename,
        )
    except EmptyUploadError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except FileTooLargeError as e:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=str(e),
        )
    except StorageError as e:
        logger.error(
            "Failed to store video",
            extra={"size_bytes": len(data), "error": str(e)}
        )
        raise _storage_failure()

    logger.info(
        "Video uploaded",
        extra={
            "upload_id": str(video_id),
            "video_filename": unquote(filename) if filename else None,
        }
    )

    return UploadResult(id=video_id, url=video_url(request, video_id))
