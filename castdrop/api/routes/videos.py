"""
Video playback and deletion endpoints.

Playback has to satisfy browsers' <video> elements and cast receivers,
which both seek with Range requests and check with HEAD before playing.
Every response advertises ``Accept-Ranges: bytes`` so players know they
can seek.

Deletion is reachable two ways because browsers cannot send DELETE from a
page-unload beacon: ``DELETE /video/{id}`` and
``POST /video/{id}?_method=DELETE``.
"""

import logging
from typing import Annotated, AsyncIterator, Optional
from uuid import UUID

from fastapi import APIRouter, Header, HTTPException, Query, Request, Response, status
from fastapi.responses import StreamingResponse
from starlette.concurrency import iterate_in_threadpool

from ...core.media import keys
from ...core.media.errors import RangeNotSatisfiableError
from ...core.media.models import StoredObject
from ...core.media.ranges import parse_range_header
from ...infrastructure.storage.client import StorageError
from ..dependencies import MediaConfigDep, StorageClientDep, VideoDeleterDep
from .uploads import OkResponse

logger = logging.getLogger(__name__)

router = APIRouter()

CACHE_CONTROL = "private, max-age=3600"


async def stream_body(stored: StoredObject) -> AsyncIterator[bytes]:
    """
    Yield the stored body, closing it however the response ends.

    A client that disconnects mid-video cancels the response task; the
    store connection still has to go back to the pool.
    """
    try:
        async for piece in iterate_in_threadpool(iter(stored.body)):
            yield piece
    finally:
        stored.close()


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.api_route(
    "/{video_id}",
    methods=["GET", "HEAD"],
    summary="Stream a video",
    description="Full (200) or partial (206) content. HEAD returns the same headers without a body.",
    responses={
        206: {"description": "Partial content for a Range request"},
        404: {"description": "Video not found or expired"},
        416: {"description": "Range starts beyond the end of the video"},
    },
)
async def serve_video(
    video_id: UUID,
    request: Request,
    storage: StorageClientDep,
    config: MediaConfigDep,
    range_header: Annotated[Optional[str], Header(alias="Range")] = None,
) -> Response:
    """
    Serve a video, honouring a single byte range.

    Size and type come from a metadata lookup first, so the range can be
    resolved (and a HEAD answered) without touching the body. Only the
    requested window is fetched from storage for a ranged GET.
    """
    key = keys.video_key(video_id)

    try:
        info = await storage.head(key)
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Storage unavailable",
        )

    if info is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    try:
        byte_range = parse_range_header(range_header, info.size)
    except RangeNotSatisfiableError:
        raise HTTPException(
            status_code=status.HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE,
            detail="Range not satisfiable",
            headers={"Content-Range": f"bytes */{info.size}", "Accept-Ranges": "bytes"},
        )

    headers = {
        "Content-Type": info.content_type or config.default_content_type,
        "Accept-Ranges": "bytes",
        "Cache-Control": CACHE_CONTROL,
    }

    if byte_range is not None:
        status_code = status.HTTP_206_PARTIAL_CONTENT
        headers["Content-Range"] = byte_range.content_range(info.size)
        headers["Content-Length"] = str(byte_range.length)
    else:
        status_code = status.HTTP_200_OK
        headers["Content-Length"] = str(info.size)

    if request.method == "HEAD":
        return Response(status_code=status_code, headers=headers)

    try:
        stored = await storage.get(key, byte_range)
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Storage unavailable",
        )

    # deleted or expired between the metadata lookup and the fetch
    if stored is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    logger.debug(
        "Serving video",
        extra={
            "video_id": str(video_id),
            "range": headers.get("Content-Range"),
            "size_bytes": info.size,
        }
    )

    return StreamingResponse(stream_body(stored), status_code=status_code, headers=headers)


@router.delete(
    "/{video_id}",
    response_model=OkResponse,
    status_code=status.HTTP_200_OK,
    summary="Delete a video",
    description="Remove the video and any leftover chunks. Deleting twice is fine.",
)
async def delete_video(video_id: UUID, deleter: VideoDeleterDep) -> OkResponse:
    await deleter.delete(video_id)
    return OkResponse()


@router.post(
    "/{video_id}",
    response_model=OkResponse,
    status_code=status.HTTP_200_OK,
    summary="Delete a video (beacon)",
    description="POST with ?_method=DELETE, for navigator.sendBeacon on page close",
)
async def delete_video_beacon(
    video_id: UUID,
    deleter: VideoDeleterDep,
    method: Annotated[Optional[str], Query(alias="_method")] = None,
) -> OkResponse:
    """
    Method-override delete.

    Beacons are fire-and-forget and may arrive more than once or after
    an explicit delete; the delete itself is idempotent.
    """
    if (method or "").upper() != "DELETE":
        raise HTTPException(
            status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
            detail="Method not allowed",
        )

    await deleter.delete(video_id)
    return OkResponse()
