"""
Request-scoped providers for routes.

Every request builds fresh services around one process-wide storage
client. The services hold no state of their own, so any instance of the
API can handle any request of an upload.
"""

import logging
from typing import Annotated, Optional

from fastapi import Depends

from ..config.settings import Settings, get_settings
from ..core.media import ChunkAssembler, MediaConfig, UploadSessionService, VideoDeleter
from ..infrastructure.storage.client import StorageClient, StorageConfig, create_storage_client

logger = logging.getLogger(__name__)

# Shared storage client. In mock mode this is also what keeps uploaded
# objects alive between requests.
_storage_client: Optional[StorageClient] = None


# ---------------------------------------------------------------------------
# Infrastructure Dependencies
# ---------------------------------------------------------------------------

def build_storage_client(settings: Settings) -> StorageClient:
    """Create the storage client described by ``settings``."""
    if settings.r2_mock_mode:
        return create_storage_client(mock_mode=True)

    config = StorageConfig(
        access_key_id=settings.r2_access_key_id,
        secret_access_key=settings.r2_secret_access_key,
        bucket_name=settings.r2_bucket_name,
        endpoint_url=settings.r2_endpoint,
    )
    return create_storage_client(config=config)


def get_storage_client(
    settings: Annotated[Settings, Depends(get_settings)],
) -> StorageClient:
    """
    Provide storage client for uploads, playback and deletion.

    Returns either R2 client or mock client based on settings. The client
    is created once and reused; boto3 clients are thread-safe and costly
    to build per request.
    """
    global _storage_client

    if _storage_client is None:
        _storage_client = build_storage_client(settings)
        logger.info(
            "Created shared storage client",
            extra={"mock_mode": settings.r2_mock_mode}
        )

    return _storage_client


def get_media_config(
    settings: Annotated[Settings, Depends(get_settings)],
) -> MediaConfig:
    return settings.media_config


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

def get_upload_sessions(
    storage: Annotated[StorageClient, Depends(get_storage_client)],
    config: Annotated[MediaConfig, Depends(get_media_config)],
) -> UploadSessionService:
    return UploadSessionService(store=storage, config=config)


def get_chunk_assembler(
    storage: Annotated[StorageClient, Depends(get_storage_client)],
    config: Annotated[MediaConfig, Depends(get_media_config)],
) -> ChunkAssembler:
    return ChunkAssembler(store=storage, config=config)


def get_video_deleter(
    storage: Annotated[StorageClient, Depends(get_storage_client)],
) -> VideoDeleter:
    return VideoDeleter(store=storage)


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
SettingsDep = Annotated[Settings, Depends(get_settings)]
StorageClientDep = Annotated[StorageClient, Depends(get_storage_client)]
MediaConfigDep = Annotated[MediaConfig, Depends(get_media_config)]
UploadSessionsDep = Annotated[UploadSessionService, Depends(get_upload_sessions)]
ChunkAssemblerDep = Annotated[ChunkAssembler, Depends(get_chunk_assembler)]
VideoDeleterDep = Annotated[VideoDeleter, Depends(get_video_deleter)]
