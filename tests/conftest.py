"""
Shared fixtures.

Tests run against the in-memory storage client with deliberately tiny
limits (10-byte chunks, 100-byte files) so multi-chunk behaviour can be
exercised with a few bytes of data.
"""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from castdrop.api.dependencies import get_media_config, get_storage_client
from castdrop.core.media import ChunkAssembler, MediaConfig, UploadSessionService
from castdrop.infrastructure.storage.client import MockStorageClient


@pytest.fixture
def media_config() -> MediaConfig:
    return MediaConfig(
        max_file_size=100,
        chunk_size=10,
        max_age=timedelta(hours=1),
        default_content_type="video/mp4",
    )


@pytest.fixture
def store() -> MockStorageClient:
    return MockStorageClient()


@pytest.fixture
def sessions(store, media_config) -> UploadSessionService:
    return UploadSessionService(store=store, config=media_config)


@pytest.fixture
def assembler(store, media_config) -> ChunkAssembler:
    return ChunkAssembler(store=store, config=media_config)


@pytest.fixture
def client(store, media_config):
    """API client wired to the in-memory store and test limits."""
    from castdrop.main import app

    app.dependency_overrides[get_storage_client] = lambda: store
    app.dependency_overrides[get_media_config] = lambda: media_config

    yield TestClient(app)

    app.dependency_overrides.clear()
