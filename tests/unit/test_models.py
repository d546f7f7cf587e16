"""
Unit tests for the media domain values.

These tests verify the core value objects without touching
external services (no API calls, no object storage).

Testing philosophy:
- Test behavior, not implementation
- Each test should have a clear "given/when/then" structure
- Use descriptive names that explain what we're testing
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from castdrop.config.settings import Settings
from castdrop.core.media import keys
from castdrop.core.media.errors import FileTooLargeError, IncompleteUploadError
from castdrop.core.media.models import MAX_PARTS, MIB, ByteRange, MediaConfig, UploadPlan


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class TestMediaConfig:
    """Tests for the MediaConfig value object."""

    def test_defaults_match_production_limits(self):
        """1GB files, 80MB chunks, one hour retention."""
        config = MediaConfig()

        assert config.max_file_size == 1024 * MIB
        assert config.chunk_size == 80 * MIB
        assert config.max_age == timedelta(hours=1)
        assert config.max_file_size_mb == 1024

    def test_rejects_non_positive_chunk_size(self):
        with pytest.raises(ValueError, match="chunk_size"):
            MediaConfig(chunk_size=0)

    def test_rejects_non_positive_retention(self):
        with pytest.raises(ValueError, match="max_age"):
            MediaConfig(max_age=timedelta(0))

    def test_rejects_limits_needing_more_parts_than_multipart_allows(self):
        """100000MB in 5MB chunks would plan 20000 parts; the store takes 10000."""
        with pytest.raises(ValueError, match="chunk_size"):
            MediaConfig(max_file_size=100_000 * MIB, chunk_size=5 * MIB)

    def test_accepts_exactly_max_parts(self):
        config = MediaConfig(max_file_size=MAX_PARTS * 10, chunk_size=10)
        assert UploadPlan.for_size(uuid4(), config.max_file_size, config.chunk_size).total_chunks == MAX_PARTS


class TestSettingsLimits:
    """The same part limit is enforced when settings load."""

    def test_rejects_oversized_file_limit_for_chunk_size(self):
        with pytest.raises(ValueError, match="part limit"):
            Settings(max_file_size_mb=100_000, chunk_size_mb=5)

    def test_defaults_are_within_limit(self):
        assert Settings().media_config.max_file_size_mb == 1024


# ---------------------------------------------------------------------------
# Upload Plan and Byte Range Tests
# ---------------------------------------------------------------------------

class TestUploadPlan:
    """Chunk count is ceil(size / chunk_size), never below one."""

    @pytest.mark.parametrize("size,expected", [(1, 1), (10, 1), (11, 2), (95, 10)])
    def test_total_chunks_rounds_up(self, size, expected):
        plan = UploadPlan.for_size(uuid4(), size, chunk_size=10)
        assert plan.total_chunks == expected

    def test_zero_size_still_plans_one_chunk(self):
        plan = UploadPlan.for_size(uuid4(), 0, chunk_size=10)
        assert plan.total_chunks == 1


class TestByteRange:
    """Tests for the inclusive ByteRange value object."""

    def test_length_is_inclusive(self):
        """bytes=0-99 covers 100 bytes."""
        assert ByteRange(0, 99).length == 100

    def test_single_byte_range(self):
        assert ByteRange(5, 5).length == 1

    def test_content_range_header(self):
        assert ByteRange(0, 99).content_range(1000) == "bytes 0-99/1000"

    def test_rejects_inverted_range(self):
        with pytest.raises(ValueError, match="precede"):
            ByteRange(10, 5)

    def test_rejects_negative_start(self):
        with pytest.raises(ValueError, match="negative"):
            ByteRange(-1, 5)


# ---------------------------------------------------------------------------
# Storage Keys
# ---------------------------------------------------------------------------

class TestKeys:
    """Key layout: videos/{id}, chunks/{id}/{index}."""

    def test_video_and_chunk_keys(self):
        upload_id = uuid4()

        assert keys.video_key(upload_id) == f"videos/{upload_id}"
        assert keys.chunk_key(upload_id, 3) == f"chunks/{upload_id}/3"
        assert keys.chunk_key(upload_id, 3).startswith(keys.chunk_prefix(upload_id))

    def test_parse_chunk_index(self):
        upload_id = uuid4()

        assert keys.parse_chunk_index(keys.chunk_key(upload_id, 12)) == 12
        assert keys.parse_chunk_index(f"chunks/{upload_id}/part") is None
        assert keys.parse_chunk_index(f"chunks/{upload_id}/-1") is None

    def test_filename_metadata_is_ascii(self):
        metadata = keys.filename_metadata("vidéo 日本.mp4")

        assert metadata == {"filename": "vid%C3%A9o%20%E6%97%A5%E6%9C%AC.mp4"}
        assert metadata["filename"].isascii()

    def test_filename_metadata_keeps_existing_escapes(self):
        assert keys.filename_metadata("my%20clip.webm") == {"filename": "my%20clip.webm"}
        assert keys.filename_metadata("clip.webm") == {"filename": "clip.webm"}

    def test_filename_metadata_empty_without_name(self):
        assert keys.filename_metadata(None) == {}
        assert keys.filename_metadata("") == {}

    def test_timestamp_metadata_is_epoch_millis(self):
        metadata = keys.timestamp_metadata(now=1700000000.5)
        assert metadata == {"uploaded-at": "1700000000500"}


# ---------------------------------------------------------------------------
# Error Messages
# ---------------------------------------------------------------------------

class TestErrors:
    """Messages are shown verbatim by the client, so they are part of the contract."""

    def test_file_too_large_message_names_limit_in_mb(self):
        error = FileTooLargeError(size=2 * 1024 * MIB, limit=1024 * MIB)
        assert str(error) == "File too large (max 1024MB)"

    def test_incomplete_upload_lists_missing_indices(self):
        error = IncompleteUploadError(missing=[1, 3], found=2, expected=4)
        assert str(error) == "Missing chunks: 1, 3"

    def test_incomplete_upload_without_gaps_reports_counts(self):
        error = IncompleteUploadError(missing=[], found=2, expected=3)
        assert str(error) == "Expected 3 chunks, found 2"
