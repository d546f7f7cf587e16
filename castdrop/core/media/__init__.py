"""
Video ingestion and delivery.

Chunked uploads, assembly into a single object, range parsing for
playback, deletion, and expiry. Nothing here knows about HTTP or boto3;
storage is reached through the ``ObjectStore`` protocol.
"""

from .assembler import ChunkAssembler
from .deletion import VideoDeleter
from .models import ByteRange, MediaConfig, ObjectStore, SweepReport, UploadPlan
from .ranges import parse_range_header
from .sessions import UploadSessionService
from .sweeper import ExpirySweeper

__all__ = [
    "ByteRange",
    "ChunkAssembler",
    "ExpirySweeper",
    "MediaConfig",
    "ObjectStore",
    "SweepReport",
    "UploadPlan",
    "UploadSessionService",
    "VideoDeleter",
    "parse_range_header",
]
