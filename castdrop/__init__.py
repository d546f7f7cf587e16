"""
CastDrop - drop a video, stream it anywhere, gone in an hour.

This package contains the complete application:
- core: Framework-agnostic upload, assembly, range and expiry logic
- infrastructure: Object storage integration
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
