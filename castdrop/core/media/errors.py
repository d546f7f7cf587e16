"""
Domain errors for the media services.

Routes translate these into HTTP statuses. Storage failures are not
modelled here; they arrive as ``StorageError`` from the infrastructure
layer and surface as 500s.
"""


class MediaError(Exception):
    """Base class for media service errors."""
    pass


class FileTooLargeError(MediaError):
    """Declared or received size exceeds the configured limit."""

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f"File too large (max {round(limit / (1024 * 1024))}MB)")


class EmptyUploadError(MediaError):
    """An upload or chunk carried no bytes."""
    pass


class NoChunksError(MediaError):
    """Finalize found no chunk objects for the upload."""

    def __init__(self) -> None:
        super().__init__("No chunks found")


class IncompleteUploadError(MediaError):
    """Chunk indices are not a complete 0..N-1 sequence."""

    def __init__(self, missing: list[int], found: int, expected: int) -> None:
        self.missing = missing
        self.found = found
        self.expected = expected
        if missing:
            message = f"Missing chunks: {', '.join(str(i) for i in missing)}"
        else:
            message = f"Expected {expected} chunks, found {found}"
        super().__init__(message)


class AssemblyError(MediaError):
    """Chunks could not be combined into the final video."""

    def __init__(self, message: str = "Failed to assemble video") -> None:
        super().__init__(message)


class RangeNotSatisfiableError(MediaError):
    """A well-formed range that starts beyond the end of the object."""

    def __init__(self, size: int) -> None:
        self.size = size
        super().__init__("Range not satisfiable")
