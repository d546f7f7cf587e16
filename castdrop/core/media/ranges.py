"""
HTTP Range header parsing for media seeking.

Players send ``Range: bytes=<start>-<end>`` to seek, and open with
``bytes=0-`` before playing. We support a single range per request:

    bytes=0-99      first 100 bytes
    bytes=100-      offset 100 to the end
    bytes=-500      last 500 bytes

A header we cannot understand is ignored and the whole object is served.
Range requests are an optimization for the client, so a bad header should
degrade to a normal download instead of failing playback. The only hard
failure is a range that starts past the end of the object (416).
"""

import re
from typing import Optional

from .errors import RangeNotSatisfiableError
from .models import ByteRange

_RANGE_PATTERN = re.compile(r"^\s*bytes\s*=\s*(\d*)\s*-\s*(\d*)\s*$", re.IGNORECASE)


def parse_range_header(header: Optional[str], size: int) -> Optional[ByteRange]:
    """
    Resolve a Range header against an object of ``size`` bytes.

    Returns the inclusive window to serve, or None to serve everything.
    The end is clamped to the last byte of the object.

    Raises:
        RangeNotSatisfiableError: the range starts at or past ``size``
    """
    if not header:
        return None

    match = _RANGE_PATTERN.match(header)
    if match is None:
        return None

    start_text, end_text = match.groups()

    if not start_text:
        if not end_text:
            return None
        suffix_length = int(end_text)
        if suffix_length == 0 or size == 0:
            raise RangeNotSatisfiableError(size)
        return ByteRange(start=max(0, size - suffix_length), end=size - 1)

    start = int(start_text)
    end = int(end_text) if end_text else None

    if end is not None and end < start:
        return None
    if start >= size:
        raise RangeNotSatisfiableError(size)

    last_byte = size - 1
    return ByteRange(start=start, end=last_byte if end is None else min(end, last_byte))
