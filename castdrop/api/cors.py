"""
Cross-origin headers.

Starlette's CORSMiddleware only decorates requests that carry an Origin
header and answers preflights with 200. Cast receivers and <video>
elements fetch media without an Origin header, and the upload client
expects preflights to return 204. So we attach the same fixed header set
to every response ourselves, errors included.
"""

from typing import Optional

ALLOW_METHODS = "GET, HEAD, POST, PUT, DELETE, OPTIONS"
ALLOW_HEADERS = "Content-Type, X-Filename, Range"
EXPOSE_HEADERS = "Content-Length, Content-Range, Accept-Ranges"


def cors_headers(allowed_origins: list[str], origin: Optional[str] = None) -> dict[str, str]:
    """
    Headers to add to a response for a request from ``origin``.

    With ``*`` configured every origin is allowed. With an explicit list the
    request origin is echoed back only when it is on the list.
    """
    headers = {
        "Access-Control-Allow-Methods": ALLOW_METHODS,
        "Access-Control-Allow-Headers": ALLOW_HEADERS,
        "Access-Control-Expose-Headers": EXPOSE_HEADERS,
    }

    if "*" in allowed_origins:
        headers["Access-Control-Allow-Origin"] = "*"
    else:
        headers["Vary"] = "Origin"
        if origin and origin in allowed_origins:
            headers["Access-Control-Allow-Origin"] = origin

    return headers
