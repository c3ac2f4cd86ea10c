from __future__ import annotations

import logging
from collections.abc import Mapping

from starlette.requests import Request

from errorlog.services.capture import Pairs, RequestContext


logger = logging.getLogger(__name__)

REDACTED_TEXT = "<redacted>"

# Credentials never go into the error log.
_REDACTED_SERVER_VARIABLES = frozenset({"HTTP_AUTHORIZATION", "HTTP_X_ADMIN_KEY"})

_FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def server_variables(request: Request) -> Pairs:
    """CGI-style view of the request: connection info plus HTTP_* headers."""

    scope = request.scope
    server = scope.get("server") or (None, None)
    client = request.client

    pairs: list[tuple[str, str]] = [
        ("REQUEST_METHOD", request.method),
        ("SCRIPT_NAME", str(scope.get("root_path", ""))),
        ("PATH_INFO", request.url.path),
        ("QUERY_STRING", request.url.query),
        ("SERVER_PROTOCOL", f"HTTP/{scope.get('http_version', '1.1')}"),
        ("SERVER_NAME", str(server[0] or "")),
        ("SERVER_PORT", "" if server[1] is None else str(server[1])),
        ("REMOTE_ADDR", client.host if client else ""),
        ("URL_SCHEME", request.url.scheme),
    ]
    # Headers.items() keeps repeated headers in arrival order.
    for name, value in request.headers.items():
        key = "HTTP_" + name.upper().replace("-", "_")
        if key in _REDACTED_SERVER_VARIABLES:
            value = REDACTED_TEXT
        pairs.append((key, value))
    return tuple(pairs)


async def _form_variables(request: Request) -> Pairs:
    content_type = request.headers.get("content-type", "")
    if not content_type.startswith(_FORM_CONTENT_TYPES):
        return ()
    try:
        form = await request.form()
    except Exception:
        # The body may already have been consumed by the failing endpoint.
        logger.debug("Form data unavailable for error snapshot", exc_info=True)
        return ()

    pairs: list[tuple[str, str]] = []
    for key, value in form.multi_items():
        if isinstance(value, str):
            pairs.append((key, value))
        else:
            pairs.append((key, f"<file: {getattr(value, 'filename', '') or ''}>"))
    return tuple(pairs)


def _session_variables(request: Request) -> Pairs:
    session = request.scope.get("session")
    if not isinstance(session, Mapping):
        return ()
    return tuple((str(k), str(v)) for k, v in session.items())


async def snapshot_request(request: Request) -> RequestContext:
    """Copy everything the error log keeps about `request`."""

    return RequestContext(
        url=str(request.url),
        form_variables=await _form_variables(request),
        cookies=tuple(request.cookies.items()),
        session_variables=_session_variables(request),
        server_variables=server_variables(request),
    )
