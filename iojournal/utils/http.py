"""
HTTP primitives shared by every outbound call.

Provides the request-construction primitive, query-string helper and the
AsyncClient factory configured from settings.
"""

from typing import Any, Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlparse

import httpx
import orjson

from iojournal.utils.config import settings


def build_request(
    method: str,
    url: str,
    headers: Optional[Mapping[str, str]] = None,
    body: Any = None,
    client: Optional[httpx.AsyncClient] = None,
) -> httpx.Request:
    """
    Build one outbound request.

    Args:
        method: HTTP method
        url: Absolute URL
        headers: Request headers
        body: JSON-serializable body (dicts, lists, pydantic models) or raw bytes
        client: When given, the request also carries the client defaults
            (timeout, User-Agent)

    Returns:
        httpx.Request ready to be sent by an AsyncClient
    """
    request_headers = dict(headers or {})
    content: Optional[bytes] = None

    if isinstance(body, bytes):
        content = body
    elif body is not None:
        if hasattr(body, "model_dump"):
            body = body.model_dump(exclude_none=True)
        content = orjson.dumps(body)
        request_headers.setdefault("Content-Type", "application/json")

    if client is not None:
        return client.build_request(method.upper(), url, headers=request_headers, content=content)
    return httpx.Request(method.upper(), url, headers=request_headers, content=content)


def with_query_params(url: str, params: Mapping[str, Any]) -> str:
    """Merge non-empty params into the URL query string; falsy values are skipped."""
    extra = {k: _query_value(v) for k, v in params.items() if v}
    if not extra:
        return url

    parsed = urlparse(url)
    query = dict(parse_qsl(parsed.query, keep_blank_values=True))
    query.update(extra)
    return parsed._replace(query=urlencode(query)).geturl()


def _query_value(value: Any) -> str:
    if value is True:
        return "true"
    return str(value)


def create_client(
    timeout_ms: Optional[int] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    Create an AsyncClient with the configured socket timeout.

    Args:
        timeout_ms: Per-request timeout, defaults to settings.HTTP_TIMEOUT_MS
        transport: Optional transport (tests pass httpx.MockTransport)
    """
    timeout = (timeout_ms or settings.HTTP_TIMEOUT_MS) / 1000.0
    return httpx.AsyncClient(
        timeout=timeout,
        transport=transport,
        headers={"User-Agent": f"{settings.APP_NAME}/{settings.APP_VERSION}"},
    )
