"""
HTTP response header decoding for journal pages.

- Link (RFC 5988): pagination, relation "next"
- Retry-After (RFC 7231 section 7.1.3): backpressure hint, seconds or HTTP-date
"""

import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional
from urllib.parse import urljoin

# One link-value: "<uri>" followed by its ";"-separated params, up to the next "<"
_LINK_VALUE = re.compile(r"<([^>]*)>([^<]*)")
_DELTA_SECONDS = re.compile(r"^[0-9]+$")


def _parse_params(params: str) -> dict[str, str]:
    result: dict[str, str] = {}
    for part in params.split(";"):
        part = part.strip().rstrip(",").strip()
        if "=" not in part:
            continue
        key, value = part.split("=", 1)
        result[key.strip().lower()] = value.strip().strip('"')
    return result


def parse_link_header(base_url: str, header_value: Optional[str]) -> dict[str, str]:
    """
    Parse an RFC 5988 Link header into a rel -> absolute URL mapping.

    Relative URIs are resolved against base_url. Entries without a rel
    parameter are skipped; a rel listing several relation types maps each one.

    Example:
        >>> parse_link_header("https://host.com", '</path>; rel="next"')
        {'next': 'https://host.com/path'}
    """
    result: dict[str, str] = {}
    if not header_value:
        return result

    for match in _LINK_VALUE.finditer(header_value):
        uri = match.group(1).strip()
        rel = _parse_params(match.group(2)).get("rel")
        if not rel:
            continue
        url = urljoin(base_url, uri)
        for token in rel.split():
            result[token] = url
    return result


def parse_retry_after(header_value: str, now: Optional[datetime] = None) -> int:
    """
    Convert a Retry-After header value to milliseconds to wait.

    Delta-seconds values are multiplied by 1000. HTTP-date values become the
    delta to `now`, which is negative for dates in the past; callers clamp.

    Raises:
        ValueError: If the value is neither delta-seconds nor an HTTP-date
    """
    value = header_value.strip()
    if _DELTA_SECONDS.match(value):
        return int(value) * 1000

    try:
        target = parsedate_to_datetime(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid Retry-After header: {header_value!r}") from e
    if target is None:
        raise ValueError(f"Invalid Retry-After header: {header_value!r}")
    if target.tzinfo is None:
        target = target.replace(tzinfo=timezone.utc)

    reference = now or datetime.now(timezone.utc)
    return int((target - reference).total_seconds() * 1000)
