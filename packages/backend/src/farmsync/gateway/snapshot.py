"""Response snapshots and request identity.

Learn: A bucket stores ResponseSnapshot values: status, headers and body
captured from an upstream response. The key is a normalized request
identity: path plus the query string with parameters sorted, so
/api/farms?b=2&a=1 and /api/farms?a=1&b=2 hit the same entry. Absolute URLs
(e.g. from CACHE_URLS) on the upstream origin collapse to the same path
key the proxy uses; other origins keep their scheme and host.
"""

import base64
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit


def request_key(url: str, origin: Optional[str] = None) -> str:
    """Normalize a request URL into a cache key.

    An absolute url on `origin` (scheme and host) is keyed by path alone.
    """
    parts = urlsplit(url)
    path = parts.path or "/"
    key = path
    if parts.query:
        query = sorted(parse_qsl(parts.query, keep_blank_values=True))
        key = f"{path}?{urlencode(query)}"
    if parts.scheme and parts.netloc and not _same_origin(parts, origin):
        key = f"{parts.scheme}://{parts.netloc}{key}"
    return key


def _same_origin(parts, origin: Optional[str]) -> bool:
    if not origin:
        return False
    other = urlsplit(origin)
    return (parts.scheme.lower(), parts.netloc.lower()) == (
        other.scheme.lower(),
        other.netloc.lower(),
    )


@dataclass
class ResponseSnapshot:
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def __post_init__(self):
        self.headers = {k.lower(): v for k, v in self.headers.items()}

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def media_type(self) -> Optional[str]:
        return self.headers.get("content-type")

    @property
    def date(self) -> Optional[datetime]:
        """The captured Date header, or None if missing or unparseable."""
        raw = self.headers.get("date")
        if not raw:
            return None
        try:
            parsed = parsedate_to_datetime(raw)
        except (TypeError, ValueError):
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "headers": self.headers,
            "body": base64.b64encode(self.body).decode("ascii"),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ResponseSnapshot":
        return cls(
            status=data["status"],
            headers=data.get("headers", {}),
            body=base64.b64decode(data.get("body", "")),
        )
