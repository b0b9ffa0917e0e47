"""Upstream fetching.

Learn: GatewayRequest is the gateway's own view of an incoming request:
method, URL (path + query, or absolute), headers and body. Strategies hand
it to a Fetcher, which returns a ResponseSnapshot for any HTTP answer
(including 4xx/5xx) and raises NetworkError only when there is no answer.

HttpFetcher proxies to the upstream farm server with httpx, dropping
hop-by-hop headers both ways.
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional
from urllib.parse import urlsplit

import httpx
import structlog

from farmsync.gateway.errors import FetchTimeout, NetworkError
from farmsync.gateway.snapshot import ResponseSnapshot, request_key

logger = structlog.get_logger()

HOP_BY_HOP = frozenset({
    "host", "connection", "keep-alive", "transfer-encoding",
    "te", "trailers", "upgrade", "proxy-authorization", "proxy-authenticate",
})

# httpx already decoded the body, so these would lie about it
STALE_RESPONSE_HEADERS = frozenset({"content-encoding", "content-length"})


@dataclass
class GatewayRequest:
    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def __post_init__(self):
        self.method = self.method.upper()
        self.headers = {k.lower(): v for k, v in self.headers.items()}

    @property
    def path(self) -> str:
        return urlsplit(self.url).path or "/"

    @property
    def key(self) -> str:
        return request_key(self.url)

    @property
    def is_navigation(self) -> bool:
        """True for top-level page loads.

        Browsers send Sec-Fetch-Mode: navigate; older clients that don't
        send fetch metadata are treated as navigating when they ask for HTML.
        """
        mode = self.headers.get("sec-fetch-mode")
        if mode is not None:
            return mode == "navigate"
        return "text/html" in self.headers.get("accept", "")


Fetcher = Callable[[GatewayRequest], Awaitable[ResponseSnapshot]]


class HttpFetcher:
    """Fetcher that forwards requests to the upstream server."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def __call__(self, request: GatewayRequest) -> ResponseSnapshot:
        target = request.url
        if not urlsplit(target).scheme:
            target = f"{self.base_url}{target if target.startswith('/') else '/' + target}"

        headers = {k: v for k, v in request.headers.items() if k not in HOP_BY_HOP}
        try:
            response = await self._client.request(
                request.method,
                target,
                headers=headers,
                content=request.body or None,
            )
        except httpx.TimeoutException as e:
            logger.warning("gateway.fetch_timeout", url=target)
            raise FetchTimeout(f"Timed out fetching {target}") from e
        except httpx.TransportError as e:
            logger.warning("gateway.fetch_failed", url=target, error=str(e))
            raise NetworkError(f"Could not reach {target}: {e}") from e

        return ResponseSnapshot(
            status=response.status_code,
            headers={
                k: v for k, v in response.headers.items()
                if k.lower() not in HOP_BY_HOP and k.lower() not in STALE_RESPONSE_HEADERS
            },
            body=response.content,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
