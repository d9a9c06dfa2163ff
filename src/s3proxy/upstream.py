"""Next handlers for pass-through error pages.

A failed GET configured as ``pass_through`` is handed to the next handler:
either an HTTP forwarder to ``pass_through_upstream`` or a terminal handler
that answers 404.
"""

import logging
from collections.abc import AsyncIterator, Mapping

import httpx
from fastapi import Request, Response
from fastapi.responses import StreamingResponse

logger = logging.getLogger(__name__)

_HOP_BY_HOP = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)


async def not_found(request: Request) -> Response:
    """Terminal next handler: nothing further down the chain."""
    return Response(status_code=404)


def _outgoing_headers(headers: Mapping[str, str]) -> dict[str, str]:
    prepared: dict[str, str] = {}
    for key, value in headers.items():
        lowered = key.lower()
        if lowered in _HOP_BY_HOP or lowered == "host":
            continue
        prepared[key] = value
    return prepared


def _response_headers(headers: httpx.Headers) -> list[tuple[str, str]]:
    """Every end-to-end header pair, repeats such as Set-Cookie included."""
    return [
        (key, value)
        for key, value in headers.multi_items()
        if key.lower() not in _HOP_BY_HOP
    ]


class UpstreamForwarder:
    """Forwards requests to an upstream HTTP server and streams the reply.

    Attributes:
        base_url: The upstream server, e.g. "http://backend:8000".
    """

    def __init__(
        self, base_url: str, transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        self.base_url = base_url
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def startup(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(60.0, read=300.0),
            transport=self._transport,
            trust_env=False,
        )
        logger.info("Pass-through upstream ready: %s", self.base_url)

    async def shutdown(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __call__(self, request: Request) -> Response:
        if self._client is None:
            raise RuntimeError("upstream forwarder not started")

        url = request.url.path
        if request.url.query:
            url = f"{url}?{request.url.query}"
        content = None
        if request.method in {"POST", "PUT", "PATCH"}:
            content = await request.body()

        upstream_request = self._client.build_request(
            method=request.method,
            url=url,
            headers=_outgoing_headers(request.headers),
            content=content,
        )
        logger.debug("forwarding %s %s upstream", request.method, url)
        response = await self._client.send(upstream_request, stream=True)

        async def iterator() -> AsyncIterator[bytes]:
            try:
                async for chunk in response.aiter_raw():
                    yield chunk
            finally:
                await response.aclose()

        streamed = StreamingResponse(content=iterator(), status_code=response.status_code)
        for key, value in _response_headers(response.headers):
            streamed.headers.append(key, value)
        return streamed
