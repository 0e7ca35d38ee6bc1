"""
Grafana Dashboard Reverse Proxy

This module forwards dashboard traffic to the single shared Grafana instance as if
the tenant segment were not part of the URL, while keeping the browser session
(cookies) intact in both directions.

Architecture:
    The proxy is split in two parts:

    1. A pure routing step: build_proxy_directive() turns the incoming method,
       path, query string and headers plus the resolved tenant into a
       ProxyDirective (target URL and outbound headers). It performs no I/O and is
       unit tested on its own.
    2. A transport step: DashboardProxy executes a directive with a shared
       httpx.AsyncClient (HTTP) or a websockets client connection (WebSocket).

Header Rules:
    - Hop-by-hop headers and ``Host`` are not forwarded (Grafana sees its own host)
    - Any inbound ``X-Client-Id`` is dropped; ``X-Client-Id: <tenant>`` is added
      when a tenant was resolved
    - ``Cookie`` is forwarded verbatim; every ``Set-Cookie`` from Grafana is
      relayed verbatim (no domain/path rewriting)

Failure Translation:
    Transport errors (connection refused, reset, timeout) raise
    UpstreamUnavailableError, rendered as 502. Once the response headers have
    been sent a transport error is logged and the body ends early. A failed
    upstream WebSocket handshake closes the client socket with code 1014 (bad
    gateway).

Example:
    ```python
    proxy = DashboardProxy("http://localhost:3000")
    response = await proxy.forward(request, tenant_id="maple")
    await proxy.aclose()
    ```
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from dataclasses import dataclass
from http.cookiejar import CookieJar, DefaultCookiePolicy
import ssl
from typing import Any

import anyio
import httpx
from fastapi import Request, WebSocket
from loguru import logger
from starlette.background import BackgroundTask
from starlette.responses import StreamingResponse
from starlette.websockets import WebSocketDisconnect, WebSocketState
from websockets.asyncio.client import connect as websocket_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from common.config import AnalyticsGatewaySettings
from common.exceptions import UpstreamUnavailableError

TENANT_HEADER = "x-client-id"

HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "proxy-connection",
        "te",
        "trailer",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)

# Regenerated by the websocket client for the upstream handshake
WEBSOCKET_HANDSHAKE_HEADERS = frozenset(
    {
        "sec-websocket-key",
        "sec-websocket-version",
        "sec-websocket-extensions",
        "sec-websocket-protocol",
        "sec-websocket-accept",
    }
)

WS_1000_NORMAL_CLOSURE = 1000
WS_1014_BAD_GATEWAY = 1014

# Close codes that must never appear in a close frame
RESERVED_CLOSE_CODES = frozenset({1005, 1006, 1015})

Header = tuple[str, str]
WebSocketConnector = Callable[..., Awaitable[Any]]


@dataclass(frozen=True)
class ProxyDirective:
    """Everything the transport needs to issue one upstream request."""

    method: str
    url: str
    path: str
    query: str
    headers: tuple[Header, ...]
    tenant_id: str | None = None


def rewrite_path(path: str, tenant_id: str | None) -> str:
    """
    Remove the first path segment equal to the tenant id.

    Only whole segments match, so ``/maplewood/dashboard`` is left untouched for
    tenant ``maple``. Without a tenant the path is returned as is.

    Example:
        >>> rewrite_path("/acme/dashboard/d/1", "acme")
        '/dashboard/d/1'
    """
    if not tenant_id:
        return path

    segments = path.split("/")
    for index, segment in enumerate(segments):
        if index > 0 and segment == tenant_id:
            del segments[index]
            break
    else:
        return path

    rewritten = "/".join(segments)
    if not rewritten.startswith("/"):
        rewritten = "/" + rewritten
    return rewritten


def filter_request_headers(
    headers: Iterable[Header], drop: frozenset[str] = frozenset()
) -> list[Header]:
    """Inbound headers minus hop-by-hop, Host, X-Client-Id and ``drop``."""
    excluded = HOP_BY_HOP_HEADERS | drop | {"host", TENANT_HEADER}
    return [(name, value) for name, value in headers if name.lower() not in excluded]


def build_proxy_directive(
    upstream_url: str,
    method: str,
    path: str,
    query: str,
    headers: Iterable[Header],
    tenant_id: str | None,
    drop_headers: frozenset[str] = frozenset(),
) -> ProxyDirective:
    """
    Compute where and how an incoming request is forwarded.

    Args:
        upstream_url: Grafana base URL without trailing slash.
        method: HTTP method of the incoming request.
        path: Incoming request path (tenant segment still present).
        query: Raw query string, forwarded unchanged.
        headers: Incoming header pairs (duplicates allowed).
        tenant_id: Resolved tenant, or None for anonymous forwarding.
        drop_headers: Extra lower-case header names to leave out.

    Returns:
        The ProxyDirective for the transport step.
    """
    forwarded_path = rewrite_path(path, tenant_id)
    outbound = filter_request_headers(headers, drop_headers)
    if tenant_id:
        outbound.append(("X-Client-Id", tenant_id))

    url = upstream_url + forwarded_path
    if query:
        url = f"{url}?{query}"

    return ProxyDirective(
        method=method.upper(),
        url=url,
        path=forwarded_path,
        query=query,
        headers=tuple(outbound),
        tenant_id=tenant_id,
    )


def relay_response_headers(headers: Iterable[Header]) -> list[Header]:
    """Upstream response headers to send to the client; Set-Cookie values kept one by one."""
    return [(name, value) for name, value in headers if name.lower() not in HOP_BY_HOP_HEADERS]


def has_request_body(headers: Any) -> bool:
    return "content-length" in headers or "transfer-encoding" in headers


async def relay_body(
    upstream_response: httpx.Response, directive: ProxyDirective
) -> AsyncIterator[bytes]:
    """Raw upstream body chunks; a transport error ends the stream early."""
    try:
        async for chunk in upstream_response.aiter_raw():
            yield chunk
    except httpx.TransportError as e:
        logger.error(
            f"Grafana response interrupted for {directive.method} {directive.url} "
            f"(tenant={directive.tenant_id or '-'}): {e!r}"
        )


def websocket_url(upstream_url: str) -> str:
    if upstream_url.startswith("https://"):
        return "wss://" + upstream_url[len("https://"):]
    if upstream_url.startswith("http://"):
        return "ws://" + upstream_url[len("http://"):]
    return upstream_url


class DashboardProxy:
    """
    Transport for proxied dashboard traffic.

    One instance is shared by all requests. The underlying httpx client keeps a
    connection pool to Grafana and never stores cookies itself; cookies travel
    only in the request and response headers.

    Args:
        upstream_url: Grafana base URL (``http(s)://host[:port][/prefix]``).
        timeout: Read/write/pool timeout in seconds.
        connect_timeout: Connect (and websocket handshake) timeout in seconds.
        verify: Verify upstream TLS certificates.
        transport: Optional httpx transport (tests use httpx.MockTransport).
        ws_connect: Optional websocket connector with the signature of
            websockets.asyncio.client.connect.
    """

    def __init__(
        self,
        upstream_url: str,
        timeout: float = 60.0,
        connect_timeout: float = 10.0,
        verify: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
        ws_connect: WebSocketConnector | None = None,
    ) -> None:
        self.upstream_url = upstream_url.rstrip("/")
        self.connect_timeout = connect_timeout
        self.verify = verify
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            verify=verify,
            transport=transport,
            follow_redirects=False,
            cookies=CookieJar(policy=DefaultCookiePolicy(allowed_domains=[])),
        )
        self._ws_connect = ws_connect or websocket_connect

    @classmethod
    def from_settings(cls, settings: AnalyticsGatewaySettings) -> "DashboardProxy":
        return cls(
            settings.GRAFANA_URL,
            timeout=settings.PROXY_TIMEOUT,
            connect_timeout=settings.PROXY_CONNECT_TIMEOUT,
            verify=settings.PROXY_VERIFY_TLS,
        )

    async def forward(self, request: Request, tenant_id: str | None) -> StreamingResponse:
        """
        Forward an HTTP request to Grafana and stream the response back.

        Neither body is buffered: the request body is streamed upstream as it
        arrives and the raw upstream body (still content-encoded) is streamed to
        the client. The upstream response is closed once the client response
        completes.

        Raises:
            UpstreamUnavailableError: Grafana refused, reset or timed out the
                connection before a response was received.
        """
        directive = build_proxy_directive(
            self.upstream_url,
            request.method,
            request.url.path,
            request.url.query,
            request.headers.items(),
            tenant_id,
        )
        logger.debug(
            f"Proxying {directive.method} {request.url.path} -> {directive.url} "
            f"(tenant={tenant_id or '-'})"
        )

        upstream_request = httpx.Request(
            directive.method,
            directive.url,
            headers=list(directive.headers),
            content=request.stream() if has_request_body(request.headers) else None,
        )
        try:
            upstream_response = await self._client.send(upstream_request, stream=True)
        except httpx.TransportError as e:
            logger.error(f"Grafana proxy error for {directive.method} {directive.url}: {e!r}")
            raise UpstreamUnavailableError(e, tenant_id) from e

        response = StreamingResponse(
            relay_body(upstream_response, directive),
            status_code=upstream_response.status_code,
            background=BackgroundTask(upstream_response.aclose),
        )
        for name, value in relay_response_headers(upstream_response.headers.multi_items()):
            response.headers.append(name, value)
        return response

    async def forward_websocket(self, websocket: WebSocket, tenant_id: str | None) -> None:
        """
        Proxy a WebSocket session (Grafana Live) to the upstream.

        The client handshake is accepted only after the upstream handshake
        succeeded, using the sub-protocol the upstream selected. Frames are
        relayed in both directions until either side closes.
        """
        directive = build_proxy_directive(
            websocket_url(self.upstream_url),
            "GET",
            websocket.url.path,
            websocket.url.query,
            websocket.headers.items(),
            tenant_id,
            drop_headers=WEBSOCKET_HANDSHAKE_HEADERS,
        )
        subprotocols = websocket.scope.get("subprotocols") or None

        connect_kwargs: dict[str, Any] = {
            "additional_headers": list(directive.headers),
            "subprotocols": subprotocols,
            "open_timeout": self.connect_timeout,
        }
        if directive.url.startswith("wss://") and not self.verify:
            context = ssl.create_default_context()
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
            connect_kwargs["ssl"] = context

        try:
            upstream = await self._ws_connect(directive.url, **connect_kwargs)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            logger.error(f"Grafana websocket proxy error for {directive.url}: {e!r}")
            await websocket.close(code=WS_1014_BAD_GATEWAY)
            return

        try:
            await websocket.accept(subprotocol=upstream.subprotocol)
            await self._relay(websocket, upstream)
        finally:
            await upstream.close()

    async def _relay(self, websocket: WebSocket, upstream: Any) -> None:
        async def client_to_upstream() -> None:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    return
                if message.get("text") is not None:
                    await upstream.send(message["text"])
                elif message.get("bytes") is not None:
                    await upstream.send(message["bytes"])

        async def upstream_to_client() -> None:
            async for message in upstream:
                if isinstance(message, str):
                    await websocket.send_text(message)
                else:
                    await websocket.send_bytes(message)

        async def pump(direction: Callable[[], Awaitable[None]]) -> None:
            try:
                await direction()
            except (ConnectionClosed, WebSocketDisconnect):
                pass
            except Exception as e:
                logger.opt(exception=e).warning(f"Websocket relay stopped: {e!r}")
            finally:
                task_group.cancel_scope.cancel()

        async with anyio.create_task_group() as task_group:
            task_group.start_soon(pump, client_to_upstream)
            task_group.start_soon(pump, upstream_to_client)

        if websocket.client_state == WebSocketState.CONNECTED:
            close_code = getattr(upstream, "close_code", None)
            if close_code is None or close_code in RESERVED_CLOSE_CODES:
                close_code = WS_1000_NORMAL_CLOSURE
            await websocket.close(code=close_code)

    async def aclose(self) -> None:
        await self._client.aclose()
