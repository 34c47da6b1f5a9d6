"""
aiohttp reverse proxy that forwards requests through SecureCookieProxy hooks.

Each route maps a path prefix to an upstream target. The longest matching
prefix wins.
"""

import asyncio
import logging
import re
from typing import Mapping, Optional, Union

import aiohttp
from aiohttp import WSMsgType, hdrs, web
from multidict import CIMultiDict
from yarl import URL

from secure_cookie_proxy.auth.prompt import PromptCoordinator
from secure_cookie_proxy.auth.storage import CredentialStore, detect_credential_store
from secure_cookie_proxy.config import ProxyTargetConfig, Settings
from secure_cookie_proxy.proxy.hooks import SecureCookieProxy

logger = logging.getLogger(__name__)

HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
})

# Recomputed by aiohttp for the upstream handshake
WEBSOCKET_HANDSHAKE_HEADERS = frozenset({
    "sec-websocket-key",
    "sec-websocket-version",
    "sec-websocket-extensions",
    "sec-websocket-accept",
    "sec-websocket-protocol",
})

SHUTDOWN_GRACE_SECONDS = 2.0

RouteOptions = Union[str, dict, ProxyTargetConfig]


def normalize_prefix(prefix: str) -> str:
    """Ensure a leading slash and no trailing slash (except for root)."""
    prefix = "/" + prefix.strip("/")
    return prefix


def rewrite_path(path: str, rules: Mapping[str, str]) -> str:
    """Apply the first matching regex rewrite rule to a path."""
    for pattern, replacement in rules.items():
        if re.search(pattern, path):
            return re.sub(pattern, replacement, path, count=1)
    return path


def _http_scheme(target: URL) -> URL:
    """Plain HTTP requests to a ws:// target go to its http:// equivalent."""
    if target.scheme == "ws":
        return target.with_scheme("http")
    if target.scheme == "wss":
        return target.with_scheme("https")
    return target


def _filter_headers(headers: Mapping[str, str], skip: frozenset) -> CIMultiDict:
    filtered: CIMultiDict = CIMultiDict()
    for name, value in headers.items():
        if name.lower() not in skip:
            filtered.add(name, value)
    return filtered


class ProxyServer:
    """Reverse proxy application serving one or more targets."""

    def __init__(
        self,
        settings: Settings,
        routes: Mapping[str, RouteOptions],
        store: Optional[CredentialStore] = None,
        coordinator: Optional[PromptCoordinator] = None,
    ):
        if not routes:
            raise ValueError("At least one proxy route is required")

        self.settings = settings
        self.store = store or detect_credential_store(settings)
        self.coordinator = coordinator or PromptCoordinator()

        proxies = [
            (normalize_prefix(prefix), SecureCookieProxy(options, self.store, self.coordinator))
            for prefix, options in routes.items()
        ]
        self.proxies = sorted(proxies, key=lambda p: len(p[0]), reverse=True)
        self._client: Optional[aiohttp.ClientSession] = None

    def create_app(self) -> web.Application:
        app = web.Application()
        app.on_startup.append(self._on_startup)
        app.on_cleanup.append(self._on_cleanup)
        app.router.add_route("*", "/{path:.*}", self.handle)
        return app

    async def _on_startup(self, app: web.Application):
        self._client = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.settings.request_timeout),
            cookie_jar=aiohttp.DummyCookieJar(),
            auto_decompress=False,
        )
        for prefix, proxy in self.proxies:
            logger.info(f"Proxying {prefix} -> {proxy.config.target}")
            proxy.start()

    async def _on_cleanup(self, app: web.Application):
        if self._client is not None:
            await self._client.close()
            self._client = None

        # An unanswered prompt never finishes, so only wait briefly
        pending = [proxy.session.wait_idle() for _, proxy in self.proxies]
        try:
            await asyncio.wait_for(asyncio.gather(*pending), timeout=SHUTDOWN_GRACE_SECONDS)
        except asyncio.TimeoutError:
            logger.warning("Shutting down with cookie acquisition still pending")

    def match(self, path: str) -> Optional[SecureCookieProxy]:
        """Find the proxy for a request path."""
        for prefix, proxy in self.proxies:
            if prefix == "/" or path == prefix or path.startswith(prefix + "/"):
                return proxy
        return None

    def upstream_url(self, proxy: SecureCookieProxy, request: web.Request, websocket: bool = False) -> URL:
        target = URL(proxy.config.target)
        if not websocket:
            target = _http_scheme(target)

        path = rewrite_path(request.path, proxy.config.path_rewrite)
        base = target.path.rstrip("/")
        return target.with_path(base + path, encoded=False).with_query(request.query)

    def outbound_headers(self, proxy: SecureCookieProxy, request: web.Request, skip: frozenset) -> CIMultiDict:
        headers = _filter_headers(request.headers, skip | {"host", "content-length"})
        if not proxy.config.change_origin and request.host:
            headers[hdrs.HOST] = request.host
        return headers

    async def handle(self, request: web.Request) -> web.StreamResponse:
        proxy = self.match(request.path)
        if proxy is None:
            raise web.HTTPNotFound(text=f"No proxy route for {request.path}")

        if proxy.config.ws and request.headers.get(hdrs.UPGRADE, "").lower() == "websocket":
            return await self._handle_websocket(proxy, request)

        headers = self.outbound_headers(proxy, request, HOP_BY_HOP_HEADERS)
        proxy.on_proxy_request(headers, request.headers)

        url = self.upstream_url(proxy, request)
        body = await request.read()

        try:
            async with self._client.request(
                request.method,
                url,
                headers=headers,
                data=body or None,
                allow_redirects=False,
                ssl=proxy.config.secure,
            ) as upstream:
                response_headers = _filter_headers(
                    upstream.headers, HOP_BY_HOP_HEADERS | {"content-length"}
                )
                proxy.on_proxy_response(upstream.status, request.headers, request.path_qs, response_headers)
                content = await upstream.read()
                status, reason = upstream.status, upstream.reason
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Upstream request to {url} failed: {e!r}")
            raise web.HTTPBadGateway(text=f"Upstream request failed: {e}")

        return web.Response(status=status, reason=reason, headers=response_headers, body=content)

    async def _handle_websocket(self, proxy: SecureCookieProxy, request: web.Request) -> web.StreamResponse:
        headers = self.outbound_headers(
            proxy, request, HOP_BY_HOP_HEADERS | WEBSOCKET_HANDSHAKE_HEADERS
        )
        proxy.on_proxy_request(headers, request.headers)

        protocols = [
            p.strip()
            for p in request.headers.get(hdrs.SEC_WEBSOCKET_PROTOCOL, "").split(",")
            if p.strip()
        ]
        url = self.upstream_url(proxy, request, websocket=True)

        try:
            upstream_ws = await self._client.ws_connect(
                url, headers=headers, protocols=protocols, ssl=proxy.config.secure
            )
        except aiohttp.WSServerHandshakeError as e:
            # Still lets an unauthorized handshake trigger a new prompt
            proxy.on_proxy_response(e.status, request.headers, request.path_qs, CIMultiDict())
            logger.warning(f"WebSocket handshake with {url} failed: {e.status}")
            raise web.HTTPBadGateway(text=f"WebSocket handshake failed: {e.status}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"WebSocket connection to {url} failed: {e!r}")
            raise web.HTTPBadGateway(text=f"WebSocket connection failed: {e}")

        client_ws = web.WebSocketResponse(protocols=protocols)
        await client_ws.prepare(request)

        async with upstream_ws:
            await asyncio.gather(
                _pipe(client_ws, upstream_ws),
                _pipe(upstream_ws, client_ws),
                return_exceptions=True,
            )
        return client_ws


async def _pipe(source, sink):
    """Copy WebSocket messages from one side to the other until it closes."""
    async for msg in source:
        if msg.type == WSMsgType.TEXT:
            await sink.send_str(msg.data)
        elif msg.type == WSMsgType.BINARY:
            await sink.send_bytes(msg.data)
        elif msg.type == WSMsgType.ERROR:
            logger.debug(f"WebSocket error: {source.exception()!r}")
            break
    await sink.close()


def run_proxy(settings: Settings, routes: Mapping[str, RouteOptions], store: Optional[CredentialStore] = None):
    """Run the proxy until interrupted."""
    server = ProxyServer(settings, routes, store=store)
    web.run_app(server.create_app(), host=settings.host, port=settings.port, print=None)
