"""
Proxy hooks - connects a cookie session to the transport's interception points.
"""

import asyncio
import logging
from typing import Any, Callable, Mapping, Optional, Union

from aiohttp import hdrs
from multidict import CIMultiDict

from secure_cookie_proxy.auth.prompt import PromptCoordinator
from secure_cookie_proxy.auth.session import CookieSession
from secure_cookie_proxy.auth.storage import CredentialStore
from secure_cookie_proxy.config import ProxyTargetConfig

logger = logging.getLogger(__name__)

RequestHook = Callable[[CIMultiDict, Mapping[str, str]], None]
ResponseHook = Callable[[int, Mapping[str, str], CIMultiDict], None]


def _cookie_header(headers: Mapping[str, str]) -> Optional[str]:
    """Join every Cookie header of a request into one value."""
    if hasattr(headers, "getall"):
        values = headers.getall(hdrs.COOKIE, [])
    else:
        values = [headers[hdrs.COOKIE]] if hdrs.COOKIE in headers else []
    return "; ".join(values) if values else None


class SecureCookieProxy:
    """
    Cookie handling for one proxy target.

    ``on_proxy_request`` runs for every forwarded HTTP request and WebSocket
    handshake, ``on_proxy_response`` for every upstream response. Optional
    user hooks are called afterwards with the same arguments.
    """

    def __init__(
        self,
        options: Union[str, dict, ProxyTargetConfig],
        store: CredentialStore,
        coordinator: PromptCoordinator,
        on_proxy_req: Optional[RequestHook] = None,
        on_proxy_res: Optional[ResponseHook] = None,
    ):
        self.config = ProxyTargetConfig.from_value(options)
        self.session = CookieSession(self.config, store, coordinator)
        self._on_proxy_req = on_proxy_req
        self._on_proxy_res = on_proxy_res

    def start(self) -> asyncio.Task:
        """Start loading stored cookies. Must be called with a running event loop."""
        logger.debug(f"Proxy target {self.config.target} uses account {self.session.account}")
        return self.session.initialize()

    @property
    def transport_options(self) -> dict[str, Any]:
        """Options meant for the transport rather than the cookie logic."""
        return {
            "target": self.config.target,
            "secure": self.config.secure,
            "change_origin": self.config.change_origin,
            "ws": self.config.ws,
            "path_rewrite": dict(self.config.path_rewrite),
            **self.config.proxy_options,
        }

    def on_proxy_request(self, outbound_headers: CIMultiDict, request_headers: Mapping[str, str]):
        """Add cached cookies to the outbound request headers."""

        def set_cookie(value: str):
            outbound_headers[hdrs.COOKIE] = value

        self.session.decorate_outbound_request(set_cookie, _cookie_header(request_headers))

        if self._on_proxy_req:
            self._on_proxy_req(outbound_headers, request_headers)

    def on_proxy_response(
        self,
        status: int,
        request_headers: Mapping[str, str],
        request_path: str,
        response_headers: CIMultiDict,
    ):
        """Watch for unauthorized responses and backfill missing cookies."""

        def set_cookies(directives: list[str]):
            response_headers.popall(hdrs.SET_COOKIE, None)
            for directive in directives:
                response_headers.add(hdrs.SET_COOKIE, directive)

        self.session.decorate_inbound_response(
            status,
            _cookie_header(request_headers),
            response_headers.getall(hdrs.SET_COOKIE, []),
            set_cookies,
            request_path=request_path,
        )

        if self._on_proxy_res:
            self._on_proxy_res(status, request_headers, response_headers)
