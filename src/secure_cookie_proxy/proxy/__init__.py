"""Proxy hooks and the aiohttp transport."""

from secure_cookie_proxy.proxy.hooks import SecureCookieProxy
from secure_cookie_proxy.proxy.server import ProxyServer, run_proxy

__all__ = [
    "SecureCookieProxy",
    "ProxyServer",
    "run_proxy",
]
