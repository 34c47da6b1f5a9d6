"""
secure-cookie-proxy - A development reverse proxy that carries your auth cookies.

Requests forwarded to a remote host get previously captured cookies attached,
and cookies the remote host issues are replayed to the browser.

Components:
1. auth.cookies  - Cookie header codec
2. auth.storage  - Keychain / file credential storage
3. auth.prompt   - Interactive cookie acquisition
4. auth.session  - Per-target cookie session
5. proxy         - Proxy hooks and aiohttp transport
"""

__version__ = "1.0.0"
__author__ = "secure-cookie-proxy team"
