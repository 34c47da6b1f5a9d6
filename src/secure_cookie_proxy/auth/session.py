"""
Cookie session - caches and replays auth cookies for one proxy target.

Credentials are acquired in order:
1. Stored cookies (keyring/file), silently at startup
2. Interactive prompt, when a request goes out without cookies or the
   target answers with an unauthorized status

Proxy hooks never wait for an acquisition. They act on whatever is cached
when they run and spawn acquisitions as background tasks.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Coroutine, Optional, Sequence, Union

from secure_cookie_proxy.auth.cookies import (
    Cookies,
    decode,
    decode_set_cookie,
    encode,
    serialize_cookie,
    strip_cookie_label,
)
from secure_cookie_proxy.auth.prompt import PromptCoordinator
from secure_cookie_proxy.auth.storage import CredentialStore
from secure_cookie_proxy.config import ProxyTargetConfig
from secure_cookie_proxy.exceptions import CookieFormatError, CookieProxyError, PromptBusyError
from secure_cookie_proxy.utils.console import print_success

logger = logging.getLogger(__name__)

MISSING_COOKIES_MESSAGE = """
No stored cookies found for proxy target {account}.
Copy and paste your cookies to get authenticated:"""

UNAUTHORIZED_MESSAGE = """
Authentication failed for {target}{path}

You either haven't provided an auth cookie or it expired.
Please login to {target} and copy the HTTP cookie string here.

It will be securely stored in {location}:"""


class SessionState(str, Enum):
    UNRESOLVED = "unresolved"
    ACQUIRING = "acquiring"
    RESOLVED = "resolved"


class CookieSession:
    """Cached auth cookies for one upstream target."""

    def __init__(
        self,
        config: ProxyTargetConfig,
        store: CredentialStore,
        coordinator: PromptCoordinator,
    ):
        self.config = config
        self._account = config.account
        self._store = store
        self._coordinator = coordinator
        self._cookies: Optional[Cookies] = None
        self._acquiring = False
        self._tasks: set[asyncio.Task] = set()

    @property
    def account(self) -> str:
        return self._account

    @property
    def target(self) -> str:
        return self.config.target

    @property
    def cookies(self) -> Optional[Cookies]:
        """Copy of the cached cookies, None if never resolved."""
        return dict(self._cookies) if self._cookies is not None else None

    @property
    def state(self) -> SessionState:
        if self._acquiring:
            return SessionState.ACQUIRING
        if self._cookies:
            return SessionState.RESOLVED
        return SessionState.UNRESOLVED

    @property
    def pending(self) -> int:
        """Number of acquisition tasks still running."""
        return len(self._tasks)

    def missing_cookies_message(self) -> str:
        return MISSING_COOKIES_MESSAGE.format(account=self._account)

    def unauthorized_message(self, path: str = "") -> str:
        location = "the system keychain" if self._store.is_keychain else self._store.describe()
        return UNAUTHORIZED_MESSAGE.format(target=self.target, path=path, location=location)

    def initialize(self) -> asyncio.Task:
        """Quietly load stored cookies in the background."""
        return self._spawn(self.acquire())

    def clear(self):
        """Forget the cached cookies. Stored cookies are left alone."""
        self._cookies = None

    async def wait_idle(self):
        """Wait until all background acquisitions have finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def acquire(self, prompt_message: Optional[str] = None) -> Optional[Cookies]:
        """
        Read cookies from storage, or from the operator if a message is given.

        Does nothing while any interactive prompt is active, or while this
        session is already acquiring. On success the cache is replaced as a
        whole. Failures are logged and keep the previous cache.

        Args:
            prompt_message: Ask the operator with this message instead of
                reading from storage.

        Returns:
            The new cookies, or None if nothing was acquired.
        """
        if self._coordinator.busy:
            logger.debug(f"Prompt already active, skipping cookie acquisition for {self._account}")
            return None
        if self._acquiring:
            logger.debug(f"Cookie acquisition for {self._account} already in progress")
            return None

        self._acquiring = True
        try:
            if prompt_message:
                cookies = await self._ask_operator(prompt_message)
            else:
                cookies = decode(await self._store.get(self._account), strict=True)
        except PromptBusyError:
            logger.debug(f"Prompt already active, skipping cookie acquisition for {self._account}")
            return None
        except (CookieProxyError, OSError) as e:
            logger.error(f"Failed to get valid cookies for {self._account}: {e}")
            return None
        finally:
            self._acquiring = False

        self._cookies = cookies
        if cookies:
            logger.info(f"Loaded {len(cookies)} cookie(s) for {self._account}")
        return dict(cookies)

    async def _ask_operator(self, message: str) -> Cookies:
        async with self._coordinator.claim() as coordinator:
            answer = strip_cookie_label(await coordinator.ask(message))
            if not answer:
                logger.info("No cookies provided.")
                return {}

            cookies = decode(answer, strict=True)
            await self._store.set(self._account, answer)
            print_success("Successfully saved your cookie. Please refresh.")
            return cookies

    def decorate_outbound_request(
        self,
        set_cookie_header: Callable[[str], None],
        incoming_cookie_header: Optional[str],
    ) -> bool:
        """
        Add cached cookies to a request going upstream.

        Cookies the client sent itself win over cached ones. With nothing
        cached, an interactive acquisition is started and the request goes
        out unchanged.

        Returns:
            True if the Cookie header was set.
        """
        if not self._cookies:
            self._spawn(self.acquire(self.missing_cookies_message()))
            return False

        merged = {**self._cookies, **decode(incoming_cookie_header)}
        set_cookie_header(encode(merged))
        return True

    def decorate_inbound_response(
        self,
        status: int,
        request_cookie_header: Optional[str],
        response_set_cookie: Union[None, str, Sequence[str]],
        set_response_set_cookie: Callable[[list[str]], None],
        cookie_rewrite: Optional[Callable[[Cookies], Cookies]] = None,
        cookie_path: Optional[str] = None,
        request_path: str = "",
    ) -> bool:
        """
        Inspect a response coming back from upstream.

        An unauthorized status starts an interactive acquisition. Separately,
        cached cookies that neither the client request nor the response's own
        Set-Cookie carry are appended as new Set-Cookie directives.

        Returns:
            True if Set-Cookie directives were appended.
        """
        if status in self.config.unauthorized_status_code:
            logger.info(f"{self.target}{request_path} answered {status}, requesting new cookies")
            self._spawn(self.acquire(self.unauthorized_message(request_path)))

        if self._cookies is None:
            return False

        rewrite = cookie_rewrite or self.config.cookie_rewrite
        path = cookie_path if cookie_path is not None else self.config.cookie_path

        try:
            client_cookies = rewrite(dict(self._cookies)) if rewrite else self._cookies
        except Exception as e:
            logger.error(f"Cookie rewrite for {self._account} failed: {e}")
            return False

        request_cookies = decode(request_cookie_header)
        directives, origin_cookies = decode_set_cookie(response_set_cookie)

        appended = []
        for name, value in client_cookies.items():
            if name in request_cookies or name in origin_cookies:
                continue
            try:
                appended.append(serialize_cookie(name, value, path=path))
            except CookieFormatError as e:
                logger.warning(f"Skipping cookie for {self._account}: {e}")

        if not appended:
            return False

        set_response_set_cookie(directives + appended)
        return True

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Cookie acquisition for {self._account} crashed", exc_info=exc)

    def __repr__(self):
        return f"CookieSession(account={self._account}, state={self.state.value})"
