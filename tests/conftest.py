import asyncio
from typing import Optional

import pytest

from secure_cookie_proxy.auth.prompt import PromptCoordinator
from secure_cookie_proxy.auth.session import CookieSession
from secure_cookie_proxy.auth.storage import CredentialStore
from secure_cookie_proxy.config import ProxyTargetConfig
from secure_cookie_proxy.exceptions import CredentialStoreError


class MemoryCredentialStore(CredentialStore):
    """In-memory store that records writes and can be told to fail."""

    def __init__(self, data: Optional[dict] = None):
        self.data = dict(data or {})
        self.writes: list[tuple[str, str]] = []
        self.fail_reads = False
        self.fail_writes = False

    async def get(self, account):
        if self.fail_reads:
            raise CredentialStoreError("read failed", account)
        return self.data.get(account)

    async def set(self, account, value):
        if self.fail_writes:
            raise CredentialStoreError("write failed", account)
        self.writes.append((account, value))
        self.data[account] = value

    async def delete(self, account):
        return self.data.pop(account, None) is not None

    def describe(self):
        return "memory"


class ScriptedPrompt:
    """Prompt returning queued answers; ``hold()`` keeps the next one open."""

    def __init__(self, *answers: str):
        self.answers = list(answers)
        self.messages: list[str] = []
        self.release = asyncio.Event()
        self.release.set()

    def hold(self):
        self.release.clear()

    async def ask(self, message: str) -> str:
        self.messages.append(message)
        await self.release.wait()
        return self.answers.pop(0) if self.answers else ""


@pytest.fixture
def store():
    return MemoryCredentialStore()


@pytest.fixture
def prompt():
    return ScriptedPrompt()


@pytest.fixture
def coordinator(prompt):
    return PromptCoordinator(prompt)


@pytest.fixture
def make_session(store, coordinator):
    def _make(target="https://api.example.com", **options):
        config = ProxyTargetConfig(target=target, **options)
        return CookieSession(config, store, coordinator)

    return _make
