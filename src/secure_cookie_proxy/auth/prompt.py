"""
Interactive cookie acquisition.

Only one prompt may wait for the operator at a time, across every proxied
target. ``PromptCoordinator`` owns that lock and is shared by all sessions.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Protocol

from rich.console import Console
from rich.prompt import Prompt

from secure_cookie_proxy.exceptions import PromptBusyError
from secure_cookie_proxy.utils.console import console as default_console

logger = logging.getLogger(__name__)


class SecretPrompt(Protocol):
    """Asks the operator a question and returns what they typed."""

    async def ask(self, message: str) -> str:
        ...


class RichSecretPrompt:
    """Password-style terminal prompt using rich."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or default_console

    def _ask_blocking(self, message: str) -> str:
        self.console.print(message)
        return Prompt.ask("[bold cyan]Cookie[/bold cyan]", password=True, console=self.console)

    async def ask(self, message: str) -> str:
        # Blocking terminal read runs on a worker thread so proxy traffic keeps flowing
        return await asyncio.to_thread(self._ask_blocking, message)


class PromptCoordinator:
    """Process-wide guard around the interactive prompt."""

    def __init__(self, prompt: Optional[SecretPrompt] = None):
        self._prompt = prompt or RichSecretPrompt()
        self._active = False

    @property
    def busy(self) -> bool:
        """True while a prompt is waiting for the operator."""
        return self._active

    @asynccontextmanager
    async def claim(self) -> AsyncIterator["PromptCoordinator"]:
        """
        Hold the prompt lock for the duration of the block.

        The lock is released when the block exits, whether it succeeded or not.

        Raises:
            PromptBusyError: If another prompt already holds the lock.
        """
        if self._active:
            raise PromptBusyError("An interactive prompt is already active")
        self._active = True
        try:
            yield self
        finally:
            self._active = False

    async def ask(self, message: str) -> str:
        """Show the message and return the operator's answer."""
        answer = await self._prompt.ask(message)
        return answer or ""
