import pytest

from secure_cookie_proxy.auth.prompt import PromptCoordinator
from secure_cookie_proxy.exceptions import PromptBusyError


@pytest.mark.asyncio
async def test_claim_marks_busy_and_releases(coordinator):
    assert not coordinator.busy
    async with coordinator.claim():
        assert coordinator.busy
    assert not coordinator.busy


@pytest.mark.asyncio
async def test_claim_rejects_second_prompt(coordinator):
    async with coordinator.claim():
        with pytest.raises(PromptBusyError):
            async with coordinator.claim():
                pass
    assert not coordinator.busy


@pytest.mark.asyncio
async def test_claim_releases_on_failure(coordinator):
    with pytest.raises(RuntimeError):
        async with coordinator.claim():
            raise RuntimeError("prompt crashed")
    assert not coordinator.busy


@pytest.mark.asyncio
async def test_ask_returns_answer(prompt):
    prompt.answers.append("sid=abc")
    coordinator = PromptCoordinator(prompt)
    assert await coordinator.ask("Paste cookies") == "sid=abc"
    assert prompt.messages == ["Paste cookies"]
