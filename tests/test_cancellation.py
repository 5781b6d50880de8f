"""
Tests for cancellation tokens and the error taxonomy.
"""

import asyncio

import pytest

from common.cancellation import CancellationToken, guarded
from common.errors import OperationCancelled, classify_error


@pytest.mark.asyncio
async def test_guard_returns_result_when_not_cancelled():
    token = CancellationToken()

    async def work():
        return 42

    assert await token.guard(work()) == 42


@pytest.mark.asyncio
async def test_guard_raises_when_token_fires_mid_call():
    token = CancellationToken()
    started = asyncio.Event()

    async def work():
        started.set()
        await asyncio.sleep(10)

    async def fire():
        await started.wait()
        token.cancel("user stop")

    asyncio.create_task(fire())
    with pytest.raises(OperationCancelled, match="user stop"):
        await token.guard(work())


@pytest.mark.asyncio
async def test_guard_on_fired_token_never_starts_work():
    token = CancellationToken()
    token.cancel()
    ran = []

    async def work():
        ran.append(True)

    with pytest.raises(OperationCancelled):
        await token.guard(work())
    assert ran == []


@pytest.mark.asyncio
async def test_sleep_wakes_early_on_cancel():
    token = CancellationToken()
    asyncio.get_running_loop().call_later(0.01, token.cancel)

    with pytest.raises(OperationCancelled):
        await token.sleep(10)


@pytest.mark.asyncio
async def test_guarded_without_token_awaits_directly():
    async def work():
        return "ok"

    assert await guarded(work(), None) == "ok"


def test_cancel_is_one_shot():
    token = CancellationToken()
    token.cancel("first")
    token.cancel("second")

    assert token.cancelled is True
    assert token.reason == "first"


@pytest.mark.parametrize(
    "message, expected",
    [
        ("429 Resource exhausted: quota", "rate_limit"),
        ("Request timed out", "timeout"),
        ("API key not valid", "auth"),
        ("500 internal", "api_error"),
    ],
)
def test_classify_error(message, expected):
    assert classify_error(RuntimeError(message)) == expected
