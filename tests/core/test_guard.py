#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

import asyncio

import pytest

from tunedeck.core.guard import SUPPRESSED, FetchGuard


class SlowFetch:
    def __init__(self):
        self.calls = 0
        self.release = asyncio.Event()

    async def __call__(self, value: str = "jobs") -> str:
        self.calls += 1
        await self.release.wait()
        return value


@pytest.mark.asyncio
async def test_no_duplicate_in_flight():
    guard = FetchGuard()
    fetch = SlowFetch()

    first = asyncio.ensure_future(guard.with_guard("K", fetch))
    await asyncio.sleep(0)
    assert guard.in_flight("K")

    second = await guard.with_guard("K", fetch)
    assert second is SUPPRESSED
    assert fetch.calls == 1

    fetch.release.set()
    assert await first == "jobs"
    assert not guard.in_flight("K")

    third = await guard.with_guard("K", fetch, "again")
    assert third == "again"
    assert fetch.calls == 2


@pytest.mark.asyncio
async def test_key_released_on_failure():
    guard = FetchGuard()

    async def fail():
        raise RuntimeError("Boom")

    with pytest.raises(RuntimeError, match="Boom"):
        await guard.with_guard("K", fail)
    assert not guard.in_flight("K")

    async def succeed():
        return 42

    assert await guard.with_guard("K", succeed) == 42


@pytest.mark.asyncio
async def test_keys_are_independent():
    guard = FetchGuard()
    fetch = SlowFetch()

    first = asyncio.ensure_future(guard.with_guard("jobs", fetch))
    await asyncio.sleep(0)
    second = asyncio.ensure_future(guard.with_guard("gpus", fetch, "gpus"))
    await asyncio.sleep(0)
    assert fetch.calls == 2

    fetch.release.set()
    assert await first == "jobs"
    assert await second == "gpus"


def test_suppressed_repr():
    assert repr(SUPPRESSED) == "SUPPRESSED"
