import asyncio

import pytest

from gravizot.client.singleflight import SingleFlight


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_call():
    flight = SingleFlight()
    release = asyncio.Event()
    calls = []

    async def work():
        calls.append(1)
        await release.wait()
        return "done"

    waiters = [asyncio.ensure_future(flight.do("k", work)) for _ in range(5)]
    await asyncio.sleep(0)
    assert flight.in_flight("k")

    release.set()
    results = await asyncio.gather(*waiters)

    assert results == ["done"] * 5
    assert len(calls) == 1
    assert not flight.in_flight("k")


@pytest.mark.asyncio
async def test_key_released_after_settle():
    flight = SingleFlight()
    calls = []

    async def work():
        calls.append(1)
        return len(calls)

    assert await flight.do("k", work) == 1
    assert await flight.do("k", work) == 2


@pytest.mark.asyncio
async def test_exception_reaches_every_waiter():
    flight = SingleFlight()
    release = asyncio.Event()

    async def work():
        await release.wait()
        raise RuntimeError("boom")

    waiters = [asyncio.ensure_future(flight.do("k", work)) for _ in range(3)]
    await asyncio.sleep(0)
    release.set()
    results = await asyncio.gather(*waiters, return_exceptions=True)

    assert all(isinstance(result, RuntimeError) for result in results)
    assert not flight.in_flight("k")


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_shared_call():
    flight = SingleFlight()
    release = asyncio.Event()

    async def work():
        await release.wait()
        return "done"

    first = asyncio.ensure_future(flight.do("k", work))
    second = asyncio.ensure_future(flight.do("k", work))
    await asyncio.sleep(0)

    first.cancel()
    release.set()

    assert await second == "done"
    with pytest.raises(asyncio.CancelledError):
        await first


@pytest.mark.asyncio
async def test_distinct_keys_run_independently():
    flight = SingleFlight()

    async def work(value):
        return value

    assert await flight.do("a", lambda: work(1)) == 1
    assert await flight.do("b", lambda: work(2)) == 2
