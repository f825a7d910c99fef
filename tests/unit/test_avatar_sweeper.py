# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio

from avatar.sweeper import SessionSweeper


class CountingManager:
    def __init__(self, *, fail_first: bool = False) -> None:
        self.calls = 0
        self.fail_first = fail_first

    async def cleanup_expired(self) -> list[str]:
        self.calls += 1
        if self.fail_first and self.calls == 1:
            raise RuntimeError("table corrupted")
        return []


def test_sweeper_runs_periodically_until_stopped():
    async def scenario() -> None:
        manager = CountingManager()
        sweeper = SessionSweeper(manager, interval_s=0.01)  # type: ignore[arg-type]

        sweeper.start()
        sweeper.start()  # second start is a no-op
        await asyncio.sleep(0.055)
        await sweeper.stop()
        calls = manager.calls
        await asyncio.sleep(0.03)

        assert calls >= 3
        assert manager.calls == calls
        assert not sweeper.running

    asyncio.run(scenario())


def test_sweeper_survives_a_failing_sweep(logged):
    async def scenario() -> None:
        manager = CountingManager(fail_first=True)
        sweeper = SessionSweeper(manager, interval_s=0.01)  # type: ignore[arg-type]

        sweeper.start()
        await asyncio.sleep(0.045)
        await sweeper.stop()

        assert manager.calls >= 2

    asyncio.run(scenario())

    assert "AVATAR_SWEEP_FAILED" in [e["event_type"] for e in logged()]


def test_stop_without_start_is_safe():
    async def scenario() -> None:
        await SessionSweeper(CountingManager(), interval_s=1).stop()  # type: ignore[arg-type]

    asyncio.run(scenario())
