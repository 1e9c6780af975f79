# tests/test_main.py
from unittest.mock import AsyncMock

from flow_monitor.config import Config
from flow_monitor.main import FlowMonitor


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _monitor(tmp_path, latencies: list[float]):
    config = Config()
    config.storage.data_dir = str(tmp_path / "data")
    monitor = FlowMonitor(config)
    clock = FakeClock()
    delays: list[float] = []

    async def collect():
        clock.now += latencies[len(delays)]

    async def sleep(delay: float):
        delays.append(delay)
        clock.now += delay
        if len(delays) == len(latencies):
            monitor.running = False

    monitor._clock = clock
    monitor._sleep = sleep
    monitor.assembler.collect = AsyncMock(side_effect=collect)
    monitor.running = True
    return monitor, clock, delays


async def test_collect_loop_keeps_fixed_cadence(tmp_path):
    monitor, clock, delays = _monitor(tmp_path, [20, 45, 5])

    await monitor._collect_loop()

    assert delays == [280, 255, 295]
    assert clock.now == 900
    assert monitor.assembler.collect.await_count == 3


async def test_collect_loop_overrun_starts_next_tick_immediately(tmp_path):
    monitor, clock, delays = _monitor(tmp_path, [400, 10])

    await monitor._collect_loop()

    assert delays == [0, 290]


async def test_collect_loop_survives_collect_errors(tmp_path):
    monitor, _, delays = _monitor(tmp_path, [0, 0])
    monitor.assembler.collect = AsyncMock(side_effect=[OSError("disk full"), None])

    await monitor._collect_loop()

    assert delays == [300, 300]
    assert monitor.assembler.collect.await_count == 2
