# flow_monitor/main.py
import asyncio
import logging
import signal
import time
from pathlib import Path

from aiohttp import web

from flow_monitor.aggregator.historical import HistoricalAggregator
from flow_monitor.aggregator.live import LiveAggregator
from flow_monitor.client.cache import TTLCache
from flow_monitor.client.http import HttpClient
from flow_monitor.collector.registry import build_adapters
from flow_monitor.collector.snapshot import SnapshotAssembler
from flow_monitor.config import Config, load_config
from flow_monitor.server.app import create_app
from flow_monitor.storage.daily_store import DailyStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


class FlowMonitor:
    def __init__(self, config: Config):
        self.config = config
        self.store = DailyStore(config.storage.data_dir)
        self.client = HttpClient(
            timeout_seconds=config.http.timeout_seconds,
            user_agent=config.http.user_agent,
        )
        self.cache = TTLCache(config.cache.ttl_seconds)
        self.assembler = SnapshotAssembler(
            build_adapters(
                config.symbol, config.collector.spot_venues, config.collector.perp_venues
            ),
            self.client,
            self.store,
            config.storage.record_type,
        )
        self.live = LiveAggregator(config, self.client, self.cache)
        self.historical = HistoricalAggregator(self.store, config.storage.record_type)
        self.runner: web.AppRunner | None = None
        self._clock = time.monotonic
        self._sleep = asyncio.sleep
        self.running = False

    async def init(self) -> None:
        await self.client.init()
        await self.live.init()

    async def _collect_loop(self) -> None:
        """启动时立即采集一次, 之后按固定间隔采集"""
        interval = self.config.collector.interval_minutes * 60
        next_tick = self._clock()
        while self.running:
            try:
                await self.assembler.collect()
            except Exception as e:
                logger.error(f"Collection error: {e}")
            next_tick += interval
            delay = next_tick - self._clock()
            if delay < 0:
                # 本轮超时, 下一轮立即开始并重新对齐
                logger.warning(f"Collection overran interval by {-delay:.1f}s")
                next_tick = self._clock()
                delay = 0
            await self._sleep(delay)

    async def _start_server(self) -> None:
        app = create_app(self.live, self.historical, self.config.server.static_dir)
        self.runner = web.AppRunner(app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, self.config.server.host, self.config.server.port)
        await site.start()
        logger.info(
            f"{self.config.symbol.base} Flow Dashboard running at "
            f"http://{self.config.server.host}:{self.config.server.port}"
        )

    async def run(self) -> None:
        await self.init()
        self.running = True

        logger.info(f"Data dir: {self.config.storage.data_dir}")
        logger.info(f"Interval: {self.config.collector.interval_minutes * 60}s")

        collect_task = asyncio.create_task(self._collect_loop())
        await self._start_server()

        # Wait for shutdown signal
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)

        await stop_event.wait()

        # Cleanup
        self.running = False
        collect_task.cancel()
        if self.runner:
            await self.runner.cleanup()
        await self.live.close()
        await self.client.close()

        logger.info("Flow Monitor stopped")


async def main() -> None:
    config = load_config(Path("config.yaml"))
    monitor = FlowMonitor(config)
    await monitor.run()


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
