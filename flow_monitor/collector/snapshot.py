# flow_monitor/collector/snapshot.py
import asyncio
import logging
import time
from datetime import datetime, timezone

from flow_monitor.aggregator.flow import total_net
from flow_monitor.client.http import HttpClient
from flow_monitor.storage.daily_store import DailyStore
from flow_monitor.storage.models import FlowRecord, FlowSample

from .base import SPOT, ExchangeAdapter

logger = logging.getLogger(__name__)


class SnapshotAssembler:
    def __init__(
        self,
        adapters: list[ExchangeAdapter],
        client: HttpClient,
        store: DailyStore,
        record_type: str = "flow",
    ):
        self.adapters = adapters
        self.client = client
        self.store = store
        self.record_type = record_type

    async def collect(self) -> FlowRecord:
        timestamp = int(time.time() * 1000)
        iso_time = (
            datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z")
        )
        logger.info(f"[{iso_time}] Collecting data...")

        results = await asyncio.gather(
            *(adapter.fetch(self.client) for adapter in self.adapters),
            return_exceptions=True,
        )

        spot: dict[str, FlowSample] = {}
        perp: dict[str, FlowSample] = {}
        for adapter, result in zip(self.adapters, results):
            if isinstance(result, BaseException):
                logger.error(f"{adapter.venue} {adapter.market}: {result}")
                continue
            if result is None:
                logger.warning(f"{adapter.venue} {adapter.market}: no data")
                continue
            target = spot if adapter.market == SPOT else perp
            target[adapter.venue] = result

        record = FlowRecord(timestamp_ms=timestamp, iso_time=iso_time, spot=spot, perp=perp)
        self.store.append(record, self.record_type)

        logger.info(f"Spot: {len(spot)} exchanges, net ${total_net(spot):,.0f}")
        logger.info(f"Perp: {len(perp)} exchanges, net ${total_net(perp):,.0f}")
        return record
