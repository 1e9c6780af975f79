# flow_monitor/collector/base.py
import asyncio
import logging
import math
from abc import ABC, abstractmethod
from typing import Any

from flow_monitor.client.http import HttpClient, Request
from flow_monitor.storage.models import FlowSample

logger = logging.getLogger(__name__)


SPOT = "spot"
PERP = "perp"


def parse_float(value: Any) -> float | None:
    """交易所数值字段多为字符串, 无法解析时返回 None"""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def volume(value: Any) -> float:
    return parse_float(value) or 0.0


def first(items: Any) -> Any:
    if isinstance(items, list) and items:
        return items[0]
    return None


def field_of(payload: Any, *path: Any) -> Any:
    """Walk nested dicts/lists, returning None at the first missing step."""
    current = payload
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or len(current) <= step:
                return None
        elif not isinstance(current, dict):
            return None
        else:
            if step not in current:
                return None
        current = current[step]
    return current


class ExchangeAdapter(ABC):
    venue: str = ""
    market: str = SPOT
    # 辅助请求: 只影响 price/funding/OI 字段
    optional: frozenset[str] = frozenset()

    def __init__(self, base: str, quote: str = "USDT"):
        self.base = base
        self.quote = quote

    @property
    def pair(self) -> str:
        return f"{self.base}{self.quote}"

    @abstractmethod
    def requests(self) -> dict[str, Request]:
        pass

    @abstractmethod
    def parse(self, payloads: dict[str, Any]) -> FlowSample | None:
        pass

    def cache_key(self, name: str) -> str:
        return f"{self.venue.lower()}-{self.market}-{name}"

    async def fetch(self, client: HttpClient) -> FlowSample | None:
        """必需请求失败时抛出; optional 中的请求失败时其 payload 记为 None"""
        requests = self.requests()
        results = await asyncio.gather(
            *(client.request(r) for r in requests.values()), return_exceptions=True
        )
        payloads: dict[str, Any] = {}
        for name, result in zip(requests, results):
            if isinstance(result, BaseException):
                if name not in self.optional:
                    raise result
                logger.warning(f"{self.venue} {self.market} {name}: {result}")
                result = None
            payloads[name] = result
        return self.parse(payloads)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.venue} {self.market} {self.pair})"
