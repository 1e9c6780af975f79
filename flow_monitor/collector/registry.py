# flow_monitor/collector/registry.py
from collections.abc import Callable

from flow_monitor.config import SymbolConfig

from .base import ExchangeAdapter
from .perp import (
    BinancePerpAdapter,
    BingXPerpAdapter,
    BitgetPerpAdapter,
    BybitPerpAdapter,
    MEXCPerpAdapter,
    OKXPerpAdapter,
)
from .spot import (
    BinanceSpotAdapter,
    BitgetSpotAdapter,
    BybitSpotAdapter,
    KuCoinAdapter,
    MEXCSpotAdapter,
    OKXSpotAdapter,
    UpbitAdapter,
)

AdapterFactory = Callable[[SymbolConfig], ExchangeAdapter]

SPOT_ADAPTERS: dict[str, AdapterFactory] = {
    "Binance": lambda s: BinanceSpotAdapter(s.base, s.quote),
    "OKX": lambda s: OKXSpotAdapter(s.base, s.quote),
    "Upbit": lambda s: UpbitAdapter(s.base, s.krw_usd),
    "Bybit": lambda s: BybitSpotAdapter(s.base, s.quote),
    "KuCoin": lambda s: KuCoinAdapter(s.base, s.quote),
    "MEXC": lambda s: MEXCSpotAdapter(s.base, s.quote),
    "Bitget": lambda s: BitgetSpotAdapter(s.base, s.quote),
}

PERP_ADAPTERS: dict[str, AdapterFactory] = {
    "Binance": lambda s: BinancePerpAdapter(s.base, s.quote),
    "OKX": lambda s: OKXPerpAdapter(s.base, s.quote),
    "Bybit": lambda s: BybitPerpAdapter(s.base, s.quote),
    "MEXC": lambda s: MEXCPerpAdapter(s.base, s.quote),
    "Bitget": lambda s: BitgetPerpAdapter(s.base, s.quote),
    "BingX": lambda s: BingXPerpAdapter(s.base, s.quote),
}


def build_adapters(
    symbol: SymbolConfig, spot_venues: list[str], perp_venues: list[str]
) -> list[ExchangeAdapter]:
    adapters = [SPOT_ADAPTERS[name](symbol) for name in spot_venues]
    adapters.extend(PERP_ADAPTERS[name](symbol) for name in perp_venues)
    return adapters
