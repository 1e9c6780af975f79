# flow_monitor/config.py
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, field_validator

SPOT_VENUES = ["Binance", "OKX", "Upbit", "Bybit", "KuCoin", "MEXC", "Bitget"]
PERP_VENUES = ["Binance", "OKX", "Bybit", "MEXC", "Bitget", "BingX"]
PRICE_SOURCES = ["binance", "okx", "bybit"]
INTERVALS = ["1h", "4h", "1d"]


class SymbolConfig(BaseModel):
    base: str = "BERA"
    quote: str = "USDT"
    krw_usd: float = 1450


class CollectorConfig(BaseModel):
    interval_minutes: int = 5
    spot_venues: list[str] = list(SPOT_VENUES)
    perp_venues: list[str] = list(PERP_VENUES)

    @field_validator("spot_venues")
    @classmethod
    def _known_spot(cls, venues: list[str]) -> list[str]:
        unknown = [v for v in venues if v not in SPOT_VENUES]
        if unknown:
            raise ValueError(f"unknown spot venues: {unknown}")
        return venues

    @field_validator("perp_venues")
    @classmethod
    def _known_perp(cls, venues: list[str]) -> list[str]:
        unknown = [v for v in venues if v not in PERP_VENUES]
        if unknown:
            raise ValueError(f"unknown perp venues: {unknown}")
        return venues


class StorageConfig(BaseModel):
    data_dir: str = "data"
    record_type: str = "flow"


class HttpConfig(BaseModel):
    timeout_seconds: float = 10
    user_agent: str = "Flow-Monitor/1.0"


class CacheConfig(BaseModel):
    ttl_seconds: float = 30


class PriceConfig(BaseModel):
    # 按顺序尝试, 全部缺失时使用 default_price
    fallback_order: list[str] = list(PRICE_SOURCES)
    default_price: float = 0.45

    @field_validator("fallback_order")
    @classmethod
    def _known_sources(cls, sources: list[str]) -> list[str]:
        unknown = [s for s in sources if s not in PRICE_SOURCES]
        if unknown:
            raise ValueError(f"unknown price sources: {unknown}")
        return sources


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8080
    static_dir: str = "public"


class Config(BaseModel):
    symbol: SymbolConfig = SymbolConfig()
    collector: CollectorConfig = CollectorConfig()
    storage: StorageConfig = StorageConfig()
    http: HttpConfig = HttpConfig()
    cache: CacheConfig = CacheConfig()
    price: PriceConfig = PriceConfig()
    server: ServerConfig = ServerConfig()


def load_config(path: Path | None = None) -> Config:
    data = {}
    if path is not None and path.exists():
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    config = Config(**data)

    data_dir = os.environ.get("DATA_DIR")
    if data_dir:
        config.storage.data_dir = data_dir
    return config
