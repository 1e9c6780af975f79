# flow_monitor/server/app.py
import logging
import time
from collections.abc import Awaitable, Callable
from pathlib import Path

from aiohttp import web

from flow_monitor.aggregator.historical import HistoricalAggregator
from flow_monitor.aggregator.live import DEFAULT_INTERVAL, DEFAULT_LIMIT, LiveAggregator
from flow_monitor.config import INTERVALS

logger = logging.getLogger(__name__)

LIVE_KEY = web.AppKey("live", LiveAggregator)
HISTORICAL_KEY = web.AppKey("historical", HistoricalAggregator)
STATIC_DIR_KEY = web.AppKey("static_dir", Path)

DEFAULT_HOURS = 24
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


@web.middleware
async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    if request.method == "OPTIONS":
        response: web.StreamResponse = web.Response(status=204)
    else:
        response = await handler(request)
    response.headers.update(CORS_HEADERS)
    return response


def _int_param(request: web.Request, name: str, default: int) -> int:
    try:
        value = int(request.query.get(name, ""))
    except ValueError:
        return default
    return value if value > 0 else default


async def handle_data(request: web.Request) -> web.Response:
    interval = request.query.get("interval", DEFAULT_INTERVAL)
    if interval not in INTERVALS:
        interval = DEFAULT_INTERVAL
    limit = _int_param(request, "limit", DEFAULT_LIMIT)
    try:
        snapshot = await request.app[LIVE_KEY].get_all_data(interval, limit)
    except Exception as e:
        logger.exception("Failed to build live snapshot")
        return web.json_response({"error": str(e)}, status=500)
    return web.json_response(snapshot.to_dict())


async def handle_depth(request: web.Request) -> web.Response:
    try:
        depth = await request.app[LIVE_KEY].get_depth()
    except Exception as e:
        logger.exception("Failed to fetch depth")
        return web.json_response({"error": str(e)}, status=500)
    return web.json_response(depth)


async def handle_historical(request: web.Request) -> web.Response:
    hours = _int_param(request, "hours", DEFAULT_HOURS)
    try:
        data = request.app[HISTORICAL_KEY].query(hours)
    except Exception as e:
        logger.error(f"Historical query failed: {e}")
        to_ts = int(time.time() * 1000)
        data = {
            "error": "No historical data yet. Collector needs time to gather data.",
            "fromTs": to_ts - hours * 3600 * 1000,
            "toTs": to_ts,
            "hours": hours,
            "spot": {},
            "perp": {},
        }
    # 历史数据缺失不视为错误, 始终返回 200
    return web.json_response(data)


async def handle_static(request: web.Request) -> web.StreamResponse:
    static_dir = request.app[STATIC_DIR_KEY].resolve()
    name = request.match_info.get("path") or "index.html"
    path = (static_dir / name).resolve()
    if not path.is_relative_to(static_dir) or not path.is_file():
        return web.Response(status=404, text="Not found")
    return web.FileResponse(path)


def create_app(
    live: LiveAggregator, historical: HistoricalAggregator, static_dir: str | Path
) -> web.Application:
    app = web.Application(middlewares=[cors_middleware])
    app[LIVE_KEY] = live
    app[HISTORICAL_KEY] = historical
    app[STATIC_DIR_KEY] = Path(static_dir)
    app.router.add_get("/api/data", handle_data)
    app.router.add_get("/api/depth", handle_depth)
    app.router.add_get("/api/historical", handle_historical)
    app.router.add_get("/{path:.*}", handle_static)
    return app
