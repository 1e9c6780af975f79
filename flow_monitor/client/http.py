"""交易所 REST JSON 客户端"""

import json
from dataclasses import dataclass, field
from typing import Any

import aiohttp


class HttpError(Exception):
    """非 200 响应"""

    def __init__(self, status: int, message: str):
        self.status = status
        self.message = message
        super().__init__(f"HTTP {status}: {message}")


@dataclass(frozen=True)
class Request:
    """一次 REST 调用的描述, url + 参数即为缓存身份"""

    url: str
    params: dict[str, Any] | None = None
    method: str = "GET"
    body: dict[str, Any] | None = None


@dataclass
class HttpClient:
    """带超时的 aiohttp JSON 客户端"""

    timeout_seconds: float = 10
    user_agent: str = "Flow-Monitor/1.0"
    _session: aiohttp.ClientSession | None = field(default=None, repr=False)

    async def init(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                headers={"User-Agent": self.user_agent},
            )

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "HttpClient":
        await self.init()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def request(self, req: Request) -> Any:
        """发送请求并解析 JSON"""
        if self._session is None:
            raise RuntimeError("Session not initialized. Call init() or use 'async with'.")

        if req.method == "GET":
            response = await self._session.get(req.url, params=req.params)
        else:
            response = await self._session.post(req.url, params=req.params, json=req.body)

        if response.status != 200:
            error_text = await response.text()
            try:
                error_data = json.loads(error_text)
                message = error_data.get("msg") or error_data.get("message") or error_text
            except (json.JSONDecodeError, AttributeError):
                message = error_text
            raise HttpError(response.status, str(message))

        # 部分交易所返回 text/plain
        return await response.json(content_type=None)

    async def get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request(Request(url, params))

    async def post_json(self, url: str, body: dict[str, Any]) -> Any:
        return await self.request(Request(url, method="POST", body=body))
