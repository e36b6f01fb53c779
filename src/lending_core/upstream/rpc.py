"""JSON-RPC client and timestamp-to-block resolution with endpoint failover."""

from __future__ import annotations

import time
from datetime import date, datetime
from collections.abc import Callable
from typing import Any

import httpx
from pydantic import ValidationError as SchemaError

from lending_core.errors import AllEndpointsFailedError, UpstreamError
from lending_core.logging import get_logger
from lending_core.upstream.schemas import RpcBlock
from lending_core.utils.timeframes import day_end, to_unix

log = get_logger(__name__)

SOURCE = "rpc"


class RpcClient:
    """Minimal JSON-RPC 2.0 client; the endpoint URL is passed per call."""

    def __init__(self, timeout_s: float = 10.0, http: httpx.AsyncClient | None = None):
        self.timeout_s = timeout_s
        self._http = http
        self._next_id = 0

    async def _get_http(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=self.timeout_s)
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()

    async def call(self, url: str, method: str, params: list[Any]) -> Any:
        self._next_id += 1
        payload = {"jsonrpc": "2.0", "id": self._next_id, "method": method, "params": params}
        http = await self._get_http()
        try:
            resp = await http.post(url, json=payload)
        except httpx.HTTPError as exc:
            raise UpstreamError(SOURCE, f"{method} request failed: {exc}") from exc
        if resp.status_code // 100 != 2:
            raise UpstreamError(SOURCE, f"{method} HTTP {resp.status_code}")
        try:
            body = resp.json()
        except ValueError as exc:
            raise UpstreamError(SOURCE, f"{method} response is not JSON") from exc
        if body.get("error"):
            err = body["error"]
            raise UpstreamError(SOURCE, f"{method} error {err.get('code')}: {err.get('message')}")
        if body.get("result") is None:
            raise UpstreamError(SOURCE, f"{method} response missing result")
        return body["result"]

    async def get_block_by_number(self, url: str, number: int | str = "latest") -> RpcBlock:
        tag = hex(number) if isinstance(number, int) else number
        result = await self.call(url, "eth_getBlockByNumber", [tag, False])
        try:
            return RpcBlock.model_validate(result)
        except SchemaError as exc:
            raise UpstreamError(SOURCE, f"malformed block {tag}") from exc

    async def get_block_number(self, url: str) -> int:
        result = await self.call(url, "eth_blockNumber", [])
        return int(result, 16)


class BlockResolver:
    """Map a Unix timestamp to the last block mined at or before it.

    Endpoints are tried in order; any error moves on to the next one.
    Each endpoint gets its own *timeout_s* budget.
    """

    def __init__(
        self,
        rpc: RpcClient,
        urls: list[str],
        max_iterations: int = 40,
        timeout_s: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.rpc = rpc
        self.urls = list(urls)
        self.max_iterations = max_iterations
        self.timeout_s = timeout_s
        self._clock = clock

    async def _search(self, url: str, ts: int, deadline: float) -> int:
        latest = await self.rpc.get_block_by_number(url, "latest")
        if ts >= latest.unix_timestamp:
            return latest.block_number

        low, high = 0, latest.block_number
        for _ in range(self.max_iterations):
            if low > high:
                break
            if self._clock() > deadline:
                raise UpstreamError(SOURCE, f"block search timed out after {self.timeout_s}s")
            mid = (low + high) // 2
            mid_ts = (await self.rpc.get_block_by_number(url, mid)).unix_timestamp
            # Several blocks can share one second; keep the last of them.
            if mid_ts <= ts:
                low = mid + 1
            else:
                high = mid - 1
        # Before genesis when high < 0.
        return max(high, 0)

    async def resolve_timestamp_to_block(self, ts: int) -> int:
        last_error: Exception | None = None
        for url in self.urls:
            try:
                return await self._search(url, ts, self._clock() + self.timeout_s)
            except Exception as exc:
                log.warning("rpc_endpoint_failed", url=url, error=str(exc))
                last_error = exc
        raise AllEndpointsFailedError(self.urls, last_error)

    async def resolve_date_to_block(self, day: date | datetime | str) -> int:
        """Block at end of *day* (23:59:59.999 UTC) or at the given datetime."""
        if isinstance(day, str):
            day = date.fromisoformat(day[:10])
        if isinstance(day, datetime):
            return await self.resolve_timestamp_to_block(to_unix(day))
        return await self.resolve_timestamp_to_block(to_unix(day_end(day)))
