"""
远程请求传输层（JSONP 回调）

行情接口大多以 JSONP 形式返回：``cb_name({...});``。
每次请求使用唯一的回调名，在注册表中登记一个请求级的 CallbackHandle，
响应体到达后按回调名分发给对应的 handle。

释放规则：
  - 无论成功、出错还是超时，回调登记和进行中的 HTTP 任务都在 finally 中释放，且只释放一次
  - 超时后到达的响应找不到登记项，直接丢弃
"""

import asyncio
import itertools
import json
import logging
import re
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import httpx

from quote_service.config import settings
from quote_service.exceptions import SourceError, SourceMalformed, SourceTimeout

logger = logging.getLogger(__name__)

_JSONP_RE = re.compile(r"^\s*([A-Za-z_$][\w$]*)\s*\((.*)\)\s*;?\s*$", re.S)

_DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
    ),
    "Accept": "*/*",
}

_counter = itertools.count(1)


def make_callback_name(prefix: str, code: str) -> str:
    """生成唯一回调名：前缀 + 代码 + 毫秒时间戳 + 自增序号"""
    clean = re.sub(r"[^A-Za-z0-9]", "", code)
    return f"{prefix}_{clean}_{int(time.time() * 1000)}_{next(_counter)}"


class CallbackHandle:
    """单次请求的回调句柄，持有自己的完成 Future"""

    def __init__(self, name: str):
        self.name = name
        self.future: asyncio.Future = asyncio.get_running_loop().create_future()
        self.released = False

    def deliver(self, payload: Any) -> None:
        if not self.future.done():
            self.future.set_result(payload)

    def fail(self, exc: BaseException) -> None:
        if not self.future.done():
            self.future.set_exception(exc)


class CallbackRegistry:
    """回调注册表，由传输实例持有，不使用全局变量"""

    def __init__(self):
        self._pending: Dict[str, CallbackHandle] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    @asynccontextmanager
    async def register(self, name: str):
        if name in self._pending:
            raise ValueError(f"回调名冲突: {name}")
        handle = CallbackHandle(name)
        self._pending[name] = handle
        try:
            yield handle
        finally:
            self.release(handle)

    def release(self, handle: CallbackHandle) -> None:
        if handle.released:
            return
        handle.released = True
        if self._pending.get(handle.name) is handle:
            del self._pending[handle.name]
        if not handle.future.done():
            handle.future.cancel()

    def dispatch(self, body: str) -> bool:
        """解析 JSONP 响应体并交给对应的 handle；无人认领时返回 False"""
        match = _JSONP_RE.match(body or "")
        if not match:
            return False
        name, raw = match.group(1), match.group(2)
        handle = self._pending.get(name)
        if handle is None:
            logger.debug(f"丢弃无人认领的回调响应: {name}")
            return False
        try:
            handle.deliver(json.loads(raw) if raw.strip() else None)
        except ValueError as exc:
            handle.fail(SourceMalformed(f"JSONP 负载解析失败: {exc}"))
        return True


class JsonpTransport:
    """基于 httpx 的异步 JSONP / 文本请求"""

    def __init__(
        self,
        timeout: float = None,
        client: Optional[httpx.AsyncClient] = None,
        registry: Optional[CallbackRegistry] = None,
    ):
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT
        self._client = client
        self.registry = registry or CallbackRegistry()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(headers=_DEFAULT_HEADERS, follow_redirects=True)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get_text(self, url: str) -> str:
        response = await self._get_client().get(url)
        response.raise_for_status()
        return response.text

    async def _pump(self, url: str, handle: CallbackHandle) -> None:
        try:
            body = await self._get_text(url)
        except httpx.HTTPError as exc:
            handle.fail(SourceError(f"请求失败: {exc}"))
            return
        except Exception as exc:
            # 非法 URL、解码错误等不属于 HTTPError
            handle.fail(SourceError(f"请求异常: {type(exc).__name__}: {exc}"))
            return
        if handle.released:
            return
        if not self.registry.dispatch(body):
            handle.fail(SourceMalformed(f"响应不是预期的 JSONP 回调 {handle.name}"))

    async def fetch(self, url: str, callback: str) -> Any:
        """发出 JSONP 请求，等待名为 callback 的回调被触发"""
        async with self.registry.register(callback) as handle:
            task = asyncio.create_task(self._pump(url, handle))
            try:
                return await asyncio.wait_for(asyncio.shield(handle.future), timeout=self.timeout)
            except asyncio.TimeoutError:
                raise SourceTimeout(f"请求超时（{self.timeout}s）: {url}")
            finally:
                if not task.done():
                    task.cancel()
                    try:
                        await task
                    except asyncio.CancelledError:
                        pass

    async def fetch_text(self, url: str) -> str:
        """直接返回文本的接口（非回调形式）"""
        try:
            return await asyncio.wait_for(self._get_text(url), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise SourceTimeout(f"请求超时（{self.timeout}s）: {url}")
        except httpx.HTTPError as exc:
            raise SourceError(f"请求失败: {exc}")
        except Exception as exc:
            raise SourceError(f"请求异常: {type(exc).__name__}: {exc}")
