"""
Layer 2 – 缓存层
优先级：Redis（内存，可选） → MongoDB（持久化） → 文件（本地持久化）

每条缓存都包在 CacheRecord 信封里（负载 + 创建时间 + 过期时间），
读取时检查过期，过期条目按“不存在”处理并由读取方顺手删除；
没有后台清理任务。任何存储错误在读取时降级为未命中，写入时静默忽略。
"""

import hashlib
import json
import logging
import os
import shutil
from typing import Any, Dict, List, Optional, Union

from quote_service.config import settings
from quote_service.db import get_cache_collection, get_redis
from quote_service.models.cache import CacheKey, CacheRecord

logger = logging.getLogger(__name__)

# ── 命名空间 ──────────────────────────────────────────────
MARKET_NS = "market"
ANALYSIS_NS = "analysis"

KeyLike = Union[str, CacheKey]


def _make_key(namespace: str, key: KeyLike) -> str:
    """生成规范化缓存键"""
    raw = f"{namespace}:{key}"
    if len(raw) > 200:
        raw = namespace + ":" + hashlib.md5(raw.encode()).hexdigest()
    return raw


def _safe_name(key: str) -> str:
    return key.replace(":", "_").replace("/", "_")


# ── 后端实现 ──────────────────────────────────────────────

class RedisBackend:
    name = "redis"

    def __init__(self, client):
        self._client = client

    async def read(self, namespace: str, key: str) -> Optional[CacheRecord]:
        raw = await self._client.get(_make_key(namespace, key))
        return CacheRecord.model_validate_json(raw) if raw else None

    async def write(self, namespace: str, key: str, record: CacheRecord, ttl: Optional[float]) -> None:
        full_key = _make_key(namespace, key)
        payload = record.model_dump_json()
        if ttl:
            await self._client.set(full_key, payload, px=max(int(ttl * 1000), 1))
        else:
            await self._client.set(full_key, payload)

    async def remove(self, namespace: str, key: str) -> None:
        await self._client.delete(_make_key(namespace, key))

    async def clear(self, namespace: str) -> None:
        async for full_key in self._client.scan_iter(match=f"{namespace}:*"):
            await self._client.delete(full_key)

    async def count(self) -> int:
        return await self._client.dbsize()


class MongoBackend:
    name = "mongodb"

    def __init__(self, collection):
        self._coll = collection

    async def read(self, namespace: str, key: str) -> Optional[CacheRecord]:
        doc = await self._coll.find_one({"namespace": namespace, "key": key})
        if not doc:
            return None
        return CacheRecord(
            value=doc.get("value"),
            created_at=doc.get("created_at", 0.0),
            expires_at=doc.get("expires_at"),
        )

    async def write(self, namespace: str, key: str, record: CacheRecord, ttl: Optional[float]) -> None:
        await self._coll.update_one(
            {"namespace": namespace, "key": key},
            {"$set": {
                "namespace": namespace,
                "key": key,
                "value": record.value,
                "created_at": record.created_at,
                "expires_at": record.expires_at,
            }},
            upsert=True,
        )

    async def remove(self, namespace: str, key: str) -> None:
        await self._coll.delete_one({"namespace": namespace, "key": key})

    async def clear(self, namespace: str) -> None:
        await self._coll.delete_many({"namespace": namespace})

    async def count(self) -> int:
        return await self._coll.count_documents({})


class FileBackend:
    name = "file"

    def __init__(self, cache_dir: str):
        self.cache_dir = cache_dir

    def _path(self, namespace: str, key: str) -> str:
        return os.path.join(self.cache_dir, _safe_name(namespace), f"{_safe_name(key)}.json")

    async def read(self, namespace: str, key: str) -> Optional[CacheRecord]:
        path = self._path(namespace, key)
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as fh:
            return CacheRecord.model_validate(json.load(fh))

    async def write(self, namespace: str, key: str, record: CacheRecord, ttl: Optional[float]) -> None:
        path = self._path(namespace, key)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        tmp_path = path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(record.model_dump(), fh, ensure_ascii=False, default=str)
        os.replace(tmp_path, path)

    async def remove(self, namespace: str, key: str) -> None:
        path = self._path(namespace, key)
        if os.path.exists(path):
            os.remove(path)

    async def clear(self, namespace: str) -> None:
        ns_dir = os.path.join(self.cache_dir, _safe_name(namespace))
        if os.path.isdir(ns_dir):
            shutil.rmtree(ns_dir)

    async def count(self) -> int:
        if not os.path.isdir(self.cache_dir):
            return 0
        total = 0
        for _, _, files in os.walk(self.cache_dir):
            total += len([f for f in files if f.endswith(".json")])
        return total


# ── 缓存层 ────────────────────────────────────────────────

class CacheLayer:
    """多级缓存层，自动根据可用连接选择后端"""

    def __init__(self, cache_dir: str = None, backends: List[Any] = None):
        self._cache_dir = cache_dir or settings.CACHE_DIR
        self._backends = backends

    def _active_backends(self) -> List[Any]:
        if self._backends is not None:
            return self._backends
        backends: List[Any] = []
        redis = get_redis()
        if redis is not None:
            backends.append(RedisBackend(redis))
        collection = get_cache_collection()
        if collection is not None:
            backends.append(MongoBackend(collection))
        backends.append(FileBackend(self._cache_dir))
        return backends

    async def get(self, namespace: str, key: KeyLike) -> Optional[Any]:
        key = str(key)
        for backend in self._active_backends():
            try:
                record = await backend.read(namespace, key)
            except Exception as exc:
                logger.debug(f"{backend.name} 缓存读取失败: {exc}")
                continue
            if record is None:
                continue
            if record.is_expired():
                logger.debug(f"缓存已过期（{backend.name}）: {namespace}:{key}")
                await self._evict(backend, namespace, key)
                continue
            logger.debug(f"缓存命中（{backend.name}）: {namespace}:{key}")
            return record.value
        return None

    async def _evict(self, backend, namespace: str, key: str) -> None:
        try:
            await backend.remove(namespace, key)
        except Exception as exc:
            logger.debug(f"{backend.name} 过期条目删除失败: {exc}")

    async def set(
        self,
        namespace: str,
        key: KeyLike,
        value: Any,
        ttl: Optional[float] = None,
    ) -> None:
        """写入缓存；ttl 为秒，0 或 None 表示永不过期"""
        key = str(key)
        record = CacheRecord.wrap(value, ttl)
        for backend in self._active_backends():
            try:
                await backend.write(namespace, key, record, ttl)
                logger.debug(f"缓存写入（{backend.name}）: {namespace}:{key}")
                return
            except Exception as exc:
                logger.debug(f"{backend.name} 缓存写入失败: {exc}")

    async def delete(self, namespace: str, key: KeyLike) -> None:
        key = str(key)
        for backend in self._active_backends():
            await self._evict(backend, namespace, key)

    async def clear(self, namespace: str) -> None:
        """清空命名空间下所有条目"""
        for backend in self._active_backends():
            try:
                await backend.clear(namespace)
            except Exception as exc:
                logger.debug(f"{backend.name} 缓存清理失败: {exc}")
        logger.info(f"缓存命名空间已清空: {namespace}")

    async def stats(self) -> Dict[str, Any]:
        """返回各缓存后端统计信息"""
        result: Dict[str, Any] = {"redis": {"status": "disabled"}, "mongodb": {"status": "disabled"}}
        for backend in self._active_backends():
            try:
                info = {"entries": await backend.count(), "status": "healthy"}
                if isinstance(backend, FileBackend):
                    info["dir"] = backend.cache_dir
                result[backend.name] = info
            except Exception as exc:
                result[backend.name] = {"status": "error", "error": str(exc)}
        return result


# ── 模块级别单例 ──────────────────────────────────────────
_cache: Optional[CacheLayer] = None


def get_cache_layer() -> CacheLayer:
    global _cache
    if _cache is None:
        _cache = CacheLayer()
    return _cache
