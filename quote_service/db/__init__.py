"""
缓存存储连接

MongoDB 只承载一个缓存集合（namespace + key 唯一），Redis 为可选的内存缓存。
任一连接失败都不阻止启动，缓存层会跳过缺失的后端，最终退回本地文件。
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from redis.asyncio import Redis

from quote_service.config import settings

logger = logging.getLogger(__name__)

# ── 连接状态 ──────────────────────────────────────────────
_mongo_client: Optional[AsyncIOMotorClient] = None
_cache_collection: Optional[AsyncIOMotorCollection] = None
_redis_client: Optional[Redis] = None


async def ensure_cache_indexes(collection: AsyncIOMotorCollection) -> None:
    """缓存条目以 (namespace, key) 唯一定位，写入走 upsert"""
    await collection.create_index([("namespace", 1), ("key", 1)], unique=True)


async def init_mongodb() -> bool:
    """连接 MongoDB 并准备缓存集合，返回是否可用"""
    global _mongo_client, _cache_collection
    if not settings.MONGODB_ENABLED:
        logger.info("MongoDB 未启用，缓存不使用持久化集合")
        return False
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=settings.MONGO_MAX_CONNECTIONS,
        minPoolSize=settings.MONGO_MIN_CONNECTIONS,
        serverSelectionTimeoutMS=settings.MONGO_SERVER_SELECTION_TIMEOUT_MS,
        connectTimeoutMS=settings.MONGO_CONNECT_TIMEOUT_MS,
        socketTimeoutMS=settings.MONGO_SOCKET_TIMEOUT_MS,
    )
    try:
        await client.admin.command("ping")
        collection = client[settings.MONGODB_DATABASE][settings.MONGO_CACHE_COLLECTION]
        await ensure_cache_indexes(collection)
    except Exception as exc:
        logger.warning(f"⚠️ MongoDB 不可用，缓存跳过该后端: {exc}")
        client.close()
        return False
    _mongo_client, _cache_collection = client, collection
    logger.info(
        f"✅ MongoDB 缓存集合就绪: {settings.MONGODB_HOST}:{settings.MONGODB_PORT}"
        f"/{settings.MONGODB_DATABASE}.{settings.MONGO_CACHE_COLLECTION}"
    )
    return True


async def init_redis() -> bool:
    """连接 Redis，返回是否可用"""
    global _redis_client
    if not settings.REDIS_ENABLED:
        logger.info("Redis 未启用，缓存不使用内存后端")
        return False
    client = Redis.from_url(
        settings.REDIS_URL,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=10,
    )
    try:
        await client.ping()
    except Exception as exc:
        logger.warning(f"⚠️ Redis 不可用，缓存跳过该后端: {exc}")
        await client.aclose()
        return False
    _redis_client = client
    logger.info(f"✅ Redis 缓存就绪: {settings.REDIS_HOST}:{settings.REDIS_PORT}")
    return True


async def close_connections():
    """关闭存储连接，缓存层随后只剩文件后端"""
    global _mongo_client, _cache_collection, _redis_client
    if _mongo_client:
        _mongo_client.close()
        _mongo_client = None
        _cache_collection = None
        logger.info("MongoDB 连接已关闭")
    if _redis_client:
        # from_url 创建的连接池随客户端一起关闭
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis 连接已关闭")


def get_cache_collection() -> Optional[AsyncIOMotorCollection]:
    """缓存集合（未连接时为 None）"""
    return _cache_collection


def get_redis() -> Optional[Redis]:
    """Redis 客户端（未连接时为 None）"""
    return _redis_client


async def _ping(ping: Callable[[], Awaitable[Any]], **info) -> Dict[str, Any]:
    try:
        await ping()
    except Exception as exc:
        return {"status": "unhealthy", "error": str(exc)}
    return {"status": "healthy", **info}


async def check_health() -> dict:
    """缓存后端状态：disabled / disconnected / healthy / unhealthy"""
    result = {}
    if _mongo_client:
        result["mongodb"] = await _ping(
            lambda: _mongo_client.admin.command("ping"),
            host=settings.MONGODB_HOST,
            collection=settings.MONGO_CACHE_COLLECTION,
        )
    else:
        result["mongodb"] = {"status": "disconnected" if settings.MONGODB_ENABLED else "disabled"}

    if _redis_client:
        result["redis"] = await _ping(_redis_client.ping, host=settings.REDIS_HOST)
    else:
        result["redis"] = {"status": "disconnected" if settings.REDIS_ENABLED else "disabled"}
    return result
