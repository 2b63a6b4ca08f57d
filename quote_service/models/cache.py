"""缓存键与缓存记录模型"""

import hashlib
import time
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

_MAX_KEY_LENGTH = 200


class CacheKey(BaseModel):
    """
    类型化缓存键：命名空间 + 实体 ID + 结构版本

    版本号参与键的生成，升级数据结构时只需修改版本即可让旧缓存整体失效。
    """

    model_config = ConfigDict(frozen=True)

    namespace: str
    entity: str
    version: str = "v1"

    def render(self) -> str:
        raw = f"{self.namespace}:{self.version}:{self.entity}"
        if len(raw) > _MAX_KEY_LENGTH:
            raw = f"{self.namespace}:{self.version}:" + hashlib.md5(raw.encode()).hexdigest()
        return raw

    def __str__(self) -> str:
        return self.render()


class CacheRecord(BaseModel):
    """缓存信封：负载 + 创建时间 + 绝对过期时间（None 表示永不过期）"""

    value: Any = None
    created_at: float
    expires_at: Optional[float] = None

    @classmethod
    def wrap(cls, value: Any, ttl: Optional[float]) -> "CacheRecord":
        now = time.time()
        expires_at = now + ttl if ttl else None
        return cls(value=value, created_at=now, expires_at=expires_at)

    def is_expired(self, now: float = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (time.time() if now is None else now)
