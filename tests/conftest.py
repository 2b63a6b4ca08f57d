"""公共测试夹具：示例 K 线、可控数据源、内存缓存后端"""

import os
import sys
from datetime import date, timedelta
from typing import Dict, List, Optional

import pytest

# 确保仓库根目录在 sys.path
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from quote_service.exceptions import SourceError  # noqa: E402
from quote_service.layers.cache import CacheLayer  # noqa: E402
from quote_service.layers.sources.base import SourceAdapter, SourceResult  # noqa: E402
from quote_service.models.cache import CacheRecord  # noqa: E402
from quote_service.models.stock import Candle, FinancialSnapshot  # noqa: E402


# ─────────────────────────────────────────────────────────
# 辅助函数：生成示例 OHLCV
# ─────────────────────────────────────────────────────────

def sample_records(n: int = 30, seed: int = 7) -> List[dict]:
    import random

    rng = random.Random(seed)
    records = []
    close = 10.0
    start = date(2024, 1, 1)
    for i in range(n):
        d = (start + timedelta(days=i)).isoformat()
        close = round(close * (1 + rng.uniform(-0.02, 0.02)), 2)
        records.append({
            "date": d,
            "open": round(close * 0.99, 2),
            "high": round(close * 1.01, 2),
            "low": round(close * 0.98, 2),
            "close": close,
            "volume": rng.randint(100000, 5000000),
            "amount": rng.uniform(1e6, 5e7),
            "pct_chg": round(rng.uniform(-2, 2), 4),
        })
    return records


def make_candles(closes: List[float], start: date = date(2024, 1, 1)) -> List[Candle]:
    return [
        Candle(
            date=(start + timedelta(days=i)).isoformat(),
            open=c,
            high=c * 1.01,
            low=c * 0.99,
            close=c,
            volume=1000.0,
            amount=1000.0 * c,
        )
        for i, c in enumerate(closes)
    ]


# ─────────────────────────────────────────────────────────
# 可控数据源
# ─────────────────────────────────────────────────────────

class StaticAdapter(SourceAdapter):
    """固定返回给定 K 线与财务数据"""

    def __init__(self, name: str, candles: List[Candle], financials: FinancialSnapshot = None):
        self.name = name
        self._candles = candles
        self._financials = financials or FinancialSnapshot()
        self.calls = 0

    async def fetch_candles(self, code: str) -> List[Candle]:
        self.calls += 1
        return list(self._candles)

    async def fetch_financials(self, code: str) -> FinancialSnapshot:
        return self._financials


class FailingAdapter(SourceAdapter):
    """每次调用都抛出给定异常"""

    def __init__(self, name: str, exc: Exception = None):
        self.name = name
        self._exc = exc or SourceError(f"{name} unavailable", source=name)
        self.calls = 0

    async def fetch_candles(self, code: str) -> List[Candle]:
        self.calls += 1
        raise self._exc

    async def fetch(self, code: str) -> SourceResult:
        self.calls += 1
        raise self._exc


# ─────────────────────────────────────────────────────────
# 内存缓存后端
# ─────────────────────────────────────────────────────────

class MemoryBackend:
    name = "memory"

    def __init__(self):
        self.store: Dict[tuple, CacheRecord] = {}
        self.writes = 0

    async def read(self, namespace: str, key: str) -> Optional[CacheRecord]:
        return self.store.get((namespace, key))

    async def write(self, namespace, key, record, ttl) -> None:
        self.writes += 1
        self.store[(namespace, key)] = record

    async def remove(self, namespace: str, key: str) -> None:
        self.store.pop((namespace, key), None)

    async def clear(self, namespace: str) -> None:
        for k in [k for k in self.store if k[0] == namespace]:
            del self.store[k]

    async def count(self) -> int:
        return len(self.store)


@pytest.fixture
def memory_backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def memory_cache(memory_backend) -> CacheLayer:
    return CacheLayer(backends=[memory_backend])
