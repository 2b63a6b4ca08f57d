"""
数据源适配器基类与公共工具

每个适配器提供统一的两项能力：
  fetch_candles    → 有序日 K 列表，失败抛出 SourceError
  fetch_financials → 不完整的财务快照，失败时返回空快照，绝不抛出
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from quote_service.exceptions import SourceEmpty
from quote_service.layers.processing import get_processing_layer
from quote_service.models.stock import Candle, FinancialSnapshot

logger = logging.getLogger(__name__)


@dataclass
class SourceResult:
    """单个数据源的获取结果"""
    candles: List[Candle]
    financials: FinancialSnapshot = field(default_factory=FinancialSnapshot)
    source: str = ""
    synthetic: bool = False


# ── 代码转换 ──────────────────────────────────────────────

def clean_code(code: str) -> str:
    """sh.600519 / SZ.000858 / 600519 → 纯数字代码"""
    c = code.strip().lower()
    for prefix in ("sh.", "sz.", "bj.", "sh", "sz", "bj"):
        if c.startswith(prefix):
            return c[len(prefix):]
    return c


def is_shanghai(code: str) -> bool:
    c = code.strip().lower()
    if c.startswith("sh"):
        return True
    if c.startswith(("sz", "bj")):
        return False
    return clean_code(c).startswith(("6", "5"))


def to_eastmoney_secid(code: str) -> str:
    """东方财富 secid：1 = 上交所，0 = 深交所 / 北交所"""
    return f"{'1' if is_shanghai(code) else '0'}.{clean_code(code)}"


def to_tencent_symbol(code: str) -> str:
    """腾讯代码：sh.600519 → sh600519"""
    return f"{'sh' if is_shanghai(code) else 'sz'}{clean_code(code)}"


# ── 数值解析 ──────────────────────────────────────────────

def to_float(value: Any) -> Optional[float]:
    """宽松解析数值：None / '-' / 空串 / 非数字 / NaN / inf 一律视为缺失"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if value in ("", "-", "--"):
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def to_positive(value: Any) -> Optional[float]:
    number = to_float(value)
    return number if number is not None and number > 0 else None


# ── 适配器基类 ────────────────────────────────────────────

class SourceAdapter(ABC):
    """数据源适配器"""

    name: str = "base"

    @abstractmethod
    async def fetch_candles(self, code: str) -> List[Candle]:
        ...

    async def fetch_financials(self, code: str) -> FinancialSnapshot:
        return FinancialSnapshot()

    async def fetch(self, code: str) -> SourceResult:
        """默认实现：先取 K 线，再取财务；财务失败不影响结果"""
        candles = await self.fetch_candles(code)
        financials = await self.fetch_financials(code)
        return SourceResult(candles=candles, financials=financials, source=self.name)

    def build_candles(self, records: List[Dict[str, Any]]) -> List[Candle]:
        """原始记录 → 清洗后的 Candle 列表；清洗后为空时抛出 SourceEmpty"""
        proc = get_processing_layer()
        df = proc.normalize_ohlcv(records)
        df = proc.add_basic_metrics(df)
        candles = proc.to_candles(df)
        if not candles:
            raise SourceEmpty(f"{self.name} 没有可用的 K 线", source=self.name)
        return candles
