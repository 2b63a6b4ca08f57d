"""
兜底数据源 – 合成数据

不访问网络、永不失败。以股票代码的哈希为随机种子，
生成覆盖最近 SYNTHETIC_DAYS 个自然日（跳过周末）的确定性日 K，
以及同样确定的占位财务数据，保证下游在断网时也有数据可以展示。
"""

import hashlib
import logging
import random
from datetime import date, timedelta
from typing import List

from quote_service.config import settings
from quote_service.layers.sources.base import SourceAdapter, SourceResult, clean_code
from quote_service.models.stock import Candle, FinancialSnapshot

logger = logging.getLogger(__name__)


def code_seed(code: str) -> int:
    """代码 → 稳定的整数种子（不受 PYTHONHASHSEED 影响）"""
    return int(hashlib.md5(clean_code(code).encode("utf-8")).hexdigest()[:12], 16)


class SyntheticAdapter(SourceAdapter):
    """合成数据源（兜底）"""

    name = "synthetic"

    def __init__(self, days: int = None, today: date = None):
        self.days = days or settings.SYNTHETIC_DAYS
        self._today = today

    def trading_days(self) -> List[date]:
        today = self._today or date.today()
        start = today - timedelta(days=self.days)
        days = [start + timedelta(days=i) for i in range(1, self.days + 1)]
        return [d for d in days if d.weekday() < 5]

    async def fetch_candles(self, code: str) -> List[Candle]:
        seed = code_seed(code)
        rng = random.Random(seed)
        close = 5 + (seed % 2000) / 10

        records = []
        for day in self.trading_days():
            open_ = close
            close = max(open_ * (1 + rng.uniform(-0.03, 0.03)), 0.01)
            high = max(open_, close) * (1 + rng.uniform(0, 0.015))
            low = min(open_, close) * (1 - rng.uniform(0, 0.015))
            volume = float(rng.randint(50_000, 5_000_000))
            records.append({
                "date": day.isoformat(),
                "open": round(open_, 2),
                "high": round(high, 2),
                "low": round(low, 2),
                "close": round(close, 2),
                "volume": volume,
                "amount": round(volume * (open_ + close) / 2, 2),
                "pct_chg": round((close - open_) / open_ * 100, 4),
                "turnover": round(rng.uniform(0.2, 5.0), 2),
            })
        return self.build_candles(records)

    async def fetch_financials(self, code: str) -> FinancialSnapshot:
        seed = code_seed(code)
        snapshot = FinancialSnapshot(
            pe_ttm=round(8 + seed % 40 + (seed % 7) / 10, 2),
            pb=round(0.8 + (seed % 50) / 10, 2),
            dividend_yield=round((seed % 40) / 10, 2),
            market_cap=float(10 + seed % 990) * 100_000_000,
            circulating_cap=float(5 + seed % 500) * 100_000_000,
            turnover_rate=round(0.5 + (seed % 30) / 10, 2),
            total_shares=float(1 + seed % 100) * 100_000_000,
            roe=round(5 + (seed % 200) / 10, 2),
            net_margin=round(5 + (seed % 250) / 10, 2),
            gross_margin=round(15 + (seed % 500) / 10, 2),
            debt_ratio=round(20 + (seed % 500) / 10, 2),
            asset_turnover=round(0.3 + (seed % 90) / 100, 2),
            equity_multiplier=round(1.2 + (seed % 20) / 10, 2),
            report_date=(self._today or date.today()).isoformat(),
        )
        return snapshot.model_copy(update={"estimated": [
            name for name in FinancialSnapshot.model_fields if name not in ("estimated", "report_date")
        ]})

    async def fetch(self, code: str) -> SourceResult:
        logger.warning(f"{code} 使用合成数据兜底（非真实行情）")
        result = await super().fetch(code)
        result.synthetic = True
        return result
