"""行情领域模型：K 线、财务快照、股票聚合记录"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Candle(BaseModel):
    """单根日 K 线，指标字段由分析层在增强阶段写入"""

    model_config = ConfigDict(frozen=True)

    date: str
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    amount: float = 0.0
    turnover: Optional[float] = None
    pct_chg: Optional[float] = None

    # ── 技术指标 ──────────────────────────────────────────
    ma5: Optional[float] = None
    ma10: Optional[float] = None
    ma20: Optional[float] = None
    ma50: Optional[float] = None
    ma200: Optional[float] = None
    macd_dif: Optional[float] = None
    macd_dea: Optional[float] = None
    macd_hist: Optional[float] = None
    rsi: Optional[float] = None
    kdj_k: Optional[float] = None
    kdj_d: Optional[float] = None
    kdj_j: Optional[float] = None
    boll_upper: Optional[float] = None
    boll_mid: Optional[float] = None
    boll_lower: Optional[float] = None



class FinancialSnapshot(BaseModel):
    """
    财务快照

    所有字段均可为空，None 表示“没有数据”而不是 0。
    数据源返回的不完整快照也使用本类型，未知字段保持 None。
    estimated 记录由经验公式补全（而非实际披露）的字段名。
    """

    model_config = ConfigDict(frozen=True)

    pe_ttm: Optional[float] = None
    pb: Optional[float] = None
    dividend_yield: Optional[float] = None
    market_cap: Optional[float] = None
    circulating_cap: Optional[float] = None
    turnover_rate: Optional[float] = None
    total_shares: Optional[float] = None
    roe: Optional[float] = None
    net_margin: Optional[float] = None
    gross_margin: Optional[float] = None
    debt_ratio: Optional[float] = None
    asset_turnover: Optional[float] = None
    equity_multiplier: Optional[float] = None
    report_date: Optional[str] = None
    estimated: List[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return all(
            value is None
            for name, value in self.model_dump(exclude={"estimated"}).items()
        )


class StockRecord(BaseModel):
    """股票聚合记录，组装完成后即为不可变值"""

    model_config = ConfigDict(frozen=True)

    code: str
    name: str = ""
    candles: List[Candle] = Field(default_factory=list)
    last_update: str
    financials: Optional[FinancialSnapshot] = None
    source: str = ""
    synthetic: bool = False

    @property
    def latest(self) -> Optional[Candle]:
        return self.candles[-1] if self.candles else None
