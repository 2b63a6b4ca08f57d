"""
技术分析服务
在已增强的股票记录上按需挑选指标，提供最新指标摘要与历史序列
"""

import logging
from typing import Any, Dict, List, Optional

from quote_service.layers.analysis import SUPPORTED_INDICATORS, get_analysis_layer
from quote_service.layers.processing import get_processing_layer
from quote_service.services.stock_service import StockService, get_stock_service

logger = logging.getLogger(__name__)

# 指标名 → Candle 字段
INDICATOR_COLUMNS: Dict[str, List[str]] = {
    "ma": ["ma5", "ma10", "ma20", "ma50", "ma200"],
    "macd": ["macd_dif", "macd_dea", "macd_hist"],
    "rsi": ["rsi"],
    "kdj": ["kdj_k", "kdj_d", "kdj_j"],
    "boll": ["boll_upper", "boll_mid", "boll_lower"],
}

_BASE_COLUMNS = ["date", "open", "high", "low", "close", "volume", "amount", "pct_chg"]


class TechnicalService:
    """技术分析服务"""

    def __init__(self, stocks: StockService = None):
        self._proc = get_processing_layer()
        self._analysis = get_analysis_layer()
        self._stocks = stocks or get_stock_service()

    async def get_indicators(
        self,
        code: str,
        indicators: Optional[List[str]] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        获取指定股票的技术指标

        Args:
            code: 股票代码
            indicators: 指定返回的指标列表，None 表示全部
                        可选: ma, macd, rsi, kdj, boll
            limit: 只返回最近 limit 根 K 线

        Returns:
            {
                "code": "...",
                "latest": { "ma5": ..., "rsi": ..., ... },
                "history": [{ "date": "...", ... }, ...]
            }
        """
        record = await self._stocks.get_stock(code)
        selected = indicators or SUPPORTED_INDICATORS
        columns = list(_BASE_COLUMNS)
        for name in selected:
            columns.extend(INDICATOR_COLUMNS[name])

        df = self._proc.from_candles(record.candles)
        if df.empty:
            return {"code": record.code, "latest": {}, "history": []}
        df = df[columns]
        if limit:
            df = df.tail(limit)

        return {
            "code": record.code,
            "source": record.source,
            "synthetic": record.synthetic,
            "indicators": list(selected),
            "latest": self._analysis.to_indicator_summary(df),
            "history": self._proc.to_records(df),
        }


# ── 模块级别单例 ──────────────────────────────────────────
_technical_service: Optional[TechnicalService] = None


def get_technical_service() -> TechnicalService:
    global _technical_service
    if _technical_service is None:
        _technical_service = TechnicalService()
    return _technical_service
