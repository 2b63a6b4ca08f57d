"""
Layer 3 – 数据处理层
对数据源返回的原始 K 线记录进行清洗、格式化、标准化，
并负责 DataFrame 与 Candle 模型之间的转换。
"""

import logging
from typing import Any, Dict, List, Optional

import pandas as pd

from quote_service.models.stock import Candle

logger = logging.getLogger(__name__)

_PRICE_COLS = ["open", "high", "low", "close"]
_OPTIONAL_COLS = ["pct_chg", "turnover"]


class ProcessingLayer:
    """数据处理层：清洗 + 格式化 + 标准化"""

    def normalize_ohlcv(self, records: List[Dict[str, Any]]) -> pd.DataFrame:
        """
        将原始 OHLCV 记录列表标准化为 DataFrame

        标准列：date, open, high, low, close, volume, amount, pct_chg, turnover
        价格缺失、非正数或非有限值的行直接丢弃；同一日期保留最后一条。
        """
        if not records:
            return pd.DataFrame()

        df = pd.DataFrame(records)
        if "date" not in df.columns or not set(_PRICE_COLS).issubset(df.columns):
            logger.warning(f"K 线记录缺少必要列: {list(df.columns)}")
            return pd.DataFrame()

        for col in ("volume", "amount"):
            if col not in df.columns:
                df[col] = 0.0
        for col in _OPTIONAL_COLS:
            if col not in df.columns:
                df[col] = float("nan")

        # 类型转换
        for col in _PRICE_COLS + ["volume", "amount"] + _OPTIONAL_COLS:
            df[col] = pd.to_numeric(df[col], errors="coerce")
        df[["volume", "amount"]] = df[["volume", "amount"]].fillna(0.0)

        # 基础合法性校验：价格为正、有限
        finite = df[_PRICE_COLS].apply(lambda s: s.between(0, float("inf"), inclusive="neither"))
        dropped = len(df) - int(finite.all(axis=1).sum())
        if dropped:
            logger.debug(f"丢弃 {dropped} 条价格非法的 K 线")
        df = df[finite.all(axis=1)].copy()

        # 日期格式统一
        df["date"] = pd.to_datetime(df["date"], errors="coerce")
        df = df.dropna(subset=["date"])
        df["date"] = df["date"].dt.strftime("%Y-%m-%d")

        # 删除重复日期，保留最新数据
        df = df.drop_duplicates(subset=["date"], keep="last")
        df = df.sort_values("date").reset_index(drop=True)

        return df[["date"] + _PRICE_COLS + ["volume", "amount"] + _OPTIONAL_COLS]

    def add_basic_metrics(self, df: pd.DataFrame) -> pd.DataFrame:
        """数据源未提供涨跌幅时，用相邻收盘价补算"""
        if df.empty or "close" not in df.columns:
            return df
        df = df.copy()
        if "pct_chg" not in df.columns or df["pct_chg"].isna().all():
            df["pct_chg"] = (df["close"].pct_change() * 100).round(4)
        return df

    def to_records(self, df: pd.DataFrame) -> List[Dict[str, Any]]:
        """DataFrame 转换为字典列表，NaN 统一替换为 None"""
        if df.empty:
            return []
        return [
            {k: to_native(v) for k, v in row.items()}
            for row in df.to_dict(orient="records")
        ]

    def to_candles(self, df: pd.DataFrame) -> List[Candle]:
        """DataFrame 转换为 Candle 列表，多余列忽略"""
        fields = Candle.model_fields
        return [
            Candle(**{k: v for k, v in row.items() if k in fields})
            for row in self.to_records(df)
        ]

    def from_candles(self, candles: List[Candle]) -> pd.DataFrame:
        """Candle 列表转换为 DataFrame（按日期升序）"""
        if not candles:
            return pd.DataFrame()
        df = pd.DataFrame([c.model_dump() for c in candles])
        return df.sort_values("date").reset_index(drop=True)


def to_native(value: Any) -> Any:
    """numpy 标量转 Python 原生类型，NaN 转 None"""
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        return value
    return value.item() if hasattr(value, "item") else value


# ── 模块级别单例 ──────────────────────────────────────────
_processor: Optional[ProcessingLayer] = None


def get_processing_layer() -> ProcessingLayer:
    global _processor
    if _processor is None:
        _processor = ProcessingLayer()
    return _processor
