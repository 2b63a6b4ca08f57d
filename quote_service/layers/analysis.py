"""
Layer 4 – 技术分析层
计算常用技术指标：MA、MACD、RSI、KDJ、BOLL

所有指标按时间顺序从左到右递推，各自写入不同的列，互不依赖，计算顺序不影响结果。
固定窗口指标在预热期（前 period-1 根）输出哨兵值：
  MA / BOLL → None；RSI → 50；KDJ → 50/50/50；MACD 第一根固定为 0/0/0
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd

from quote_service.layers.processing import get_processing_layer, to_native
from quote_service.models.stock import Candle

logger = logging.getLogger(__name__)

DEFAULT_MA_PERIODS = (5, 10, 20, 50, 200)
SUPPORTED_INDICATORS = ["ma", "macd", "rsi", "kdj", "boll"]


def wilder_rsi(closes: Sequence[float], period: int = 14) -> List[float]:
    """
    Wilder RSI

    前 period 根内累计涨跌幅，在第 period-1 根处取简单平均；
    之后按 (前值 × (period-1) + 当前值) / period 平滑。
    平均跌幅为 0 时 RS 取 100（而不是无穷大）。
    """
    out: List[float] = []
    gains = losses = 0.0
    for i, close in enumerate(closes):
        if i == 0:
            out.append(50.0)
            continue
        change = close - closes[i - 1]
        gain = change if change > 0 else 0.0
        loss = -change if change < 0 else 0.0
        if i < period:
            gains += gain
            losses += loss
            if i == period - 1:
                gains /= period
                losses /= period
            out.append(50.0)
            continue
        gains = (gains * (period - 1) + gain) / period
        losses = (losses * (period - 1) + loss) / period
        rs = 100.0 if losses == 0 else gains / losses
        out.append(100 - 100 / (1 + rs))
    return out


class AnalysisLayer:
    """技术分析层：在处理层输出的标准 DataFrame 上计算技术指标"""

    # ── 均线 ──────────────────────────────────────────────

    def add_ma(self, df: pd.DataFrame, periods: Iterable[int] = None) -> pd.DataFrame:
        """添加简单移动平均线，不足 period 根时为空"""
        if df.empty:
            return df
        df = df.copy()
        for p in (periods or DEFAULT_MA_PERIODS):
            df[f"ma{p}"] = df["close"].rolling(window=p, min_periods=p).mean()
        return df

    # ── MACD ──────────────────────────────────────────────

    def add_macd(
        self,
        df: pd.DataFrame,
        fast: int = 12,
        slow: int = 26,
        signal: int = 9,
    ) -> pd.DataFrame:
        """
        添加 MACD 指标（DIF、DEA、MACD 柱）

        EMA 以第一根收盘价为初值，平滑系数 2/(n+1)；
        第一根 DIF 恒为 0，DEA 以 0 起算，因此第一根三项均为 0。
        """
        if df.empty:
            return df
        df = df.copy()
        ema_fast = df["close"].ewm(span=fast, adjust=False).mean()
        ema_slow = df["close"].ewm(span=slow, adjust=False).mean()
        df["macd_dif"] = ema_fast - ema_slow
        df["macd_dea"] = df["macd_dif"].ewm(span=signal, adjust=False).mean()
        df["macd_hist"] = 2 * (df["macd_dif"] - df["macd_dea"])
        return df

    # ── RSI ───────────────────────────────────────────────

    def add_rsi(self, df: pd.DataFrame, period: int = 14) -> pd.DataFrame:
        """添加 RSI 指标（Wilder 平滑）"""
        if df.empty:
            return df
        df = df.copy()
        df["rsi"] = wilder_rsi(df["close"].tolist(), period)
        return df

    # ── KDJ ───────────────────────────────────────────────

    def add_kdj(
        self, df: pd.DataFrame, n: int = 9, m1: int = 3, m2: int = 3
    ) -> pd.DataFrame:
        """添加 KDJ 随机指标，K、D 以 50 起算，J = 3K - 2D 不设上下限"""
        if df.empty or not all(c in df.columns for c in ["high", "low", "close"]):
            return df
        df = df.copy()
        low_n = df["low"].rolling(window=n, min_periods=n).min()
        high_n = df["high"].rolling(window=n, min_periods=n).max()

        k = d = 50.0
        ks, ds, js = [], [], []
        for i, close in enumerate(df["close"]):
            if i < n - 1:
                ks.append(50.0)
                ds.append(50.0)
                js.append(50.0)
                continue
            hi, lo = high_n.iloc[i], low_n.iloc[i]
            rsv = 50.0 if hi == lo else (close - lo) / (hi - lo) * 100
            # 收盘价可能越出数据源给的高低点，RSV 截断到 [0, 100]
            rsv = min(max(rsv, 0.0), 100.0)
            k = (rsv + (m1 - 1) * k) / m1
            d = (k + (m2 - 1) * d) / m2
            ks.append(k)
            ds.append(d)
            js.append(3 * k - 2 * d)
        df["kdj_k"] = ks
        df["kdj_d"] = ds
        df["kdj_j"] = js
        return df

    # ── 布林带 ────────────────────────────────────────────

    def add_bollinger(
        self, df: pd.DataFrame, period: int = 20, std_dev: float = 2.0
    ) -> pd.DataFrame:
        """添加布林带（中轨 = MA(period)，总体标准差）"""
        if df.empty:
            return df
        df = df.copy()
        rolling = df["close"].rolling(window=period, min_periods=period)
        mid = rolling.mean()
        std = rolling.std(ddof=0)
        df["boll_mid"] = mid
        df["boll_upper"] = mid + std_dev * std
        df["boll_lower"] = mid - std_dev * std
        return df

    # ── 全量指标 ──────────────────────────────────────────

    def compute_all(self, df: pd.DataFrame, indicators: Optional[Iterable[str]] = None) -> pd.DataFrame:
        """一次性计算指标，indicators 为 None 时计算全部"""
        selected = set(indicators) if indicators else set(SUPPORTED_INDICATORS)
        if "ma" in selected:
            df = self.add_ma(df)
        if "macd" in selected:
            df = self.add_macd(df)
        if "rsi" in selected:
            df = self.add_rsi(df)
        if "kdj" in selected:
            df = self.add_kdj(df)
        if "boll" in selected:
            df = self.add_bollinger(df)
        return df

    def enrich(self, candles: List[Candle], indicators: Optional[Iterable[str]] = None) -> List[Candle]:
        """对按时间排列的 K 线做指标增强，返回新的 Candle 列表（原列表不变）"""
        if not candles:
            return []
        proc = get_processing_layer()
        df = self.compute_all(proc.from_candles(candles), indicators)
        return proc.to_candles(df)

    def to_indicator_summary(self, df: pd.DataFrame) -> Dict[str, Any]:
        """返回最新一行的技术指标摘要字典"""
        if df.empty:
            return {}
        last = df.iloc[-1]
        return {k: to_native(v) for k, v in last.items()}


# ── 模块级别单例 ──────────────────────────────────────────
_analysis: Optional[AnalysisLayer] = None


def get_analysis_layer() -> AnalysisLayer:
    global _analysis
    if _analysis is None:
        _analysis = AnalysisLayer()
    return _analysis
