"""数据处理层测试：OHLCV 标准化、涨跌幅补算、DataFrame ↔ Candle 转换"""

import math

import numpy as np
import pandas as pd
import pytest

from quote_service.layers.processing import ProcessingLayer, to_native

from conftest import make_candles, sample_records


@pytest.fixture
def proc() -> ProcessingLayer:
    return ProcessingLayer()


class TestNormalize:
    def test_standard_columns(self, proc):
        df = proc.normalize_ohlcv(sample_records(10))
        assert list(df.columns) == [
            "date", "open", "high", "low", "close", "volume", "amount", "pct_chg", "turnover",
        ]
        assert len(df) == 10

    def test_empty_input(self, proc):
        assert proc.normalize_ohlcv([]).empty

    def test_missing_price_column(self, proc):
        assert proc.normalize_ohlcv([{"date": "2024-01-02", "close": 10}]).empty

    def test_drops_invalid_prices(self, proc):
        records = sample_records(5)
        records[1]["close"] = 0
        records[2]["open"] = -1
        records[3]["high"] = float("inf")
        df = proc.normalize_ohlcv(records)
        assert len(df) == 2

    def test_sorts_and_dedupes(self, proc):
        records = sample_records(3)
        dup = dict(records[0], close=99.0)
        df = proc.normalize_ohlcv(list(reversed(records)) + [dup])
        assert df["date"].tolist() == sorted(df["date"].tolist())
        assert len(df) == 3
        assert df.iloc[0]["close"] == 99.0

    def test_date_format(self, proc):
        records = sample_records(1)
        records[0]["date"] = "20240105"
        df = proc.normalize_ohlcv(records)
        assert df.iloc[0]["date"] == "2024-01-05"

    def test_missing_volume_defaults_zero(self, proc):
        records = [{k: v for k, v in r.items() if k not in ("volume", "amount")} for r in sample_records(3)]
        df = proc.normalize_ohlcv(records)
        assert (df["volume"] == 0).all()
        assert (df["amount"] == 0).all()


class TestBasicMetrics:
    def test_fills_missing_pct_chg(self, proc):
        records = [{k: v for k, v in r.items() if k != "pct_chg"} for r in sample_records(5)]
        df = proc.add_basic_metrics(proc.normalize_ohlcv(records))
        assert math.isnan(df["pct_chg"].iloc[0])
        expected = (df["close"].iloc[1] / df["close"].iloc[0] - 1) * 100
        assert df["pct_chg"].iloc[1] == pytest.approx(expected, abs=1e-4)

    def test_keeps_provided_pct_chg(self, proc):
        records = sample_records(5)
        df = proc.add_basic_metrics(proc.normalize_ohlcv(records))
        assert df["pct_chg"].tolist() == [r["pct_chg"] for r in records]


class TestConversion:
    def test_to_records_replaces_nan(self, proc):
        df = proc.normalize_ohlcv(sample_records(3))
        rows = proc.to_records(df)
        assert rows[0]["turnover"] is None
        assert type(rows[0]["amount"]) is float

    def test_candle_round_trip_keeps_order(self, proc):
        candles = make_candles([10.0, 11.0, 12.0])
        df = proc.from_candles(list(reversed(candles)))
        assert df["date"].tolist() == [c.date for c in candles]
        assert proc.to_candles(df) == candles

    def test_from_empty(self, proc):
        assert proc.from_candles([]).empty
        assert proc.to_candles(pd.DataFrame()) == []


class TestToNative:
    @pytest.mark.parametrize("value", [float("nan"), np.nan, None, pd.NaT])
    def test_missing(self, value):
        assert to_native(value) is None

    def test_numpy_scalars(self):
        assert type(to_native(np.int64(3))) is int
        assert type(to_native(np.float64(1.5))) is float

    def test_passthrough(self):
        assert to_native("2024-01-02") == "2024-01-02"
        assert to_native([1, 2]) == [1, 2]
