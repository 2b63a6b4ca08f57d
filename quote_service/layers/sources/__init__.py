"""
数据源适配器
  EastMoneyAdapter  – 主数据源（东方财富，三路并发）
  TencentAdapter    – 备用数据源（腾讯行情）
  SyntheticAdapter  – 兜底数据源（本地合成，不联网）
"""

from quote_service.layers.sources.base import SourceAdapter, SourceResult
from quote_service.layers.sources.eastmoney import EastMoneyAdapter
from quote_service.layers.sources.synthetic import SyntheticAdapter
from quote_service.layers.sources.tencent import TencentAdapter

__all__ = [
    "SourceAdapter",
    "SourceResult",
    "EastMoneyAdapter",
    "TencentAdapter",
    "SyntheticAdapter",
]
