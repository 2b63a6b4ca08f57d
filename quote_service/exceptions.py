"""
行情服务异常定义

数据源层面的错误（超时 / 格式错误 / 空数据）由故障转移层就地消化，
只有 AllSourcesExhausted 会继续向上抛出。
"""

from typing import List, Tuple


class QuoteServiceError(Exception):
    """行情服务所有异常的基类"""


class SourceError(QuoteServiceError):
    """单个数据源获取失败"""

    def __init__(self, message: str, source: str = ""):
        super().__init__(message)
        self.source = source


class SourceTimeout(SourceError):
    """远程请求在规定时间内未返回"""


class SourceMalformed(SourceError):
    """返回内容无法解析或结构不完整"""


class SourceEmpty(SourceError):
    """返回结构合法，但没有可用的 K 线"""


class AllSourcesExhausted(QuoteServiceError):
    """故障转移链上的所有数据源均失败"""

    def __init__(self, errors: List[Tuple[str, Exception]]):
        self.errors = list(errors)
        detail = "; ".join(f"{name}: {exc}" for name, exc in self.errors) or "未配置数据源"
        super().__init__(f"所有数据源均不可用（{detail}）")


class MarketDataUnavailable(QuoteServiceError):
    """面向调用方的致命错误，消息可直接展示给用户"""

    def __init__(self, code: str, cause: Exception = None):
        self.code = code
        self.cause = cause
        super().__init__(f"无法获取 {code} 的行情数据，请检查网络连接后重试")
