"""
Layer 1 – 数据获取层
按优先级依次尝试各数据源（东方财富 → 腾讯 → 合成数据），
第一个返回非空 K 线的数据源胜出，其结果原样使用，后续数据源不再访问。
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from quote_service.config import settings
from quote_service.exceptions import AllSourcesExhausted, SourceEmpty, SourceError
from quote_service.layers.sources import (
    EastMoneyAdapter,
    SourceAdapter,
    SourceResult,
    SyntheticAdapter,
    TencentAdapter,
)
from quote_service.layers.transport import JsonpTransport

logger = logging.getLogger(__name__)


class AcquisitionLayer:
    """数据获取层：顺序故障转移，不做并行竞速"""

    def __init__(self, adapters: List[SourceAdapter] = None):
        if adapters is None:
            transport = JsonpTransport()
            adapters = [EastMoneyAdapter(transport), TencentAdapter(transport)]
            if settings.SYNTHETIC_FALLBACK_ENABLED:
                adapters.append(SyntheticAdapter())
        self._adapters = adapters

    @property
    def adapters(self) -> List[SourceAdapter]:
        return list(self._adapters)

    def providers(self) -> List[Dict[str, Any]]:
        """故障转移链描述（按优先级）"""
        return [
            {"id": adapter.name, "priority": i + 1, "synthetic": isinstance(adapter, SyntheticAdapter)}
            for i, adapter in enumerate(self._adapters)
        ]

    async def acquire(self, code: str) -> SourceResult:
        """
        获取 K 线与财务数据

        单个数据源的超时 / 格式错误 / 空数据只记录并切换下一个；
        全部失败时抛出 AllSourcesExhausted。
        """
        errors: List[Tuple[str, Exception]] = []
        for adapter in self._adapters:
            try:
                result = await adapter.fetch(code)
                if not result.candles:
                    raise SourceEmpty(f"{adapter.name} 返回空 K 线", source=adapter.name)
            except SourceError as exc:
                logger.warning(f"{code} 数据获取失败（来源：{adapter.name}）: {exc}")
                errors.append((adapter.name, exc))
                continue
            except Exception as exc:
                logger.warning(f"{code} 数据源异常（来源：{adapter.name}）: {exc}", exc_info=True)
                errors.append((adapter.name, exc))
                continue

            if not result.source:
                result.source = adapter.name
            if errors:
                logger.info(f"{code} 已切换到 {adapter.name}，此前失败: {[name for name, _ in errors]}")
            logger.info(f"{code} 数据获取成功（来源：{adapter.name}），共 {len(result.candles)} 根 K 线")
            return result

        logger.error(f"{code} 所有数据源均失败")
        raise AllSourcesExhausted(errors)


# ── 模块级别单例 ──────────────────────────────────────────
_acquisition: Optional[AcquisitionLayer] = None


def get_acquisition_layer() -> AcquisitionLayer:
    global _acquisition
    if _acquisition is None:
        _acquisition = AcquisitionLayer()
    return _acquisition
