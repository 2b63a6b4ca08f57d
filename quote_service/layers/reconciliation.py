"""
财务补全层
合并多个不完整的财务快照，并从已有字段推导缺失的关键指标。

推导出的字段是经验估算而非实际披露，会登记在 FinancialSnapshot.estimated 中：
  - ROE ≈ PB / PE × 100（账面价值与定价一致时成立）
  - 资产负债率缺失时取 50.0 作为中性占位值
"""

import logging
import math
from typing import Optional

from quote_service.models.stock import FinancialSnapshot

logger = logging.getLogger(__name__)

DEFAULT_DEBT_RATIO = 50.0

_VALUE_FIELDS = [
    name for name in FinancialSnapshot.model_fields if name != "estimated"
]


def _sanitize(value):
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        return None
    return value


def merge_financials(
    preferred: Optional[FinancialSnapshot],
    fallback: Optional[FinancialSnapshot],
) -> FinancialSnapshot:
    """逐字段合并：preferred 中非空的值优先，其余取 fallback"""
    preferred = preferred or FinancialSnapshot()
    fallback = fallback or FinancialSnapshot()
    merged = {}
    for name in _VALUE_FIELDS:
        value = _sanitize(getattr(preferred, name))
        merged[name] = value if value is not None else _sanitize(getattr(fallback, name))
    estimated = [
        name for name in dict.fromkeys(preferred.estimated + fallback.estimated)
        if merged.get(name) is not None
    ]
    return FinancialSnapshot(**merged, estimated=estimated)


def reconcile_financials(partial: Optional[FinancialSnapshot]) -> FinancialSnapshot:
    """
    按顺序补全财务快照：
      1. ROE 缺失、PB 与 PE(TTM) 均存在且 PE > 0 时，ROE = PB / PE × 100
      2. 资产负债率缺失时取 50.0
      3. 其余缺失字段保持 None
    已存在的值从不覆盖。
    """
    snapshot = merge_financials(partial, None)
    updates = {}
    estimated = list(snapshot.estimated)

    if snapshot.roe is None and snapshot.pb is not None and snapshot.pe_ttm is not None:
        if snapshot.pe_ttm > 0:
            updates["roe"] = snapshot.pb / snapshot.pe_ttm * 100
            estimated.append("roe")
            logger.debug(f"ROE 由 PB/PE 估算: {updates['roe']:.2f}")

    if snapshot.debt_ratio is None:
        updates["debt_ratio"] = DEFAULT_DEBT_RATIO
        estimated.append("debt_ratio")

    if not updates:
        return snapshot
    return snapshot.model_copy(update={**updates, "estimated": estimated})
