"""
研报模型
外部文本生成服务基于增强后的 StockRecord 返回的结构化观点。
本服务只负责缓存与透传，不解释其中的内容。
"""

from typing import List, Literal

from pydantic import BaseModel, Field


class TechnicalView(BaseModel):
    score: float = 0
    trend: Literal["Bullish", "Bearish", "Neutral"] = "Neutral"
    signals: List[str] = Field(default_factory=list)
    support: float = 0
    resistance: float = 0
    summary: str = ""


class FundamentalView(BaseModel):
    score: float = 0
    roe_assessment: str = ""
    financial_health: Literal["Strong", "Stable", "Weak"] = "Stable"
    highlights: List[str] = Field(default_factory=list)
    dupont_analysis: str = ""


class ValuationView(BaseModel):
    score: float = 0
    status: Literal["Undervalued", "Fair", "Overvalued"] = "Fair"
    fair_value: float = 0
    rationale: str = ""


class StrategyView(BaseModel):
    recommendation: Literal["STRONG_BUY", "BUY", "HOLD", "SELL", "STRONG_SELL"] = "HOLD"
    confidence_score: float = 0
    outlook: str = ""
    summary: str = ""
    investment_thesis: List[str] = Field(default_factory=list)
    risk_factors: List[str] = Field(default_factory=list)
    catalysts: List[str] = Field(default_factory=list)


class RiskView(BaseModel):
    score: float = 0
    level: Literal["Low", "Medium", "High", "Critical"] = "Medium"
    warnings: List[str] = Field(default_factory=list)


class AnalysisReport(BaseModel):
    """研报结构化观点"""
    stock_code: str
    timestamp: str
    technical: TechnicalView = Field(default_factory=TechnicalView)
    fundamental: FundamentalView = Field(default_factory=FundamentalView)
    valuation: ValuationView = Field(default_factory=ValuationView)
    strategy: StrategyView = Field(default_factory=StrategyView)
    risk: RiskView = Field(default_factory=RiskView)
