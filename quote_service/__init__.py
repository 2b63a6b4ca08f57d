"""
A 股行情数据服务
多数据源获取 → 指标增强 → 财务补全 → 带 TTL 的持久化缓存

架构分层：
  数据获取层 (Acquisition)  → 东方财富 / 腾讯 / 合成数据，按优先级故障转移
  缓存层     (Cache)        → Redis / MongoDB / 文件三级缓存，惰性过期
  处理层     (Processing)   → K 线清洗、格式化、标准化
  分析层     (Analysis)     → 技术指标计算（MA / MACD / RSI / KDJ / BOLL）
  财务补全   (Reconciliation) → 从不完整的财务数据推导缺失字段
"""

__version__ = "1.0.0"
