"""
数据流分层架构
  Layer 1 – Acquisition    : 多数据源获取与故障转移
  Layer 2 – Cache          : 多级缓存（Redis → MongoDB → 文件），惰性过期
  Layer 3 – Processing     : K 线清洗与格式化
  Layer 4 – Analysis       : 技术指标计算
  Reconciliation           : 财务快照合并与补全
"""
