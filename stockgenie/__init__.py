"""
StockGenie 数据服务
股票行情获取、技术分析与大模型解读的 HTTP 服务

架构分层：
  数据获取层 (Acquisition)  → 限流、去重、重试拉取，必要时降级为模拟数据
  缓存层     (Cache)        → Redis / 文件两级结果缓存
  处理层     (Processing)   → K 线整理与展示字段
  分析层     (Analysis)     → Decimal 技术指标与交易信号
"""

__version__ = "1.0.0"
