"""
数据流分层架构
  Layer 1 – Acquisition  : 数据获取（限流 / 去重 / 重试 / 模拟数据兜底）
  Layer 2 – Cache        : 结果缓存（Redis → 文件）
  Layer 3 – Processing   : K 线整理与格式化
  Layer 4 – Analysis     : 技术指标计算与交易信号
"""
