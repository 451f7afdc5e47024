"""
数据流分层架构
  Layer 1 – Acquisition  : 数据获取（Tushare HTTP / Binance K 线分页）
  Layer 2 – Processing   : 各市场字段标准化、区间裁剪
  Layer 3 – Adjustment   : A 股前复权
  Layer 4 – Analysis     : 技术指标计算
辅助模块：indicator_spec（指标表达式解析）、lookback（预热区间估算）
"""
