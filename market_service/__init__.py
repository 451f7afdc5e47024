"""
多市场行情数据服务
对上游行情数据（A股 / 美股 / 港股 / 外汇 / 期货 / 基金 / 债券 / 期权 / 加密货币）
进行标准化、复权和技术指标计算

架构分层：
  数据获取层 (Acquisition)  → 从 Tushare / Binance 拉取原始批量数据
  数据处理层 (Processing)   → 各市场字段映射为统一日线序列、区间裁剪
  复权层     (Adjustment)   → A 股前复权
  分析层     (Analysis)     → 技术指标计算（MACD / RSI / KDJ / BOLL / MA）
"""

__version__ = "1.0.0"
