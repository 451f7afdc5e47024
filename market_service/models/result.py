"""行情查询结果"""

from datetime import date
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from market_service.models.indicators import IndicatorResult
from market_service.models.series import MarketType, TimeSeries


class MarketDataResult(BaseModel):
    """
    一次查询的标准化结果

    series 为最新在前的展示顺序，indicators 中每个数组与 series 按行对齐；
    表格 / CSV / JSON 渲染由调用方负责。
    """

    symbol: str
    market: MarketType
    start_date: date
    end_date: date
    series: TimeSeries
    indicators: Dict[str, IndicatorResult] = Field(default_factory=dict)
    requested_indicator_specs: List[str] = Field(default_factory=list)
    adjusted: bool = False
    warnings: List[str] = Field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "market": self.market.value,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "adjusted": self.adjusted,
            "warnings": list(self.warnings),
            "requested_indicator_specs": list(self.requested_indicator_specs),
            "count": len(self.series),
            "series": [p.model_dump(mode="json") for p in self.series.points],
            "indicators": {key: result.to_payload() for key, result in self.indicators.items()},
        }
