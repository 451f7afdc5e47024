"""技术指标请求与结果模型"""

import math
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, Iterable, List, Literal, Tuple, Union

from pydantic import BaseModel, ConfigDict, model_validator

from market_service.errors import ValidationError


class IndicatorKind(str, Enum):
    MACD = "macd"
    RSI = "rsi"
    KDJ = "kdj"
    BOLL = "boll"
    MA = "ma"


# 单个指标参数上限（K 线根数）
MAX_INDICATOR_PARAM = 1000

# 各指标固定参数个数
INDICATOR_ARITY: Dict[IndicatorKind, int] = {
    IndicatorKind.MACD: 3,
    IndicatorKind.RSI: 1,
    IndicatorKind.KDJ: 3,
    IndicatorKind.BOLL: 2,
    IndicatorKind.MA: 1,
}

INDICATOR_USAGE: Dict[IndicatorKind, str] = {
    IndicatorKind.MACD: "macd(快线,慢线,信号线)，如 macd(12,26,9)",
    IndicatorKind.RSI: "rsi(周期)，如 rsi(14)",
    IndicatorKind.KDJ: "kdj(K周期,K平滑,D平滑)，如 kdj(9,3,3)",
    IndicatorKind.BOLL: "boll(周期,标准差倍数)，如 boll(20,2)",
    IndicatorKind.MA: "ma(周期)，如 ma(5)、ma(20)",
}


class IndicatorRequest(BaseModel):
    """单个指标请求，参数个数在构造时校验"""

    model_config = ConfigDict(frozen=True)

    kind: IndicatorKind
    params: Tuple[int, ...]

    @model_validator(mode="after")
    def _check_params(self) -> "IndicatorRequest":
        expected = INDICATOR_ARITY[self.kind]
        if len(self.params) != expected:
            raise ValidationError(
                f"{self.kind.value.upper()} 指标需要 {expected} 个参数，"
                f"格式：{INDICATOR_USAGE[self.kind]}",
                {"indicator": self.token, "expected": expected, "actual": len(self.params)},
            )
        if any(p <= 0 for p in self.params):
            raise ValidationError(
                f"{self.kind.value.upper()} 指标参数必须为正整数",
                {"indicator": self.token},
            )
        if any(p > MAX_INDICATOR_PARAM for p in self.params):
            raise ValidationError(
                f"{self.kind.value.upper()} 指标参数不能超过 {MAX_INDICATOR_PARAM}",
                {"indicator": self.token, "max": MAX_INDICATOR_PARAM},
            )
        return self

    @property
    def token(self) -> str:
        return f"{self.kind.value}({','.join(str(p) for p in self.params)})"

    @property
    def key(self) -> str:
        """结果字典中的键；均线按周期区分"""
        if self.kind is IndicatorKind.MA:
            return f"ma{self.params[0]}"
        return self.kind.value


# ── 指标结果 ──────────────────────────────────────────────


class _IndicatorResultBase(BaseModel):
    """所有数组与计算所用序列按位置一一对应"""

    model_config = ConfigDict(frozen=True)

    array_fields: ClassVar[Tuple[str, ...]] = ()

    def arrays(self) -> Dict[str, List[float]]:
        return {name: getattr(self, name) for name in self.array_fields}

    def __len__(self) -> int:
        return len(getattr(self, self.array_fields[0]))

    def map_arrays(self, fn: Callable[[List[float]], List[float]]):
        return self.model_copy(update={name: fn(values) for name, values in self.arrays().items()})

    def reversed(self):
        return self.map_arrays(lambda values: values[::-1])

    def take(self, indices: Iterable[int]):
        indices = list(indices)
        return self.map_arrays(lambda values: [values[i] for i in indices])

    def to_payload(self) -> Any:
        """JSON 友好结构：NaN → None"""
        arrays = {name: [_clean(v) for v in values] for name, values in self.arrays().items()}
        if len(arrays) == 1:
            return next(iter(arrays.values()))
        return arrays


def _clean(value: float):
    return None if value is None or math.isnan(value) else value


class MacdResult(_IndicatorResultBase):
    kind: Literal["macd"] = "macd"
    dif: List[float]
    dea: List[float]
    macd: List[float]

    array_fields: ClassVar[Tuple[str, ...]] = ("dif", "dea", "macd")


class RsiResult(_IndicatorResultBase):
    kind: Literal["rsi"] = "rsi"
    values: List[float]

    array_fields: ClassVar[Tuple[str, ...]] = ("values",)


class KdjResult(_IndicatorResultBase):
    kind: Literal["kdj"] = "kdj"
    k: List[float]
    d: List[float]
    j: List[float]

    array_fields: ClassVar[Tuple[str, ...]] = ("k", "d", "j")


class BollResult(_IndicatorResultBase):
    kind: Literal["boll"] = "boll"
    upper: List[float]
    middle: List[float]
    lower: List[float]

    array_fields: ClassVar[Tuple[str, ...]] = ("upper", "middle", "lower")


class MaResult(_IndicatorResultBase):
    kind: Literal["ma"] = "ma"
    period: int
    values: List[float]

    array_fields: ClassVar[Tuple[str, ...]] = ("values",)


IndicatorResult = Union[MacdResult, RsiResult, KdjResult, BollResult, MaResult]
