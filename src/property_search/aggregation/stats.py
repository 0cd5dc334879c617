"""Five-number summaries with R-8 quartiles.

Quartiles follow Hyndman & Fan definition 8 (the "median-unbiased" method,
``method="median_unbiased"`` in numpy): for ``n`` sorted values and
probability ``p`` the position is ``h = (n + 1/3) * p + 1/3`` (1-based) and
the result is linearly interpolated between the neighbouring order
statistics, clamped to the minimum and maximum. The median is the ``p = 0.5``
quantile, which equals the usual middle value / mean of the two middle
values.
"""

import math
from collections.abc import Iterable
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, field_validator


def quantile(sorted_values: list[float], p: float) -> float:
    """R-8 quantile of already sorted, non-empty ``sorted_values``."""
    n = len(sorted_values)
    h = (n + 1 / 3) * p + 1 / 3
    if h <= 1:
        return sorted_values[0]
    if h >= n:
        return sorted_values[-1]
    lower = math.floor(h)
    low_value = sorted_values[lower - 1]
    high_value = sorted_values[lower]
    # min() keeps float rounding from overshooting the upper order statistic
    return min(low_value + (h - lower) * (high_value - low_value), high_value)


class Stats(BaseModel):
    """Distribution summary of one metric: min, quartiles, max and count.

    An empty input yields NaN for every order statistic and a count of 0.
    NaN is serialised as JSON ``null`` and read back as NaN.
    """

    model_config = ConfigDict(frozen=True)

    min: float
    q1: float
    median: float
    q3: float
    max: float
    count: int

    @field_validator("min", "q1", "median", "q3", "max", mode="before")
    @classmethod
    def null_to_nan(cls, v: Any) -> Any:
        return math.nan if v is None else v

    @classmethod
    def empty(cls) -> Self:
        """Summary of an empty data set."""
        return cls(
            min=math.nan,
            q1=math.nan,
            median=math.nan,
            q3=math.nan,
            max=math.nan,
            count=0,
        )

    @classmethod
    def from_values(cls, values: Iterable[float]) -> Self:
        """Summarise ``values`` (any order)."""
        data = sorted(float(v) for v in values)
        if not data:
            return cls.empty()
        return cls(
            min=data[0],
            q1=quantile(data, 0.25),
            median=quantile(data, 0.5),
            q3=quantile(data, 0.75),
            max=data[-1],
            count=len(data),
        )

    @property
    def is_empty(self) -> bool:
        return self.count == 0
