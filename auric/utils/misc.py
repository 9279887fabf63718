# The MIT License (MIT)
# Copyright © 2023 Syeam Bin Abdullah
# Copyright © 2023 Opentensor Foundation

# Permission is hereby granted, free of charge, to any person obtaining a copy of this software and associated
# documentation files (the “Software”), to deal in the Software without restriction, including without limitation
# the rights to use, copy, modify, merge, publish, distribute, sublicense, and/or sell copies of the Software,
# and to permit persons to whom the Software is furnished to do so, subject to the following conditions:

# The above copyright notice and this permission notice shall be included in all copies or substantial portions of
# the Software.

# THE SOFTWARE IS PROVIDED “AS IS”, WITHOUT WARRANTY OF ANY KIND, EXPRESS OR IMPLIED, INCLUDING BUT NOT LIMITED TO
# THE WARRANTIES OF MERCHANTABILITY, FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL
# THE AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER LIABILITY, WHETHER IN AN ACTION
# OF CONTRACT, TORT OR OTHERWISE, ARISING FROM, OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER
# DEALINGS IN THE SOFTWARE.

import math
from datetime import datetime, timezone
from math import floor
from typing import Any

import numpy as np

from auric.constants import (
    COMPOUNDING_PERIODS_PER_YEAR,
    DAYS_PER_YEAR,
    HOURS_PER_YEAR,
    SECONDS_PER_DAY,
    SECONDS_PER_HOUR,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(ts: datetime) -> datetime:
    # naive timestamps coming out of the store are treated as UTC
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    value = str(value)
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(value))


def format_timestamp(ts: datetime | None) -> str | None:
    return None if ts is None else ensure_utc(ts).isoformat()


def hours_elapsed(start: datetime, end: datetime) -> float:
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / SECONDS_PER_HOUR


def whole_days_elapsed(start: datetime, end: datetime) -> int:
    return floor((ensure_utc(end) - ensure_utc(start)).total_seconds() / SECONDS_PER_DAY)


def compound_factor(
    annual_rate: float, hours: float, periods_per_year: int = COMPOUNDING_PERIODS_PER_YEAR
) -> float:
    """
    Growth factor of a balance compounding `periods_per_year` times a year over `hours`.

    A = P(1 + r/n)^(n*t) where t = hours / 8760
    """
    if not math.isfinite(annual_rate) or not math.isfinite(hours):
        raise ValueError(f"Invalid accrual inputs: rate={annual_rate}, hours={hours}")
    if annual_rate == 0:
        return 1.0
    base = 1 + (annual_rate / periods_per_year)
    if base <= 0:
        raise ValueError(f"Rate {annual_rate} wipes out the balance within one period")
    return base ** (periods_per_year * (hours / HOURS_PER_YEAR))


def simple_interest(principal: float, apy_pct: float, days: int) -> float:
    daily_rate = apy_pct / DAYS_PER_YEAR / 100
    return principal * daily_rate * days


def clamp(value: float, lower: float, upper: float) -> float:
    return float(np.clip(value, lower, upper))


def borrow_rate(util_rate: float, model) -> float:
    """Kinked borrow rate: gentle slope up to optimal utilization, steep slope past it."""
    if util_rate <= model.optimal_utilization:
        return model.base_rate + (util_rate / model.optimal_utilization) * model.rate_slope1
    excess = (util_rate - model.optimal_utilization) / (1 - model.optimal_utilization)
    return model.base_rate + model.rate_slope1 + excess * model.rate_slope2


def supply_rate(util_rate: float, model) -> float:
    return borrow_rate(util_rate, model) * util_rate * (1 - model.reserve_factor)


def stable_borrow_rate(model) -> float:
    return model.base_rate + model.rate_slope1
