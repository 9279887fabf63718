# The MIT License (MIT)
# Copyright © 2023 Syeam Bin Abdullah

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

from datetime import datetime

import numpy as np
from pydantic import BaseModel, Field, field_validator

from auric.constants import RATE_MODELS
from auric.utils.misc import borrow_rate, parse_timestamp, stable_borrow_rate, supply_rate


class InterestRateModel(BaseModel):
    """Kinked utilization curve parameters for one asset. Rates are annual decimal fractions."""

    base_rate: float = Field(..., ge=0, description="borrow rate at zero utilization")
    rate_slope1: float = Field(..., ge=0, description="slope up to optimal utilization")
    rate_slope2: float = Field(..., ge=0, description="slope past optimal utilization")
    optimal_utilization: float = Field(..., gt=0, lt=1, description="kink of the curve")
    reserve_factor: float = Field(default=0.0, ge=0, le=1, description="share of interest kept by the protocol")

    def borrow_rate(self, utilization: float) -> float:
        return borrow_rate(utilization, self)

    def supply_rate(self, utilization: float) -> float:
        return supply_rate(utilization, self)

    def stable_borrow_rate(self) -> float:
        return stable_borrow_rate(self)


DEFAULT_RATE_MODELS: dict[str, InterestRateModel] = {
    asset: InterestRateModel(**params) for asset, params in RATE_MODELS.items()
}


class PositionTotals(BaseModel):
    total_supply: float = 0.0
    total_borrowed: float = 0.0


class PoolAggregate(BaseModel):
    """Summed view of all open positions for one asset on one chain, plus its current rates."""

    asset: str
    chain: str
    total_supply: float = Field(default=0.0, ge=0)
    total_borrowed: float = Field(default=0.0, ge=0)
    available_liquidity: float = Field(default=0.0, ge=0)
    utilization: float = Field(default=0.0, ge=0, le=1)
    supply_rate: float | None = None
    borrow_rate_variable: float | None = None
    borrow_rate_stable: float | None = None
    updated_at: datetime | None = None

    @field_validator("updated_at", mode="before")
    def validator_updated_at(cls, value) -> datetime | None:
        return parse_timestamp(value)

    @property
    def pool_key(self) -> tuple[str, str]:
        return self.asset, self.chain


def compute_utilization(total_supply: float, total_borrowed: float) -> float:
    if total_supply <= 0:
        return 0.0
    return float(np.clip(total_borrowed / total_supply, 0.0, 1.0))


def compute_pool_aggregate(
    asset: str,
    chain: str,
    totals: PositionTotals,
    updated_at: datetime,
    rate_model: InterestRateModel | None = None,
    previous: PoolAggregate | None = None,
) -> PoolAggregate:
    """
    Recompute a pool aggregate from freshly summed position totals.

    Rates are refreshed from `rate_model` when one is given, otherwise the rates of
    `previous` (if any) are carried over untouched.
    """
    total_supply = max(0.0, float(totals.total_supply))
    total_borrowed = max(0.0, float(totals.total_borrowed))
    utilization = compute_utilization(total_supply, total_borrowed)
    available_liquidity = max(0.0, total_supply - total_borrowed)

    if rate_model is not None:
        rates = {
            "supply_rate": rate_model.supply_rate(utilization),
            "borrow_rate_variable": rate_model.borrow_rate(utilization),
            "borrow_rate_stable": rate_model.stable_borrow_rate(),
        }
    elif previous is not None:
        rates = {
            "supply_rate": previous.supply_rate,
            "borrow_rate_variable": previous.borrow_rate_variable,
            "borrow_rate_stable": previous.borrow_rate_stable,
        }
    else:
        rates = {}

    return PoolAggregate(
        asset=asset,
        chain=chain,
        total_supply=total_supply,
        total_borrowed=total_borrowed,
        available_liquidity=available_liquidity,
        utilization=utilization,
        updated_at=updated_at,
        **rates,
    )
