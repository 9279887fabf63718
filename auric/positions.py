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
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from auric.utils.misc import parse_timestamp


class POSITION_KIND(str, Enum):
    SUPPLY = "supply"
    BORROW = "borrow"


class RATE_MODE(str, Enum):
    VARIABLE = "variable"
    STABLE = "stable"


class LOCK_STATUS(str, Enum):
    ACTIVE = "active"
    MATURED = "matured"
    EXITED_EARLY = "exited_early"


def _coerce_enum(enum_cls: type[Enum], value):  # noqa: ANN202
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.lower())
        except ValueError:
            try:
                return enum_cls[value.upper()]
            except KeyError:
                raise ValueError(f"Invalid enum name: {value}")  # noqa: B904
    raise ValueError(f"Invalid value: {value}")


class Position(BaseModel):
    """A variable or stable rate supply/borrow position in an (asset, chain) pool.

    `current_amount` is principal plus compounded interest; `accrued_interest` is a running
    total of interest added and is never compounded on.
    """

    model_config = ConfigDict(use_enum_values=True)

    id: str = Field(..., description="position id")
    owner_id: str = Field(..., description="owner of the position")
    asset: str = Field(..., description="asset symbol, e.g. USDC")
    chain: str = Field(..., description="chain the pool lives on")
    kind: POSITION_KIND | str = Field(..., description="supply or borrow")
    current_amount: float = Field(default=0.0, description="live principal plus compounded interest")
    accrued_interest: float = Field(default=0.0, description="running total of interest added")
    last_update: datetime | None = Field(default=None, description="last time interest was accrued")
    rate_mode: RATE_MODE | str = Field(default=RATE_MODE.VARIABLE, description="variable or stable")
    created_at: datetime | None = Field(default=None, description="time the position was opened")

    @field_validator("kind", mode="before")
    def validator_kind(cls, value) -> POSITION_KIND:
        return _coerce_enum(POSITION_KIND, value)

    @field_validator("rate_mode", mode="before")
    def validator_rate_mode(cls, value) -> RATE_MODE:
        if value is None:
            return RATE_MODE.VARIABLE
        return _coerce_enum(RATE_MODE, value)

    @field_validator("last_update", "created_at", mode="before")
    def validator_timestamps(cls, value) -> datetime | None:
        return parse_timestamp(value)

    @property
    def is_open(self) -> bool:
        return self.current_amount > 0

    @property
    def accrual_start(self) -> datetime | None:
        """Time interest was last accrued, falling back to when the position was opened."""
        return self.last_update or self.created_at

    @property
    def pool_key(self) -> tuple[str, str]:
        return self.asset, self.chain


class PositionUpdate(BaseModel):
    current_amount: float
    accrued_interest: float
    last_update: datetime


class Lock(BaseModel):
    """A fixed-term, fixed-rate deposit accruing simple interest until `end_time`."""

    model_config = ConfigDict(use_enum_values=True)

    id: str
    owner_id: str
    asset: str
    chain: str
    principal_amount: float = Field(..., ge=0)
    apy_applied: float = Field(..., description="APY in percent, e.g. 10 for 10%")
    start_time: datetime
    end_time: datetime
    status: LOCK_STATUS | str = Field(default=LOCK_STATUS.ACTIVE)
    accrued_interest: float = Field(default=0.0)

    @field_validator("status", mode="before")
    def validator_status(cls, value) -> LOCK_STATUS:
        return _coerce_enum(LOCK_STATUS, value)

    @field_validator("start_time", "end_time", mode="before")
    def validator_timestamps(cls, value) -> datetime:
        ts = parse_timestamp(value)
        if ts is None:
            raise ValueError("lock timestamps are required")
        return ts

    @model_validator(mode="after")
    def check_params(self) -> "Lock":
        if self.end_time < self.start_time:
            raise ValueError("lock ends before it starts!")
        return self

    @property
    def is_active(self) -> bool:
        return self.status == LOCK_STATUS.ACTIVE

    @property
    def pool_key(self) -> tuple[str, str]:
        return self.asset, self.chain


class LockUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    accrued_interest: float
    status: LOCK_STATUS | str = LOCK_STATUS.ACTIVE
