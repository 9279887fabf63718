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

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RESULT_STATUS(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    ERROR = "error"
    CONFLICT = "conflict"  # lost a guarded write to a concurrent run


class ITEM_KIND(str, Enum):
    SUPPLY = "supply"
    BORROW = "borrow"
    LOCK = "lock"


class ItemResult(BaseModel):
    """Outcome of accruing a single position or lock."""

    model_config = ConfigDict(use_enum_values=True)

    item_id: str
    owner_id: str | None = None
    asset: str | None = None
    chain: str | None = None
    kind: ITEM_KIND | str
    status: RESULT_STATUS | str
    old_amount: float | None = None
    new_amount: float | None = None
    accrued_interest: float | None = None
    lock_status: str | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == RESULT_STATUS.SUCCESS


class BatchSummary(BaseModel):
    """Per-item outcomes of one accrual run. `success` is independent of individual item outcomes."""

    job: str
    success: bool = True
    results: list[ItemResult] = Field(default_factory=list)
    aggregated_pools: list[tuple[str, str]] = Field(default_factory=list)
    processed_at: datetime

    @property
    def processed_count(self) -> int:
        return len(self.updated)

    @property
    def updated(self) -> list[ItemResult]:
        return [r for r in self.results if r.status == RESULT_STATUS.SUCCESS]

    @property
    def skipped(self) -> list[ItemResult]:
        return [r for r in self.results if r.status == RESULT_STATUS.SKIPPED]

    @property
    def errors(self) -> list[ItemResult]:
        return [r for r in self.results if r.status == RESULT_STATUS.ERROR]

    @property
    def conflicts(self) -> list[ItemResult]:
        return [r for r in self.results if r.status == RESULT_STATUS.CONFLICT]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AccrualResultOut(CamelModel):
    owner_id: str | None
    asset: str | None
    chain: str | None
    old_amount: float | None
    new_amount: float | None
    accrued_interest: float | None
    kind: str


class AccrualOutcomes(CamelModel):
    skipped: int = 0
    errors: int = 0
    conflicts: int = 0


class AccrualResponse(CamelModel):
    success: bool
    processed_count: int
    results: list[AccrualResultOut]
    outcomes: AccrualOutcomes
    processed_at: datetime

    @classmethod
    def from_summary(cls, summary: BatchSummary) -> "AccrualResponse":
        return cls(
            success=summary.success,
            processed_count=summary.processed_count,
            results=[
                AccrualResultOut(
                    owner_id=r.owner_id,
                    asset=r.asset,
                    chain=r.chain,
                    old_amount=r.old_amount,
                    new_amount=r.new_amount,
                    accrued_interest=r.accrued_interest,
                    kind=r.kind,
                )
                for r in summary.updated
            ],
            outcomes=AccrualOutcomes(
                skipped=len(summary.skipped),
                errors=len(summary.errors),
                conflicts=len(summary.conflicts),
            ),
            processed_at=summary.processed_at,
        )


class ErrorResponse(CamelModel):
    success: bool = False
    error: str


class QuoteRequest(BaseModel):
    asset: str = Field(..., description="asset symbol to quote, e.g. USDC")
    chain: str = Field(..., description="chain the pool lives on")
    principal: float | None = Field(default=None, ge=0, description="amount to project earnings for")
    term_days: int | None = Field(default=None, ge=0, description="projection horizon in days")
    owner_id: str | None = Field(default=None, description="caller, used for the governance holder bonus")


class APYQuote(CamelModel):
    """Quoted yield breakdown. APY fields are in percent."""

    asset: str
    base_apy: float
    utilization_bonus: float = 0.0
    demand_bonus: float = 0.0
    governance_bonus: float = 0.0
    gross_apy: float
    platform_fee_rate: float
    platform_fee_apy: float
    net_apy: float
    projected_earnings: float | None = None
    is_fallback: bool = False

    def display(self) -> dict:
        bonuses = []
        if self.utilization_bonus > 0:
            bonuses.append(f"+{self.utilization_bonus:.2f}% Utilization Bonus")
        if self.demand_bonus > 0:
            bonuses.append(f"+{self.demand_bonus:.2f}% Demand Bonus")
        if self.governance_bonus > 0:
            bonuses.append(f"+{self.governance_bonus:.2f}% Governance Holder Bonus")

        return {
            "gross_apy": f"{self.gross_apy:.2f}%",
            "platform_fee": f"{self.platform_fee_apy:.2f}%",
            "net_apy": f"{self.net_apy:.2f}%",
            "bonuses": bonuses,
        }
