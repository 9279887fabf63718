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

from datetime import timedelta

import bittensor as bt

from auric.constants import (
    BASE_RATE_BANDS,
    DEFAULT_FALLBACK_APY,
    DEFAULT_PROJECTION_DAYS,
    DEFAULT_RATE_BAND_ASSET,
    DEMAND_BONUS_STEPS,
    DEMAND_WINDOW_DAYS,
    FALLBACK_APYS,
    GOVERNANCE_ASSET,
    GOVERNANCE_BONUS,
    HIGH_APY_FEE,
    HIGH_APY_FEE_THRESHOLD,
    HIGH_UTILIZATION_FEE,
    HIGH_UTILIZATION_FEE_THRESHOLD,
    MAX_PLATFORM_FEE,
    MIN_PLATFORM_FEE,
    PLATFORM_BASE_FEE,
    UTILIZATION_BONUS_STEPS,
)
from auric.pools import PoolAggregate
from auric.protocol import APYQuote, QuoteRequest
from auric.store.adapters import PoolAggregateStore, PositionStore
from auric.utils.misc import clamp, utcnow


def step_bonus(value: float, steps: tuple[tuple[float, float], ...]) -> float:
    """Bonus of the first (threshold, bonus) step strictly exceeded by `value`, else 0."""
    for threshold, bonus in steps:
        if value > threshold:
            return bonus
    return 0.0


def projected_earnings(principal: float, net_apy: float, days: int) -> float:
    return principal * (net_apy / 100) / 365 * days


class SustainableRateModel:
    """
    Pure yield quoting: turns a pool aggregate, trailing deposit volume and the governance holder flag
    into a gross/net APY with its fee and bonus breakdown. Never touches any store.
    """

    def __init__(
        self,
        rate_bands: dict[str, tuple[float, float]] | None = None,
        fallback_apys: dict[str, float] | None = None,
        base_fee: float = PLATFORM_BASE_FEE,
        min_fee: float = MIN_PLATFORM_FEE,
        max_fee: float = MAX_PLATFORM_FEE,
    ) -> None:
        self.rate_bands = BASE_RATE_BANDS if rate_bands is None else rate_bands
        self.fallback_apys = FALLBACK_APYS if fallback_apys is None else fallback_apys
        self.base_fee = base_fee
        self.min_fee = min_fee
        self.max_fee = max_fee

    def base_apy(self, utilization: float, asset: str) -> float:
        low, high = self.rate_bands.get(asset, self.rate_bands.get(DEFAULT_RATE_BAND_ASSET, (0.0, 0.0)))
        return low + clamp(utilization, 0.0, 1.0) * (high - low)

    @staticmethod
    def utilization_bonus(utilization: float) -> float:
        return step_bonus(utilization, UTILIZATION_BONUS_STEPS)

    @staticmethod
    def demand_bonus(recent_deposit_volume: float) -> float:
        return step_bonus(recent_deposit_volume, DEMAND_BONUS_STEPS)

    @staticmethod
    def governance_bonus(is_governance_holder: bool) -> float:
        return GOVERNANCE_BONUS if is_governance_holder else 0.0

    def platform_fee_rate(self, utilization: float, base_apy: float) -> float:
        fee_rate = self.base_fee
        if utilization > HIGH_UTILIZATION_FEE_THRESHOLD:
            fee_rate += HIGH_UTILIZATION_FEE
        if base_apy > HIGH_APY_FEE_THRESHOLD:
            fee_rate += HIGH_APY_FEE
        return clamp(fee_rate, self.min_fee, self.max_fee)

    def quote(
        self,
        pool: PoolAggregate | None,
        recent_deposit_volume: float,
        is_governance_holder: bool,
        asset: str,
        principal: float | None = None,
        term_days: int | None = None,
    ) -> APYQuote:
        if pool is None:
            return self.fallback_quote(asset, principal, term_days)

        utilization = pool.utilization
        base = self.base_apy(utilization, asset)
        utilization_bonus = self.utilization_bonus(utilization)
        demand_bonus = self.demand_bonus(recent_deposit_volume)
        governance_bonus = self.governance_bonus(is_governance_holder)

        gross = base + utilization_bonus + demand_bonus + governance_bonus
        fee_rate = self.platform_fee_rate(utilization, base)
        net = gross * (1 - fee_rate)

        return APYQuote(
            asset=asset,
            base_apy=base,
            utilization_bonus=utilization_bonus,
            demand_bonus=demand_bonus,
            governance_bonus=governance_bonus,
            gross_apy=gross,
            platform_fee_rate=fee_rate,
            platform_fee_apy=gross * fee_rate,
            net_apy=net,
            projected_earnings=self._projection(principal, net, term_days),
        )

    def fallback_quote(self, asset: str, principal: float | None = None, term_days: int | None = None) -> APYQuote:
        """Static per-asset quote served when pool data is unavailable."""
        base = self.fallback_apys.get(asset, DEFAULT_FALLBACK_APY)
        fee_apy = base * self.base_fee
        net = base - fee_apy
        return APYQuote(
            asset=asset,
            base_apy=base,
            gross_apy=base,
            platform_fee_rate=self.base_fee,
            platform_fee_apy=fee_apy,
            net_apy=net,
            projected_earnings=self._projection(principal, net, term_days),
            is_fallback=True,
        )

    @staticmethod
    def _projection(principal: float | None, net_apy: float, term_days: int | None) -> float | None:
        if principal is None:
            return None
        days = DEFAULT_PROJECTION_DAYS if term_days is None else term_days
        return projected_earnings(principal, net_apy, days)


class QuoteService:
    """Gathers quote inputs from the stores. Store failures degrade the quote instead of failing it."""

    def __init__(
        self,
        position_store: PositionStore,
        pool_store: PoolAggregateStore,
        model: SustainableRateModel | None = None,
        governance_asset: str = GOVERNANCE_ASSET,
    ) -> None:
        self.position_store = position_store
        self.pool_store = pool_store
        self.model = model or SustainableRateModel()
        self.governance_asset = governance_asset

    def quote(self, request: QuoteRequest) -> APYQuote:
        try:
            pool = self.pool_store.get_pool_aggregate(request.asset, request.chain)
        except Exception as e:
            bt.logging.warning(f"Pool data unavailable for {request.asset} on {request.chain}, using fallback: {e}")
            pool = None

        if pool is None:
            bt.logging.debug(f"No pool aggregate for {request.asset} on {request.chain}, serving fallback APY")
            return self.model.fallback_quote(request.asset, request.principal, request.term_days)

        try:
            return self.model.quote(
                pool,
                recent_deposit_volume=self._recent_volume(request),
                is_governance_holder=self._is_governance_holder(request.owner_id),
                asset=request.asset,
                principal=request.principal,
                term_days=request.term_days,
            )
        except Exception as e:
            bt.logging.error(f"Error calculating sustainable APY for {request.asset}: {e}")
            return self.model.fallback_quote(request.asset, request.principal, request.term_days)

    def net_rate(self, asset: str, chain: str, term_days: int | None = None) -> float:
        """Net APY as a decimal fraction, used when pricing a new lock."""
        return self.quote(QuoteRequest(asset=asset, chain=chain, term_days=term_days)).net_apy / 100

    def _recent_volume(self, request: QuoteRequest) -> float:
        since = utcnow() - timedelta(days=DEMAND_WINDOW_DAYS)
        try:
            return self.position_store.recent_supply_volume(request.asset, request.chain, since)
        except Exception as e:
            bt.logging.error(f"Error calculating demand bonus for {request.asset} on {request.chain}: {e}")
            return 0.0

    def _is_governance_holder(self, owner_id: str | None) -> bool:
        if owner_id is None:
            return False
        try:
            return self.position_store.holds_asset(owner_id, self.governance_asset)
        except Exception as e:
            bt.logging.error(f"Error calculating governance bonus for {owner_id}: {e}")
            return False
