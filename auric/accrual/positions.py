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

import bittensor as bt

from auric.accrual.aggregator import PoolAggregator
from auric.constants import COMPOUNDING_PERIODS_PER_YEAR, MIN_HOURS_BETWEEN_ACCRUALS
from auric.exceptions import BatchAbortedError, RateUnavailableError, StaleWriteError
from auric.pools import PoolAggregate
from auric.positions import POSITION_KIND, RATE_MODE, Position, PositionUpdate
from auric.protocol import RESULT_STATUS, BatchSummary, ItemResult
from auric.store.adapters import PoolAggregateStore, PositionStore, RejectedRow
from auric.utils.misc import compound_factor, ensure_utc, hours_elapsed, utcnow


def rejected_result(row: RejectedRow) -> ItemResult:
    return ItemResult(
        item_id=row.item_id,
        owner_id=row.owner_id,
        asset=row.asset,
        chain=row.chain,
        kind=row.kind,
        status=RESULT_STATUS.ERROR,
        reason=row.reason,
    )


def position_rate(position: Position, pool: PoolAggregate | None) -> float:
    """Current annual rate applying to a position: supply rate, or the borrow rate of its rate mode."""
    if pool is None:
        raise RateUnavailableError(f"No pool aggregate for {position.asset} on {position.chain}")

    if position.kind == POSITION_KIND.SUPPLY:
        rate = pool.supply_rate
    elif position.rate_mode == RATE_MODE.STABLE:
        rate = pool.borrow_rate_stable
    else:
        rate = pool.borrow_rate_variable

    if rate is None:
        raise RateUnavailableError(f"No {position.kind} rate for {position.asset} on {position.chain}")
    return rate


class PositionAccrualJob:
    """
    Compounds interest hourly on every open supply and borrow position since its last update.

    Positions are processed independently: a failure on one is recorded in the batch summary
    and never rolls back or aborts the others. Each touched (asset, chain) pool is resynced
    once all position writes of the run are committed.
    """

    name = "position_accrual"

    def __init__(
        self,
        position_store: PositionStore,
        pool_store: PoolAggregateStore,
        aggregator: PoolAggregator | None = None,
        compounding_periods: int = COMPOUNDING_PERIODS_PER_YEAR,
        min_hours: float = MIN_HOURS_BETWEEN_ACCRUALS,
    ) -> None:
        self.position_store = position_store
        self.pool_store = pool_store
        self.aggregator = aggregator or PoolAggregator(pool_store)
        self.compounding_periods = compounding_periods
        self.min_hours = min_hours

    def run(self, now: datetime | None = None) -> BatchSummary:
        now = ensure_utc(now) if now is not None else utcnow()
        bt.logging.info("Starting compound interest accrual process")

        try:
            positions = [
                *self.position_store.list_open_positions(POSITION_KIND.SUPPLY),
                *self.position_store.list_open_positions(POSITION_KIND.BORROW),
            ]
        except Exception as e:
            raise BatchAbortedError(f"Failed to list open positions: {e}") from e

        pools: dict[tuple[str, str], PoolAggregate | None] = {}
        results: list[ItemResult] = []
        touched: set[tuple[str, str]] = set()

        for position in positions:
            if isinstance(position, RejectedRow):
                results.append(rejected_result(position))
                continue
            result = self._process(position, pools, now)
            results.append(result)
            if result.ok:
                touched.add(position.pool_key)

        aggregated = self.aggregator.resync_many(touched, now)

        summary = BatchSummary(job=self.name, results=results, aggregated_pools=aggregated, processed_at=now)
        bt.logging.info(
            f"Compound interest accrual completed. Processed {summary.processed_count} positions "
            f"({len(summary.skipped)} skipped, {len(summary.errors)} errors, {len(summary.conflicts)} conflicts)."
        )
        return summary

    def _process(
        self, position: Position, pools: dict[tuple[str, str], PoolAggregate | None], now: datetime
    ) -> ItemResult:
        try:
            if position.pool_key not in pools:
                pools[position.pool_key] = self.pool_store.get_pool_aggregate(*position.pool_key)
            rate = position_rate(position, pools[position.pool_key])
            return self.accrue_position(position, rate, now)
        except RateUnavailableError as e:
            return self._result(position, RESULT_STATUS.SKIPPED, reason=str(e))
        except StaleWriteError as e:
            bt.logging.warning(f"Position {position.id} was accrued concurrently, leaving it: {e}")
            return self._result(position, RESULT_STATUS.CONFLICT, reason=str(e))
        except Exception as e:
            bt.logging.error(f"Error processing {position.kind} {position.id}: {e}")
            return self._result(position, RESULT_STATUS.ERROR, reason=str(e))

    def accrue_position(self, position: Position, rate: float, now: datetime) -> ItemResult:
        """Compound `position` at `rate` up to `now` and persist it. No-op within the same hour."""
        start = position.accrual_start
        if start is None:
            raise ValueError("position has neither a last update nor a creation time")

        elapsed = hours_elapsed(start, now)
        if elapsed < self.min_hours:
            return self._result(position, RESULT_STATUS.SKIPPED, reason="accrued less than an hour ago")

        factor = compound_factor(rate, elapsed, self.compounding_periods)
        old_amount = position.current_amount
        new_amount = old_amount * factor
        delta = new_amount - old_amount

        self.position_store.update_position(
            position.id,
            PositionUpdate(
                current_amount=new_amount,
                accrued_interest=position.accrued_interest + delta,
                last_update=now,
            ),
            expected_last_update=position.last_update,
        )

        bt.logging.debug(f"Accrued {delta:.6f} {position.asset} for owner {position.owner_id} ({position.kind})")
        return self._result(
            position,
            RESULT_STATUS.SUCCESS,
            old_amount=old_amount,
            new_amount=new_amount,
            accrued_interest=delta,
        )

    @staticmethod
    def _result(position: Position, status: RESULT_STATUS, **kwargs) -> ItemResult:
        return ItemResult(
            item_id=position.id,
            owner_id=position.owner_id,
            asset=position.asset,
            chain=position.chain,
            kind=position.kind,
            status=status,
            **kwargs,
        )
