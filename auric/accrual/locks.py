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
from auric.accrual.positions import rejected_result
from auric.exceptions import BatchAbortedError, StaleWriteError
from auric.positions import LOCK_STATUS, Lock, LockUpdate
from auric.protocol import ITEM_KIND, RESULT_STATUS, BatchSummary, ItemResult
from auric.store.adapters import PositionStore, RejectedRow
from auric.utils.misc import ensure_utc, simple_interest, utcnow, whole_days_elapsed


class LockAccrualJob:
    """
    Refreshes simple interest on active fixed-term locks and matures the ones past their end time.

    Interest is recomputed from `start_time` on every run rather than incremented, so running the
    job any number of times a day never drifts.
    """

    name = "lock_accrual"

    def __init__(self, position_store: PositionStore, aggregator: PoolAggregator | None = None) -> None:
        self.position_store = position_store
        self.aggregator = aggregator

    def run(self, now: datetime | None = None) -> BatchSummary:
        now = ensure_utc(now) if now is not None else utcnow()
        bt.logging.info("Starting daily lock interest accrual job...")

        try:
            locks = self.position_store.list_active_locks()
        except Exception as e:
            raise BatchAbortedError(f"Failed to list active locks: {e}") from e

        if not locks:
            bt.logging.info("No active locks found")

        results: list[ItemResult] = []
        touched: set[tuple[str, str]] = set()
        for lock in locks:
            if isinstance(lock, RejectedRow):
                results.append(rejected_result(lock))
                continue
            result = self._process(lock, now)
            results.append(result)
            if result.ok:
                touched.add(lock.pool_key)

        aggregated = self.aggregator.resync_many(touched, now) if self.aggregator is not None else []

        summary = BatchSummary(job=self.name, results=results, aggregated_pools=aggregated, processed_at=now)
        bt.logging.info(f"Lock accrual job completed. Updated {summary.processed_count} locks.")
        return summary

    def _process(self, lock: Lock, now: datetime) -> ItemResult:
        try:
            return self.accrue_lock(lock, now)
        except StaleWriteError as e:
            bt.logging.warning(f"Lock {lock.id} left active state concurrently: {e}")
            return self._result(lock, RESULT_STATUS.CONFLICT, reason=str(e))
        except Exception as e:
            bt.logging.error(f"Error processing lock {lock.id}: {e}")
            return self._result(lock, RESULT_STATUS.ERROR, reason=str(e))

    def accrue_lock(self, lock: Lock, now: datetime) -> ItemResult:
        now = ensure_utc(now)
        if not lock.is_active:
            return self._result(lock, RESULT_STATUS.SKIPPED, reason=f"lock is {lock.status}")

        if now >= lock.end_time:
            total_days = whole_days_elapsed(lock.start_time, lock.end_time)
            interest = simple_interest(lock.principal_amount, lock.apy_applied, total_days)
            status = LOCK_STATUS.MATURED
        else:
            days_elapsed = whole_days_elapsed(lock.start_time, now)
            if days_elapsed <= 0:
                return self._result(lock, RESULT_STATUS.SKIPPED, reason="no full day elapsed")
            interest = simple_interest(lock.principal_amount, lock.apy_applied, days_elapsed)
            status = LOCK_STATUS.ACTIVE

        self.position_store.update_lock(lock.id, LockUpdate(accrued_interest=interest, status=status))

        if status == LOCK_STATUS.MATURED:
            bt.logging.info(f"Lock {lock.id} matured with interest: {interest}")
        else:
            bt.logging.debug(f"Updated lock {lock.id} with accrued interest: {interest}")

        return self._result(
            lock,
            RESULT_STATUS.SUCCESS,
            old_amount=lock.principal_amount + lock.accrued_interest,
            new_amount=lock.principal_amount + interest,
            accrued_interest=interest,
            lock_status=status.value,
        )

    @staticmethod
    def _result(lock: Lock, status: RESULT_STATUS, **kwargs) -> ItemResult:
        kwargs.setdefault("lock_status", LOCK_STATUS(lock.status).value)
        return ItemResult(
            item_id=lock.id,
            owner_id=lock.owner_id,
            asset=lock.asset,
            chain=lock.chain,
            kind=ITEM_KIND.LOCK,
            status=status,
            **kwargs,
        )
