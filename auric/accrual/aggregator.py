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

from collections.abc import Iterable
from datetime import datetime

import bittensor as bt

from auric.pools import DEFAULT_RATE_MODELS, InterestRateModel, PoolAggregate, compute_pool_aggregate
from auric.store.adapters import PoolAggregateStore
from auric.utils.misc import ensure_utc, utcnow


class PoolAggregator:
    """
    Resyncs pool totals, utilization and rates from the current state of the positions.

    Every resync is a full recomputation, never an incremental patch, so it is safe to re-run at
    any time and it repairs drift left behind by skipped or failed position updates.
    """

    def __init__(
        self,
        pool_store: PoolAggregateStore,
        rate_models: dict[str, InterestRateModel] | None = None,
    ) -> None:
        self.pool_store = pool_store
        self.rate_models = DEFAULT_RATE_MODELS if rate_models is None else rate_models

    def resync(self, asset: str, chain: str, now: datetime | None = None) -> PoolAggregate:
        now = ensure_utc(now) if now is not None else utcnow()
        totals = self.pool_store.sum_positions(asset, chain)
        previous = self.pool_store.get_pool_aggregate(asset, chain)
        aggregate = compute_pool_aggregate(
            asset,
            chain,
            totals,
            updated_at=now,
            rate_model=self.rate_models.get(asset),
            previous=previous,
        )
        self.pool_store.upsert_pool_aggregate(aggregate)

        bt.logging.debug(
            f"Updated pool totals for {asset} on {chain}: supply {aggregate.total_supply:.2f}, "
            f"borrowed {aggregate.total_borrowed:.2f}, utilization {aggregate.utilization:.4f}"
        )
        return aggregate

    def resync_many(
        self, pairs: Iterable[tuple[str, str]], now: datetime | None = None
    ) -> list[tuple[str, str]]:
        """Resync each (asset, chain) pair, returning the ones that succeeded."""
        now = ensure_utc(now) if now is not None else utcnow()
        synced = []
        for asset, chain in sorted(set(pairs)):
            try:
                self.resync(asset, chain, now)
            except Exception as e:
                bt.logging.error(f"Error updating pool totals for {asset} on {chain}: {e}")
                continue
            synced.append((asset, chain))
        return synced
