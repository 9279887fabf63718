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
from typing import Protocol

import bittensor as bt
from pydantic import BaseModel, ValidationError

from auric.pools import PoolAggregate, PositionTotals
from auric.positions import POSITION_KIND, Lock, LockUpdate, Position, PositionUpdate
from auric.protocol import ITEM_KIND
from auric.store import sql


class RejectedRow(BaseModel):
    """A stored row that failed validation. Listed in place of the item so jobs can report it."""

    item_id: str
    kind: str
    owner_id: str | None = None
    asset: str | None = None
    chain: str | None = None
    reason: str


class PositionStore(Protocol):
    """Read/write access to supply and borrow positions and fixed-term locks.

    Listings may contain a RejectedRow wherever a stored row could not be parsed.
    """

    def list_open_positions(self, kind: str) -> list[Position | RejectedRow]: ...

    def update_position(
        self, position_id: str, update: PositionUpdate, expected_last_update: datetime | None
    ) -> None: ...

    def list_active_locks(self) -> list[Lock | RejectedRow]: ...

    def update_lock(self, lock_id: str, update: LockUpdate) -> None: ...

    def recent_supply_volume(self, asset: str, chain: str, since: datetime) -> float: ...

    def holds_asset(self, owner_id: str, asset: str) -> bool: ...


class PoolAggregateStore(Protocol):
    """Read/write access to per-(asset, chain) pool totals and rates."""

    def sum_positions(self, asset: str, chain: str) -> PositionTotals: ...

    def upsert_pool_aggregate(self, aggregate: PoolAggregate) -> None: ...

    def get_pool_aggregate(self, asset: str, chain: str) -> PoolAggregate | None: ...


def _parse_rows(model: type[BaseModel], rows: list[dict], kind: str) -> list:
    parsed = []
    for row in rows:
        try:
            parsed.append(model(**row))
        except ValidationError as e:
            bt.logging.error(f"Malformed {model.__name__} row {row.get('id')}: {e}")
            parsed.append(
                RejectedRow(
                    item_id=str(row.get("id")),
                    kind=kind,
                    owner_id=row.get("owner_id"),
                    asset=row.get("asset"),
                    chain=row.get("chain"),
                    reason=f"invalid {model.__name__.lower()} row: {e.errors()[0]['msg']}",
                )
            )
    return parsed


class SQLitePositionStore:
    """PositionStore backed by sqlite. Every call is its own connection and transaction."""

    def __init__(self, db_dir: str) -> None:
        self.db_dir = db_dir

    def list_open_positions(self, kind: str) -> list[Position | RejectedRow]:
        with sql.get_db_connection(self.db_dir) as conn:
            rows = sql.get_open_positions(conn, kind)
        return _parse_rows(Position, rows, POSITION_KIND(kind).value)

    def update_position(
        self, position_id: str, update: PositionUpdate, expected_last_update: datetime | None
    ) -> None:
        with sql.get_db_connection(self.db_dir) as conn:
            sql.update_position(
                conn,
                position_id,
                current_amount=update.current_amount,
                accrued_interest=update.accrued_interest,
                last_update=update.last_update,
                expected_last_update=expected_last_update,
            )

    def list_active_locks(self) -> list[Lock | RejectedRow]:
        with sql.get_db_connection(self.db_dir) as conn:
            rows = sql.get_active_locks(conn)
        return _parse_rows(Lock, rows, ITEM_KIND.LOCK.value)

    def update_lock(self, lock_id: str, update: LockUpdate) -> None:
        with sql.get_db_connection(self.db_dir) as conn:
            sql.update_lock(conn, lock_id, accrued_interest=update.accrued_interest, status=update.status)

    def recent_supply_volume(self, asset: str, chain: str, since: datetime) -> float:
        with sql.get_db_connection(self.db_dir) as conn:
            return sql.recent_supply_volume(conn, asset, chain, since)

    def holds_asset(self, owner_id: str, asset: str) -> bool:
        with sql.get_db_connection(self.db_dir) as conn:
            return sql.holds_asset(conn, owner_id, asset)


class SQLitePoolAggregateStore:
    def __init__(self, db_dir: str) -> None:
        self.db_dir = db_dir

    def sum_positions(self, asset: str, chain: str) -> PositionTotals:
        with sql.get_db_connection(self.db_dir) as conn:
            return PositionTotals(**sql.sum_positions(conn, asset, chain))

    def upsert_pool_aggregate(self, aggregate: PoolAggregate) -> None:
        with sql.get_db_connection(self.db_dir) as conn:
            sql.upsert_pool_aggregate(conn, aggregate.model_dump())

    def get_pool_aggregate(self, asset: str, chain: str) -> PoolAggregate | None:
        with sql.get_db_connection(self.db_dir) as conn:
            row = sql.get_pool_aggregate(conn, asset, chain)
        return PoolAggregate(**row) if row else None
