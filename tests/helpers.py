import copy
from datetime import datetime, timedelta, timezone

from auric.exceptions import StaleWriteError, StoreError
from auric.pools import PoolAggregate, PositionTotals
from auric.positions import LOCK_STATUS, Lock, LockUpdate, Position, PositionUpdate
from auric.store.sql import create_tables  # noqa: F401

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_position(
    position_id: str = "p1",
    kind: str = "supply",
    amount: float = 1000.0,
    hours_ago: float = 24,
    asset: str = "USDC",
    chain: str = "ethereum",
    owner_id: str = "alice",
    rate_mode: str = "variable",
    now: datetime = NOW,
) -> Position:
    return Position(
        id=position_id,
        owner_id=owner_id,
        asset=asset,
        chain=chain,
        kind=kind,
        current_amount=amount,
        last_update=now - timedelta(hours=hours_ago),
        rate_mode=rate_mode,
        created_at=now - timedelta(days=30),
    )


def make_lock(
    lock_id: str = "l1",
    principal: float = 500.0,
    apy: float = 10.0,
    days_ago: float = 30,
    term_days: int = 90,
    status: str = "active",
    asset: str = "USDC",
    chain: str = "ethereum",
    now: datetime = NOW,
) -> Lock:
    start = now - timedelta(days=days_ago)
    return Lock(
        id=lock_id,
        owner_id="alice",
        asset=asset,
        chain=chain,
        principal_amount=principal,
        apy_applied=apy,
        start_time=start,
        end_time=start + timedelta(days=term_days),
        status=status,
    )


def make_pool(
    asset: str = "USDC",
    chain: str = "ethereum",
    utilization: float = 0.5,
    supply_rate: float | None = 0.05,
    borrow_rate_variable: float | None = 0.08,
    borrow_rate_stable: float | None = 0.1,
    total_supply: float = 1_000_000.0,
) -> PoolAggregate:
    total_borrowed = total_supply * utilization
    return PoolAggregate(
        asset=asset,
        chain=chain,
        total_supply=total_supply,
        total_borrowed=total_borrowed,
        available_liquidity=total_supply - total_borrowed,
        utilization=utilization,
        supply_rate=supply_rate,
        borrow_rate_variable=borrow_rate_variable,
        borrow_rate_stable=borrow_rate_stable,
        updated_at=NOW,
    )


class InMemoryPositionStore:
    """PositionStore double with the same guarded write semantics as the sqlite adapter."""

    def __init__(self, positions: list[Position] = (), locks: list[Lock] = ()) -> None:
        self.positions = {p.id: copy.deepcopy(p) for p in positions}
        self.locks = {lock.id: copy.deepcopy(lock) for lock in locks}
        self.fail_on_update: set[str] = set()
        self.unreachable = False

    def list_open_positions(self, kind: str) -> list[Position]:
        if self.unreachable:
            raise StoreError("store unreachable")
        return [copy.deepcopy(p) for p in self.positions.values() if p.kind == kind and p.is_open]

    def update_position(self, position_id: str, update: PositionUpdate, expected_last_update) -> None:
        if position_id in self.fail_on_update:
            raise StoreError(f"write failed for {position_id}")
        position = self.positions[position_id]
        if position.last_update != expected_last_update:
            raise StaleWriteError(f"Position {position_id} changed since it was read")
        position.current_amount = update.current_amount
        position.accrued_interest = update.accrued_interest
        position.last_update = update.last_update

    def list_active_locks(self) -> list[Lock]:
        if self.unreachable:
            raise StoreError("store unreachable")
        return [copy.deepcopy(lock) for lock in self.locks.values() if lock.status == LOCK_STATUS.ACTIVE]

    def update_lock(self, lock_id: str, update: LockUpdate) -> None:
        if lock_id in self.fail_on_update:
            raise StoreError(f"write failed for {lock_id}")
        lock = self.locks[lock_id]
        if lock.status != LOCK_STATUS.ACTIVE:
            raise StaleWriteError(f"Lock {lock_id} is no longer active")
        lock.accrued_interest = update.accrued_interest
        lock.status = update.status

    def recent_supply_volume(self, asset: str, chain: str, since: datetime) -> float:
        if self.unreachable:
            raise StoreError("store unreachable")
        return sum(
            p.current_amount
            for p in self.positions.values()
            if p.kind == "supply" and p.asset == asset and p.chain == chain and p.created_at >= since
        )

    def holds_asset(self, owner_id: str, asset: str) -> bool:
        if self.unreachable:
            raise StoreError("store unreachable")
        return any(
            p.owner_id == owner_id and p.asset == asset and p.kind == "supply" and p.is_open
            for p in self.positions.values()
        )


class StaleReadPositionStore(InMemoryPositionStore):
    """Serves a snapshot taken earlier while writing to the live store, like a run racing another."""

    def __init__(self, live: InMemoryPositionStore) -> None:
        self.live = live
        self.snapshot = copy.deepcopy(live.positions)

    def list_open_positions(self, kind: str) -> list[Position]:
        return [copy.deepcopy(p) for p in self.snapshot.values() if p.kind == kind and p.is_open]

    def update_position(self, position_id: str, update: PositionUpdate, expected_last_update) -> None:
        self.live.update_position(position_id, update, expected_last_update)


class InMemoryPoolStore:
    def __init__(self, position_store: InMemoryPositionStore, pools: list[PoolAggregate] = ()) -> None:
        self.position_store = position_store
        self.pools = {pool.pool_key: copy.deepcopy(pool) for pool in pools}
        self.upserts: list[PoolAggregate] = []
        self.unreachable = False

    def sum_positions(self, asset: str, chain: str) -> PositionTotals:
        totals = PositionTotals()
        for p in self.position_store.positions.values():
            if p.asset != asset or p.chain != chain or not p.is_open:
                continue
            if p.kind == "supply":
                totals.total_supply += p.current_amount
            else:
                totals.total_borrowed += p.current_amount
        return totals

    def upsert_pool_aggregate(self, aggregate: PoolAggregate) -> None:
        self.pools[aggregate.pool_key] = copy.deepcopy(aggregate)
        self.upserts.append(aggregate)

    def get_pool_aggregate(self, asset: str, chain: str) -> PoolAggregate | None:
        if self.unreachable:
            raise StoreError("store unreachable")
        return copy.deepcopy(self.pools.get((asset, chain)))
