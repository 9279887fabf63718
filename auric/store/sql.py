# db_queries.py

import sqlite3
from contextlib import contextmanager
from datetime import datetime

from auric.constants import DB_DIR
from auric.exceptions import StaleWriteError
from auric.utils.misc import format_timestamp

POSITIONS_TABLE = "positions"
LOCKS_TABLE = "locks"
POOL_AGGREGATES_TABLE = "pool_aggregates"

ID = "id"
OWNER_ID = "owner_id"
ASSET = "asset"
CHAIN = "chain"
KIND = "kind"
STATUS = "status"
CURRENT_AMOUNT = "current_amount"
ACCRUED_INTEREST = "accrued_interest"
LAST_UPDATE = "last_update"
CREATED_AT = "created_at"

SUPPLY = "supply"
BORROW = "borrow"
ACTIVE = "active"


@contextmanager
def get_db_connection(db_dir: str = DB_DIR, uri: bool = False):  # noqa: ANN201
    conn = sqlite3.connect(db_dir, uri=uri)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


def create_tables(conn: sqlite3.Connection) -> None:
    conn.executescript(
        f"""
        CREATE TABLE IF NOT EXISTS {POSITIONS_TABLE} (
            {ID} TEXT PRIMARY KEY,
            {OWNER_ID} TEXT NOT NULL,
            {ASSET} TEXT NOT NULL,
            {CHAIN} TEXT NOT NULL,
            {KIND} TEXT NOT NULL CHECK ({KIND} IN ('{SUPPLY}', '{BORROW}')),
            {CURRENT_AMOUNT} REAL NOT NULL DEFAULT 0,
            {ACCRUED_INTEREST} REAL NOT NULL DEFAULT 0,
            {LAST_UPDATE} TEXT,
            rate_mode TEXT NOT NULL DEFAULT 'variable',
            {CREATED_AT} TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_positions_pool ON {POSITIONS_TABLE} ({ASSET}, {CHAIN}, {KIND});

        CREATE TABLE IF NOT EXISTS {LOCKS_TABLE} (
            {ID} TEXT PRIMARY KEY,
            {OWNER_ID} TEXT NOT NULL,
            {ASSET} TEXT NOT NULL,
            {CHAIN} TEXT NOT NULL,
            principal_amount REAL NOT NULL,
            apy_applied REAL NOT NULL,
            start_time TEXT NOT NULL,
            end_time TEXT NOT NULL,
            {STATUS} TEXT NOT NULL DEFAULT '{ACTIVE}',
            {ACCRUED_INTEREST} REAL NOT NULL DEFAULT 0
        );

        CREATE TABLE IF NOT EXISTS {POOL_AGGREGATES_TABLE} (
            {ASSET} TEXT NOT NULL,
            {CHAIN} TEXT NOT NULL,
            total_supply REAL NOT NULL DEFAULT 0,
            total_borrowed REAL NOT NULL DEFAULT 0,
            available_liquidity REAL NOT NULL DEFAULT 0,
            utilization REAL NOT NULL DEFAULT 0,
            supply_rate REAL,
            borrow_rate_variable REAL,
            borrow_rate_stable REAL,
            updated_at TEXT,
            PRIMARY KEY ({ASSET}, {CHAIN})
        );
        """
    )
    conn.commit()


def insert_position(
    conn: sqlite3.Connection,
    position_id: str,
    owner_id: str,
    asset: str,
    chain: str,
    kind: str,
    amount: float,
    created_at: datetime,
    rate_mode: str = "variable",
    last_update: datetime | None = None,
) -> None:
    conn.execute(
        f"INSERT INTO {POSITIONS_TABLE} VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        (
            position_id,
            owner_id,
            asset,
            chain,
            kind,
            amount,
            0.0,
            format_timestamp(last_update),
            rate_mode,
            format_timestamp(created_at),
        ),
    )
    conn.commit()


def get_position(conn: sqlite3.Connection, position_id: str) -> dict | None:
    row = conn.execute(f"SELECT * FROM {POSITIONS_TABLE} WHERE {ID} = ?", (position_id,)).fetchone()
    return dict(row) if row else None


def get_open_positions(conn: sqlite3.Connection, kind: str) -> list[dict]:
    query = f"""
    SELECT * FROM {POSITIONS_TABLE}
    WHERE {KIND} = ? AND {CURRENT_AMOUNT} > 0
    ORDER BY {ID}
    """
    cur = conn.execute(query, (kind,))
    return [dict(row) for row in cur.fetchall()]


def update_position(
    conn: sqlite3.Connection,
    position_id: str,
    current_amount: float,
    accrued_interest: float,
    last_update: datetime,
    expected_last_update: datetime | None,
) -> None:
    """
    Compare-and-swap update of an accrued position.

    The row is only written if its `last_update` still matches `expected_last_update`, i.e. no
    other run accrued it since it was read. Raises StaleWriteError otherwise.

    Timestamps are compared as instants (to the millisecond) rather than as text, since rows written
    outside the engine may use another ISO 8601 layout, e.g. `2024-05-31 12:00:00` or a `Z` suffix.
    """
    query = f"""
    UPDATE {POSITIONS_TABLE}
    SET {CURRENT_AMOUNT} = ?, {ACCRUED_INTEREST} = ?, {LAST_UPDATE} = ?
    WHERE {ID} = ? AND julianday({LAST_UPDATE}) IS julianday(?)
    """
    cur = conn.execute(
        query,
        (
            current_amount,
            accrued_interest,
            format_timestamp(last_update),
            position_id,
            format_timestamp(expected_last_update),
        ),
    )
    conn.commit()
    if cur.rowcount != 1:
        raise StaleWriteError(f"Position {position_id} changed since it was read")


def insert_lock(
    conn: sqlite3.Connection,
    lock_id: str,
    owner_id: str,
    asset: str,
    chain: str,
    principal_amount: float,
    apy_applied: float,
    start_time: datetime,
    end_time: datetime,
    status: str = ACTIVE,
) -> None:
    conn.execute(
        f"INSERT INTO {LOCKS_TABLE} VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        (
            lock_id,
            owner_id,
            asset,
            chain,
            principal_amount,
            apy_applied,
            format_timestamp(start_time),
            format_timestamp(end_time),
            status,
            0.0,
        ),
    )
    conn.commit()


def get_lock(conn: sqlite3.Connection, lock_id: str) -> dict | None:
    row = conn.execute(f"SELECT * FROM {LOCKS_TABLE} WHERE {ID} = ?", (lock_id,)).fetchone()
    return dict(row) if row else None


def get_active_locks(conn: sqlite3.Connection) -> list[dict]:
    cur = conn.execute(f"SELECT * FROM {LOCKS_TABLE} WHERE {STATUS} = ? ORDER BY {ID}", (ACTIVE,))
    return [dict(row) for row in cur.fetchall()]


def update_lock(conn: sqlite3.Connection, lock_id: str, accrued_interest: float, status: str) -> None:
    # only active locks may change, matured and exited locks are terminal
    query = f"""
    UPDATE {LOCKS_TABLE}
    SET {ACCRUED_INTEREST} = ?, {STATUS} = ?
    WHERE {ID} = ? AND {STATUS} = ?
    """
    cur = conn.execute(query, (accrued_interest, status, lock_id, ACTIVE))
    conn.commit()
    if cur.rowcount != 1:
        raise StaleWriteError(f"Lock {lock_id} is no longer active")


def set_lock_status(conn: sqlite3.Connection, lock_id: str, status: str) -> None:
    conn.execute(f"UPDATE {LOCKS_TABLE} SET {STATUS} = ? WHERE {ID} = ?", (status, lock_id))
    conn.commit()


def sum_positions(conn: sqlite3.Connection, asset: str, chain: str) -> dict:
    query = f"""
    SELECT {KIND}, COALESCE(SUM({CURRENT_AMOUNT}), 0) AS total
    FROM {POSITIONS_TABLE}
    WHERE {ASSET} = ? AND {CHAIN} = ? AND {CURRENT_AMOUNT} > 0
    GROUP BY {KIND}
    """
    totals = {SUPPLY: 0.0, BORROW: 0.0}
    for row in conn.execute(query, (asset, chain)).fetchall():
        totals[row[KIND]] = float(row["total"])
    return {"total_supply": totals[SUPPLY], "total_borrowed": totals[BORROW]}


def recent_supply_volume(conn: sqlite3.Connection, asset: str, chain: str, since: datetime) -> float:
    query = f"""
    SELECT COALESCE(SUM({CURRENT_AMOUNT}), 0) FROM {POSITIONS_TABLE}
    WHERE {KIND} = ? AND {ASSET} = ? AND {CHAIN} = ? AND julianday({CREATED_AT}) >= julianday(?)
    """
    row = conn.execute(query, (SUPPLY, asset, chain, format_timestamp(since))).fetchone()
    return float(row[0])


def holds_asset(conn: sqlite3.Connection, owner_id: str, asset: str) -> bool:
    query = f"""
    SELECT 1 FROM {POSITIONS_TABLE}
    WHERE {OWNER_ID} = ? AND {ASSET} = ? AND {KIND} = ? AND {CURRENT_AMOUNT} > 0
    LIMIT 1
    """
    return conn.execute(query, (owner_id, asset, SUPPLY)).fetchone() is not None


def upsert_pool_aggregate(conn: sqlite3.Connection, aggregate: dict) -> None:
    query = f"""
    INSERT INTO {POOL_AGGREGATES_TABLE} VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT ({ASSET}, {CHAIN}) DO UPDATE SET
        total_supply = excluded.total_supply,
        total_borrowed = excluded.total_borrowed,
        available_liquidity = excluded.available_liquidity,
        utilization = excluded.utilization,
        supply_rate = excluded.supply_rate,
        borrow_rate_variable = excluded.borrow_rate_variable,
        borrow_rate_stable = excluded.borrow_rate_stable,
        updated_at = excluded.updated_at
    """
    conn.execute(
        query,
        (
            aggregate[ASSET],
            aggregate[CHAIN],
            aggregate["total_supply"],
            aggregate["total_borrowed"],
            aggregate["available_liquidity"],
            aggregate["utilization"],
            aggregate.get("supply_rate"),
            aggregate.get("borrow_rate_variable"),
            aggregate.get("borrow_rate_stable"),
            format_timestamp(aggregate.get("updated_at")),
        ),
    )
    conn.commit()


def get_pool_aggregate(conn: sqlite3.Connection, asset: str, chain: str) -> dict | None:
    row = conn.execute(
        f"SELECT * FROM {POOL_AGGREGATES_TABLE} WHERE {ASSET} = ? AND {CHAIN} = ?",
        (asset, chain),
    ).fetchone()
    return dict(row) if row else None


def get_all_pool_aggregates(conn: sqlite3.Connection) -> list[dict]:
    return [dict(row) for row in conn.execute(f"SELECT * FROM {POOL_AGGREGATES_TABLE}").fetchall()]
