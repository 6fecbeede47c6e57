"""Entity store adapters backing the aggregation engine."""

from __future__ import annotations

import copy
import json
import sqlite3
from contextlib import contextmanager
from decimal import Decimal
from pathlib import Path
from typing import Any, ContextManager, Dict, Iterator, List, Optional, Protocol, Sequence, Tuple, Type, TypeVar

from .schemas import Balancer, DailyTokenStatistics, Pool, PoolToken, Token, TokenPrice

E = TypeVar("E")

SCHEMA_VERSION = 1


class EntityStore(Protocol):
    """Keyed load/save contract offered by the event-sourcing runtime."""

    def load(self, kind: Type[E], entity_id: str) -> Optional[E]:
        ...

    def save(self, entity: Any) -> None:
        ...

    def list_entities(self, kind: Type[E]) -> List[E]:
        ...

    def transaction(self) -> ContextManager[None]:
        ...


class InMemoryEntityStore:
    """Dictionary-backed store; loads hand out copies like a real store would."""

    def __init__(self) -> None:
        self._entities: Dict[Tuple[type, str], Any] = {}
        self._in_transaction = False

    def load(self, kind: Type[E], entity_id: str) -> Optional[E]:
        entity = self._entities.get((kind, entity_id))
        if entity is None:
            return None
        return copy.deepcopy(entity)

    def save(self, entity: Any) -> None:
        self._entities[(type(entity), entity.id)] = copy.deepcopy(entity)

    def list_entities(self, kind: Type[E]) -> List[E]:
        return [
            copy.deepcopy(entity)
            for (entity_kind, _), entity in self._entities.items()
            if entity_kind is kind
        ]

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Restore the pre-block contents if the block raises."""

        if self._in_transaction:
            yield
            return
        snapshot = dict(self._entities)
        self._in_transaction = True
        try:
            yield
        except Exception:
            self._entities = snapshot
            raise
        finally:
            self._in_transaction = False

    def __len__(self) -> int:
        return len(self._entities)


# Column codecs: "text", "int", "decimal", "bool", "json".
_TABLES: Dict[type, Tuple[str, Sequence[Tuple[str, str]]]] = {
    Balancer: (
        "balancers",
        (
            ("id", "text"),
            ("pool_count", "int"),
            ("tx_count", "int"),
            ("total_liquidity", "decimal"),
            ("total_swap_volume", "decimal"),
        ),
    ),
    Token: (
        "tokens",
        (
            ("id", "text"),
            ("balancer", "text"),
            ("symbol", "text"),
            ("name", "text"),
            ("decimals", "int"),
            ("total_liquidity", "decimal"),
            ("tx_count", "int"),
            ("swap_tx_count", "int"),
        ),
    ),
    TokenPrice: (
        "token_prices",
        (
            ("id", "text"),
            ("price", "decimal"),
            ("symbol", "text"),
            ("name", "text"),
            ("decimals", "int"),
            ("pool_token_id", "text"),
            ("pool_liquidity", "decimal"),
        ),
    ),
    Pool: (
        "pools",
        (
            ("id", "text"),
            ("tokens_list", "json"),
            ("tokens_count", "int"),
            ("total_weight", "decimal"),
            ("liquidity", "decimal"),
            ("swap_fee", "decimal"),
            ("swaps_count", "int"),
            ("tx_count", "int"),
            ("total_swap_volume", "decimal"),
            ("finalized", "bool"),
            ("public_swap", "bool"),
        ),
    ),
    PoolToken: (
        "pool_tokens",
        (
            ("id", "text"),
            ("pool_id", "text"),
            ("address", "text"),
            ("balance", "decimal"),
            ("denorm_weight", "decimal"),
            ("symbol", "text"),
            ("name", "text"),
            ("decimals", "int"),
        ),
    ),
    DailyTokenStatistics: (
        "daily_token_statistics",
        (
            ("id", "text"),
            ("date", "int"),
            ("token", "text"),
            ("swap_volume_in_usd", "decimal"),
            ("swap_volume_in_units", "decimal"),
            ("swap_tx_count", "int"),
            ("liquidity_in_units", "decimal"),
            ("liquidity_in_usd", "decimal"),
            ("tx_count", "int"),
        ),
    ),
}

# Decimals are kept as TEXT so SQLite never coerces them to REAL.
_SQL_TYPES = {"text": "TEXT", "int": "INTEGER", "decimal": "TEXT", "bool": "INTEGER", "json": "TEXT"}

CREATE_SCHEMA_VERSION_TABLE = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version INTEGER NOT NULL
);
"""


def _create_table_sql(table: str, columns: Sequence[Tuple[str, str]]) -> str:
    body = ",\n    ".join(
        f"{name} {_SQL_TYPES[codec]}{' PRIMARY KEY' if name == 'id' else ''}" for name, codec in columns
    )
    return f"CREATE TABLE IF NOT EXISTS {table} (\n    {body}\n);"


def _encode(codec: str, value: Any) -> Any:
    if value is None:
        return None
    if codec == "decimal":
        return str(value)
    if codec == "bool":
        return int(bool(value))
    if codec == "json":
        return json.dumps(list(value), separators=(",", ":"))
    return value


def _decode(codec: str, value: Any) -> Any:
    if value is None:
        return None
    if codec == "decimal":
        return Decimal(value)
    if codec == "bool":
        return bool(value)
    if codec == "json":
        return json.loads(value)
    if codec == "int":
        return int(value)
    return value


class SQLiteEntityStore:
    """SQLite-backed entity store with one table per entity kind."""

    def __init__(self, database_path: Path) -> None:
        database_path = Path(database_path).resolve()
        if not database_path.parent.exists():
            raise ValueError(f"Database directory does not exist: {database_path.parent}")
        if not database_path.parent.is_dir():
            raise ValueError(f"Database path is not a directory: {database_path.parent}")
        self._database_path = database_path
        self._active: Optional[sqlite3.Connection] = None
        self._initialize()

    @property
    def database_path(self) -> Path:
        return self._database_path

    def _initialize(self) -> None:
        with self._connect() as con:
            for table, columns in _TABLES.values():
                con.execute(_create_table_sql(table, columns))
            con.execute(CREATE_SCHEMA_VERSION_TABLE)
            self._apply_migrations(con)

    def _apply_migrations(self, con: sqlite3.Connection) -> None:
        current = self._get_schema_version(con)
        if current != SCHEMA_VERSION:
            self._set_schema_version(con, SCHEMA_VERSION)

    def _get_schema_version(self, con: sqlite3.Connection) -> int:
        cur = con.execute("SELECT version FROM schema_migrations ORDER BY ROWID DESC LIMIT 1")
        row = cur.fetchone()
        if row is None:
            return 0
        return int(row[0])

    def _set_schema_version(self, con: sqlite3.Connection, version: int) -> None:
        con.execute("DELETE FROM schema_migrations")
        con.execute("INSERT INTO schema_migrations (version) VALUES (?)", (version,))

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        if self._active is not None:
            yield self._active
            return
        con = sqlite3.connect(self._database_path)
        try:
            yield con
            con.commit()
        finally:
            con.close()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group every write issued inside the block into one commit."""

        if self._active is not None:
            yield
            return
        con = sqlite3.connect(self._database_path)
        self._active = con
        try:
            yield
            con.commit()
        except Exception:
            con.rollback()
            raise
        finally:
            self._active = None
            con.close()

    def _table_for(self, kind: type) -> Tuple[str, Sequence[Tuple[str, str]]]:
        try:
            return _TABLES[kind]
        except KeyError as exc:
            raise TypeError(f"Unsupported entity kind: {kind.__name__}") from exc

    def load(self, kind: Type[E], entity_id: str) -> Optional[E]:
        table, columns = self._table_for(kind)
        names = ", ".join(name for name, _ in columns)
        with self._connect() as con:
            cur = con.execute(f"SELECT {names} FROM {table} WHERE id = ?", (entity_id,))
            row = cur.fetchone()
        if row is None:
            return None
        return self._row_to_entity(kind, columns, row)

    def save(self, entity: Any) -> None:
        table, columns = self._table_for(type(entity))
        names = [name for name, _ in columns]
        placeholders = ", ".join("?" for _ in names)
        updates = ", ".join(f"{name} = excluded.{name}" for name in names if name != "id")
        values = tuple(_encode(codec, getattr(entity, name)) for name, codec in columns)
        with self._connect() as con:
            con.execute(
                f"""
                INSERT INTO {table} ({", ".join(names)})
                VALUES ({placeholders})
                ON CONFLICT(id) DO UPDATE SET {updates}
                """,
                values,
            )

    def list_entities(self, kind: Type[E]) -> List[E]:
        table, columns = self._table_for(kind)
        names = ", ".join(name for name, _ in columns)
        with self._connect() as con:
            cur = con.execute(f"SELECT {names} FROM {table} ORDER BY rowid")
            rows = cur.fetchall()
        return [self._row_to_entity(kind, columns, row) for row in rows]

    @staticmethod
    def _row_to_entity(kind: Type[E], columns: Sequence[Tuple[str, str]], row: Sequence[Any]) -> E:
        payload = {name: _decode(codec, value) for (name, codec), value in zip(columns, row)}
        return kind(**payload)


__all__ = ["EntityStore", "InMemoryEntityStore", "SQLiteEntityStore", "SCHEMA_VERSION"]
