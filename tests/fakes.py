"""In-memory stand-ins for a SQLAlchemy connection and the catalog reader."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import OperationalError

from db_fixer.catalog import ColumnInfo, ForeignKey, TableStats

MUTATING_PREFIXES = ("ALTER", "UPDATE", "INSERT", "DELETE", "SET", "CREATE", "DROP")


def col(table: str, name: str, data_type: str = "int", column_type: Optional[str] = None,
        nullable: bool = False, extra: str = "") -> ColumnInfo:
    return ColumnInfo(
        table=table,
        name=name,
        data_type=data_type,
        column_type=column_type or data_type,
        nullable=nullable,
        extra=extra,
    )


def db_error(message: str = "boom") -> OperationalError:
    return OperationalError("statement", {}, Exception(message))


class FakeResult:
    def __init__(self, rows: Sequence[Dict[str, Any]]) -> None:
        self.rows = [dict(r) for r in rows]

    def mappings(self) -> "FakeResult":
        return self

    def all(self) -> List[Dict[str, Any]]:
        return list(self.rows)

    def first(self) -> Optional[Dict[str, Any]]:
        return self.rows[0] if self.rows else None

    def scalars(self) -> "FakeScalars":
        return FakeScalars([next(iter(r.values())) for r in self.rows])

    def scalar(self) -> Any:
        if not self.rows:
            return None
        return next(iter(self.rows[0].values()))


class FakeScalars:
    def __init__(self, values: List[Any]) -> None:
        self.values = values

    def all(self) -> List[Any]:
        return list(self.values)


class FakeTransaction:
    def __init__(self, conn: "FakeConnection") -> None:
        self.conn = conn

    def __enter__(self) -> "FakeTransaction":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.conn.commit()
        else:
            self.conn.rollback()


class FakeConnection:
    """Answers statements by substring match and records everything it was asked to run.

    ``responses`` is an ordered list of ``(needle, value)``; the first needle found
    in the SQL wins. ``value`` is a list of row dicts or an exception to raise.
    Unmatched statements return no rows.
    """

    def __init__(self, responses: Optional[List[Tuple[str, Any]]] = None) -> None:
        self.responses = list(responses or [])
        self.executed: List[Tuple[str, Any]] = []
        self.events: List[str] = []
        self.driver_options: List[Tuple[str, Dict[str, Any]]] = []
        self._in_tx = False

    def _run(self, sql: str, params: Any) -> FakeResult:
        self.executed.append((sql, params))
        self._in_tx = True
        for needle, value in self.responses:
            if needle in sql:
                if isinstance(value, BaseException):
                    raise value
                return FakeResult(value)
        return FakeResult([])

    def execute(self, statement: Any, params: Any = None) -> FakeResult:
        return self._run(str(statement), params)

    def exec_driver_sql(self, sql: str, params: Any = None, execution_options: Optional[Dict[str, Any]] = None) -> FakeResult:
        self.driver_options.append((sql, dict(execution_options or {})))
        return self._run(sql, params)

    def begin(self) -> FakeTransaction:
        if self._in_tx:
            raise RuntimeError("transaction already begun")
        self._in_tx = True
        self.events.append("begin")
        return FakeTransaction(self)

    def in_transaction(self) -> bool:
        return self._in_tx

    def commit(self) -> None:
        self.events.append("commit")
        self._in_tx = False

    def rollback(self) -> None:
        self.events.append("rollback")
        self._in_tx = False

    @property
    def statements(self) -> List[str]:
        return [sql for sql, _ in self.executed]

    @property
    def mutations(self) -> List[str]:
        return [s for s in self.statements if s.lstrip().upper().startswith(MUTATING_PREFIXES)]


@dataclass
class FakeTable:
    columns: List[ColumnInfo]
    pk: List[str] = field(default_factory=list)
    fks: List[str] = field(default_factory=list)
    unique: List[str] = field(default_factory=list)
    rows: int = 0


class FakeCatalog:
    """Catalog double fed from ``FakeTable`` descriptions; usable as a catalog factory."""

    def __init__(
        self,
        tables: Optional[Dict[str, FakeTable]] = None,
        child_counts: Optional[Dict[str, int]] = None,
        date_columns: Optional[List[ColumnInfo]] = None,
        foreign_keys: Optional[List[ForeignKey]] = None,
        stats: Optional[List[TableStats]] = None,
        index_types: Optional[Dict[str, set]] = None,
        int_pairs: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        self.tables = tables or {}
        self.child_counts = child_counts or {}
        self.date_columns = date_columns or []
        self._foreign_keys = foreign_keys or []
        self.stats = stats or []
        self.index_types = index_types or {}
        self.int_pairs = int_pairs or []
        self.connection = None
        self.name_like_seen: Optional[List[str]] = None

    def __call__(self, connection: Any) -> "FakeCatalog":
        self.connection = connection
        return self

    def base_tables(self) -> List[str]:
        return list(self.tables)

    def table_stats(self) -> List[TableStats]:
        return list(self.stats)

    def server_version(self) -> str:
        return "8.0.36 MySQL Community Server"

    def tables_with_index_type(self, index_type: str) -> set:
        return set(self.index_types.get(index_type, set()))

    def estimated_row_count(self, table: str) -> int:
        return self.tables[table].rows

    def columns(self, table: str) -> List[ColumnInfo]:
        return list(self.tables[table].columns)

    def column_info(self, table: str, column: str) -> Optional[ColumnInfo]:
        for c in self.tables[table].columns:
            if c.name == column:
                return c
        return None

    def columns_of_type(self, data_type: str) -> List[ColumnInfo]:
        return [c for t in self.tables.values() for c in t.columns if c.data_type == data_type]

    def date_candidate_columns(self, name_like: Sequence[str]) -> List[ColumnInfo]:
        self.name_like_seen = list(name_like)
        return list(self.date_columns)

    def primary_key_columns(self, table: str) -> List[str]:
        return list(self.tables[table].pk)

    def primary_keys(self) -> Dict[str, List[str]]:
        return {name: list(t.pk) for name, t in self.tables.items() if t.pk}

    def foreign_key_columns(self, table: str) -> List[str]:
        return list(self.tables[table].fks)

    def foreign_keys(self) -> List[ForeignKey]:
        return list(self._foreign_keys)

    def child_foreign_key_counts(self) -> Dict[str, int]:
        return dict(self.child_counts)

    def first_unique_index_columns(self, table: str) -> List[str]:
        return list(self.tables[table].unique)

    def foreign_key_int_pairs(self) -> List[Dict[str, Any]]:
        return list(self.int_pairs)
