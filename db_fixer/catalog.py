"""
Information-schema access for MySQL/MariaDB.

Every query is scoped to ``DATABASE()``, the schema the connection was opened
on. Table and column names are passed as bound parameters; identifiers that
have to be spliced into SQL text go through ``quote_ident``.
"""
from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import text
from sqlalchemy.engine import Connection


INTEGER_TYPES = {"tinyint", "smallint", "mediumint", "int", "bigint"}
NATIVE_DATE_TYPES = ("date", "datetime", "timestamp")
DATE_CANDIDATE_STORAGE_TYPES = ("varchar", "char", "text", "mediumtext", "longtext", "int", "bigint")

# For exec_driver_sql without parameters: the statement reaches PyMySQL as-is,
# so a '%' inside an identifier is not read as a format directive.
RAW_SQL = {"no_parameters": True}


# --------------------------------------------------------------------------------------
# Quoting helpers
# --------------------------------------------------------------------------------------
def quote_ident(name: str) -> str:
    """Backtick-quote a MySQL identifier, doubling any embedded backtick."""
    escaped = name.replace("`", "``")
    return f"`{escaped}`"


def pyformat_ident(name: str) -> str:
    """``quote_ident`` for driver SQL that also carries ``%(name)s`` parameters."""
    return quote_ident(name).replace("%", "%%")


def quote_literal(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("'", "''")
    return f"'{escaped}'"


def like_to_regex(pattern: str) -> "re.Pattern[str]":
    """Translate a SQL LIKE pattern (``%`` and ``_`` wildcards) into a case-insensitive regex."""
    parts = []
    for ch in pattern:
        if ch == "%":
            parts.append(".*")
        elif ch == "_":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("^" + "".join(parts) + "$", re.IGNORECASE | re.DOTALL)


def matches_any_like(value: str, patterns: Sequence[str]) -> bool:
    return any(like_to_regex(p).match(value) for p in patterns)


def is_integer_family(data_type: Optional[str]) -> bool:
    return (data_type or "").lower() in INTEGER_TYPES


# --------------------------------------------------------------------------------------
# Data containers
# --------------------------------------------------------------------------------------
@dataclass(frozen=True)
class ColumnInfo:
    table: str
    name: str
    data_type: str
    column_type: str
    nullable: bool
    default: Optional[Any] = None
    extra: str = ""
    column_key: str = ""

    @property
    def is_auto_increment(self) -> bool:
        return "auto_increment" in (self.extra or "").lower()


@dataclass(frozen=True)
class ForeignKey:
    table: str
    column: str
    referenced_table: str
    referenced_column: str
    constraint: str = ""


@dataclass(frozen=True)
class TableStats:
    table: str
    engine: str
    row_format: str
    estimated_rows: int
    data_bytes: int


def _column_from_row(row: Dict[str, Any]) -> ColumnInfo:
    return ColumnInfo(
        table=row["TABLE_NAME"],
        name=row["COLUMN_NAME"],
        data_type=(row["DATA_TYPE"] or "").lower(),
        column_type=row["COLUMN_TYPE"] or "",
        nullable=row["IS_NULLABLE"] == "YES",
        default=row.get("COLUMN_DEFAULT"),
        extra=row.get("EXTRA") or "",
        column_key=row.get("COLUMN_KEY") or "",
    )


# --------------------------------------------------------------------------------------
# Catalog reader
# --------------------------------------------------------------------------------------
class Catalog:
    """Retrieves schema metadata for the connection's current database."""

    COLUMN_FIELDS = "TABLE_NAME, COLUMN_NAME, DATA_TYPE, COLUMN_TYPE, IS_NULLABLE, COLUMN_DEFAULT, EXTRA, COLUMN_KEY"

    def __init__(self, connection: Connection) -> None:
        self.connection = connection

    def _rows(self, sql: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        result = self.connection.execute(text(sql), params or {})
        return [dict(r) for r in result.mappings().all()]

    # Tables ----------------------------------------------------------------------------
    def base_tables(self) -> List[str]:
        sql = """
        SELECT TABLE_NAME
        FROM INFORMATION_SCHEMA.TABLES
        WHERE TABLE_SCHEMA = DATABASE()
          AND TABLE_TYPE = 'BASE TABLE'
        ORDER BY TABLE_NAME
        """
        return [r["TABLE_NAME"] for r in self._rows(sql)]

    def table_stats(self) -> List[TableStats]:
        sql = """
        SELECT TABLE_NAME, ENGINE, ROW_FORMAT, TABLE_ROWS, DATA_LENGTH, INDEX_LENGTH
        FROM INFORMATION_SCHEMA.TABLES
        WHERE TABLE_SCHEMA = DATABASE()
          AND TABLE_TYPE = 'BASE TABLE'
        ORDER BY TABLE_NAME
        """
        return [
            TableStats(
                table=r["TABLE_NAME"],
                engine=(r["ENGINE"] or "").upper(),
                row_format=r["ROW_FORMAT"] or "",
                estimated_rows=int(r["TABLE_ROWS"] or 0),
                data_bytes=int(r["DATA_LENGTH"] or 0) + int(r["INDEX_LENGTH"] or 0),
            )
            for r in self._rows(sql)
        ]

    def estimated_row_count(self, table: str) -> int:
        sql = """
        SELECT TABLE_ROWS
        FROM INFORMATION_SCHEMA.TABLES
        WHERE TABLE_SCHEMA = DATABASE()
          AND TABLE_NAME = :t
        """
        rows = self._rows(sql, {"t": table})
        return int(rows[0]["TABLE_ROWS"] or 0) if rows else 0

    def server_version(self) -> str:
        rows = self._rows("SELECT @@version AS v, @@version_comment AS c")
        if not rows:
            return "unknown"
        return f"{rows[0]['v']} {rows[0]['c'] or ''}".strip()

    # Columns ---------------------------------------------------------------------------
    def columns(self, table: str) -> List[ColumnInfo]:
        sql = f"""
        SELECT {self.COLUMN_FIELDS}
        FROM INFORMATION_SCHEMA.COLUMNS
        WHERE TABLE_SCHEMA = DATABASE()
          AND TABLE_NAME = :t
        ORDER BY ORDINAL_POSITION
        """
        return [_column_from_row(r) for r in self._rows(sql, {"t": table})]

    def column_info(self, table: str, column: str) -> Optional[ColumnInfo]:
        sql = f"""
        SELECT {self.COLUMN_FIELDS}
        FROM INFORMATION_SCHEMA.COLUMNS
        WHERE TABLE_SCHEMA = DATABASE()
          AND TABLE_NAME = :t
          AND COLUMN_NAME = :c
        LIMIT 1
        """
        rows = self._rows(sql, {"t": table, "c": column})
        return _column_from_row(rows[0]) if rows else None

    def columns_of_type(self, data_type: str) -> List[ColumnInfo]:
        sql = f"""
        SELECT {self.COLUMN_FIELDS}
        FROM INFORMATION_SCHEMA.COLUMNS
        WHERE TABLE_SCHEMA = DATABASE()
          AND DATA_TYPE = :dt
        ORDER BY TABLE_NAME, ORDINAL_POSITION
        """
        return [_column_from_row(r) for r in self._rows(sql, {"dt": data_type})]

    def date_candidate_columns(self, name_like: Sequence[str]) -> List[ColumnInfo]:
        """Native date/time columns plus text/integer columns whose names look temporal."""
        params: Dict[str, Any] = {}
        name_terms = []
        for i, pattern in enumerate(name_like):
            params[f"p{i}"] = pattern.lower()
            name_terms.append(f"LOWER(c.COLUMN_NAME) LIKE :p{i}")
        native = ", ".join(quote_literal(t) for t in NATIVE_DATE_TYPES)
        storage = ", ".join(quote_literal(t) for t in DATE_CANDIDATE_STORAGE_TYPES)
        name_clause = f" OR (({' OR '.join(name_terms)}) AND c.DATA_TYPE IN ({storage}))" if name_terms else ""
        sql = f"""
        SELECT c.TABLE_NAME, c.COLUMN_NAME, c.DATA_TYPE, c.COLUMN_TYPE, c.IS_NULLABLE,
               c.COLUMN_DEFAULT, c.EXTRA, c.COLUMN_KEY
        FROM INFORMATION_SCHEMA.COLUMNS c
        JOIN INFORMATION_SCHEMA.TABLES t
          ON t.TABLE_SCHEMA = c.TABLE_SCHEMA AND t.TABLE_NAME = c.TABLE_NAME
        WHERE c.TABLE_SCHEMA = DATABASE()
          AND t.TABLE_TYPE = 'BASE TABLE'
          AND (c.DATA_TYPE IN ({native}){name_clause})
        ORDER BY c.TABLE_NAME, c.ORDINAL_POSITION
        """
        return [_column_from_row(r) for r in self._rows(sql, params)]

    # Keys and indexes ------------------------------------------------------------------
    def primary_key_columns(self, table: str) -> List[str]:
        sql = """
        SELECT k.COLUMN_NAME
        FROM INFORMATION_SCHEMA.TABLE_CONSTRAINTS c
        JOIN INFORMATION_SCHEMA.KEY_COLUMN_USAGE k
          ON k.TABLE_SCHEMA = c.TABLE_SCHEMA
         AND k.TABLE_NAME = c.TABLE_NAME
         AND k.CONSTRAINT_NAME = c.CONSTRAINT_NAME
        WHERE c.TABLE_SCHEMA = DATABASE()
          AND c.TABLE_NAME = :t
          AND c.CONSTRAINT_TYPE = 'PRIMARY KEY'
        ORDER BY k.ORDINAL_POSITION
        """
        return [r["COLUMN_NAME"] for r in self._rows(sql, {"t": table})]

    def primary_keys(self) -> Dict[str, List[str]]:
        """Primary-key columns for every table in the schema, in key order."""
        sql = """
        SELECT k.TABLE_NAME, k.COLUMN_NAME
        FROM INFORMATION_SCHEMA.TABLE_CONSTRAINTS c
        JOIN INFORMATION_SCHEMA.KEY_COLUMN_USAGE k
          ON k.TABLE_SCHEMA = c.TABLE_SCHEMA
         AND k.TABLE_NAME = c.TABLE_NAME
         AND k.CONSTRAINT_NAME = c.CONSTRAINT_NAME
        WHERE c.TABLE_SCHEMA = DATABASE()
          AND c.CONSTRAINT_TYPE = 'PRIMARY KEY'
        ORDER BY k.TABLE_NAME, k.ORDINAL_POSITION
        """
        out: Dict[str, List[str]] = defaultdict(list)
        for r in self._rows(sql):
            out[r["TABLE_NAME"]].append(r["COLUMN_NAME"])
        return dict(out)

    def foreign_key_columns(self, table: str) -> List[str]:
        sql = """
        SELECT k.COLUMN_NAME
        FROM INFORMATION_SCHEMA.KEY_COLUMN_USAGE k
        WHERE k.TABLE_SCHEMA = DATABASE()
          AND k.TABLE_NAME = :t
          AND k.REFERENCED_TABLE_NAME IS NOT NULL
        """
        return [r["COLUMN_NAME"] for r in self._rows(sql, {"t": table})]

    def foreign_keys(self) -> List[ForeignKey]:
        sql = """
        SELECT k.TABLE_NAME, k.COLUMN_NAME, k.REFERENCED_TABLE_NAME, k.REFERENCED_COLUMN_NAME, k.CONSTRAINT_NAME
        FROM INFORMATION_SCHEMA.KEY_COLUMN_USAGE k
        WHERE k.TABLE_SCHEMA = DATABASE()
          AND k.REFERENCED_TABLE_NAME IS NOT NULL
        ORDER BY k.TABLE_NAME, k.CONSTRAINT_NAME, k.ORDINAL_POSITION
        """
        return [
            ForeignKey(
                table=r["TABLE_NAME"],
                column=r["COLUMN_NAME"],
                referenced_table=r["REFERENCED_TABLE_NAME"],
                referenced_column=r["REFERENCED_COLUMN_NAME"],
                constraint=r["CONSTRAINT_NAME"] or "",
            )
            for r in self._rows(sql)
        ]

    def child_foreign_key_counts(self) -> Dict[str, int]:
        """Number of distinct foreign-key constraints referencing each parent table."""
        sql = """
        SELECT k.REFERENCED_TABLE_NAME AS parent_table,
               COUNT(DISTINCT CONCAT(k.TABLE_NAME, ':', k.CONSTRAINT_NAME)) AS child_fk_count
        FROM INFORMATION_SCHEMA.KEY_COLUMN_USAGE k
        WHERE k.TABLE_SCHEMA = DATABASE()
          AND k.REFERENCED_TABLE_NAME IS NOT NULL
        GROUP BY k.REFERENCED_TABLE_NAME
        """
        return {r["parent_table"]: int(r["child_fk_count"]) for r in self._rows(sql)}

    def first_unique_index_columns(self, table: str) -> List[str]:
        """Columns of the first non-primary unique index (by index name), in index order."""
        sql = """
        SELECT INDEX_NAME, COLUMN_NAME, SEQ_IN_INDEX
        FROM INFORMATION_SCHEMA.STATISTICS
        WHERE TABLE_SCHEMA = DATABASE()
          AND TABLE_NAME = :t
          AND NON_UNIQUE = 0
          AND INDEX_NAME <> 'PRIMARY'
        ORDER BY INDEX_NAME, SEQ_IN_INDEX
        """
        rows = self._rows(sql, {"t": table})
        if not rows:
            return []
        first = rows[0]["INDEX_NAME"]
        cols = []
        for r in rows:
            if r["INDEX_NAME"] != first:
                break
            cols.append(r["COLUMN_NAME"])
        return cols

    def tables_with_index_type(self, index_type: str) -> set:
        sql = """
        SELECT DISTINCT TABLE_NAME
        FROM INFORMATION_SCHEMA.STATISTICS
        WHERE TABLE_SCHEMA = DATABASE()
          AND INDEX_TYPE = :type
        """
        return {r["TABLE_NAME"] for r in self._rows(sql, {"type": index_type.upper()})}

    def foreign_key_int_pairs(self) -> List[Dict[str, Any]]:
        """Child/parent column types for foreign keys where both sides are INT."""
        sql = """
        SELECT kcu.TABLE_NAME AS child_table,
               kcu.COLUMN_NAME AS child_column,
               child_cols.COLUMN_TYPE AS child_column_type,
               kcu.REFERENCED_TABLE_NAME AS parent_table,
               kcu.REFERENCED_COLUMN_NAME AS parent_column,
               parent_cols.COLUMN_TYPE AS parent_column_type
        FROM INFORMATION_SCHEMA.KEY_COLUMN_USAGE kcu
        JOIN INFORMATION_SCHEMA.COLUMNS child_cols
          ON child_cols.TABLE_SCHEMA = kcu.TABLE_SCHEMA
         AND child_cols.TABLE_NAME = kcu.TABLE_NAME
         AND child_cols.COLUMN_NAME = kcu.COLUMN_NAME
        JOIN INFORMATION_SCHEMA.COLUMNS parent_cols
          ON parent_cols.TABLE_SCHEMA = kcu.TABLE_SCHEMA
         AND parent_cols.TABLE_NAME = kcu.REFERENCED_TABLE_NAME
         AND parent_cols.COLUMN_NAME = kcu.REFERENCED_COLUMN_NAME
        WHERE kcu.TABLE_SCHEMA = DATABASE()
          AND kcu.REFERENCED_TABLE_NAME IS NOT NULL
          AND child_cols.DATA_TYPE = 'int'
          AND parent_cols.DATA_TYPE = 'int'
        ORDER BY kcu.TABLE_NAME, kcu.COLUMN_NAME
        """
        return self._rows(sql)
