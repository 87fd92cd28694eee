"""
Date storage classification across the schema.

Candidate columns are native DATE/DATETIME/TIMESTAMP columns plus text and
integer columns whose names look temporal. Native columns are only checked for
zero-date rows. Every other candidate is scanned once with a single aggregation
that counts matches for all value shapes at the same time; the shape with the
most matches wins, ties going to the earlier shape in ``SHAPE_ORDER``.
"""
from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from db_fixer.catalog import NATIVE_DATE_TYPES, ColumnInfo, quote_ident
from db_fixer.constraints import DEFAULT_DATE_NAME_LIKE, DateStorageConstraints
from db_fixer.findings import Finding
from db_fixer.reporting import ConsoleReporter
from db_fixer.rules.base import Rule


# Evaluation and tie-break order.
SHAPE_PATTERNS: "OrderedDict[str, str]" = OrderedDict(
    [
        ("unix_seconds", r"^[0-9]{10}$"),
        ("unix_millis", r"^[0-9]{13}$"),
        ("mysql_datetime", r"^[0-9]{4}-[0-9]{2}-[0-9]{2} [0-9]{2}:[0-9]{2}:[0-9]{2}$"),
        ("mysql_date", r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$"),
        ("iso8601", r"^[0-9]{4}-[0-9]{2}-[0-9]{2}[Tt ][0-9]{2}:[0-9]{2}(:[0-9]{2})?([.][0-9]+)?([Zz]|[+-][0-9]{2}(:?[0-9]{2})?)$"),
        ("ddmmyyyy", r"^[0-9]{2}/[0-9]{2}/[0-9]{4}$"),
    ]
)
SHAPE_ORDER = tuple(SHAPE_PATTERNS)
OTHER = "other"

RECOMMENDATIONS: Dict[str, str] = {
    "unix_seconds": "convert to DATETIME using FROM_UNIXTIME(col) and change type to DATETIME",
    "unix_millis": "convert to DATETIME using FROM_UNIXTIME(col/1000) and change type to DATETIME",
    "mysql_datetime": "change type to DATETIME (values already in MySQL datetime string)",
    "mysql_date": "change type to DATE",
    "iso8601": "normalize on write/read or migrate to DATETIME; parse ISO-8601",
    "ddmmyyyy": 'migrate to DATE using STR_TO_DATE(col, "%d/%m/%Y")',
    OTHER: "review column",
}

SUMMARY_KEYS = ("native_datetime", "zero_date") + SHAPE_ORDER + (OTHER,)

NUMERIC_STORAGE = {"int", "bigint", "decimal", "double", "float"}


def column_expression(name: str, data_type: str) -> str:
    """Quoted column reference; numeric columns are cast to CHAR so REGEXP applies."""
    quoted = quote_ident(name)
    if data_type.lower() in NUMERIC_STORAGE:
        return f"CAST({quoted} AS CHAR)"
    return quoted


def dominant_shape(counts: Mapping[str, int]) -> str:
    """Shape with the highest non-zero count, first in ``SHAPE_ORDER`` on ties, else ``other``."""
    best, best_count = OTHER, 0
    for shape in SHAPE_ORDER:
        count = int(counts.get(shape, 0) or 0)
        if count > best_count:
            best, best_count = shape, count
    return best


def recommendation_for(shape: str) -> str:
    return RECOMMENDATIONS.get(shape, RECOMMENDATIONS[OTHER])


@dataclass(frozen=True)
class ShapeHistogram:
    """Per-column match counts from the single aggregation pass."""

    total: int
    null_or_empty: int
    counts: Mapping[str, int]

    @property
    def dominant(self) -> str:
        return dominant_shape(self.counts)

    def describe(self) -> str:
        c = self.counts
        return (
            f"total={self.total}; null_or_empty={self.null_or_empty}; "
            f"unix10={c.get('unix_seconds', 0)}; unix13={c.get('unix_millis', 0)}; "
            f"mysql_dt={c.get('mysql_datetime', 0)}; mysql_d={c.get('mysql_date', 0)}; "
            f"iso={c.get('iso8601', 0)}; ddmmyyyy={c.get('ddmmyyyy', 0)}"
        )


class ClassifyDateStorageRule(Rule):
    NAME = "classify_date_storage_across_schema"
    CATEGORY = "Discovery"
    DESTRUCTIVE = False
    CONSTRAINT_TYPE = DateStorageConstraints

    def apply(self, connection: Connection, reporter: ConsoleReporter, context: Mapping[str, Any]) -> List[Finding]:
        results: List[Finding] = []
        name_like = list(context.get("name_like") or DEFAULT_DATE_NAME_LIKE)
        preview_limit = int(context.get("preview_limit", 3))

        catalog = self.catalog_factory(connection)
        columns = catalog.date_candidate_columns(name_like)
        reporter.line(f"[{self.NAME}] scanned {len(columns)} candidate columns")

        summary: Dict[str, int] = {key: 0 for key in SUMMARY_KEYS}

        for col in columns:
            if col.data_type in NATIVE_DATE_TYPES:
                results.append(self._check_native(connection, col, summary))
                continue

            histogram = self.histogram(connection, col)
            classified = histogram.dominant
            summary[classified] += 1

            recommend = recommendation_for(classified)
            if classified != OTHER and preview_limit > 0:
                samples = self._samples(connection, reporter, col, classified, preview_limit)
                if samples:
                    recommend += "; samples: " + " | ".join(samples)

            results.append(
                self.finding(
                    col.table,
                    col.name,
                    f"{col.data_type.upper()} {classified} ({histogram.describe()})",
                    recommend,
                )
            )

        reporter.line(
            "Summary -> "
            f"native={summary['native_datetime']}, zero_date={summary['zero_date']}, "
            f"unix_s={summary['unix_seconds']}, unix_ms={summary['unix_millis']}, "
            f"mysql_dt={summary['mysql_datetime']}, mysql_d={summary['mysql_date']}, "
            f"iso8601={summary['iso8601']}, ddmmyyyy={summary['ddmmyyyy']}, other={summary['other']}"
        )
        return results

    def _check_native(self, connection: Connection, col: ColumnInfo, summary: Dict[str, int]) -> Finding:
        # Fractional-second columns render zero dates as '0000-00-00 00:00:00.000000'.
        expr = f"CAST({quote_ident(col.name)} AS CHAR)"
        sql = (
            f"SELECT SUM({expr} LIKE '0000-00-00%') AS zeros "
            f"FROM {quote_ident(col.table)}"
        )
        zeros = int(connection.execute(text(sql)).scalar() or 0)
        summary["native_datetime"] += 1
        if zeros > 0:
            summary["zero_date"] += 1
            return self.finding(
                col.table,
                col.name,
                f"native {col.data_type.upper()} (zero-date rows={zeros})",
                "DROP zero-date defaults; update bad rows to NULL or a valid timestamp",
            )
        return self.finding(col.table, col.name, f"native {col.data_type.upper()}", "OK (native date/time storage)")

    def histogram(self, connection: Connection, col: ColumnInfo) -> ShapeHistogram:
        """Count every shape for one column in a single scan."""
        expr = column_expression(col.name, col.data_type)
        params: Dict[str, Any] = {}
        sums = []
        for shape, pattern in SHAPE_PATTERNS.items():
            params[f"re_{shape}"] = pattern
            sums.append(f"SUM({expr} REGEXP :re_{shape}) AS {shape}")
        sql = (
            f"SELECT COUNT(*) AS total, SUM({expr} IS NULL OR {expr} = '') AS null_or_empty, "
            + ", ".join(sums)
            + f" FROM {quote_ident(col.table)}"
        )
        row: Optional[Mapping[str, Any]] = connection.execute(text(sql), params).mappings().first()
        row = row or {}
        return ShapeHistogram(
            total=int(row.get("total") or 0),
            null_or_empty=int(row.get("null_or_empty") or 0),
            counts={shape: int(row.get(shape) or 0) for shape in SHAPE_ORDER},
        )

    def _samples(
        self, connection: Connection, reporter: ConsoleReporter, col: ColumnInfo, shape: str, limit: int
    ) -> List[str]:
        expr = column_expression(col.name, col.data_type)
        sql = (
            f"SELECT DISTINCT {expr} AS v FROM {quote_ident(col.table)} "
            f"WHERE {expr} REGEXP :pattern AND {expr} IS NOT NULL AND {expr} <> '' "
            f"LIMIT {int(limit)}"
        )
        try:
            return [str(v) for v in connection.execute(text(sql), {"pattern": SHAPE_PATTERNS[shape]}).scalars().all()]
        except SQLAlchemyError as exc:
            # Samples are a convenience; the classification stands without them.
            reporter.warning(f"{col.table}.{col.name}: could not fetch samples ({exc})")
            return []
