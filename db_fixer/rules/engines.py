"""Advisory: tables that do not use a transactional storage engine."""
from __future__ import annotations

from typing import Any, List, Mapping

from sqlalchemy.engine import Connection

from db_fixer.catalog import quote_ident
from db_fixer.constraints import ROW_FORMATS, TransactionalEnginesConstraints
from db_fixer.findings import ENGINE_COLUMN, Finding
from db_fixer.reporting import ConsoleReporter
from db_fixer.rules.base import Rule


# Engines that are usually chosen on purpose, mapped to the option that forces conversion.
INTENTIONAL_ENGINES = {
    "MEMORY": ("force_convert_memory", "ephemeral, non-transactional"),
    "ARCHIVE": ("force_convert_archive", "append-only, compressed"),
    "CSV": ("force_convert_csv", "file-backed"),
}

LARGE_TABLE_MB = 1024


class EnsureTransactionalEnginesRule(Rule):
    NAME = "ensure_transactional_engines"
    CATEGORY = "Integrity"
    # Engine changes are blocking and cannot be rolled back; this rule only reports.
    DESTRUCTIVE = True
    CONSTRAINT_TYPE = TransactionalEnginesConstraints

    def apply(self, connection: Connection, reporter: ConsoleReporter, context: Mapping[str, Any]) -> List[Finding]:
        results: List[Finding] = []
        row_format = str(context.get("row_format", "DYNAMIC")).upper()
        if row_format not in ROW_FORMATS:
            row_format = "DYNAMIC"

        catalog = self.catalog_factory(connection)
        tables = catalog.table_stats()
        reporter.line(f"[{self.NAME}] scanned {len(tables)} tables (server: {catalog.server_version()})")

        fulltext = catalog.tables_with_index_type("FULLTEXT")
        spatial = catalog.tables_with_index_type("SPATIAL")
        non_innodb = 0

        for stats in tables:
            # Some system tables report no engine.
            if stats.engine in ("", "INNODB"):
                continue
            non_innodb += 1

            mb = round(stats.data_bytes / (1024 * 1024), 2) if stats.data_bytes > 0 else 0.0
            notes = []
            if stats.table in fulltext:
                notes.append("table has FULLTEXT indexes")
            if stats.table in spatial:
                notes.append("table has SPATIAL indexes")
            notes.append(f"estimated rows: {stats.estimated_rows}")
            notes.append(f"approx size: {mb} MB")
            note_str = f" ({'; '.join(notes)})"

            if stats.engine in INTENTIONAL_ENGINES:
                option, description = INTENTIONAL_ENGINES[stats.engine]
                if not context.get(option, False):
                    results.append(
                        self.finding(
                            stats.table,
                            ENGINE_COLUMN,
                            f"{stats.engine}{note_str}",
                            f"Leave as {stats.engine} ({description}); set {option}=true to convert to InnoDB",
                        )
                    )
                    continue

            target = f"ALTER TABLE {quote_ident(stats.table)} ENGINE=InnoDB, ROW_FORMAT={row_format}"
            if mb >= LARGE_TABLE_MB:
                target += "  -- caution: large table, schedule maintenance window"
            results.append(
                self.finding(stats.table, ENGINE_COLUMN, f"{stats.engine} (row_format: {stats.row_format}){note_str}", target)
            )

        reporter.line(f"  tables not using InnoDB: {non_innodb}")
        self.preview(reporter, results, context)
        return results
