"""Referential checks driven by the schema's declared foreign keys."""
from __future__ import annotations

from typing import Any, List, Mapping

from sqlalchemy.engine import Connection

from db_fixer.catalog import RAW_SQL, ForeignKey, pyformat_ident, quote_ident
from db_fixer.findings import Finding
from db_fixer.reporting import ConsoleReporter
from db_fixer.rules.base import Rule


def _dangling_values_sql(fk: ForeignKey, distinct: bool) -> str:
    child = quote_ident(fk.column)
    parent = quote_ident(fk.referenced_column)
    return (
        f"SELECT {'DISTINCT ' if distinct else ''}child.{child} AS value "
        f"FROM {quote_ident(fk.table)} AS child "
        f"LEFT JOIN {quote_ident(fk.referenced_table)} AS parent ON child.{child} = parent.{parent} "
        f"WHERE child.{child} IS NOT NULL AND parent.{parent} IS NULL"
    )


class MissingForeignKeyRowsRule(Rule):
    """Parent ids referenced by child rows but absent; stub parent rows are inserted when not dry."""

    NAME = "fix_missing_foreign_key_rows"
    CATEGORY = "Integrity"
    DESTRUCTIVE = False

    def apply(self, connection: Connection, reporter: ConsoleReporter, context: Mapping[str, Any]) -> List[Finding]:
        dry = bool(context.get("dry", True))
        results: List[Finding] = []
        foreign_keys = self.catalog_factory(connection).foreign_keys()
        reporter.line(f"[{self.NAME}] checking {len(foreign_keys)} foreign key columns")

        for fk in foreign_keys:
            sql = _dangling_values_sql(fk, distinct=True)
            missing = connection.exec_driver_sql(sql, execution_options=RAW_SQL).scalars().all()
            for value in missing:
                results.append(self.finding(fk.referenced_table, fk.referenced_column, "MISSING ID", str(value)))
                if not dry:
                    self._insert_stub(connection, fk, value)
        return results

    @staticmethod
    def _insert_stub(connection: Connection, fk: ForeignKey, value: Any) -> None:
        # exec_driver_sql hands the statement straight to PyMySQL: pyformat placeholder, literal % doubled.
        sql = f"INSERT IGNORE INTO {pyformat_ident(fk.referenced_table)} ({pyformat_ident(fk.referenced_column)}) VALUES (%(id)s)"
        connection.exec_driver_sql(sql, {"id": value})


class DetectOrphanedChildRowsRule(Rule):
    """Child rows whose foreign-key value matches no parent row. Report only."""

    NAME = "detect_orphaned_child_rows"
    CATEGORY = "Validation"
    DESTRUCTIVE = False

    def apply(self, connection: Connection, reporter: ConsoleReporter, context: Mapping[str, Any]) -> List[Finding]:
        results: List[Finding] = []
        foreign_keys = self.catalog_factory(connection).foreign_keys()
        reporter.line(f"[{self.NAME}] checking {len(foreign_keys)} foreign key columns")

        for fk in foreign_keys:
            sql = _dangling_values_sql(fk, distinct=False)
            for value in connection.exec_driver_sql(sql, execution_options=RAW_SQL).scalars().all():
                results.append(self.finding(fk.table, fk.column, str(value), "ORPHAN (no match)"))
        return results
