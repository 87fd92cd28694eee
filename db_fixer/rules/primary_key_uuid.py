"""Advisory: how tables without a simple primary key should get a surrogate ``id``."""
from __future__ import annotations

import re
from typing import Any, List, Mapping

from sqlalchemy.engine import Connection

from db_fixer.catalog import quote_ident
from db_fixer.constraints import PrimaryKeyUuidConstraints
from db_fixer.findings import COMPOSITE_KEY_COLUMN, Finding
from db_fixer.reporting import ConsoleReporter
from db_fixer.rules.base import Rule
from db_fixer.rules.primary_key import TableKeyFacts, is_pure_join_table

CHAR36_RE = re.compile(r"^char\s*\(\s*36\s*\)", re.IGNORECASE)
INT_RE = re.compile(r"^(?:int|bigint)\b", re.IGNORECASE)


class EnsurePrimaryKeyUuidRule(Rule):
    NAME = "ensure_primary_key_uuid"
    CATEGORY = "Integrity"
    DESTRUCTIVE = True
    CONSTRAINT_TYPE = PrimaryKeyUuidConstraints

    def apply(self, connection: Connection, reporter: ConsoleReporter, context: Mapping[str, Any]) -> List[Finding]:
        results: List[Finding] = []
        prefer_uuid = bool(context.get("prefer_uuid", True))
        force_on_joins = bool(context.get("force_surrogate_on_joins", False))

        catalog = self.catalog_factory(connection)
        tables = catalog.base_tables()
        reporter.line(f"[{self.NAME}] scanned {len(tables)} tables")

        primary_keys = catalog.primary_keys()
        child_counts = catalog.child_foreign_key_counts()
        no_pk = [t for t in tables if not primary_keys.get(t)]
        composite = [t for t in tables if len(primary_keys.get(t, [])) > 1]
        reporter.line(f"  tables without primary key: {len(no_pk)}")
        reporter.line(f"  tables with composite primary key: {len(composite)}")

        for table in no_pk:
            affects = f"affects {child_counts.get(table, 0)} child tables"
            id_info = catalog.column_info(table, "id")
            if id_info is None:
                if prefer_uuid:
                    target = f"ADD COLUMN `id` CHAR(36) NOT NULL; populate with UUIDs; ADD PRIMARY KEY (`id`); {affects}"
                else:
                    target = f"ADD COLUMN `id` BIGINT UNSIGNED NOT NULL AUTO_INCREMENT; ADD PRIMARY KEY (`id`); {affects}"
                results.append(self.finding(table, "id", "missing", target))
                continue

            current = id_info.column_type.upper() + (" NULL" if id_info.nullable else " NOT NULL")
            if prefer_uuid:
                if not CHAR36_RE.match(id_info.column_type.strip()):
                    target = f"CHANGE `id` to CHAR(36) NOT NULL (UUID storage); ensure uniqueness; ADD PRIMARY KEY (`id`); {affects}"
                elif id_info.nullable:
                    target = f"SET `id` NOT NULL; ADD PRIMARY KEY (`id`); {affects}"
                else:
                    current = "no primary key"
                    target = f"ADD PRIMARY KEY (`id`); {affects}"
            elif INT_RE.match(id_info.data_type) and not id_info.nullable:
                target = f"ADD PRIMARY KEY (`id`); {affects}"
            else:
                target = f"CHANGE `id` to BIGINT UNSIGNED NOT NULL AUTO_INCREMENT; ADD PRIMARY KEY (`id`); {affects}"
            results.append(self.finding(table, "id", current, target))

        for table in composite:
            pk = primary_keys[table]
            facts = TableKeyFacts(
                table=table,
                primary_key=tuple(pk),
                columns=tuple(catalog.columns(table)),
                foreign_key_columns=tuple(catalog.foreign_key_columns(table)),
            )
            if not force_on_joins and is_pure_join_table(facts):
                results.append(
                    self.finding(
                        table,
                        COMPOSITE_KEY_COLUMN,
                        "many-to-many join table",
                        "OK to keep composite PRIMARY KEY on the two foreign keys; no surrogate id needed",
                    )
                )
                continue

            affects = f"affects {child_counts.get(table, 0)} child tables"
            cols = ", ".join(quote_ident(c) for c in pk)
            if prefer_uuid:
                target = (
                    "ADD COLUMN `id` CHAR(36) NOT NULL; populate with UUIDs; DROP current PRIMARY KEY; "
                    f"ADD PRIMARY KEY (`id`); ADD UNIQUE ({cols}); {affects}"
                )
            else:
                target = (
                    "ADD COLUMN `id` BIGINT UNSIGNED NOT NULL AUTO_INCREMENT; DROP current PRIMARY KEY; "
                    f"ADD PRIMARY KEY (`id`); ADD UNIQUE ({cols}); {affects}"
                )
            results.append(self.finding(table, "id", "composite primary key present", target))

        self.preview(reporter, results, context)
        return results
