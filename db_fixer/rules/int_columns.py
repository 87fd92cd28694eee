"""Advisory: INT column definitions that should be normalized for MySQL 8."""
from __future__ import annotations

import re
from typing import Any, List, Mapping, Optional, Set, Tuple

from sqlalchemy.engine import Connection

from db_fixer.constraints import IntColumnsConstraints
from db_fixer.findings import Finding
from db_fixer.reporting import ConsoleReporter
from db_fixer.rules.base import Rule

WIDTH_RE = re.compile(r"^int\((\d+)\)", re.IGNORECASE)
CLEAN_INT_RE = re.compile(r"^int( unsigned)?$", re.IGNORECASE)


def has_unsigned(column_type: str) -> bool:
    return "unsigned" in column_type.lower()


def has_zerofill(column_type: str) -> bool:
    return "zerofill" in column_type.lower()


def display_width(column_type: str) -> Optional[int]:
    m = WIDTH_RE.match(column_type.strip())
    return int(m.group(1)) if m else None


def normalized_int(unsigned: bool) -> str:
    # Display width is always dropped.
    return "INT UNSIGNED" if unsigned else "INT"


class NormalizeIntColumnsRule(Rule):
    NAME = "normalize_int_columns"
    CATEGORY = "Normalization"
    # The proposed changes are ALTER TABLEs; the rule itself only reports.
    DESTRUCTIVE = True
    CONSTRAINT_TYPE = IntColumnsConstraints

    def apply(self, connection: Connection, reporter: ConsoleReporter, context: Mapping[str, Any]) -> List[Finding]:
        results: List[Finding] = []
        catalog = self.catalog_factory(connection)
        columns = catalog.columns_of_type("int")
        reporter.line(f"[{self.NAME}] scanned {len(columns)} INT columns")

        for col in columns:
            ctype = col.column_type.strip().lower()
            unsigned = has_unsigned(ctype)
            width = display_width(ctype)
            if width == 1:
                # INT(1) is a boolean in disguise.
                results.append(self.finding(col.table, col.name, col.column_type, "TINYINT(1)"))
            if has_zerofill(ctype) or width is not None or not CLEAN_INT_RE.match(ctype):
                results.append(self.finding(col.table, col.name, col.column_type, normalized_int(unsigned)))

        for row in catalog.foreign_key_int_pairs():
            parent_unsigned = has_unsigned(row["parent_column_type"])
            if has_unsigned(row["child_column_type"]) != parent_unsigned:
                # Align the child with the parent rather than touching the key.
                results.append(
                    self.finding(
                        row["child_table"], row["child_column"], row["child_column_type"], normalized_int(parent_unsigned)
                    )
                )

        results = unique_findings(results)
        self.preview(reporter, results, context)
        return results


def unique_findings(findings: List[Finding]) -> List[Finding]:
    seen: Set[Tuple[str, str, str, str, str]] = set()
    out = []
    for f in findings:
        key = (f.rule, f.table, f.column, f.current, f.proposed)
        if key not in seen:
            seen.add(key)
            out.append(f)
    return out
