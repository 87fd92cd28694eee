"""
Auto-increment primary key normalization.

Every base table should end up with a single ``id`` integer column that is the
auto-incrementing primary key. For each table the rule classifies the current
key situation, and where remediation is wanted it builds an ordered plan of
DDL/DML statements:

1. add (or convert) a nullable ``id`` column,
2. backfill ``id`` with 1, 2, 3, ... in a stable order using a session counter,
3. keep any previous key alive as a UNIQUE index so foreign keys referencing it
   stay valid, then drop the old primary key,
4. make ``id`` NOT NULL and the primary key,
5. enable AUTO_INCREMENT starting after the highest backfilled value.

In dry mode the whole plan is reported as a single finding. Otherwise each step
is executed in order and reported as its own finding. DDL auto-commits, so a
failing step leaves the earlier ones in place; the failure is raised as
``PartialPlanFailure`` naming the step, and the table must be finished by hand.

The backfill assumes nobody else writes to the table while the plan runs. When
a table has neither a key nor a unique index, rows are numbered in whatever
order the storage engine returns them.
"""
from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from db_fixer.catalog import RAW_SQL, Catalog, ColumnInfo, is_integer_family, matches_any_like, quote_ident, quote_literal
from db_fixer.constraints import AutoIncrementPrimaryKeyConstraints
from db_fixer.errors import PartialPlanFailure
from db_fixer.findings import COMPOSITE_KEY_COLUMN, Finding
from db_fixer.reporting import ConsoleReporter
from db_fixer.rules.base import Rule


ONLINE_HINT = ", ALGORITHM=INPLACE, LOCK=NONE"
MAX_IDENTIFIER_LENGTH = 64


# --------------------------------------------------------------------------------------
# Key shape classification
# --------------------------------------------------------------------------------------
class KeyShape(Enum):
    IDEAL = "ideal"
    PURE_JOIN_TABLE = "pure_join_table"
    NO_PRIMARY_KEY = "no_primary_key"
    COMPOSITE_PRIMARY_KEY = "composite_primary_key"
    SINGLE_NON_INTEGER_PRIMARY_KEY = "single_non_integer_primary_key"
    SINGLE_INTEGER_NON_IDEAL_PRIMARY_KEY = "single_integer_non_ideal_primary_key"


@dataclass(frozen=True)
class TableKeyFacts:
    """Catalog facts about one table, gathered fresh on every run."""

    table: str
    primary_key: Tuple[str, ...]
    columns: Tuple[ColumnInfo, ...]
    foreign_key_columns: Tuple[str, ...] = ()

    def column(self, name: str) -> Optional[ColumnInfo]:
        for col in self.columns:
            if col.name.lower() == name.lower():
                return col
        return None

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]


def is_pure_join_table(facts: TableKeyFacts) -> bool:
    """Two-column primary key, both columns foreign keys, and no other columns."""
    pk = facts.primary_key
    if len(pk) != 2:
        return False
    if len(set(pk) & set(facts.foreign_key_columns)) != 2:
        return False
    return set(facts.column_names) - set(pk) == set()


def classify_key_shape(facts: TableKeyFacts) -> KeyShape:
    pk = facts.primary_key
    if not pk:
        return KeyShape.NO_PRIMARY_KEY
    if len(pk) > 1:
        return KeyShape.PURE_JOIN_TABLE if is_pure_join_table(facts) else KeyShape.COMPOSITE_PRIMARY_KEY
    info = facts.column(pk[0])
    if info is None or not is_integer_family(info.data_type):
        return KeyShape.SINGLE_NON_INTEGER_PRIMARY_KEY
    if pk[0].lower() == "id" and info.is_auto_increment:
        return KeyShape.IDEAL
    return KeyShape.SINGLE_INTEGER_NON_IDEAL_PRIMARY_KEY


def unique_index_name(table: str) -> str:
    """Deterministic name (<= 64 chars) for the UNIQUE index preserving a table's old key."""
    base = f"uniq_{table}_old_pk"
    safe = re.sub(r"[^a-zA-Z0-9_]", "_", base)
    suffix = hashlib.md5(base.encode("utf-8")).hexdigest()[:8]
    return f"{safe[: MAX_IDENTIFIER_LENGTH - len(suffix) - 1]}_{suffix}"


def order_by_sql(columns: Sequence[str]) -> str:
    if not columns:
        return ""
    return " ORDER BY " + ", ".join(f"{quote_ident(c)} ASC" for c in columns)


# --------------------------------------------------------------------------------------
# Plans
# --------------------------------------------------------------------------------------
@dataclass(frozen=True)
class PlanStep:
    sql: str

    def render(self) -> str:
        return self.sql

    def statement(self, connection: Connection) -> str:
        return self.sql


def _enable_auto_increment(table: str, id_type: str) -> str:
    """ALTER prefix ending in ``AUTO_INCREMENT = ``; the start value is appended."""
    return f"ALTER TABLE {quote_ident(table)} MODIFY COLUMN `id` {id_type} NOT NULL AUTO_INCREMENT, AUTO_INCREMENT = "


@dataclass(frozen=True)
class ContinueSequenceStep(PlanStep):
    """Turns on AUTO_INCREMENT; the start value is read from MAX(id) when executed.

    MySQL takes only a literal after ``AUTO_INCREMENT =``, so the rendered form
    (shown in dry runs and in run-it-yourself findings) reads the value into a
    session variable and runs the ALTER as a prepared statement.
    """

    table: str = ""
    id_type: str = "INT UNSIGNED"

    @classmethod
    def for_table(cls, table: str, id_type: str) -> "ContinueSequenceStep":
        t = quote_ident(table)
        sql = (
            f"SELECT COALESCE(MAX(`id`), 0) + 1 INTO @next_id FROM {t}; "
            f"SET @ddl = CONCAT({quote_literal(_enable_auto_increment(table, id_type))}, @next_id); "
            "PREPARE next_id_stmt FROM @ddl; EXECUTE next_id_stmt; DEALLOCATE PREPARE next_id_stmt"
        )
        return cls(sql=sql, table=table, id_type=id_type)

    def statement(self, connection: Connection) -> str:
        highest = connection.exec_driver_sql(
            f"SELECT MAX(`id`) FROM {quote_ident(self.table)}", execution_options=RAW_SQL
        ).scalar()
        return f"{_enable_auto_increment(self.table, self.id_type)}{int(highest or 0) + 1}"


@dataclass
class MigrationPlan:
    table: str
    shape: KeyShape
    headline: str
    steps: List[PlanStep] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)

    def render(self) -> str:
        notes = f" ({'; '.join(self.notes)})" if self.notes else ""
        return f"{self.headline}{notes} ; " + "  ->  ".join(s.render() for s in self.steps)


class IdColumnConflict(Exception):
    """The existing ``id`` column belongs to the key being replaced and cannot be reused."""


class KeyPlanner:
    """Builds the ordered statement list for one table."""

    def __init__(self, catalog: Catalog, id_type: str = "INT UNSIGNED", online_alters: bool = False) -> None:
        self.catalog = catalog
        self.id_type = id_type
        self.online_hint = ONLINE_HINT if online_alters else ""

    def stable_ordering(self, facts: TableKeyFacts) -> List[str]:
        """Current primary key, else the first unique index, else nothing (engine order)."""
        if facts.primary_key:
            return list(facts.primary_key)
        return self.catalog.first_unique_index_columns(facts.table)

    def _prepare_id(self, facts: TableKeyFacts, notes: List[str]) -> List[PlanStep]:
        t = quote_ident(facts.table)
        existing = facts.column("id")
        if existing is None:
            return [PlanStep(f"ALTER TABLE {t} ADD COLUMN `id` {self.id_type} NULL{self.online_hint}")]
        if existing.name in facts.primary_key:
            raise IdColumnConflict(existing.column_type)
        if not is_integer_family(existing.data_type):
            notes.append(f"existing `id` is {existing.column_type.upper()} and will be replaced by integers")
        else:
            notes.append(f"existing `id` {existing.column_type.upper()} will be renumbered")
        return [PlanStep(f"ALTER TABLE {t} MODIFY COLUMN `id` {self.id_type} NULL")]

    def _backfill(self, facts: TableKeyFacts, ordering: Sequence[str], notes: List[str]) -> List[PlanStep]:
        if not ordering:
            notes.append("no key or unique index: ids follow the engine's row order (non-deterministic)")
        return [
            PlanStep("SET @row := 0"),
            PlanStep(f"UPDATE {quote_ident(facts.table)} SET `id` = (@row := @row + 1){order_by_sql(ordering)}"),
        ]

    def _promote_id(self, facts: TableKeyFacts) -> List[PlanStep]:
        t = quote_ident(facts.table)
        return [
            PlanStep(f"ALTER TABLE {t} MODIFY COLUMN `id` {self.id_type} NOT NULL"),
            PlanStep(f"ALTER TABLE {t} ADD PRIMARY KEY (`id`)"),
            ContinueSequenceStep.for_table(facts.table, self.id_type),
        ]

    def _preserve_old_key(self, facts: TableKeyFacts) -> List[PlanStep]:
        t = quote_ident(facts.table)
        cols = ", ".join(quote_ident(c) for c in facts.primary_key)
        return [
            PlanStep(f"ALTER TABLE {t} ADD UNIQUE {quote_ident(unique_index_name(facts.table))} ({cols}){self.online_hint}"),
            PlanStep(f"ALTER TABLE {t} DROP PRIMARY KEY"),
        ]

    def plan_for_no_primary_key(self, facts: TableKeyFacts) -> MigrationPlan:
        plan = MigrationPlan(facts.table, KeyShape.NO_PRIMARY_KEY, "no primary key -> add `id` auto-increment primary key")
        plan.steps += self._prepare_id(facts, plan.notes)
        plan.steps += self._backfill(facts, self.stable_ordering(facts), plan.notes)
        plan.steps += self._promote_id(facts)
        return plan

    def plan_for_replaced_key(self, facts: TableKeyFacts, shape: KeyShape) -> MigrationPlan:
        """Composite and single non-integer keys: same plan, old key kept as UNIQUE."""
        if shape is KeyShape.SINGLE_NON_INTEGER_PRIMARY_KEY:
            headline = "single non-integer primary key -> add `id`, keep old key UNIQUE, make `id` primary"
        else:
            headline = "composite primary key -> add `id`, keep old key UNIQUE, make `id` primary"
        cols = ", ".join(quote_ident(c) for c in facts.primary_key)
        plan = MigrationPlan(facts.table, shape, headline, notes=[f"current primary key: ({cols})"])
        plan.steps += self._prepare_id(facts, plan.notes)
        plan.steps += self._backfill(facts, self.stable_ordering(facts), plan.notes)
        plan.steps += self._preserve_old_key(facts)
        plan.steps += self._promote_id(facts)
        return plan


# --------------------------------------------------------------------------------------
# Rule
# --------------------------------------------------------------------------------------
class EnsureAutoIncrementPrimaryKeyRule(Rule):
    NAME = "ensure_auto_increment_primary_key"
    CATEGORY = "Integrity"
    DESTRUCTIVE = True
    CONSTRAINT_TYPE = AutoIncrementPrimaryKeyConstraints

    def apply(self, connection: Connection, reporter: ConsoleReporter, context: Mapping[str, Any]) -> List[Finding]:
        results: List[Finding] = []
        dry = bool(context.get("dry", False))
        force_on_joins = bool(context.get("force_on_join_tables", False))
        replace_single = bool(context.get("replace_single_non_int_primary", False))
        allow = {t.lower() for t in context.get("replace_single_non_int_primary_allow", [])}
        skip_like = list(context.get("skip_table_like", []))
        max_rows = int(context.get("max_rows_to_apply", 0))

        catalog = self.catalog_factory(connection)
        planner = KeyPlanner(
            catalog,
            id_type=str(context.get("id_column_type", "INT UNSIGNED")),
            online_alters=bool(context.get("online_alters", False)),
        )
        tables = catalog.base_tables()
        reporter.line(f"[{self.NAME}] scanned {len(tables)} tables")
        child_counts = catalog.child_foreign_key_counts()

        for table in tables:
            if skip_like and matches_any_like(table, skip_like):
                reporter.note(f"{table}: skipped (matches skip_table_like)")
                continue

            facts = TableKeyFacts(
                table=table,
                primary_key=tuple(catalog.primary_key_columns(table)),
                columns=tuple(catalog.columns(table)),
                foreign_key_columns=tuple(catalog.foreign_key_columns(table)),
            )
            shape = classify_key_shape(facts)

            if shape is KeyShape.IDEAL:
                continue

            if shape is KeyShape.PURE_JOIN_TABLE and not force_on_joins:
                results.append(
                    self.finding(
                        table,
                        COMPOSITE_KEY_COLUMN,
                        "many-to-many join table",
                        "OK to keep composite primary key on the two foreign keys; no surrogate id needed",
                    )
                )
                continue

            if shape is KeyShape.SINGLE_INTEGER_NON_IDEAL_PRIMARY_KEY:
                pk_info = facts.column(facts.primary_key[0])
                results.append(
                    self.finding(
                        table,
                        facts.primary_key[0],
                        f"{pk_info.column_type.upper()} PRIMARY KEY",
                        "Already a single integer primary key (leave as-is)",
                    )
                )
                continue

            if shape is KeyShape.SINGLE_NON_INTEGER_PRIMARY_KEY:
                pk_col = facts.primary_key[0]
                pk_info = facts.column(pk_col)
                current = f"{pk_info.column_type.upper() if pk_info else 'UNKNOWN'} PRIMARY KEY"
                if not replace_single:
                    results.append(
                        self.finding(
                            table,
                            pk_col,
                            current,
                            "Single-column primary key is not integer; skipping "
                            "(set replace_single_non_int_primary=true to add an integer id primary key)",
                        )
                    )
                    continue
                if allow and table.lower() not in allow:
                    results.append(
                        self.finding(table, pk_col, current, "Not in replace_single_non_int_primary_allow; skipping")
                    )
                    continue

            try:
                if shape is KeyShape.NO_PRIMARY_KEY:
                    plan = planner.plan_for_no_primary_key(facts)
                else:
                    # PURE_JOIN_TABLE reaches here only when forced.
                    plan = planner.plan_for_replaced_key(
                        facts,
                        KeyShape.COMPOSITE_PRIMARY_KEY if shape is KeyShape.PURE_JOIN_TABLE else shape,
                    )
            except IdColumnConflict as conflict:
                results.append(
                    self.finding(
                        table,
                        "id",
                        f"existing `id` {str(conflict).upper()} is part of the current primary key",
                        "rename the existing `id` column before adding a surrogate key",
                    )
                )
                continue

            referenced_by = child_counts.get(table, 0)
            if referenced_by:
                plan.notes.append(f"referenced by {referenced_by} child foreign key(s)")

            if dry:
                results.append(self.finding(table, "id", "plan", plan.render()))
                continue

            if max_rows and catalog.estimated_row_count(table) > max_rows:
                results.append(
                    self.finding(
                        table,
                        "id",
                        f"estimated rows exceed max_rows_to_apply={max_rows}",
                        "not applied; run manually: " + plan.render(),
                    )
                )
                continue

            self._execute(connection, reporter, plan, results)

        self.preview(reporter, results, context)
        return results

    def _execute(self, connection: Connection, reporter: ConsoleReporter, plan: MigrationPlan, results: List[Finding]) -> None:
        executed: List[str] = []
        for step in plan.steps:
            sql = step.render()
            try:
                sql = step.statement(connection)
                connection.exec_driver_sql(sql, execution_options=RAW_SQL)
            except SQLAlchemyError as exc:
                reporter.error(f"{plan.table}: step failed: {sql}")
                raise PartialPlanFailure(
                    plan.table, sql, executed, exc, rule=self.NAME, findings=results
                ) from exc
            executed.append(sql)
            results.append(self.finding(plan.table, "id", "executed", sql))
            reporter.line(f"  {plan.table}: {sql}")
