"""Contract shared by every remediation rule."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, List, Mapping, Optional, Type

from sqlalchemy.engine import Connection

from db_fixer.catalog import Catalog
from db_fixer.constraints import Constraint
from db_fixer.findings import Finding
from db_fixer.reporting import ConsoleReporter


class Rule(ABC):
    """A self-contained detector/remediator.

    ``NAME``, ``CATEGORY`` and ``DESTRUCTIVE`` are fixed per rule class. A rule is
    destructive when its apply step issues DDL (which auto-commits in MySQL) or is
    otherwise irreversible; the runner never wraps such rules in a transaction.

    ``apply`` must only read when ``context["dry"]`` is true and must return an
    empty list, not raise, when there is nothing to do.
    """

    NAME: str = ""
    CATEGORY: str = ""
    DESTRUCTIVE: bool = False
    CONSTRAINT_TYPE: Optional[Type[Constraint]] = None

    def __init__(self, catalog_factory: Callable[[Connection], Catalog] = Catalog) -> None:
        self.catalog_factory = catalog_factory

    @classmethod
    def identity(cls) -> str:
        return cls.NAME

    @classmethod
    def category(cls) -> str:
        return cls.CATEGORY

    @classmethod
    def is_destructive(cls) -> bool:
        return cls.DESTRUCTIVE

    @abstractmethod
    def apply(self, connection: Connection, reporter: ConsoleReporter, context: Mapping[str, Any]) -> List[Finding]:
        ...

    # Helpers ---------------------------------------------------------------------------
    def finding(self, table: str, column: str, current: str, proposed: str) -> Finding:
        return Finding(rule=self.identity(), table=table, column=column, current=current, proposed=proposed)

    def preview(self, reporter: ConsoleReporter, findings: List[Finding], context: Mapping[str, Any]) -> None:
        """Print the first few findings when the rule's ``debug`` option is on."""
        if findings and context.get("debug", False):
            for f in findings[:5]:
                reporter.line(f"  -> {f.table}.{f.column}: {f.current} => {f.proposed}")
