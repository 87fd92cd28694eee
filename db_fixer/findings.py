"""Finding records produced by rules and rendered by the runner."""
from __future__ import annotations

from dataclasses import dataclass

# Sentinel column names for table-level findings.
ENGINE_COLUMN = "(engine)"
COMPOSITE_KEY_COLUMN = "(composite key)"


@dataclass(frozen=True)
class Finding:
    """One detected issue, or one executed step, scoped to a table and column."""

    rule: str
    table: str
    column: str
    current: str
    proposed: str

    @property
    def message(self) -> str:
        return f"[{self.rule.replace('_', ' ')}] {self.table}.{self.column}: {self.current} -> {self.proposed}"

    def __str__(self) -> str:
        return self.message
