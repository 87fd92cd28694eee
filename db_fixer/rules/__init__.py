"""Rule registry: rule identity -> rule class."""
from __future__ import annotations

from typing import Dict, List, Type

from db_fixer.errors import ConfigurationError
from db_fixer.rules.base import Rule
from db_fixer.rules.date_storage import ClassifyDateStorageRule
from db_fixer.rules.engines import EnsureTransactionalEnginesRule
from db_fixer.rules.foreign_keys import DetectOrphanedChildRowsRule, MissingForeignKeyRowsRule
from db_fixer.rules.int_columns import NormalizeIntColumnsRule
from db_fixer.rules.primary_key import EnsureAutoIncrementPrimaryKeyRule
from db_fixer.rules.primary_key_uuid import EnsurePrimaryKeyUuidRule

RULES: Dict[str, Type[Rule]] = {
    rule.NAME: rule
    for rule in (
        EnsureTransactionalEnginesRule,
        EnsurePrimaryKeyUuidRule,
        MissingForeignKeyRowsRule,
        EnsureAutoIncrementPrimaryKeyRule,
        NormalizeIntColumnsRule,
        DetectOrphanedChildRowsRule,
        ClassifyDateStorageRule,
    )
}


def rule_names() -> List[str]:
    return list(RULES)


def resolve_rule(identity: str) -> Type[Rule]:
    try:
        return RULES[identity]
    except KeyError:
        raise ConfigurationError(
            f"Unknown rule {identity!r}; known rules: {', '.join(sorted(RULES))}"
        ) from None


__all__ = [
    "RULES",
    "Rule",
    "rule_names",
    "resolve_rule",
    "ClassifyDateStorageRule",
    "DetectOrphanedChildRowsRule",
    "EnsureAutoIncrementPrimaryKeyRule",
    "EnsurePrimaryKeyUuidRule",
    "EnsureTransactionalEnginesRule",
    "MissingForeignKeyRowsRule",
    "NormalizeIntColumnsRule",
]
