"""
Typed per-rule options.

Each constraint class belongs to one rule family, validates its own fields at
construction and flattens itself into the option map ("context") the rule
reads. Invalid values raise ``ConfigurationError`` before any rule runs.
"""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from db_fixer.errors import ConfigurationError


DEFAULT_SKIP_TABLE_LIKE: Tuple[str, ...] = ("default_ci_sessions", "%session%", "%cache%", "%temp%", "%tmp%")

DEFAULT_DATE_NAME_LIKE: Tuple[str, ...] = (
    "%date%",
    "%time%",
    "%at%",
    "%created%",
    "%updated%",
    "%timestamp%",
    "%expires%",
    "%expiry%",
    "%published%",
    "%scheduled%",
    "%dob%",
    "%birthday%",
)

ID_COLUMN_TYPES = ("INT UNSIGNED", "BIGINT UNSIGNED")
ROW_FORMATS = ("DYNAMIC", "COMPACT", "COMPRESSED")


def _string_tuple(name: str, values: Iterable[Any]) -> Tuple[str, ...]:
    if isinstance(values, str):
        raise ConfigurationError(f"{name} must be a list of strings, not a single string")
    out = tuple(values)
    for value in out:
        if not isinstance(value, str) or value == "":
            raise ConfigurationError(f"{name} must contain non-empty strings (got {value!r})")
    return out


def _bounded_int(name: str, value: Any, low: int, high: Optional[int] = None) -> int:
    # bool is an int subclass; reject it explicitly.
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{name} must be an integer (got {value!r})")
    if value < low or (high is not None and value > high):
        bounds = f">= {low}" if high is None else f"between {low} and {high}"
        raise ConfigurationError(f"{name} must be {bounds} (got {value})")
    return value


class Constraint:
    """Base class: subclasses are frozen dataclasses implementing ``to_context``."""

    def to_context(self) -> Dict[str, Any]:
        raise NotImplementedError


# --------------------------------------------------------------------------------------
# Rule families
# --------------------------------------------------------------------------------------
@dataclass(frozen=True)
class AutoIncrementPrimaryKeyConstraints(Constraint):
    force_on_join_tables: bool = False
    replace_single_non_int_primary: bool = False
    # Exact table names (case-insensitive). Empty means every table qualifies.
    replace_single_non_int_primary_allow: Tuple[str, ...] = ()
    skip_table_like: Tuple[str, ...] = DEFAULT_SKIP_TABLE_LIKE
    # Refuse automatic apply above this estimated row count; 0 disables the guard.
    max_rows_to_apply: int = 500_000
    online_alters: bool = True
    id_column_type: str = "INT UNSIGNED"
    debug: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "replace_single_non_int_primary_allow",
            _string_tuple("replace_single_non_int_primary_allow", self.replace_single_non_int_primary_allow),
        )
        object.__setattr__(self, "skip_table_like", _string_tuple("skip_table_like", self.skip_table_like))
        _bounded_int("max_rows_to_apply", self.max_rows_to_apply, 0)
        normalized = " ".join(str(self.id_column_type).upper().split())
        if normalized not in ID_COLUMN_TYPES:
            raise ConfigurationError(f"id_column_type must be one of {', '.join(ID_COLUMN_TYPES)} (got {self.id_column_type!r})")
        object.__setattr__(self, "id_column_type", normalized)

    def to_context(self) -> Dict[str, Any]:
        return {
            "force_on_join_tables": bool(self.force_on_join_tables),
            "replace_single_non_int_primary": bool(self.replace_single_non_int_primary),
            "replace_single_non_int_primary_allow": list(self.replace_single_non_int_primary_allow),
            "skip_table_like": list(self.skip_table_like),
            "max_rows_to_apply": self.max_rows_to_apply,
            "online_alters": bool(self.online_alters),
            "id_column_type": self.id_column_type,
            "debug": bool(self.debug),
        }


@dataclass(frozen=True)
class DateStorageConstraints(Constraint):
    name_like: Tuple[str, ...] = DEFAULT_DATE_NAME_LIKE
    preview_limit: int = 3

    def __post_init__(self) -> None:
        patterns = _string_tuple("name_like", self.name_like)
        if not patterns:
            raise ConfigurationError("name_like must contain at least one pattern")
        object.__setattr__(self, "name_like", patterns)
        _bounded_int("preview_limit", self.preview_limit, 0, 100)

    def to_context(self) -> Dict[str, Any]:
        return {"name_like": list(self.name_like), "preview_limit": self.preview_limit}


@dataclass(frozen=True)
class TransactionalEnginesConstraints(Constraint):
    force_convert_memory: bool = False
    force_convert_archive: bool = False
    force_convert_csv: bool = False
    row_format: str = "DYNAMIC"
    debug: bool = False

    def __post_init__(self) -> None:
        if str(self.row_format).upper() not in ROW_FORMATS:
            raise ConfigurationError(f"row_format must be one of {', '.join(ROW_FORMATS)} (got {self.row_format!r})")
        object.__setattr__(self, "row_format", str(self.row_format).upper())

    def to_context(self) -> Dict[str, Any]:
        return {
            "force_convert_memory": bool(self.force_convert_memory),
            "force_convert_archive": bool(self.force_convert_archive),
            "force_convert_csv": bool(self.force_convert_csv),
            "row_format": self.row_format,
            "debug": bool(self.debug),
        }


@dataclass(frozen=True)
class PrimaryKeyUuidConstraints(Constraint):
    prefer_uuid: bool = True
    force_surrogate_on_joins: bool = False
    debug: bool = False

    def to_context(self) -> Dict[str, Any]:
        return {
            "prefer_uuid": bool(self.prefer_uuid),
            "force_surrogate_on_joins": bool(self.force_surrogate_on_joins),
            "debug": bool(self.debug),
        }


@dataclass(frozen=True)
class IntColumnsConstraints(Constraint):
    debug: bool = False

    def to_context(self) -> Dict[str, Any]:
        return {"debug": bool(self.debug)}


# --------------------------------------------------------------------------------------
# Context assembly
# --------------------------------------------------------------------------------------
def build_context(constraint: Optional[Constraint], dry: bool) -> Mapping[str, Any]:
    """Merge the constraint's options with the run-wide dry flag; ``dry`` always wins."""
    context: Dict[str, Any] = dict(constraint.to_context()) if constraint is not None else {}
    context["dry"] = bool(dry)
    return MappingProxyType(context)
