"""
Run configuration: connection settings and the ordered list of rules.

A configuration file is plain Python exposing ``configure(config)``::

    def configure(config):
        config.connection(driver="mysql", host="127.0.0.1", port=3306,
                          dbname="app", user="root", password="secret")
        config.rules([
            "detect_orphaned_child_rows",
            {"ensure_auto_increment_primary_key": AutoIncrementPrimaryKeyConstraints()},
            {"rule": "classify_date_storage_across_schema",
             "constraint": DateStorageConstraints(preview_limit=5)},
        ])

Rule entries are normalized and validated as soon as ``rules()`` is called, so
a typo in a rule name fails before anything connects to the database.
"""
from __future__ import annotations

import runpy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from sqlalchemy.engine import URL

from db_fixer.constraints import Constraint
from db_fixer.errors import ConfigurationError
from db_fixer.rules import RULES, Rule


# --------------------------------------------------------------------------------------
# Defaults
# --------------------------------------------------------------------------------------
CONFIG: Dict[str, Any] = {
    "CONFIG_FILE": "db_fixer_config.py",
    "CONNECTION": {
        "driver": "mysql",
        "host": "127.0.0.1",
        "port": 3306,
        "charset": "utf8mb4",
    },
    # SQLAlchemy dialect+driver used for each configured driver name.
    "DRIVERS": {
        "mysql": "mysql+pymysql",
        "mariadb": "mariadb+pymysql",
    },
    "CONNECT_ARGS": {"connect_timeout": 30},
}


def sqlalchemy_drivername(driver: str) -> str:
    """Map a configured driver (``mysql`` or ``mysql+<dbapi>``) to a SQLAlchemy drivername."""
    dialect = driver.split("+", 1)[0]
    if dialect not in CONFIG["DRIVERS"]:
        raise ConfigurationError(
            f"Unsupported driver {driver!r}; expected one of {', '.join(CONFIG['DRIVERS'])}"
        )
    return driver if "+" in driver else CONFIG["DRIVERS"][dialect]


@dataclass(frozen=True)
class ConnectionSettings:
    driver: str
    host: str
    port: int
    dbname: str
    user: str
    password: str = field(repr=False)
    charset: str = CONFIG["CONNECTION"]["charset"]

    def url(self) -> URL:
        return URL.create(
            drivername=sqlalchemy_drivername(self.driver),
            username=self.user,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.dbname,
            query={"charset": self.charset},
        )

    def describe(self) -> str:
        return f"{self.driver}://{self.user}@{self.host}:{self.port}/{self.dbname}"


@dataclass(frozen=True)
class RuleDefinition:
    identity: str
    constraint: Optional[Constraint] = None


RuleRef = Union[str, type]
RuleEntry = Union[RuleRef, Mapping[Any, Any], RuleDefinition]


# --------------------------------------------------------------------------------------
# Normalization
# --------------------------------------------------------------------------------------
def _identity_of(ref: Any) -> str:
    if isinstance(ref, str) and ref:
        return ref
    if isinstance(ref, type) and issubclass(ref, Rule):
        return ref.identity()
    raise ConfigurationError(f"Rule reference must be a rule name or Rule subclass (got {ref!r})")


def _definition(ref: Any, constraint: Any) -> RuleDefinition:
    identity = _identity_of(ref)
    rule = RULES.get(identity)
    if rule is None:
        raise ConfigurationError(f"Unknown rule {identity!r}; known rules: {', '.join(sorted(RULES))}")
    if constraint is not None:
        if not isinstance(constraint, Constraint):
            raise ConfigurationError(f"Constraint for {identity} must be a Constraint instance (got {constraint!r})")
        if rule.CONSTRAINT_TYPE is None or not isinstance(constraint, rule.CONSTRAINT_TYPE):
            expected = rule.CONSTRAINT_TYPE.__name__ if rule.CONSTRAINT_TYPE else "no constraint"
            raise ConfigurationError(
                f"{identity} expects {expected}, got {type(constraint).__name__}"
            )
    return RuleDefinition(identity=identity, constraint=constraint)


def _from_mapping(entry: Mapping[Any, Any]) -> List[RuleDefinition]:
    if "rule" in entry:
        extra = set(entry) - {"rule", "constraint"}
        if extra:
            raise ConfigurationError(f"Unsupported keys in rule entry: {', '.join(map(str, sorted(extra, key=str)))}")
        return [_definition(entry["rule"], entry.get("constraint"))]
    return [_definition(ref, constraint) for ref, constraint in entry.items()]


def normalize_rule_definitions(entries: Union[Iterable[RuleEntry], Mapping[Any, Any]]) -> List[RuleDefinition]:
    """Turn every accepted rule-entry shape into ``RuleDefinition``s, preserving order.

    Accepted shapes: a bare rule name or Rule subclass; a mapping of rule to
    constraint; an explicit ``{"rule": ..., "constraint": ...}`` record; or a
    ``RuleDefinition``. Anything else raises ``ConfigurationError``.
    """
    if isinstance(entries, Mapping):
        return _from_mapping(entries)
    if isinstance(entries, (str, bytes)):
        raise ConfigurationError("rules() expects a list of rule entries, not a single string")

    out: List[RuleDefinition] = []
    for entry in entries:
        if isinstance(entry, RuleDefinition):
            out.append(_definition(entry.identity, entry.constraint))
        elif isinstance(entry, (str, type)):
            out.append(_definition(entry, None))
        elif isinstance(entry, Mapping):
            out.extend(_from_mapping(entry))
        else:
            raise ConfigurationError(f"Unsupported rule entry shape: {entry!r}")
    return out


# --------------------------------------------------------------------------------------
# Configuration object
# --------------------------------------------------------------------------------------
class FixerConfig:
    """Collects the connection descriptor and the rule list for one run."""

    def __init__(self) -> None:
        self._connection: Optional[ConnectionSettings] = None
        self._rules: List[RuleDefinition] = []

    def connection(
        self,
        dbname: str,
        user: str,
        password: str,
        driver: str = CONFIG["CONNECTION"]["driver"],
        host: str = CONFIG["CONNECTION"]["host"],
        port: int = CONFIG["CONNECTION"]["port"],
        charset: str = CONFIG["CONNECTION"]["charset"],
    ) -> None:
        try:
            port = int(port)
        except (TypeError, ValueError):
            raise ConfigurationError(f"port must be an integer (got {port!r})") from None
        if not dbname:
            raise ConfigurationError("dbname must not be empty")
        sqlalchemy_drivername(str(driver))
        self._connection = ConnectionSettings(
            driver=str(driver),
            host=str(host),
            port=port,
            dbname=str(dbname),
            user=str(user),
            password=str(password),
            charset=str(charset),
        )

    def rules(self, entries: Union[Iterable[RuleEntry], Mapping[Any, Any]]) -> None:
        self._rules = normalize_rule_definitions(entries)

    @property
    def connection_settings(self) -> ConnectionSettings:
        if self._connection is None:
            raise ConfigurationError("No database connection configured; call config.connection(...)")
        return self._connection

    @property
    def rule_definitions(self) -> Tuple[RuleDefinition, ...]:
        return tuple(self._rules)


def load_config(path: Union[str, Path]) -> FixerConfig:
    """Execute a configuration file and return the populated ``FixerConfig``."""
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Configuration file not found: {path}")
    namespace = runpy.run_path(str(path))
    configure = namespace.get("configure")
    if not callable(configure):
        raise ConfigurationError(f"{path} must define configure(config)")
    config = FixerConfig()
    try:
        configure(config)
    except (TypeError, ValueError) as exc:
        # Typically a misspelled or mistyped constraint argument.
        raise ConfigurationError(f"{path}: {exc}") from exc
    # Fail now when connection() was never called.
    _ = config.connection_settings
    return config
