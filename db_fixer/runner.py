"""
Rule orchestration.

Rules run one after another on a single shared connection, in configuration
order. Each rule is its own failure domain: an exception escaping ``apply`` is
reported, any open transaction is rolled back, and the next rule still runs.
The run as a whole succeeds once every configured rule has been attempted.

Transaction policy per rule: non-destructive rules in a real run are wrapped
in a transaction that commits on success and rolls back on failure. Destructive
rules (their DDL auto-commits anyway) and every rule in a dry run execute
without an engine-managed transaction.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Type, Union

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from db_fixer.config import CONFIG, ConnectionSettings, FixerConfig, RuleDefinition
from db_fixer.constraints import build_context
from db_fixer.errors import DatabaseConnectionError, RuleExecutionError
from db_fixer.findings import Finding
from db_fixer.reporting import ConsoleReporter, RunLog
from db_fixer.rules import RULES, Rule


# --------------------------------------------------------------------------------------
# Results
# --------------------------------------------------------------------------------------
@dataclass
class RuleOutcome:
    identity: str
    findings: List[Finding] = field(default_factory=list)
    error: Optional[str] = None
    transactional: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RunResult:
    outcomes: List[RuleOutcome] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)

    @property
    def ran(self) -> List[str]:
        return [o.identity for o in self.outcomes]

    @property
    def failed(self) -> Dict[str, str]:
        return {o.identity: o.error for o in self.outcomes if o.error is not None}

    @property
    def findings(self) -> List[Finding]:
        return [f for o in self.outcomes for f in o.findings]

    @property
    def succeeded(self) -> bool:
        # Best-effort survey: individual rule failures are warnings, not run failures.
        return True


# --------------------------------------------------------------------------------------
# Connection
# --------------------------------------------------------------------------------------
def connect(settings: ConnectionSettings) -> Connection:
    engine = create_engine(settings.url(), future=True, connect_args=dict(CONFIG["CONNECT_ARGS"]))
    try:
        return engine.connect()
    except SQLAlchemyError as exc:
        engine.dispose()
        raise DatabaseConnectionError(f"Could not connect to database {settings.describe()}: {exc}") from exc


# --------------------------------------------------------------------------------------
# Runner
# --------------------------------------------------------------------------------------
class Runner:
    """Runs configured rule definitions in order against one connection."""

    def __init__(
        self,
        definitions: Sequence[RuleDefinition],
        reporter: Optional[ConsoleReporter] = None,
        dry: bool = False,
        log: Optional[RunLog] = None,
        registry: Optional[Dict[str, Type[Rule]]] = None,
    ) -> None:
        self.definitions = list(definitions)
        self.reporter = reporter or ConsoleReporter()
        self.dry = dry
        self.log = log
        self.registry = RULES if registry is None else registry

    def _log(self, message: str) -> None:
        if self.log is not None:
            self.log.write(message)

    def run(self, connection: Connection) -> RunResult:
        result = RunResult()
        if not self.definitions:
            self.reporter.warning("No rules registered.")
            self._log("No rules registered.")
            return result

        for definition in self.definitions:
            rule_cls = self.registry.get(definition.identity)
            if rule_cls is None:
                msg = f"Rule not found: {definition.identity}"
                self.reporter.warning(msg)
                self._log(msg)
                result.unresolved.append(definition.identity)
                continue
            result.outcomes.append(self.run_rule(connection, rule_cls, definition))
            if self.log is not None:
                self.log.separator()

        self.reporter.success("All rules executed.")
        return result

    def run_rule(self, connection: Connection, rule_cls: Type[Rule], definition: RuleDefinition) -> RuleOutcome:
        identity = rule_cls.identity()
        title = f"Running rule: {identity} [{rule_cls.category()}]"
        self.reporter.section(title)
        self._log(title)

        context = build_context(definition.constraint, self.dry)
        use_transaction = not rule_cls.is_destructive() and not self.dry
        outcome = RuleOutcome(identity=identity, transactional=use_transaction)

        try:
            rule = rule_cls()
            if use_transaction:
                with connection.begin():
                    findings = rule.apply(connection, self.reporter, context)
            else:
                findings = rule.apply(connection, self.reporter, context)
                self._finish_untransacted(connection)
            outcome.findings = list(findings or [])
        except Exception as exc:
            self._abandon(connection)
            if isinstance(exc, RuleExecutionError) and exc.findings:
                outcome.findings = list(exc.findings)
                self._render_findings(outcome.findings)
            outcome.error = str(exc)
            self.reporter.error(f"Exception during rule {identity}: {exc}")
            if self.log is not None:
                self.log.failed(f"{identity} failed: {exc}")
            return outcome

        self._render_findings(outcome.findings)
        if use_transaction:
            self.reporter.success("Transaction committed.")
            if self.log is not None:
                self.log.succeeded(f"{identity} committed")
        elif self.dry:
            self.reporter.note("Dry run: no schema changes were executed.")
            if self.log is not None:
                self.log.succeeded(f"{identity} rolled back (dry run)")
        else:
            self.reporter.success("Rule finished.")
            if self.log is not None:
                self.log.succeeded(f"{identity} applied")
        return outcome

    def _render_findings(self, findings: List[Finding]) -> None:
        if not findings:
            self.reporter.success("No issues found by this rule.")
            self._log("No issues found by this rule.")
            return
        for finding in findings:
            self.reporter.warning(finding.message)
            self._log(finding.message)
        self.reporter.note(f"Findings: {len(findings)}")
        self._log(f"Findings: {len(findings)}")

    def _finish_untransacted(self, connection: Connection) -> None:
        # SQLAlchemy autobegins on the first statement. Dry runs discard it; real
        # runs of destructive rules keep whatever DML followed the last DDL.
        if connection.in_transaction():
            if self.dry:
                connection.rollback()
            else:
                connection.commit()

    @staticmethod
    def _abandon(connection: Connection) -> None:
        if connection.in_transaction():
            connection.rollback()


# --------------------------------------------------------------------------------------
# Whole-run lifecycle
# --------------------------------------------------------------------------------------
def execute_run(
    config: FixerConfig,
    dry: bool = False,
    log_dir: Optional[Union[str, Path]] = None,
    reporter: Optional[ConsoleReporter] = None,
) -> RunResult:
    """Open the log, connect, run every rule, then close everything.

    Raises ``DatabaseConnectionError`` before any rule runs when the database is
    unreachable.
    """
    reporter = reporter or ConsoleReporter()
    log = RunLog(Path(log_dir)).open() if log_dir else None
    try:
        try:
            connection = connect(config.connection_settings)
        except DatabaseConnectionError as exc:
            reporter.error(str(exc))
            if log is not None:
                log.failed(str(exc))
            raise
        reporter.success("Connected to database.")
        try:
            return Runner(config.rule_definitions, reporter=reporter, dry=dry, log=log).run(connection)
        finally:
            connection.close()
            connection.engine.dispose()
    finally:
        if log is not None:
            log.close()
            reporter.note(f"Log written to: {log.path}")
