"""Exception hierarchy shared by the runner, the configuration layer and the rules."""
from __future__ import annotations

from typing import List, Optional, Sequence

from db_fixer.findings import Finding


class FixerError(Exception):
    """Base class for every error raised by db-fixer."""


class ConfigurationError(FixerError):
    """Unknown rule identity, malformed rule definition or invalid constraint values."""


class DatabaseConnectionError(FixerError):
    """The database connection could not be established; nothing has run."""


class RuleExecutionError(FixerError):
    """A single rule failed while applying. Contained by the runner."""

    def __init__(
        self,
        message: str,
        rule: Optional[str] = None,
        findings: Optional[Sequence[Finding]] = None,
    ) -> None:
        super().__init__(message)
        self.rule = rule
        # Findings produced before the failure; the runner still renders them.
        self.findings: List[Finding] = list(findings or [])


class PartialPlanFailure(RuleExecutionError):
    """One step of a multi-step key plan failed after earlier steps were committed.

    DDL in MySQL auto-commits, so the steps in ``executed_steps`` are permanent.
    No compensation is attempted; the operator has to finish the table by hand.
    """

    def __init__(
        self,
        table: str,
        failed_step: str,
        executed_steps: Sequence[str],
        cause: BaseException,
        rule: Optional[str] = None,
        findings: Optional[Sequence[Finding]] = None,
    ) -> None:
        done = len(executed_steps)
        message = (
            f"plan for `{table}` stopped at step {done + 1} after {done} committed step(s): "
            f"{failed_step} ({cause})"
        )
        super().__init__(message, rule=rule, findings=findings)
        self.table = table
        self.failed_step = failed_step
        self.executed_steps = list(executed_steps)
