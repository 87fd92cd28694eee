"""Inspect a MySQL schema through its catalog and propose or apply corrective DDL/DML."""
from db_fixer.config import FixerConfig, RuleDefinition, load_config, normalize_rule_definitions
from db_fixer.findings import Finding
from db_fixer.runner import Runner, RunResult, execute_run

__version__ = "0.1.0"

__all__ = [
    "Finding",
    "FixerConfig",
    "RuleDefinition",
    "Runner",
    "RunResult",
    "execute_run",
    "load_config",
    "normalize_rule_definitions",
]
