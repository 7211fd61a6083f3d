"""envsense: detect the execution context of a terminal session."""

from __future__ import annotations

__version__ = "0.3.0"

from envsense.check import CheckOutcome, CheckResult, Mode, evaluate, evaluate_all, parse_predicate
from envsense.engine import detect
from envsense.schema import SCHEMA_VERSION, ColorLevel, ContextKind, Evidence, Report
from envsense.snapshot import EnvSnapshot, FixedOracle

__all__ = [
    "CheckOutcome",
    "CheckResult",
    "ColorLevel",
    "ContextKind",
    "EnvSnapshot",
    "Evidence",
    "FixedOracle",
    "Mode",
    "Report",
    "SCHEMA_VERSION",
    "__version__",
    "detect",
    "evaluate",
    "evaluate_all",
    "parse_predicate",
]
