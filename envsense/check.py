"""Predicate engine behind ``envsense check``.

Grammar
-------
    name                context test, true iff ``name`` is in the report's contexts
    a.b[.c ...]         field access, yields the scalar at that trait path
    a.b[.c ...]=value   comparison, string-compared after formatting the scalar
    facet:key=value     deprecated; rewritten to ``<context>.<field>=value``
    trait:key           deprecated; rewritten to its ``terminal.*`` path

Any form may carry a leading ``!``.  Outside the comparison literal only
``[A-Za-z0-9._=!-]`` is accepted.

Parsing (:func:`parse_predicate`) needs no report.  Resolution against the
field registry happens in :func:`evaluate`, which is where unknown contexts
and fields surface as errors (or as ``false`` in lenient mode).
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from envsense.errors import (
    EmptyPredicateError,
    MalformedPredicateError,
    NegationError,
    PredicateSyntaxError,
    UnknownContextError,
    UnknownFieldError,
)
from envsense.schema import ColorLevel, Report

# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class FieldType(str, Enum):
    BOOLEAN = "boolean"
    STRING = "string"
    OPTIONAL_BOOLEAN = "optional_boolean"
    COLOR_LEVEL = "color_level"


@dataclass(frozen=True)
class FieldInfo:
    path: str
    type: FieldType
    description: str

    @property
    def context(self) -> str:
        return self.path.split(".", 1)[0]

    @property
    def segments(self) -> list[str]:
        return self.path.split(".")

    @property
    def is_boolean(self) -> bool:
        return self.type in (FieldType.BOOLEAN, FieldType.OPTIONAL_BOOLEAN)


CONTEXT_DESCRIPTIONS: dict[str, str] = {
    "agent": "Agent environment detection",
    "ide": "Integrated development environment",
    "ci": "Continuous integration environment",
    "terminal": "Terminal characteristics",
    "container": "Container runtime",
    "remote": "Remote session",
}

CONTEXT_NAMES: tuple[str, ...] = tuple(CONTEXT_DESCRIPTIONS)


def _fields(*entries: tuple[str, FieldType, str]) -> dict[str, FieldInfo]:
    return {path: FieldInfo(path, kind, description) for path, kind, description in entries}


FIELDS: dict[str, FieldInfo] = _fields(
    ("agent.id", FieldType.STRING, "Agent identifier"),
    ("ide.id", FieldType.STRING, "IDE identifier"),
    ("terminal.interactive", FieldType.BOOLEAN, "Terminal interactivity"),
    ("terminal.color_level", FieldType.COLOR_LEVEL, "Color support level"),
    ("terminal.stdin.tty", FieldType.BOOLEAN, "Stdin is TTY"),
    ("terminal.stdout.tty", FieldType.BOOLEAN, "Stdout is TTY"),
    ("terminal.stderr.tty", FieldType.BOOLEAN, "Stderr is TTY"),
    ("terminal.stdin.piped", FieldType.BOOLEAN, "Stdin is piped"),
    ("terminal.stdout.piped", FieldType.BOOLEAN, "Stdout is piped"),
    ("terminal.stderr.piped", FieldType.BOOLEAN, "Stderr is piped"),
    ("terminal.supports_hyperlinks", FieldType.BOOLEAN, "Hyperlink support"),
    ("ci.id", FieldType.STRING, "CI system identifier"),
    ("ci.vendor", FieldType.STRING, "CI vendor"),
    ("ci.name", FieldType.STRING, "CI system name"),
    ("ci.is_pr", FieldType.OPTIONAL_BOOLEAN, "Is pull request"),
    ("ci.branch", FieldType.STRING, "Branch name"),
)


def fields_for(context: str) -> list[FieldInfo]:
    return [info for info in FIELDS.values() if info.context == context]


def field_paths(context: str) -> list[str]:
    return [info.path for info in fields_for(context)]


# ---------------------------------------------------------------------------
# Legacy forms
# ---------------------------------------------------------------------------

LEGACY_FACETS: dict[str, str] = {
    "agent_id": "agent.id",
    "ide_id": "ide.id",
    "ci_id": "ci.id",
    "ci_vendor": "ci.vendor",
    "ci_name": "ci.name",
    "ci_branch": "ci.branch",
    "ci_is_pr": "ci.is_pr",
}

LEGACY_TRAITS: dict[str, str] = {
    "is_interactive": "terminal.interactive",
    "supports_hyperlinks": "terminal.supports_hyperlinks",
    "color_level": "terminal.color_level",
    "is_tty_stdin": "terminal.stdin.tty",
    "is_tty_stdout": "terminal.stdout.tty",
    "is_tty_stderr": "terminal.stderr.tty",
    "is_piped_stdin": "terminal.stdin.piped",
    "is_piped_stdout": "terminal.stdout.piped",
    "is_piped_stderr": "terminal.stderr.piped",
}

UNKNOWN_LEGACY_CONTEXT = "unknown"


def _suggested_facet_path(key: str) -> str:
    return LEGACY_FACETS.get(key, f"{UNKNOWN_LEGACY_CONTEXT}.{key}")


def _suggested_trait_path(key: str) -> str:
    return LEGACY_TRAITS.get(key, f"{UNKNOWN_LEGACY_CONTEXT}.{key}")


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

_VALID_PATH = re.compile(r"[A-Za-z0-9._!=-]+")
_INVALID_CHAR = re.compile(r"[^A-Za-z0-9._!=-]")

FACET_PREFIX = "facet:"
TRAIT_PREFIX = "trait:"


class PredicateKind(str, Enum):
    CONTEXT = "context"
    FIELD = "field"
    COMPARISON = "comparison"


@dataclass(frozen=True)
class Predicate:
    """A parsed predicate.

    ``legacy`` holds the deprecated spelling (without any ``!``) when the
    predicate was written in ``facet:``/``trait:`` form; ``path`` and
    ``literal`` are always the modern equivalent.
    """

    raw: str
    kind: PredicateKind
    path: str
    literal: str | None = None
    negated: bool = False
    legacy: str | None = None

    @property
    def context(self) -> str:
        return self.path.split(".", 1)[0]

    @property
    def modern(self) -> str:
        if self.literal is None:
            return self.path
        return f"{self.path}={self.literal}"

    @property
    def is_legacy(self) -> bool:
        return self.legacy is not None

    def deprecation_warning(self) -> str | None:
        if self.legacy is None:
            return None
        return f"Warning: Legacy syntax '{self.legacy}' is deprecated. Use '{self.modern}' instead"


def parse_predicate(raw: str) -> Predicate:
    if not raw.strip():
        raise EmptyPredicateError(raw)

    negated = raw.startswith("!")
    body = raw[1:] if negated else raw
    if not body:
        raise MalformedPredicateError(raw, "nothing to negate")

    if body.startswith(FACET_PREFIX):
        return _parse_legacy_facet(raw, body, negated)
    if body.startswith(TRAIT_PREFIX):
        return _parse_legacy_trait(raw, body, negated)

    path, sep, literal = body.partition("=")
    if sep and not path:
        raise MalformedPredicateError(raw, "missing field path before '='")
    _validate_path(raw, path)
    if sep and not literal:
        raise MalformedPredicateError(raw, "missing value after '='")
    if any(not segment for segment in path.split(".")):
        raise MalformedPredicateError(raw, "empty path segment")

    if sep:
        return Predicate(raw, PredicateKind.COMPARISON, path, literal, negated)
    if "." in path:
        return Predicate(raw, PredicateKind.FIELD, path, None, negated)
    return Predicate(raw, PredicateKind.CONTEXT, path, None, negated)


def _validate_path(raw: str, path: str) -> None:
    if path and _VALID_PATH.fullmatch(path):
        return
    bad = _INVALID_CHAR.search(path)
    raise PredicateSyntaxError(raw, bad.group(0) if bad else path)


def _parse_legacy_facet(raw: str, body: str, negated: bool) -> Predicate:
    key, sep, value = body[len(FACET_PREFIX):].partition("=")
    key, value = key.strip(), value.strip()
    if not sep or not key or not value:
        raise MalformedPredicateError(raw, "legacy facet requires key=value")
    _validate_path(raw, key)
    legacy = f"{FACET_PREFIX}{key}={value}"
    return Predicate(raw, PredicateKind.COMPARISON, _suggested_facet_path(key), value, negated, legacy)


def _parse_legacy_trait(raw: str, body: str, negated: bool) -> Predicate:
    key, sep, value = body[len(TRAIT_PREFIX):].partition("=")
    key, value = key.strip(), value.strip()
    if not key or (sep and not value):
        raise MalformedPredicateError(raw, "legacy trait requires a key")
    _validate_path(raw, key)
    path = _suggested_trait_path(key)
    if sep:
        legacy = f"{TRAIT_PREFIX}{key}={value}"
        return Predicate(raw, PredicateKind.COMPARISON, path, value, negated, legacy)
    return Predicate(raw, PredicateKind.FIELD, path, None, negated, f"{TRAIT_PREFIX}{key}")


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

class Mode(str, Enum):
    ALL = "all"
    ANY = "any"


@dataclass
class CheckResult:
    predicate: str
    value: Any
    passed: bool
    reason: str

    def display_value(self) -> str:
        return format_value(self.value)

    def to_dict(self, explain: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {"predicate": self.predicate, "result": self.value}
        if explain:
            data["reason"] = self.reason
        return data


@dataclass
class CheckOutcome:
    overall: bool
    mode: Mode
    results: list[CheckResult] = field(default_factory=list)

    def to_dict(self, explain: bool = False) -> dict[str, Any]:
        return {
            "overall": self.overall,
            "mode": self.mode.value,
            "checks": [result.to_dict(explain) for result in self.results],
        }


def format_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def _truthy(info: FieldInfo, value: Any) -> bool:
    if info.type == FieldType.COLOR_LEVEL:
        return value is not None and value != ColorLevel.NONE.value
    if info.is_boolean:
        return bool(value)
    return value is not None and value != ""


def extract(report: Report, info: FieldInfo) -> Any:
    """Scalar at ``info.path`` in the trait tree (``None`` when unset)."""
    node: Any = report.trait_tree()
    for segment in info.segments:
        if not isinstance(node, dict) or segment not in node:
            node = None
            break
        node = node[segment]
    if info.is_boolean and node is None:
        return False
    return node


def _unknown(predicate: Predicate, reason: str) -> CheckResult:
    return CheckResult(predicate.raw, predicate.negated, predicate.negated, reason)


def evaluate(report: Report, predicate: Predicate | str, *, lenient: bool = False) -> CheckResult:
    if isinstance(predicate, str):
        predicate = parse_predicate(predicate)
    # Legacy forms never fail on an unmapped key; they evaluate to false.
    lenient = lenient or predicate.is_legacy

    context = predicate.context
    if context not in CONTEXT_NAMES:
        if lenient:
            return _unknown(predicate, f"unknown field: {predicate.path}")
        raise UnknownContextError(predicate.raw, context, list(CONTEXT_NAMES))

    if predicate.kind == PredicateKind.CONTEXT:
        present = report.has_context(context)
        passed = present != predicate.negated
        state = "detected" if present else "not detected"
        return CheckResult(predicate.raw, passed, passed, f"{context} context {state}")

    info = FIELDS.get(predicate.path)
    if info is None:
        if lenient:
            return _unknown(predicate, f"unknown field: {predicate.path}")
        raise UnknownFieldError(predicate.raw, predicate.path, context, field_paths(context))

    actual = extract(report, info)

    if predicate.kind == PredicateKind.COMPARISON:
        matched = actual is not None and format_value(actual) == predicate.literal
        passed = matched != predicate.negated
        reason = f"{info.path}={format_value(actual)}, expected {predicate.literal}"
        return CheckResult(predicate.raw, passed, passed, reason)

    if predicate.negated:
        if not info.is_boolean:
            raise NegationError(predicate.raw, info.path)
        passed = not bool(actual)
        return CheckResult(predicate.raw, passed, passed, f"{info.path}={format_value(actual)}")

    return CheckResult(predicate.raw, actual, _truthy(info, actual), f"{info.path}={format_value(actual)}")


def evaluate_all(
    report: Report,
    predicates: Sequence[Predicate | str],
    mode: Mode | str = Mode.ALL,
    *,
    lenient: bool = False,
) -> CheckOutcome:
    """Evaluate every predicate and combine them under ``mode``.

    All predicates are parsed before any is evaluated, so a syntax error in
    the last one is reported without partial output.
    """
    mode = Mode(mode)
    parsed = [parse_predicate(p) if isinstance(p, str) else p for p in predicates]
    results = [evaluate(report, p, lenient=lenient) for p in parsed]
    passed = [r.passed for r in results]
    overall = all(passed) if mode == Mode.ALL else any(passed)
    return CheckOutcome(overall=overall, mode=mode, results=results)


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

def list_lines(descriptions: bool = True) -> list[str]:
    """Lines printed by ``check --list``."""
    lines = ["Available contexts:"]
    lines.extend(f"- {name}: {text}" for name, text in CONTEXT_DESCRIPTIONS.items())
    lines.append("")
    lines.append("Available fields:")
    width = max(len(path) for path in FIELDS)
    for context in CONTEXT_NAMES:
        infos = fields_for(context)
        if not infos:
            continue
        lines.append("")
        lines.append(f"  {context} fields:")
        for info in infos:
            if descriptions:
                lines.append(f"    {info.path:<{width}}  # {info.description}")
            else:
                lines.append(f"    {info.path}")
    return lines


def legal_predicates() -> list[str]:
    """Every context name and field path, in listing order."""
    names = list(CONTEXT_NAMES)
    names.extend(FIELDS)
    return names


def warnings_for(predicates: Iterable[Predicate]) -> list[str]:
    return [w for w in (p.deprecation_warning() for p in predicates) if w is not None]
