"""envsense error hierarchy and structured error models."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel

from envsense.exit_codes import ExitCode


def _default_exit_code(category: ErrorCategory) -> ExitCode:
    mapping = {
        ErrorCategory.USAGE: ExitCode.USAGE_ERROR,
        ErrorCategory.PREDICATE: ExitCode.INVALID_INPUT,
        ErrorCategory.INPUT: ExitCode.INVALID_INPUT,
    }
    return mapping[category]


class ErrorCategory(str, Enum):
    USAGE = "usage"
    PREDICATE = "predicate"
    INPUT = "input"


class Suggestion(BaseModel):
    fix: str
    examples: list[str] = []


class EnvsenseError(Exception):
    """Base error for everything the CLI reports to the user."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory = ErrorCategory.INPUT,
        suggestion: Suggestion | None = None,
        details: dict[str, Any] | None = None,
        exit_code: ExitCode | int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.suggestion = suggestion
        self.details = details or {}
        resolved_exit_code = exit_code if exit_code is not None else _default_exit_code(category)
        self.exit_code = int(resolved_exit_code)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "category": self.category.value,
            "suggestion": self.suggestion.model_dump() if self.suggestion else None,
            "details": self.details,
        }


class UsageError(EnvsenseError):
    """E1xxx: missing arguments and incompatible flag combinations."""

    def __init__(
        self,
        message: str,
        code: str = "E1000",
        suggestion: Suggestion | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            code,
            category=ErrorCategory.USAGE,
            suggestion=suggestion,
            details=details,
            exit_code=ExitCode.USAGE_ERROR,
        )


class FieldSelectionError(EnvsenseError):
    """E1100: ``info --fields`` named a key the report does not have."""

    def __init__(self, name: str, valid: list[str]) -> None:
        super().__init__(
            f"unknown field: {name}",
            "E1100",
            category=ErrorCategory.INPUT,
            suggestion=Suggestion(fix=f"valid fields: {', '.join(valid)}"),
            details={"field": name, "valid": valid},
            exit_code=ExitCode.INVALID_INPUT,
        )


class PredicateError(EnvsenseError):
    """E2xxx: a predicate could not be parsed or resolved."""

    def __init__(
        self,
        predicate: str,
        reason: str,
        code: str = "E2000",
        suggestion: Suggestion | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            f"Error parsing '{predicate}': {reason}",
            code,
            category=ErrorCategory.PREDICATE,
            suggestion=suggestion,
            details=details,
            exit_code=ExitCode.INVALID_INPUT,
        )
        self.predicate = predicate
        self.reason = reason

    def render(self) -> str:
        """Full message as printed on stderr (no ``Error:`` prefix)."""
        return self.message


class EmptyPredicateError(PredicateError):
    def __init__(self, predicate: str) -> None:
        super().__init__(predicate, "empty input", code="E2001")


class PredicateSyntaxError(PredicateError):
    def __init__(self, predicate: str, offending: str) -> None:
        super().__init__(
            predicate,
            "invalid predicate syntax",
            code="E2002",
            suggestion=Suggestion(
                fix=(
                    "Valid predicate syntax: letters, numbers, dots (.), equals (=), "
                    "hyphens (-) and underscores (_) only, with an optional leading '!'"
                ),
                examples=["agent", "!ci", "agent.id=cursor", "terminal.interactive"],
            ),
            details={"offending": offending},
        )


class MalformedPredicateError(PredicateError):
    def __init__(self, predicate: str, reason: str = "malformed comparison") -> None:
        super().__init__(predicate, reason, code="E2003")


class UnknownContextError(PredicateError):
    def __init__(self, predicate: str, context: str, valid: list[str]) -> None:
        super().__init__(
            predicate,
            f"invalid field path: unknown context '{context}'",
            code="E2004",
            suggestion=Suggestion(fix=f"available contexts: {', '.join(valid)}"),
            details={"context": context, "valid": valid},
        )


class UnknownFieldError(PredicateError):
    """A later path segment is not a known field of its context."""

    def __init__(self, predicate: str, path: str, context: str, available: list[str]) -> None:
        super().__init__(
            predicate,
            f"invalid field path '{path}'",
            code="E2005",
            details={"path": path, "context": context, "available": available},
        )
        self.path = path
        self.context = context
        self.available = available
        self.message = (
            f"invalid field path '{path}': available fields for '{context}': "
            f"{', '.join(available)}"
        )

    def render(self) -> str:
        return f"Error: {self.message}"


class NegationError(PredicateError):
    def __init__(self, predicate: str, path: str) -> None:
        super().__init__(
            predicate,
            f"cannot negate non-boolean field '{path}'",
            code="E2006",
            suggestion=Suggestion(
                fix="compare the field against a value instead",
                examples=[f"!{path}=<value>"],
            ),
        )
