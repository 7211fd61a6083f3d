"""Report data model for envsense.

The report is a plain value: pydantic models with no back-references to the
snapshot or rule table that produced them.  JSON output omits unset trait
fields and lists contexts in sorted order so serialisation is stable.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

SCHEMA_VERSION = "0.3.0"

TOP_LEVEL_FIELDS: tuple[str, ...] = ("contexts", "traits", "evidence", "version")


class ContextKind(str, Enum):
    """Closed set of context tags a report can carry."""

    AGENT = "agent"
    IDE = "ide"
    CI = "ci"
    CONTAINER = "container"
    REMOTE = "remote"


class ColorLevel(str, Enum):
    NONE = "none"
    ANSI16 = "ansi16"
    ANSI256 = "ansi256"
    TRUECOLOR = "truecolor"

    @classmethod
    def parse(cls, value: str) -> ColorLevel | None:
        normalized = value.strip().lower()
        for level in cls:
            if normalized == level.value:
                return level
        return None


class Signal(str, Enum):
    ENV = "env"
    TTY = "tty"
    PROC = "proc"
    FS = "fs"


class Confidence:
    """Fixed confidence scale for evidence and rules."""

    HIGH = 1.0
    """Direct environment-variable match."""
    MEDIUM = 0.8
    """Inferred from indirect signals (prefix scans, presence only)."""
    LOW = 0.6
    """Heuristic."""
    TERMINAL = 1.0
    """TTY oracle; always reliable."""


# ---------------------------------------------------------------------------
# Traits
# ---------------------------------------------------------------------------

class _Model(BaseModel):
    model_config = ConfigDict(validate_assignment=True)


class StreamInfo(_Model):
    tty: bool = False
    piped: bool = True

    @classmethod
    def from_tty(cls, tty: bool) -> StreamInfo:
        return cls(tty=tty, piped=not tty)


class AgentTraits(_Model):
    id: str | None = None


class IdeTraits(_Model):
    id: str | None = None


class TerminalTraits(_Model):
    interactive: bool = False
    color_level: ColorLevel = ColorLevel.NONE
    stdin: StreamInfo = Field(default_factory=StreamInfo)
    stdout: StreamInfo = Field(default_factory=StreamInfo)
    stderr: StreamInfo = Field(default_factory=StreamInfo)
    supports_hyperlinks: bool = False


class CiTraits(_Model):
    id: str | None = None
    vendor: str | None = None
    name: str | None = None
    is_pr: bool | None = None
    branch: str | None = None


class Traits(_Model):
    agent: AgentTraits = Field(default_factory=AgentTraits)
    ide: IdeTraits = Field(default_factory=IdeTraits)
    terminal: TerminalTraits = Field(default_factory=TerminalTraits)
    ci: CiTraits = Field(default_factory=CiTraits)


# ---------------------------------------------------------------------------
# Evidence
# ---------------------------------------------------------------------------

class Evidence(_Model):
    """One record witnessing why a trait or context was set."""

    signal: Signal
    key: str
    value: str | None = None
    supports: list[str] = Field(default_factory=list)
    confidence: float = Field(default=Confidence.HIGH, ge=0.0, le=1.0)

    @classmethod
    def env_var(
        cls,
        key: str,
        value: str,
        supports: Iterable[str],
        confidence: float = Confidence.HIGH,
    ) -> Evidence:
        return cls(signal=Signal.ENV, key=key, value=value, supports=list(supports), confidence=confidence)

    @classmethod
    def tty_trait(cls, key: str, is_tty: bool, supports: Iterable[str]) -> Evidence:
        return cls(
            signal=Signal.TTY,
            key=key,
            value=str(is_tty).lower(),
            supports=list(supports),
            confidence=Confidence.TERMINAL,
        )


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------

class Report(_Model):
    """The serialisable detection result."""

    contexts: list[ContextKind] = Field(default_factory=list)
    traits: Traits = Field(default_factory=Traits)
    evidence: list[Evidence] = Field(default_factory=list)
    version: str = SCHEMA_VERSION

    @field_validator("contexts")
    @classmethod
    def _sorted_unique(cls, value: list[ContextKind]) -> list[ContextKind]:
        return sorted(set(value), key=lambda c: c.value)

    def has_context(self, name: str) -> bool:
        return any(c.value == name for c in self.contexts)

    def to_dict(self, fields: Iterable[str] | None = None) -> dict[str, Any]:
        data = self.model_dump(mode="json", exclude_none=True)
        if fields is None:
            return data
        wanted = set(fields)
        return {key: value for key, value in data.items() if key in wanted}

    def to_json(self, *, pretty: bool = False, fields: Iterable[str] | None = None) -> str:
        return dumps_json(self.to_dict(fields), pretty=pretty)

    @classmethod
    def from_json(cls, raw: str | bytes) -> Report:
        return cls.model_validate_json(raw)

    def trait_tree(self) -> dict[str, Any]:
        """Nested trait mapping with unset fields omitted."""
        return self.traits.model_dump(mode="json", exclude_none=True)


def dumps_json(value: Any, *, pretty: bool = False) -> str:
    if pretty:
        return json.dumps(value, indent=2, ensure_ascii=False)
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
