"""Environment snapshot: every input to detection, frozen at one instant.

A snapshot captures the environment-variable map, the TTY state of the three
standard streams, and the colour and hyperlink capabilities of stdout.  It
also resolves the ``ENVSENSE_*`` override variables once, so detectors never
re-read process state on their own.

Test seams
----------
    ENVSENSE_TTY_STDIN / _STDOUT / _STDERR
        When all three are present and parse as booleans they replace real
        TTY probing.
    ENVSENSE_COLOR_LEVEL
        ``none``, ``ansi16``, ``ansi256`` or ``truecolor``.
    ENVSENSE_SUPPORTS_HYPERLINKS
        Boolean; replaces hyperlink probing.

Tests that should not touch the real streams at all pass a
:class:`FixedOracle` (or use :meth:`EnvSnapshot.from_mapping`).
"""

from __future__ import annotations

import io
import os
import sys
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Protocol

from rich.console import Console

from envsense.schema import ColorLevel

TTY_OVERRIDE_KEYS: tuple[str, str, str] = (
    "ENVSENSE_TTY_STDIN",
    "ENVSENSE_TTY_STDOUT",
    "ENVSENSE_TTY_STDERR",
)
COLOR_LEVEL_OVERRIDE = "ENVSENSE_COLOR_LEVEL"
HYPERLINKS_OVERRIDE = "ENVSENSE_SUPPORTS_HYPERLINKS"

STREAM_NAMES: tuple[str, str, str] = ("stdin", "stdout", "stderr")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def parse_bool(value: str | None) -> bool | None:
    """Parse a boolean-ish environment value, ``None`` when it is neither."""
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    return None


# ---------------------------------------------------------------------------
# TTY oracles
# ---------------------------------------------------------------------------

class TtyOracle(Protocol):
    """Source of stream facts that are not plain environment variables."""

    def is_tty(self, stream: str) -> bool: ...

    def color_level(self, env: Mapping[str, str], stdout_tty: bool) -> ColorLevel: ...

    def supports_hyperlinks(self, env: Mapping[str, str], stdout_tty: bool) -> bool: ...


_RICH_COLOR_SYSTEMS: dict[str, ColorLevel] = {
    "standard": ColorLevel.ANSI16,
    "windows": ColorLevel.ANSI16,
    "256": ColorLevel.ANSI256,
    "truecolor": ColorLevel.TRUECOLOR,
}

_HYPERLINK_TERM_PROGRAMS = {"iterm.app", "wezterm", "vscode", "hyper", "ghostty"}
_HYPERLINK_TERMS = {"xterm-kitty", "alacritty", "xterm-ghostty", "foot"}


class SystemOracle:
    """Probe the real standard streams of this process."""

    def is_tty(self, stream: str) -> bool:
        handle = getattr(sys, stream, None)
        if handle is None:
            return False
        try:
            return bool(handle.isatty())
        except (AttributeError, ValueError, OSError):
            return False

    def color_level(self, env: Mapping[str, str], stdout_tty: bool) -> ColorLevel:
        if not stdout_tty:
            return ColorLevel.NONE
        # rich reads TERM/COLORTERM from the mapping it is given, so the
        # answer follows the snapshot rather than the live environment.
        console = Console(file=io.StringIO(), force_terminal=True, _environ=dict(env))
        system = console.color_system
        if system is None:
            return ColorLevel.NONE
        return _RICH_COLOR_SYSTEMS.get(system, ColorLevel.ANSI16)

    def supports_hyperlinks(self, env: Mapping[str, str], stdout_tty: bool) -> bool:
        forced = env.get("FORCE_HYPERLINK")
        if forced is not None:
            return forced.strip() != "0"
        if not stdout_tty or "CI" in env:
            return False
        if "DOMTERM" in env or "WT_SESSION" in env or "KONSOLE_VERSION" in env:
            return True
        if env.get("TERM_PROGRAM", "").lower() in _HYPERLINK_TERM_PROGRAMS:
            return True
        vte = env.get("VTE_VERSION", "")
        if vte.isdigit() and int(vte) >= 5000:
            return True
        return env.get("TERM", "") in _HYPERLINK_TERMS


@dataclass(frozen=True)
class FixedOracle:
    """Deterministic oracle for tests."""

    stdin: bool = False
    stdout: bool = False
    stderr: bool = False
    color: ColorLevel = ColorLevel.NONE
    hyperlinks: bool = False

    def is_tty(self, stream: str) -> bool:
        return bool(getattr(self, stream))

    def color_level(self, env: Mapping[str, str], stdout_tty: bool) -> ColorLevel:
        return self.color

    def supports_hyperlinks(self, env: Mapping[str, str], stdout_tty: bool) -> bool:
        return self.hyperlinks


# ---------------------------------------------------------------------------
# Overrides
# ---------------------------------------------------------------------------

_OVERRIDE_VARIABLES: dict[str, tuple[str, str]] = {
    # kind: (forcing variable, assume variable)
    "agent": ("ENVSENSE_AGENT", "ENVSENSE_ASSUME_HUMAN"),
    "ide": ("ENVSENSE_IDE", "ENVSENSE_ASSUME_TERMINAL"),
    "ci": ("ENVSENSE_CI", "ENVSENSE_ASSUME_LOCAL"),
}

NONE_SENTINEL = "none"


@dataclass(frozen=True)
class Override:
    """A caller-specified answer for one detector.

    ``value is None`` means detection is suppressed; otherwise ``value`` is
    the forced identifier, taken verbatim.
    """

    key: str
    value: str | None

    @property
    def suppressed(self) -> bool:
        return self.value is None


@dataclass(frozen=True)
class Overrides:
    agent: Override | None = None
    ide: Override | None = None
    ci: Override | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str]) -> Overrides:
        resolved: dict[str, Override | None] = {}
        for kind, (force_key, assume_key) in _OVERRIDE_VARIABLES.items():
            resolved[kind] = _resolve_override(env, force_key, assume_key)
        return cls(**resolved)

    def for_kind(self, kind: str) -> Override | None:
        return getattr(self, kind, None)


def _resolve_override(env: Mapping[str, str], force_key: str, assume_key: str) -> Override | None:
    if env.get(assume_key, "").strip() == "1":
        return Override(key=assume_key, value=None)
    forced = env.get(force_key)
    if forced is None or not forced.strip():
        return None
    if forced.strip() == NONE_SENTINEL:
        return Override(key=force_key, value=None)
    return Override(key=force_key, value=forced)


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StreamDescriptor:
    name: str
    tty: bool


@dataclass(frozen=True)
class EnvSnapshot:
    """Immutable view of everything detection is allowed to look at."""

    env: Mapping[str, str]
    stdin: StreamDescriptor
    stdout: StreamDescriptor
    stderr: StreamDescriptor
    color_level: ColorLevel = ColorLevel.NONE
    supports_hyperlinks: bool = False
    overrides: Overrides = field(default_factory=Overrides)

    @classmethod
    def capture(
        cls,
        env: Mapping[str, str] | None = None,
        oracle: TtyOracle | None = None,
    ) -> EnvSnapshot:
        """Freeze ``env`` (default: the process environment) and stream facts."""
        frozen = MappingProxyType(dict(os.environ if env is None else env))
        oracle = oracle if oracle is not None else SystemOracle()

        ttys = _tty_override(frozen)
        if ttys is None:
            ttys = tuple(oracle.is_tty(name) for name in STREAM_NAMES)  # type: ignore[assignment]
        stdin_tty, stdout_tty, stderr_tty = ttys  # type: ignore[misc]

        color = ColorLevel.parse(frozen.get(COLOR_LEVEL_OVERRIDE, ""))
        if color is None:
            color = oracle.color_level(frozen, stdout_tty)

        hyperlinks = parse_bool(frozen.get(HYPERLINKS_OVERRIDE))
        if hyperlinks is None:
            hyperlinks = oracle.supports_hyperlinks(frozen, stdout_tty)

        return cls(
            env=frozen,
            stdin=StreamDescriptor("stdin", stdin_tty),
            stdout=StreamDescriptor("stdout", stdout_tty),
            stderr=StreamDescriptor("stderr", stderr_tty),
            color_level=color,
            supports_hyperlinks=hyperlinks,
            overrides=Overrides.from_env(frozen),
        )

    @classmethod
    def from_mapping(
        cls,
        env: Mapping[str, str],
        *,
        stdin: bool = False,
        stdout: bool = False,
        stderr: bool = False,
        color_level: ColorLevel = ColorLevel.NONE,
        hyperlinks: bool = False,
    ) -> EnvSnapshot:
        oracle = FixedOracle(stdin, stdout, stderr, color_level, hyperlinks)
        return cls.capture(env, oracle=oracle)

    # -- environment access -------------------------------------------------

    def get(self, key: str) -> str | None:
        return self.env.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self.env

    def __iter__(self) -> Iterator[str]:
        return iter(self.env)

    def items(self) -> Iterator[tuple[str, str]]:
        return iter(self.env.items())

    def with_prefix(self, prefix: str) -> list[tuple[str, str]]:
        """All ``(key, value)`` pairs whose key starts with ``prefix``, sorted by key."""
        return sorted((k, v) for k, v in self.env.items() if k.startswith(prefix))

    # -- stream accessors ---------------------------------------------------

    @property
    def is_tty_stdin(self) -> bool:
        return self.stdin.tty

    @property
    def is_tty_stdout(self) -> bool:
        return self.stdout.tty

    @property
    def is_tty_stderr(self) -> bool:
        return self.stderr.tty

    def stream(self, name: str) -> StreamDescriptor:
        if name not in STREAM_NAMES:
            raise KeyError(name)
        return getattr(self, name)


def _tty_override(env: Mapping[str, str]) -> tuple[bool, bool, bool] | None:
    values = [parse_bool(env.get(key)) for key in TTY_OVERRIDE_KEYS]
    if any(v is None for v in values):
        return None
    return values[0], values[1], values[2]  # type: ignore[return-value]
