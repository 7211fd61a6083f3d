"""Detectors: pure functions from an :class:`EnvSnapshot` to a :class:`Detection`.

Detectors hold no state and know nothing about each other.  They are run in
the fixed order terminal -> agent -> IDE -> CI; that order determines the
order of evidence in the merged report.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from envsense.schema import Confidence, Evidence

if TYPE_CHECKING:
    from envsense.snapshot import EnvSnapshot


class DetectorKind(str, Enum):
    TERMINAL = "terminal"
    AGENT = "agent"
    IDE = "ide"
    CI = "ci"


@dataclass
class Detection:
    """Partial result produced by one detector.

    ``traits`` maps dotted trait paths (``"ci.branch"``, ``"terminal.stdin.tty"``)
    or legacy flat keys (``"is_interactive"``) to JSON values.  ``facets`` holds
    supplementary values that are not report fields, such as the agent host.
    """

    kind: DetectorKind
    contexts: list[str] = field(default_factory=list)
    traits: dict[str, Any] = field(default_factory=dict)
    facets: dict[str, str] = field(default_factory=dict)
    evidence: list[Evidence] = field(default_factory=list)
    confidence: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not (self.contexts or self.traits or self.evidence)

    def assert_id(self, branch: str, value: str, confidence: float) -> None:
        """Set ``<branch>.id`` and add the matching context tag."""
        self.traits[f"{branch}.id"] = value
        if branch not in self.contexts:
            self.contexts.append(branch)
        self.confidence = confidence


def apply_override(snap: EnvSnapshot, kind: DetectorKind) -> Detection | None:
    """Short-circuit ``kind`` when an ``ENVSENSE_*`` override is in force.

    Returns ``None`` when detection should proceed normally, an empty
    detection when it is suppressed, and a single-evidence detection when an
    identifier is forced.
    """
    override = snap.overrides.for_kind(kind.value)
    if override is None:
        return None
    detection = Detection(kind=kind)
    if override.suppressed:
        return detection
    branch = kind.value
    detection.assert_id(branch, override.value or "", Confidence.HIGH)
    detection.evidence.append(
        Evidence.env_var(override.key, override.value or "", supports=[branch, f"{branch}.id"])
    )
    return detection


from envsense.detectors.agent import detect_agent  # noqa: E402
from envsense.detectors.ci import detect_ci  # noqa: E402
from envsense.detectors.ide import detect_ide  # noqa: E402
from envsense.detectors.terminal import detect_terminal  # noqa: E402

DETECTORS: tuple[tuple[DetectorKind, Callable[[EnvSnapshot], Detection]], ...] = (
    (DetectorKind.TERMINAL, detect_terminal),
    (DetectorKind.AGENT, detect_agent),
    (DetectorKind.IDE, detect_ide),
    (DetectorKind.CI, detect_ci),
)


def run_detectors(snap: EnvSnapshot) -> list[Detection]:
    return [detector(snap) for _kind, detector in DETECTORS]


__all__ = [
    "DETECTORS",
    "Detection",
    "DetectorKind",
    "apply_override",
    "detect_agent",
    "detect_ci",
    "detect_ide",
    "detect_terminal",
    "run_detectors",
]
