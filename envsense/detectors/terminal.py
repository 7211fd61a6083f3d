"""Terminal detector: stream TTY state plus colour and hyperlink support.

Has no rules.  Everything comes straight from the snapshot's stream facts.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from envsense.detectors import Detection, DetectorKind
from envsense.schema import Confidence
from envsense.snapshot import STREAM_NAMES

if TYPE_CHECKING:
    from envsense.snapshot import EnvSnapshot


def detect_terminal(snap: EnvSnapshot) -> Detection:
    detection = Detection(kind=DetectorKind.TERMINAL, confidence=Confidence.TERMINAL)
    traits = detection.traits
    for name in STREAM_NAMES:
        tty = snap.stream(name).tty
        traits[f"terminal.{name}.tty"] = tty
        traits[f"terminal.{name}.piped"] = not tty
    traits["terminal.interactive"] = snap.is_tty_stdin and snap.is_tty_stdout
    traits["terminal.color_level"] = snap.color_level.value
    traits["terminal.supports_hyperlinks"] = snap.supports_hyperlinks
    return detection
