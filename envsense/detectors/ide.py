"""IDE detector: which editor hosts the terminal.

Selection is by rule priority rather than confidence, so ``cursor-ide``
(priority 3) beats ``vscode-insiders`` (2) and plain ``vscode`` (1) whenever
their conditions overlap.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from envsense.detectors import Detection, DetectorKind, apply_override
from envsense.rules import IDE_RULES, select_by_priority
from envsense.schema import Evidence

if TYPE_CHECKING:
    from envsense.snapshot import EnvSnapshot

logger = logging.getLogger(__name__)


def detect_ide(snap: EnvSnapshot) -> Detection:
    overridden = apply_override(snap, DetectorKind.IDE)
    if overridden is not None:
        return overridden

    detection = Detection(kind=DetectorKind.IDE)
    rule = select_by_priority(IDE_RULES, snap)
    if rule is None:
        return detection

    detection.assert_id("ide", rule.facets.get("ide_id", rule.id), rule.confidence)
    for key, value in rule.witnesses(snap):
        detection.evidence.append(
            Evidence.env_var(key, value, supports=["ide.id"], confidence=rule.confidence)
        )
    logger.debug("ide rule %r matched (priority %d)", rule.id, rule.priority)
    return detection
