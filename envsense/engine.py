"""Detection pipeline: snapshot -> detectors -> merge.

    detect()        -> Report   # capture the live process environment
    detect(snap)    -> Report   # deterministic, for tests and embedding
"""

from __future__ import annotations

import logging
import time

from envsense.detectors import DETECTORS, Detection
from envsense.merge import merge
from envsense.schema import Report
from envsense.snapshot import EnvSnapshot

logger = logging.getLogger(__name__)

BUDGET_SECONDS = 0.1


def run_pipeline(snapshot: EnvSnapshot) -> tuple[Report, list[Detection]]:
    """Run every detector in fixed order and merge the results.

    Returns the merged report together with the raw detections so callers
    can inspect facets (such as the agent host) that are not report fields.
    """
    start = time.perf_counter()
    detections: list[Detection] = []
    for kind, detector in DETECTORS:
        detection = detector(snapshot)
        logger.debug(
            "%s detector: contexts=%s traits=%d evidence=%d",
            kind.value,
            detection.contexts,
            len(detection.traits),
            len(detection.evidence),
        )
        detections.append(detection)
    report = merge(detections)
    elapsed = time.perf_counter() - start
    logger.debug("detection pipeline finished in %.2f ms", elapsed * 1000)
    if elapsed > BUDGET_SECONDS:
        logger.warning(
            "detection pipeline took %.1f ms (budget %.0f ms)",
            elapsed * 1000,
            BUDGET_SECONDS * 1000,
        )
    return report, detections


def detect(snapshot: EnvSnapshot | None = None) -> Report:
    if snapshot is None:
        snapshot = EnvSnapshot.capture()
    report, _detections = run_pipeline(snapshot)
    return report
