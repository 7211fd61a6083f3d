"""CI detector: vendor identification plus pull-request and branch signals.

The vendor comes from the CI rule group (highest confidence wins, so every
vendor beats the generic ``CI=true`` fallback).  PR and branch signals are
probed in a vendor-agnostic order; the first variable present decides.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from envsense.detectors import Detection, DetectorKind, apply_override
from envsense.rules import CI_RULES, CI_VENDOR_NAMES, GENERIC_CI_NAME, select_by_confidence
from envsense.schema import Evidence

if TYPE_CHECKING:
    from envsense.snapshot import EnvSnapshot

logger = logging.getLogger(__name__)


def _nonempty(value: str) -> bool:
    return bool(value.strip())


def _flag(value: str) -> bool:
    return value.strip().lower() not in {"", "false", "0", "no"}


PR_SIGNALS: tuple[tuple[str, Callable[[str], bool]], ...] = (
    ("GITHUB_EVENT_NAME", lambda value: value == "pull_request"),
    ("CI_MERGE_REQUEST_ID", _nonempty),
    ("CIRCLE_PR_NUMBER", _nonempty),
    ("CI_PULL_REQUEST", _flag),
)

BRANCH_SIGNALS: tuple[str, ...] = (
    "GITHUB_REF_NAME",
    "CI_COMMIT_REF_NAME",
    "CIRCLE_BRANCH",
    "BRANCH_NAME",
    "GIT_BRANCH",
)


def vendor_name(vendor: str) -> str:
    return CI_VENDOR_NAMES.get(vendor, GENERIC_CI_NAME)


def detect_ci(snap: EnvSnapshot) -> Detection:
    overridden = apply_override(snap, DetectorKind.CI)
    if overridden is not None and not overridden.traits:
        logger.debug("ci detection suppressed by override")
        return overridden

    if overridden is not None:
        detection = overridden
        vendor = detection.traits["ci.id"]
    else:
        detection = Detection(kind=DetectorKind.CI)
        rule = select_by_confidence(CI_RULES, snap)
        if rule is None:
            return detection
        vendor = rule.facets.get("ci_id", rule.id)
        detection.assert_id("ci", vendor, rule.confidence)
        for key, value in rule.witnesses(snap):
            detection.evidence.append(
                Evidence.env_var(
                    key, value, supports=["ci.id", "ci.vendor", "ci.name"], confidence=rule.confidence
                )
            )
        logger.debug("ci rule %r matched (confidence %.1f)", rule.id, rule.confidence)

    detection.traits["ci.vendor"] = vendor
    detection.traits["ci.name"] = vendor_name(vendor)
    _probe_pull_request(snap, detection)
    _probe_branch(snap, detection)
    return detection


def _probe_pull_request(snap: EnvSnapshot, detection: Detection) -> None:
    for key, is_pr in PR_SIGNALS:
        value = snap.get(key)
        if value is None:
            continue
        detection.traits["ci.is_pr"] = is_pr(value)
        detection.evidence.append(Evidence.env_var(key, value, supports=["ci.is_pr"]))
        return


def _probe_branch(snap: EnvSnapshot, detection: Detection) -> None:
    for key in BRANCH_SIGNALS:
        value = snap.get(key)
        if value is None or not value.strip():
            continue
        detection.traits["ci.branch"] = value
        detection.evidence.append(Evidence.env_var(key, value, supports=["ci.branch"]))
        return
