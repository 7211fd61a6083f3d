"""Agent detector: which AI coding agent, if any, drives the session.

Picks the matching agent rule with the highest confidence (earlier rules win
ties).  The agent's host is resolved alongside it: from the winning rule's
``host`` facet, else, when no agent rule matched, from the first matching
host rule, else ``"unknown"``.  ``ENVSENSE_ASSUME_HUMAN=1`` suppresses both.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from envsense.detectors import Detection, DetectorKind, apply_override
from envsense.rules import AGENT_RULES, HOST_RULES, first_match, select_by_confidence
from envsense.schema import Evidence

if TYPE_CHECKING:
    from envsense.snapshot import EnvSnapshot

logger = logging.getLogger(__name__)

UNKNOWN_HOST = "unknown"


def detect_agent(snap: EnvSnapshot) -> Detection:
    overridden = apply_override(snap, DetectorKind.AGENT)
    if overridden is not None and not overridden.traits:
        logger.debug("agent detection suppressed by override")
        return overridden

    host: str | None = None
    rule_matched = False
    if overridden is not None:
        detection = overridden
        logger.debug("agent forced to %r by override", detection.traits["agent.id"])
    else:
        detection = Detection(kind=DetectorKind.AGENT)
        rule = select_by_confidence(AGENT_RULES, snap)
        if rule is not None:
            rule_matched = True
            host = rule.facets.get("host")
            supports = ["agent.id", "host"] if host else ["agent.id"]
            detection.assert_id("agent", rule.id, rule.confidence)
            for context in rule.contexts:
                if context not in detection.contexts:
                    detection.contexts.append(context)
            for key, value in rule.witnesses(snap):
                detection.evidence.append(
                    Evidence.env_var(key, value, supports=supports, confidence=rule.confidence)
                )
            logger.debug("agent rule %r matched (confidence %.1f)", rule.id, rule.confidence)

    if host is None and not rule_matched:
        host_rule = first_match(HOST_RULES, snap)
        if host_rule is not None:
            host = host_rule.facets["host"]
            for key, value in host_rule.witnesses(snap):
                detection.evidence.append(
                    Evidence.env_var(key, value, supports=["host"], confidence=host_rule.confidence)
                )

    detection.facets["host"] = host or UNKNOWN_HOST
    return detection
