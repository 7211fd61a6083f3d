"""Compose independent detections into one canonical :class:`Report`.

The merge is a left fold over detections in invocation order:

* context tags are unioned;
* for ``agent``, ``ide`` and ``ci`` the identifier with the highest
  confidence wins and a tie keeps the first writer; the other fields of a
  branch travel with the identifier that won it;
* ``terminal.*`` is last-writer-wins;
* legacy flat keys are accepted as aliases for their ``terminal.*`` paths,
  with the nested path winning when a detection provides both;
* evidence is appended in order, never deduplicated.

Afterwards the stream invariants are recomputed (``piped = not tty``,
``interactive = stdin.tty and stdout.tty``), contexts are reconciled with
identifiers, and evidence ``supports`` entries that name nothing present in
the report are pruned.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, ValidationError

from envsense.detectors import Detection
from envsense.schema import SCHEMA_VERSION, ContextKind, Evidence, Report, StreamInfo
from envsense.snapshot import STREAM_NAMES

logger = logging.getLogger(__name__)

ID_BRANCHES: tuple[str, ...] = ("agent", "ide", "ci")

LEGACY_TRAIT_ALIASES: dict[str, str] = {
    "is_interactive": "terminal.interactive",
    "color_level": "terminal.color_level",
    "is_tty_stdin": "terminal.stdin.tty",
    "is_tty_stdout": "terminal.stdout.tty",
    "is_tty_stderr": "terminal.stderr.tty",
    "supports_hyperlinks": "terminal.supports_hyperlinks",
}

_CONTEXT_VALUES = {c.value for c in ContextKind}


def normalise_patch(patch: dict[str, Any]) -> dict[str, Any]:
    """Rewrite legacy flat keys to nested paths; nested paths take precedence."""
    nested = {k: v for k, v in patch.items() if k not in LEGACY_TRAIT_ALIASES}
    for legacy, path in LEGACY_TRAIT_ALIASES.items():
        if legacy in patch and path not in nested:
            nested[path] = patch[legacy]
    return nested


def merge(detections: Iterable[Detection]) -> Report:
    report = Report()
    contexts: set[str] = set()
    id_confidence: dict[str, float] = {}
    evidence: list[Evidence] = []

    for detection in detections:
        contexts.update(detection.contexts)
        by_branch: dict[str, dict[str, Any]] = {}
        for path, value in normalise_patch(detection.traits).items():
            branch, _, rest = path.partition(".")
            if not rest:
                logger.debug("ignoring trait %r from %s: not a dotted path", path, detection.kind.value)
                continue
            by_branch.setdefault(branch, {})[rest] = value

        for branch, fields in by_branch.items():
            if branch in ID_BRANCHES and fields.get("id") is not None:
                previous = id_confidence.get(branch)
                if previous is not None and detection.confidence <= previous:
                    logger.debug(
                        "%s.id from %s (%.1f) loses to earlier writer (%.1f)",
                        branch,
                        detection.kind.value,
                        detection.confidence,
                        previous,
                    )
                    continue
                id_confidence[branch] = detection.confidence
            for rest, value in fields.items():
                _assign(report.traits, [branch, *rest.split(".")], value)

        evidence.extend(item.model_copy(deep=True) for item in detection.evidence)

    for name in STREAM_NAMES:
        stream: StreamInfo = getattr(report.traits.terminal, name)
        stream.piped = not stream.tty
    terminal = report.traits.terminal
    terminal.interactive = terminal.stdin.tty and terminal.stdout.tty

    for branch in ID_BRANCHES:
        if getattr(report.traits, branch).id is not None:
            contexts.add(branch)
        else:
            contexts.discard(branch)

    report.contexts = [ContextKind(c) for c in contexts if c in _CONTEXT_VALUES]
    report.evidence = _prune_evidence(report, evidence)
    report.version = SCHEMA_VERSION
    return report


def _assign(model: BaseModel, segments: list[str], value: Any) -> None:
    target: Any = model
    for segment in segments[:-1]:
        if not isinstance(target, BaseModel) or segment not in type(target).model_fields:
            logger.debug("ignoring unknown trait path %s", ".".join(segments))
            return
        target = getattr(target, segment)
    leaf = segments[-1]
    if not isinstance(target, BaseModel) or leaf not in type(target).model_fields:
        logger.debug("ignoring unknown trait path %s", ".".join(segments))
        return
    try:
        setattr(target, leaf, value)
    except ValidationError as exc:
        logger.debug("ignoring invalid value for %s: %s", ".".join(segments), exc)


def resolves(report: Report, path: str) -> bool:
    """True when ``path`` names a context tag or a populated trait of ``report``."""
    if path in _CONTEXT_VALUES:
        return report.has_context(path)
    node: Any = report.trait_tree()
    for segment in path.split("."):
        if not isinstance(node, dict) or segment not in node:
            return False
        node = node[segment]
    return True


def _prune_evidence(report: Report, evidence: list[Evidence]) -> list[Evidence]:
    kept: list[Evidence] = []
    for item in evidence:
        supports = [path for path in item.supports if resolves(report, path)]
        if not supports:
            logger.debug("dropping evidence %s: supports nothing in the report", item.key)
            continue
        item.supports = supports
        kept.append(item)
    return kept
