"""Declarative rule table and the generic matcher that walks it.

Every environment-to-identifier mapping lives here as data.  Adding a new
agent, editor or CI vendor means appending a :class:`Rule` to the right
group; detectors only decide *which* matching rule wins.

Matching
--------
A rule matches a snapshot when every ``required`` indicator matches and, if
the rule has any non-required indicators, at least one of them matches.  An
indicator names one key and at most one refinement:

    value     exact value match
    contains  case-insensitive substring of the value
    prefix    the key is a prefix over all environment-variable names

A rule's priority is the maximum priority of its indicators.

Selection
---------
``select_by_confidence`` keeps the first rule with the strictly highest
confidence, so among equal-confidence matches the earlier rule in its group
wins.  ``select_by_priority`` does the same on priority.  Group order is
therefore part of the contract and is never re-sorted at runtime.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import TYPE_CHECKING

from envsense.schema import Confidence

if TYPE_CHECKING:
    from envsense.snapshot import EnvSnapshot

HIGH = Confidence.HIGH
MEDIUM = Confidence.MEDIUM
LOW = Confidence.LOW


@dataclass(frozen=True)
class Indicator:
    key: str
    value: str | None = None
    contains: str | None = None
    prefix: bool = False
    required: bool = False
    priority: int = 0

    def __post_init__(self) -> None:
        refinements = sum([self.value is not None, self.contains is not None, self.prefix])
        if refinements > 1:
            raise ValueError(f"indicator {self.key!r} may carry at most one of value/contains/prefix")

    def matches(self, snap: EnvSnapshot) -> bool:
        if self.prefix:
            return any(k.startswith(self.key) for k in snap)
        actual = snap.get(self.key)
        if actual is None:
            return False
        if self.value is not None:
            return actual == self.value
        if self.contains is not None:
            return self.contains.lower() in actual.lower()
        return True

    def witnesses(self, snap: EnvSnapshot) -> list[tuple[str, str]]:
        """``(key, value)`` pairs from the snapshot that make this indicator match."""
        if self.prefix:
            return snap.with_prefix(self.key)
        if not self.matches(snap):
            return []
        return [(self.key, snap.get(self.key) or "")]


@dataclass(frozen=True)
class Rule:
    id: str
    indicators: tuple[Indicator, ...]
    confidence: float = HIGH
    facets: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    contexts: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.indicators:
            raise ValueError(f"rule {self.id!r} needs at least one indicator")
        if not isinstance(self.facets, MappingProxyType):
            object.__setattr__(self, "facets", MappingProxyType(dict(self.facets)))

    @property
    def priority(self) -> int:
        return max(i.priority for i in self.indicators)

    def matches(self, snap: EnvSnapshot) -> bool:
        optional = [i for i in self.indicators if not i.required]
        if not all(i.matches(snap) for i in self.indicators if i.required):
            return False
        return not optional or any(i.matches(snap) for i in optional)

    def witnesses(self, snap: EnvSnapshot) -> list[tuple[str, str]]:
        """Evidence pairs, one per matching indicator (prefix indicators may yield several)."""
        pairs: list[tuple[str, str]] = []
        for indicator in self.indicators:
            pairs.extend(indicator.witnesses(snap))
        return pairs


def _rule(
    id: str,
    *indicators: Indicator,
    confidence: float = HIGH,
    facets: Mapping[str, str] | None = None,
    contexts: Iterable[str] = (),
) -> Rule:
    return Rule(
        id=id,
        indicators=tuple(indicators),
        confidence=confidence,
        facets=MappingProxyType(dict(facets or {})),
        contexts=tuple(contexts),
    )


def present(key: str, **kwargs: object) -> Indicator:
    return Indicator(key=key, **kwargs)  # type: ignore[arg-type]


def prefixed(key: str, **kwargs: object) -> Indicator:
    return Indicator(key=key, prefix=True, **kwargs)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Agents
# ---------------------------------------------------------------------------
# Ordered: when two rules of equal confidence match, the earlier one wins.

AGENT_RULES: tuple[Rule, ...] = (
    _rule("cursor", present("CURSOR_AGENT"), contexts=["agent"]),
    _rule("claude-code", present("CLAUDECODE"), contexts=["agent"]),
    _rule("cline", present("CLINE_ACTIVE"), contexts=["agent"]),
    _rule("replit-agent", present("REPL_ID"), facets={"host": "replit"}, contexts=["agent"]),
    _rule("openhands", prefixed("SANDBOX_"), confidence=MEDIUM, contexts=["agent"]),
    _rule("aider", prefixed("AIDER_"), confidence=MEDIUM, contexts=["agent"]),
    _rule("unknown", present("IS_CODE_AGENT", value="1"), confidence=LOW, contexts=["agent"]),
)


# ---------------------------------------------------------------------------
# Hosts (consulted by the agent detector only when no agent rule set one)
# ---------------------------------------------------------------------------

HOST_RULES: tuple[Rule, ...] = (
    _rule("replit-host", prefixed("REPLIT_"), confidence=LOW, facets={"host": "replit"}),
    _rule("codespaces", prefixed("GITHUB_CODESPACES_"), confidence=LOW, facets={"host": "codespaces"}),
    _rule(
        "ci",
        present("GITHUB_ACTIONS", value="1"),
        present("CI", value="1"),
        confidence=LOW,
        facets={"host": "ci"},
    ),
)


# ---------------------------------------------------------------------------
# IDEs (selected by priority, not confidence)
# ---------------------------------------------------------------------------

IDE_RULES: tuple[Rule, ...] = (
    _rule(
        "cursor-ide",
        present("TERM_PROGRAM", value="vscode", required=True, priority=3),
        present("CURSOR_TRACE_ID", required=True, priority=3),
        facets={"ide_id": "cursor"},
        contexts=["ide"],
    ),
    _rule(
        "vscode-insiders",
        present("TERM_PROGRAM", value="vscode", required=True, priority=2),
        Indicator("TERM_PROGRAM_VERSION", contains="insider", required=True, priority=2),
        facets={"ide_id": "vscode-insiders"},
        contexts=["ide"],
    ),
    _rule(
        "vscode",
        present("TERM_PROGRAM", value="vscode", required=True, priority=1),
        facets={"ide_id": "vscode"},
        contexts=["ide"],
    ),
)


# ---------------------------------------------------------------------------
# CI vendors
# ---------------------------------------------------------------------------

def _ci(vendor: str, *indicators: Indicator, confidence: float = HIGH, priority: int = 1) -> Rule:
    bumped = tuple(replace(i, priority=max(i.priority, priority)) for i in indicators)
    return _rule(vendor, *bumped, confidence=confidence, facets={"ci_id": vendor}, contexts=["ci"])


CI_RULES: tuple[Rule, ...] = (
    _ci("github_actions", present("GITHUB_ACTIONS")),
    _ci("gitlab_ci", present("GITLAB_CI")),
    _ci("circleci", present("CIRCLECI")),
    _ci("buildkite", present("BUILDKITE")),
    _ci("jenkins", present("JENKINS_URL"), present("JENKINS_HOME")),
    _ci("teamcity", present("TEAMCITY_VERSION")),
    _ci("bitbucket_pipelines", present("BITBUCKET_BUILD_NUMBER")),
    _ci("azure_pipelines", present("TF_BUILD"), present("AZURE_HTTP_USER_AGENT")),
    _ci("appveyor", present("APPVEYOR")),
    _ci("aws_codebuild", present("CODEBUILD_BUILD_ID")),
    _ci("google_cloud_build", present("GOOGLE_CLOUD_BUILD")),
    _ci("vercel", present("VERCEL")),
    _ci("sourcehut", present("CI_NAME", value="sourcehut")),
    _ci("travis", present("TRAVIS")),
    _ci("drone", present("DRONE")),
    _ci("woodpecker", present("WOODPECKER_CI")),
    _ci("netlify", present("NETLIFY")),
    # Generic fallback, below every vendor on both confidence and priority.
    _ci("generic", present("CI", value="true"), present("CI", value="1"), confidence=LOW, priority=0),
)

CI_VENDOR_NAMES: Mapping[str, str] = MappingProxyType({
    "github_actions": "GitHub Actions",
    "gitlab_ci": "GitLab CI",
    "circleci": "CircleCI",
    "buildkite": "Buildkite",
    "jenkins": "Jenkins",
    "teamcity": "TeamCity",
    "bitbucket_pipelines": "Bitbucket Pipelines",
    "azure_pipelines": "Azure Pipelines",
    "appveyor": "AppVeyor",
    "aws_codebuild": "AWS CodeBuild",
    "google_cloud_build": "Google Cloud Build",
    "vercel": "Vercel",
    "sourcehut": "SourceHut",
    "travis": "Travis CI",
    "drone": "Drone CI",
    "woodpecker": "Woodpecker CI",
    "netlify": "Netlify",
    "generic": "Generic CI",
})

GENERIC_CI_NAME = "Generic CI"


RULE_TABLE: Mapping[str, tuple[Rule, ...]] = MappingProxyType({
    "agent": AGENT_RULES,
    "host": HOST_RULES,
    "ide": IDE_RULES,
    "ci": CI_RULES,
})


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def matching(rules: Iterable[Rule], snap: EnvSnapshot) -> list[Rule]:
    return [rule for rule in rules if rule.matches(snap)]


def select_by_confidence(rules: Iterable[Rule], snap: EnvSnapshot) -> Rule | None:
    best: Rule | None = None
    for rule in rules:
        if rule.matches(snap) and (best is None or rule.confidence > best.confidence):
            best = rule
    return best


def select_by_priority(rules: Iterable[Rule], snap: EnvSnapshot) -> Rule | None:
    best: Rule | None = None
    for rule in rules:
        if rule.matches(snap) and (best is None or rule.priority > best.priority):
            best = rule
    return best


def first_match(rules: Iterable[Rule], snap: EnvSnapshot) -> Rule | None:
    for rule in rules:
        if rule.matches(snap):
            return rule
    return None
