"""Tests for envsense.merge: composing detections into one report."""

from __future__ import annotations

import pytest

from envsense.detectors import Detection, DetectorKind, run_detectors
from envsense.merge import merge, normalise_patch, resolves
from envsense.schema import SCHEMA_VERSION, ColorLevel, ContextKind, Evidence, Report
from envsense.snapshot import EnvSnapshot

SCENARIOS: list[dict[str, str]] = [
    {},
    {"CURSOR_AGENT": "1"},
    {"REPL_ID": "abc123"},
    {"ENVSENSE_ASSUME_HUMAN": "1", "CURSOR_AGENT": "1"},
    {"GITHUB_ACTIONS": "true", "GITHUB_EVENT_NAME": "pull_request", "GITHUB_REF_NAME": "main"},
    {"TERM_PROGRAM": "vscode", "TERM_PROGRAM_VERSION": "1.86.0-insider"},
    {"TERM_PROGRAM": "vscode", "CURSOR_TRACE_ID": "x", "CLAUDECODE": "1", "CI": "1"},
    {"ENVSENSE_AGENT": "bot", "ENVSENSE_IDE": "none", "ENVSENSE_CI": "custom"},
    {"SANDBOX_A": "1", "AIDER_B": "2", "REPLIT_DB_URL": "x"},
]

STREAMS = [
    {},
    {"stdin": True, "stdout": True, "stderr": True},
    {"stdin": True, "stdout": False, "stderr": True},
]


def detections(env: dict[str, str], **streams) -> list[Detection]:
    return run_detectors(EnvSnapshot.from_mapping(env, **streams))


def all_reports():
    for env in SCENARIOS:
        for streams in STREAMS:
            yield merge(detections(env, **streams))


# ---------------------------------------------------------------------------
# Report invariants
# ---------------------------------------------------------------------------

class TestInvariants:

    @pytest.mark.parametrize("report", list(all_reports()))
    def test_piped_is_not_tty(self, report: Report):
        terminal = report.traits.terminal
        for stream in (terminal.stdin, terminal.stdout, terminal.stderr):
            assert stream.piped is (not stream.tty)

    @pytest.mark.parametrize("report", list(all_reports()))
    def test_interactive(self, report: Report):
        terminal = report.traits.terminal
        assert terminal.interactive is (terminal.stdin.tty and terminal.stdout.tty)

    @pytest.mark.parametrize("report", list(all_reports()))
    def test_contexts_match_ids(self, report: Report):
        for branch in ("agent", "ide", "ci"):
            has_id = getattr(report.traits, branch).id is not None
            assert report.has_context(branch) is has_id

    @pytest.mark.parametrize("report", list(all_reports()))
    def test_evidence_supports_resolve(self, report: Report):
        for item in report.evidence:
            assert item.supports
            for path in item.supports:
                assert resolves(report, path), path

    @pytest.mark.parametrize("report", list(all_reports()))
    def test_json_round_trip(self, report: Report):
        assert Report.from_json(report.to_json()) == report

    @pytest.mark.parametrize("env", SCENARIOS)
    def test_merging_twice_is_idempotent(self, env):
        found = detections(env)
        once = merge(found)
        twice = merge(found + found)
        assert once.contexts == twice.contexts
        assert once.traits == twice.traits
        assert once.version == twice.version

    @pytest.mark.parametrize("env", SCENARIOS)
    def test_deterministic(self, env):
        assert merge(detections(env)).to_json() == merge(detections(env)).to_json()


# ---------------------------------------------------------------------------
# Composition rules
# ---------------------------------------------------------------------------

def make(kind: DetectorKind, confidence: float, **traits) -> Detection:
    d = Detection(kind=kind, confidence=confidence)
    d.traits.update({k.replace("__", "."): v for k, v in traits.items()})
    return d


class TestComposition:

    def test_empty_environment(self):
        report = merge(detections({}))
        assert report.contexts == []
        assert report.traits.agent.id is None
        assert report.traits.ide.id is None
        assert report.traits.ci.id is None
        assert report.evidence == []
        assert report.version == SCHEMA_VERSION

    def test_highest_confidence_id_wins(self):
        low = make(DetectorKind.AGENT, 0.6, agent__id="unknown")
        high = make(DetectorKind.AGENT, 1.0, agent__id="cursor")
        assert merge([low, high]).traits.agent.id == "cursor"
        assert merge([high, low]).traits.agent.id == "cursor"

    def test_tie_keeps_first(self):
        first = make(DetectorKind.IDE, 1.0, ide__id="vscode")
        second = make(DetectorKind.IDE, 1.0, ide__id="zed")
        assert merge([first, second]).traits.ide.id == "vscode"

    def test_branch_fields_travel_with_winning_id(self):
        winner = make(DetectorKind.CI, 1.0, ci__id="gitlab_ci", ci__name="GitLab CI")
        loser = make(DetectorKind.CI, 0.6, ci__id="generic", ci__name="Generic CI", ci__branch="x")
        report = merge([winner, loser])
        assert report.traits.ci.name == "GitLab CI"
        assert report.traits.ci.branch is None

    def test_terminal_last_writer_wins(self):
        a = make(DetectorKind.TERMINAL, 1.0, terminal__color_level="ansi16")
        b = make(DetectorKind.TERMINAL, 1.0, terminal__color_level="truecolor")
        assert merge([a, b]).traits.terminal.color_level == ColorLevel.TRUECOLOR

    def test_legacy_keys_accepted(self):
        d = Detection(
            kind=DetectorKind.TERMINAL,
            traits={"is_tty_stdin": True, "is_tty_stdout": True, "color_level": "ansi256", "supports_hyperlinks": True},
        )
        report = merge([d])
        assert report.traits.terminal.stdin.tty is True
        assert report.traits.terminal.interactive is True
        assert report.traits.terminal.color_level == ColorLevel.ANSI256
        assert report.traits.terminal.supports_hyperlinks is True

    def test_nested_path_beats_legacy_alias(self):
        patch = normalise_patch({"is_tty_stdin": False, "terminal.stdin.tty": True})
        assert patch == {"terminal.stdin.tty": True}

    def test_stream_invariants_recomputed(self):
        d = Detection(
            kind=DetectorKind.TERMINAL,
            traits={"terminal.stdout.tty": True, "terminal.stdout.piped": True, "terminal.interactive": True},
        )
        report = merge([d])
        assert report.traits.terminal.stdout.piped is False
        assert report.traits.terminal.interactive is False

    def test_unknown_paths_ignored(self):
        d = Detection(kind=DetectorKind.AGENT, traits={"agent.model": "x", "host": "replit", "bogus.id": "y"})
        report = merge([d])
        assert report.traits.agent.id is None

    def test_invalid_value_ignored(self):
        d = Detection(kind=DetectorKind.TERMINAL, traits={"terminal.color_level": "sixteen-million"})
        assert merge([d]).traits.terminal.color_level == ColorLevel.NONE

    def test_evidence_order_and_duplicates_kept(self):
        ev = Evidence.env_var("CURSOR_AGENT", "1", supports=["agent.id"])
        a = make(DetectorKind.AGENT, 1.0, agent__id="cursor")
        a.evidence.append(ev)
        b = make(DetectorKind.AGENT, 1.0, agent__id="cursor")
        b.evidence.append(ev)
        report = merge([a, b])
        assert [e.key for e in report.evidence] == ["CURSOR_AGENT", "CURSOR_AGENT"]

    def test_evidence_pruned_to_populated_paths(self):
        d = detections({"REPL_ID": "abc"})
        report = merge(d)
        [item] = report.evidence
        assert item.supports == ["agent.id"]

    def test_evidence_copied_not_shared(self):
        found = detections({"CURSOR_AGENT": "1"})
        report = merge(found)
        report.evidence[0].value = "changed"
        assert found[1].evidence[0].value == "1"

    def test_contexts_filtered_and_sorted(self):
        d = Detection(kind=DetectorKind.CI, contexts=["remote", "bogus", "container"])
        report = merge([d, make(DetectorKind.AGENT, 1.0, agent__id="x")])
        assert report.contexts == [ContextKind.AGENT, ContextKind.CONTAINER, ContextKind.REMOTE]

    def test_context_without_id_dropped(self):
        d = Detection(kind=DetectorKind.CI, contexts=["ci"])
        assert merge([d]).contexts == []
