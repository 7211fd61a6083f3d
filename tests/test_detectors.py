"""Tests for envsense.detectors: one pure function per detector kind."""

from __future__ import annotations

from envsense.detectors import (
    DETECTORS,
    Detection,
    DetectorKind,
    apply_override,
    detect_agent,
    detect_ci,
    detect_ide,
    detect_terminal,
    run_detectors,
)
from envsense.schema import ColorLevel, Signal
from envsense.snapshot import EnvSnapshot


def snap(env: dict[str, str] | None = None, **streams) -> EnvSnapshot:
    return EnvSnapshot.from_mapping(env or {}, **streams)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

class TestDispatch:

    def test_fixed_order(self):
        assert [kind for kind, _ in DETECTORS] == [
            DetectorKind.TERMINAL,
            DetectorKind.AGENT,
            DetectorKind.IDE,
            DetectorKind.CI,
        ]

    def test_run_detectors_returns_fresh_detections(self):
        first = run_detectors(snap())
        second = run_detectors(snap())
        assert [d.kind for d in first] == [k for k, _ in DETECTORS]
        assert first[0] is not second[0]

    def test_snapshot_untouched(self):
        s = snap({"CURSOR_AGENT": "1"})
        before = dict(s.env)
        run_detectors(s)
        assert dict(s.env) == before


# ---------------------------------------------------------------------------
# Terminal
# ---------------------------------------------------------------------------

class TestTerminal:

    def test_streams(self):
        d = detect_terminal(snap(stdin=True, stdout=False, stderr=True))
        assert d.traits["terminal.stdin.tty"] is True
        assert d.traits["terminal.stdout.piped"] is True
        assert d.traits["terminal.interactive"] is False

    def test_interactive(self):
        d = detect_terminal(snap(stdin=True, stdout=True))
        assert d.traits["terminal.interactive"] is True

    def test_capabilities(self):
        d = detect_terminal(snap(color_level=ColorLevel.ANSI256, hyperlinks=True))
        assert d.traits["terminal.color_level"] == "ansi256"
        assert d.traits["terminal.supports_hyperlinks"] is True

    def test_no_contexts_full_confidence(self):
        d = detect_terminal(snap())
        assert d.contexts == []
        assert d.confidence == 1.0
        assert d.evidence == []


# ---------------------------------------------------------------------------
# Agent
# ---------------------------------------------------------------------------

class TestAgent:

    def test_cursor(self):
        d = detect_agent(snap({"CURSOR_AGENT": "1"}))
        assert d.traits["agent.id"] == "cursor"
        assert d.contexts == ["agent"]
        [ev] = d.evidence
        assert (ev.signal, ev.key, ev.value, ev.confidence) == (Signal.ENV, "CURSOR_AGENT", "1", 1.0)
        assert "agent.id" in ev.supports

    def test_replit_sets_host(self):
        d = detect_agent(snap({"REPL_ID": "abc123"}))
        assert d.traits["agent.id"] == "replit-agent"
        assert d.facets["host"] == "replit"
        assert d.evidence[0].supports == ["agent.id", "host"]

    def test_cursor_beats_replit_on_tie(self):
        d = detect_agent(snap({"CURSOR_AGENT": "1", "REPL_ID": "abc"}))
        assert d.traits["agent.id"] == "cursor"

    def test_prefix_agent_medium_confidence(self):
        d = detect_agent(snap({"SANDBOX_VOLUMES": "/w", "SANDBOX_USER_ID": "1"}))
        assert d.traits["agent.id"] == "openhands"
        assert d.confidence == 0.8
        assert [e.key for e in d.evidence] == ["SANDBOX_USER_ID", "SANDBOX_VOLUMES"]

    def test_direct_beats_prefix(self):
        d = detect_agent(snap({"AIDER_MODEL": "x", "CLAUDECODE": "1"}))
        assert d.traits["agent.id"] == "claude-code"

    def test_unknown_agent(self):
        d = detect_agent(snap({"IS_CODE_AGENT": "1"}))
        assert d.traits["agent.id"] == "unknown"
        assert d.confidence == 0.6

    def test_host_fallback_without_agent(self):
        d = detect_agent(snap({"GITHUB_CODESPACES_PORT_FORWARDING_DOMAIN": "x"}))
        assert "agent.id" not in d.traits
        assert d.facets["host"] == "codespaces"

    def test_host_unknown(self):
        d = detect_agent(snap())
        assert d.facets["host"] == "unknown"
        assert d.is_empty

    def test_assume_human(self):
        d = detect_agent(snap({"ENVSENSE_ASSUME_HUMAN": "1", "CURSOR_AGENT": "1", "REPLIT_DB_URL": "x"}))
        assert d.is_empty
        assert "host" not in d.facets

    def test_forced_agent(self):
        d = detect_agent(snap({"ENVSENSE_AGENT": "my-bot", "CURSOR_AGENT": "1"}))
        assert d.traits["agent.id"] == "my-bot"
        [ev] = [e for e in d.evidence if e.key == "ENVSENSE_AGENT"]
        assert ev.value == "my-bot"
        assert ev.supports == ["agent", "agent.id"]
        assert d.confidence == 1.0

    def test_none_sentinel(self):
        d = detect_agent(snap({"ENVSENSE_AGENT": "none", "CLAUDECODE": "1"}))
        assert d.is_empty


# ---------------------------------------------------------------------------
# IDE
# ---------------------------------------------------------------------------

class TestIde:

    def test_vscode(self):
        d = detect_ide(snap({"TERM_PROGRAM": "vscode"}))
        assert d.traits["ide.id"] == "vscode"
        assert d.contexts == ["ide"]

    def test_insiders(self):
        d = detect_ide(snap({"TERM_PROGRAM": "vscode", "TERM_PROGRAM_VERSION": "1.86.0-insider"}))
        assert d.traits["ide.id"] == "vscode-insiders"

    def test_cursor_wins_by_priority(self):
        d = detect_ide(
            snap(
                {
                    "TERM_PROGRAM": "vscode",
                    "TERM_PROGRAM_VERSION": "1.86.0-insider",
                    "CURSOR_TRACE_ID": "xyz",
                }
            )
        )
        assert d.traits["ide.id"] == "cursor"

    def test_other_terminal(self):
        assert detect_ide(snap({"TERM_PROGRAM": "iTerm.app"})).is_empty

    def test_assume_terminal(self):
        d = detect_ide(snap({"ENVSENSE_ASSUME_TERMINAL": "1", "TERM_PROGRAM": "vscode"}))
        assert d.is_empty

    def test_forced(self):
        d = detect_ide(snap({"ENVSENSE_IDE": "zed"}))
        assert d.traits["ide.id"] == "zed"
        assert d.evidence[0].key == "ENVSENSE_IDE"


# ---------------------------------------------------------------------------
# CI
# ---------------------------------------------------------------------------

class TestCi:

    def test_github_pull_request(self):
        d = detect_ci(
            snap({"GITHUB_ACTIONS": "true", "GITHUB_EVENT_NAME": "pull_request", "GITHUB_REF_NAME": "main"})
        )
        assert d.traits["ci.id"] == "github_actions"
        assert d.traits["ci.vendor"] == "github_actions"
        assert d.traits["ci.name"] == "GitHub Actions"
        assert d.traits["ci.is_pr"] is True
        assert d.traits["ci.branch"] == "main"
        assert d.contexts == ["ci"]

    def test_push_event_is_not_pr(self):
        d = detect_ci(snap({"GITHUB_ACTIONS": "true", "GITHUB_EVENT_NAME": "push"}))
        assert d.traits["ci.is_pr"] is False

    def test_gitlab_merge_request(self):
        d = detect_ci(
            snap({"GITLAB_CI": "true", "CI_MERGE_REQUEST_ID": "42", "CI_COMMIT_REF_NAME": "feature/x"})
        )
        assert d.traits["ci.name"] == "GitLab CI"
        assert d.traits["ci.is_pr"] is True
        assert d.traits["ci.branch"] == "feature/x"

    def test_pr_signal_order(self):
        d = detect_ci(snap({"CIRCLECI": "true", "CIRCLE_PR_NUMBER": "7", "CI_PULL_REQUEST": "false"}))
        assert d.traits["ci.is_pr"] is True
        assert [e.key for e in d.evidence if e.supports == ["ci.is_pr"]] == ["CIRCLE_PR_NUMBER"]

    def test_branch_order(self):
        d = detect_ci(snap({"JENKINS_URL": "http://ci", "BRANCH_NAME": "dev", "GIT_BRANCH": "origin/dev"}))
        assert d.traits["ci.id"] == "jenkins"
        assert d.traits["ci.branch"] == "dev"

    def test_generic(self):
        d = detect_ci(snap({"CI": "true"}))
        assert d.traits["ci.id"] == "generic"
        assert d.traits["ci.name"] == "Generic CI"
        assert d.confidence == 0.6

    def test_no_ci(self):
        d = detect_ci(snap({"GITHUB_REF_NAME": "main"}))
        assert d.is_empty

    def test_assume_local(self):
        assert detect_ci(snap({"ENVSENSE_ASSUME_LOCAL": "1", "GITHUB_ACTIONS": "true"})).is_empty

    def test_forced_slug(self):
        d = detect_ci(snap({"ENVSENSE_CI": "homegrown", "GIT_BRANCH": "main"}))
        assert d.traits["ci.id"] == "homegrown"
        assert d.traits["ci.name"] == "Generic CI"
        assert d.traits["ci.branch"] == "main"

    def test_forced_known_vendor_gets_name(self):
        d = detect_ci(snap({"ENVSENSE_CI": "buildkite"}))
        assert d.traits["ci.name"] == "Buildkite"


# ---------------------------------------------------------------------------
# Overrides helper
# ---------------------------------------------------------------------------

class TestApplyOverride:

    def test_no_override(self):
        assert apply_override(snap(), DetectorKind.CI) is None

    def test_suppressed(self):
        d = apply_override(snap({"ENVSENSE_CI": "none"}), DetectorKind.CI)
        assert isinstance(d, Detection) and d.is_empty

    def test_opaque_slug_kept_verbatim(self):
        d = apply_override(snap({"ENVSENSE_IDE": "Weird Slug!"}), DetectorKind.IDE)
        assert d is not None and d.traits["ide.id"] == "Weird Slug!"
