"""Shared test fixtures for envsense tests."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable

import pytest
from typer.testing import CliRunner

from envsense.engine import detect
from envsense.schema import Report
from envsense.snapshot import EnvSnapshot


@pytest.fixture
def runner() -> CliRunner:
    """Provide a CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def clean_environ(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Run every test against an empty process environment.

    HOME points at a scratch directory and ENVSENSE_CONFIG at a file that
    does not exist, so no user configuration leaks into the results.
    """
    for key in list(os.environ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("ENVSENSE_CONFIG", str(tmp_path / "absent.toml"))


@pytest.fixture(autouse=True)
def restore_root_logging():
    """Drop handlers that ``--verbose`` attached to the runner's streams."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def report_for() -> Callable[..., Report]:
    """Build a report from a literal environment with non-TTY streams."""

    def build(env: dict[str, str] | None = None, **streams: bool) -> Report:
        return detect(EnvSnapshot.from_mapping(env or {}, **streams))

    return build
