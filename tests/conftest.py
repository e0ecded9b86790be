"""Pytest fixtures for tdaid tests."""

import shutil
from collections.abc import Iterator
from pathlib import Path

import pytest

from tdaid import vcs
from tdaid.errors import TransportError
from tdaid.prompts import IMPLEMENTATION_FILE, TEST_FILE


class FakeProvider:
    """Completion provider that replays canned responses and records every call.

    A response that is an exception instance is raised instead of returned.
    """

    def __init__(self, responses=(), streams=()) -> None:
        self.responses = list(responses)
        self.streams = list(streams)
        self.calls: list[dict] = []

    def generate(self, system, messages, schema=None) -> str:
        self.calls.append({"kind": "generate", "system": system, "messages": list(messages), "schema": schema})
        if not self.responses:
            raise TransportError("no more canned responses")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def stream(self, system, messages) -> Iterator[str]:
        self.calls.append({"kind": "stream", "system": system, "messages": list(messages), "schema": None})
        yield from self.streams.pop(0)


@pytest.fixture
def git_env(monkeypatch, tmp_path):
    """Isolate git from the user's configuration."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(tmp_path / "gitconfig"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test Author")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "author@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test Committer")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "committer@example.com")


@pytest.fixture
def workdir(tmp_path, git_env) -> Path:
    """A git repository holding a stub implementation and a test file."""
    root = tmp_path / "work"
    root.mkdir()
    (root / TEST_FILE).write_text("package main\n\n// tests for Foo\n", encoding="utf-8")
    (root / IMPLEMENTATION_FILE).write_text("package main\n", encoding="utf-8")
    vcs.ensure_repository(root)
    return root
