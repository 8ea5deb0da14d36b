"""Test configuration and fixtures."""

import subprocess

import pytest

from tests.helpers import FakePopen


@pytest.fixture
def fake_popen(monkeypatch):
    """Patch subprocess.Popen; tests set fake_popen.handler."""
    FakePopen.calls = []
    FakePopen.handler = lambda args: (0, b"", b"")
    monkeypatch.setattr(subprocess, "Popen", FakePopen)
    return FakePopen


@pytest.fixture
def chart_repo(tmp_path):
    """An empty repository checkout directory."""
    repo = tmp_path / "checkout"
    repo.mkdir()
    return repo
