"""End-to-end tests of the chart-to-image pipeline with faked git and docker."""

import json
import os
from pathlib import Path

import pytest

import pipeline
from api_errors import NotFoundError, RetrievalError, RuntimeUnavailableError
from runtime_api import ImageInfo
from tests.helpers import write_chart


def make_handler(populate_checkout, inspect_record=None, present=True, pull_code=0):
    """Fake git clone (populating the checkout) and docker images/pull/inspect."""
    inspect_record = inspect_record or {"Size": 2000000, "RootFS": {"Layers": ["a", "b", "c"]}}

    def handler(args):
        if args[:2] == ["git", "clone"]:
            checkout = Path(args[-1])
            checkout.mkdir(parents=True)
            populate_checkout(checkout)
            return 0, b"", b""
        if args[1] == "images":
            return 0, b"4a1b2c3d" if present else b"", b""
        if args[1] == "pull":
            return pull_code, None, None
        if args[1:3] == ["image", "inspect"]:
            return 0, json.dumps([inspect_record]).encode(), b""
        raise AssertionError(f"unexpected command {args}")

    return handler


@pytest.fixture
def settings(tmp_path):
    return {"repo_config": {"storage_root": str(tmp_path / "repo_db")}}


def test_run_resolves_app_version_tag(fake_popen, settings):
    def populate(checkout):
        write_chart(
            checkout, "api",
            chart_yaml="apiVersion: v2\nname: api\nversion: 0.1.0\nappVersion: 1.2.0\n",
            values_yaml='image:\n  repository: example/api\n  tag: ""\n',
        )

    fake_popen.handler = make_handler(populate)

    info = pipeline.run("https://github.com/org/api-charts.git", settings)

    assert info == ImageInfo(name="example/api:1.2.0", size="2.00 MB", layers=3)
    assert ["docker", "image", "inspect", "example/api:1.2.0"] in fake_popen.calls


def test_run_skips_incomplete_chart(fake_popen, settings):
    def populate(checkout):
        write_chart(checkout, "api", chart_yaml="appVersion: 1.0.0\n")
        write_chart(
            checkout, "web",
            chart_yaml="appVersion: 2.0.0\n",
            values_yaml="image:\n  repository: example/web\n  tag: v3\n",
        )

    fake_popen.handler = make_handler(populate, present=False)

    info = pipeline.run("https://github.com/org/charts", settings)

    assert info.name == "example/web:v3"
    assert ["docker", "pull", "example/web:v3"] in fake_popen.calls


def test_run_without_charts_dir(fake_popen, settings):
    fake_popen.handler = make_handler(lambda checkout: (checkout / "Chart.yaml").write_text("name: x\n"))

    with pytest.raises(NotFoundError):
        pipeline.run("https://github.com/org/single-chart.git", settings)
    assert not any(call[0] == "docker" for call in fake_popen.calls)


def test_run_stops_on_clone_failure(fake_popen, settings):
    fake_popen.handler = lambda args: (128, b"", b"fatal: could not read from remote")

    with pytest.raises(RetrievalError):
        pipeline.run("https://github.com/org/private.git", settings)
    assert len(fake_popen.calls) == 1


def test_run_propagates_pull_failure(fake_popen, settings):
    def populate(checkout):
        write_chart(
            checkout, "api",
            chart_yaml="appVersion: 1.0.0\n",
            values_yaml="image:\n  repository: example/api\n",
        )

    fake_popen.handler = make_handler(populate, present=False, pull_code=1)

    with pytest.raises(RuntimeUnavailableError):
        pipeline.run("https://github.com/org/charts.git", settings)


def test_run_uses_configured_binaries(fake_popen, tmp_path):
    def handler(args):
        if args[1] == "clone":
            checkout = Path(args[-1])
            write_chart(
                checkout, "api",
                chart_yaml="appVersion: 1.0.0\n",
                values_yaml="image:\n  repository: example/api\n",
            )
            return 0, b"", b""
        if args[1] == "images":
            return 0, b"abc", b""
        return 0, json.dumps([{"Size": 0, "RootFS": {"Layers": []}}]).encode(), b""

    fake_popen.handler = handler
    settings = {
        "repo_config": {"storage_root": str(tmp_path), "git_binary": "/usr/local/bin/git"},
        "runtime_config": {"runtime_binary": "nerdctl"},
    }

    info = pipeline.run("https://github.com/org/charts.git", settings)

    assert info == ImageInfo(name="example/api:1.0.0", size="0.00 MB", layers=0)
    assert fake_popen.calls[0][0] == "/usr/local/bin/git"
    assert all(call[0] == "nerdctl" for call in fake_popen.calls[1:])


def test_run_removes_expired_checkouts(fake_popen, settings):
    storage_root = settings["repo_config"]["storage_root"]
    expired = os.path.join(storage_root, "20000101000000_old")
    os.makedirs(expired)

    def populate(checkout):
        write_chart(
            checkout, "api",
            chart_yaml="appVersion: 1.0.0\n",
            values_yaml="image:\n  repository: example/api\n",
        )

    fake_popen.handler = make_handler(populate)
    pipeline.run("https://github.com/org/charts.git", settings)

    assert not os.path.exists(expired)
