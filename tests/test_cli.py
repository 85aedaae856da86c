"""CLI smoke tests with stores in a temp dir."""

import json

import pytest
from typer.testing import CliRunner

from cadence import cli
from cadence.services import build_services

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_services(settings, monkeypatch):
    monkeypatch.setattr(cli, "build_services", lambda: build_services(settings))


def test_estimate_without_brand():
    result = runner.invoke(cli.app, ["estimate", "--model", "veo-3.0", "--duration", "8", "--audio"])
    assert result.exit_code == 0
    assert "$6.00" in result.output


def test_estimate_unknown_model():
    result = runner.invoke(cli.app, ["estimate", "--model", "sora"])
    assert result.exit_code == 1


def test_brand_config_creates_and_updates():
    missing = runner.invoke(cli.app, ["brand-config", "acme"])
    assert missing.exit_code == 1

    result = runner.invoke(cli.app, ["brand-config", "acme", "--name", "Acme", "--enable", "--budget", "20"])
    assert result.exit_code == 0, result.output
    config = json.loads(result.output[result.output.index("{"):])
    assert config["enabled"] is True
    assert config["monthly_budget_usd"] == 20

    estimate = runner.invoke(cli.app, ["estimate", "--brand-id", "acme"])
    assert estimate.exit_code == 0
    assert "Can generate." in estimate.output


def test_brand_config_rejects_invalid_values():
    runner.invoke(cli.app, ["brand-config", "acme", "--name", "Acme"])
    result = runner.invoke(cli.app, ["brand-config", "acme", "--default-duration", "8", "--max-duration", "4"])
    assert result.exit_code == 1


def test_jobs_and_reap(settings):
    tracker = build_services(settings).tracker
    job = tracker.create("c1", "single")

    listed = runner.invoke(cli.app, ["jobs", "--content-id", "c1", "--json"])
    assert listed.exit_code == 0
    assert json.loads(listed.output)[0]["id"] == job.id

    reaped = runner.invoke(cli.app, ["reap"])
    assert reaped.exit_code == 0
    assert "Reaped 0 job(s)." in reaped.output
