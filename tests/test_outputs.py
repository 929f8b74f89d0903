"""Tests for exporting step outputs."""

from autoprovision.src.ci import outputs as outputs_module
from autoprovision.src.ci.outputs import ProvisionOutputs, export_outputs


def make_outputs():
    return ProvisionOutputs(
        export_method="app-store",
        team_id="TEAM123",
        development_codesign_identity="Apple Development: Bot (ABC)",
        production_codesign_identity="Apple Distribution: Example (TEAM123)",
        development_profile="dev-uuid",
        production_profile="prod-uuid",
    )


def test_as_env_keys():
    env = make_outputs().as_env()
    assert env["BITRISE_EXPORT_METHOD"] == "app-store"
    assert env["BITRISE_DEVELOPER_TEAM"] == "TEAM123"
    assert env["BITRISE_PRODUCTION_PROFILE"] == "prod-uuid"
    assert len(env) == 6


def test_export_to_github_output(tmp_path, monkeypatch):
    github_output = tmp_path / "github_output"
    monkeypatch.setattr(outputs_module.shutil, "which", lambda name: None)
    monkeypatch.setenv("GITHUB_OUTPUT", str(github_output))

    export_outputs(make_outputs())

    lines = github_output.read_text(encoding="utf-8").splitlines()
    assert "BITRISE_EXPORT_METHOD=app-store" in lines
    assert "BITRISE_DEVELOPMENT_PROFILE=dev-uuid" in lines


def test_export_with_envman(monkeypatch):
    calls = []

    class Result:
        returncode = 0
        stderr = ""

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        return Result()

    monkeypatch.setattr(outputs_module.shutil, "which", lambda name: "/usr/local/bin/envman")
    monkeypatch.setattr(outputs_module.subprocess, "run", fake_run)

    export_outputs(make_outputs())

    assert len(calls) == 6
    assert calls[0] == [
        "/usr/local/bin/envman",
        "add",
        "--key",
        "BITRISE_EXPORT_METHOD",
        "--value",
        "app-store",
    ]
