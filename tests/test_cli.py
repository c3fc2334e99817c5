from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from typer.testing import CliRunner

from weighted_approvals.cli.main import app

POLICY = """\
weights:
  users:
    alice: 2
rules:
  - paths: ["src/**"]
    required_total: 2
"""


class _Outcome:
    def __init__(self, passed: bool) -> None:
        self.passed = passed
        self.status_line = f"weighted-approvals: required=2 current={2 if passed else 1}"


def _snapshot(tmp_path: Path, approver: str) -> Path:
    path = tmp_path / "snapshot.json"
    path.write_text(
        json.dumps(
            {
                "changed_files": ["src/a.py"],
                "reviews": [{"user": {"login": approver}, "state": "APPROVED"}],
            }
        ),
        encoding="utf-8",
    )
    return path


def _policy(tmp_path: Path, text: str = POLICY) -> Path:
    path = tmp_path / "policy.yml"
    path.write_text(text, encoding="utf-8")
    return path


def _action_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    event_path = tmp_path / "event.json"
    event_path.write_text(json.dumps({"pull_request": {"number": 1}}), encoding="utf-8")
    monkeypatch.setenv("INPUT_TOKEN", "ghs_test")
    monkeypatch.setenv("GITHUB_REPOSITORY", "acme/widgets")
    monkeypatch.setenv("GITHUB_EVENT_PATH", str(event_path))
    monkeypatch.setenv("GITHUB_EVENT_NAME", "pull_request")
    monkeypatch.delenv("INPUT_FAIL_ON_ERROR", raising=False)
    monkeypatch.delenv("INPUT_DEBUG", raising=False)
    monkeypatch.delenv("INPUT_CONFIG_PATH", raising=False)


def test_cli_init_creates_config_file(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(app, ["init", str(tmp_path)])

    assert result.exit_code == 0
    config_path = tmp_path / ".github" / "weighted-approvals.yml"
    assert config_path.exists()
    assert "Created configuration at" in result.output

    again = runner.invoke(app, ["init", str(tmp_path)])
    assert again.exit_code == 1
    assert "already exists" in again.output


def test_cli_evaluate_passing_snapshot(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(app, ["evaluate", str(_policy(tmp_path)), str(_snapshot(tmp_path, "alice"))])

    assert result.exit_code == 0
    assert "Required total: 2" in result.output
    assert "- alice: +2" in result.output.splitlines()


def test_cli_evaluate_failing_snapshot(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(app, ["evaluate", str(_policy(tmp_path)), str(_snapshot(tmp_path, "bob"))])

    assert result.exit_code == 1
    assert "Current total: 1" in result.output


def test_cli_evaluate_reports_errors(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(app, ["evaluate", str(_policy(tmp_path, "[]")), str(_snapshot(tmp_path, "a"))])

    assert result.exit_code == 1
    assert "Error: Config must be a YAML mapping/object." in result.output


def test_cli_validate_reports_drops_and_errors(tmp_path: Path) -> None:
    runner = CliRunner()
    good = _policy(tmp_path, POLICY.replace("alice: 2", "alice: lots"))
    bad = tmp_path / "bad.yml"
    bad.write_text("42\n", encoding="utf-8")

    ok_result = runner.invoke(app, ["validate", str(good)])
    bad_result = runner.invoke(app, ["validate", str(good), str(bad)])

    assert ok_result.exit_code == 0
    assert f"{good}: ok (1 rules)" in ok_result.output
    assert "  dropped weight: weights.users.alice: 'lots' is not a finite number" in ok_result.output
    assert bad_result.exit_code == 1
    assert f"{bad}: error: Config must be a YAML mapping/object." in bad_result.output


def test_cli_run_reports_success(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    runner = CliRunner()
    captured: dict[str, Any] = {}
    _action_env(monkeypatch, tmp_path)

    def fake_run_check(settings: Any, event: Any, repository: str, client: Any, **kwargs: Any) -> _Outcome:
        captured["settings"] = settings
        captured["event"] = event
        captured["repository"] = repository
        captured.update(kwargs)
        return _Outcome(passed=True)

    monkeypatch.setattr("weighted_approvals.cli.main.run_check", fake_run_check)

    result = runner.invoke(app, ["run", "--config-path", "policy/custom.yml"])

    assert result.exit_code == 0
    assert "::notice::weighted-approvals: required=2 current=2" in result.output
    assert captured["settings"].token == "ghs_test"
    assert captured["settings"].config_path == "policy/custom.yml"
    assert captured["repository"] == "acme/widgets"
    assert captured["event"] == {"pull_request": {"number": 1}}
    assert captured["event_name"] == "pull_request"


def test_cli_run_fails_when_not_satisfied(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    runner = CliRunner()
    _action_env(monkeypatch, tmp_path)
    monkeypatch.setattr(
        "weighted_approvals.cli.main.run_check", lambda *_a, **_k: _Outcome(passed=False)
    )

    result = runner.invoke(app, ["run"])

    assert result.exit_code == 1
    assert "::error::weighted-approvals: required=2 current=1" in result.output


def test_cli_run_error_exit_code_follows_fail_on_error(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    runner = CliRunner()
    _action_env(monkeypatch, tmp_path)
    monkeypatch.delenv("INPUT_TOKEN")

    strict = runner.invoke(app, ["run"])
    monkeypatch.setenv("INPUT_FAIL_ON_ERROR", "false")
    lenient = runner.invoke(app, ["run"])

    assert strict.exit_code == 1
    assert "::error::Input required and not supplied: token" in strict.output
    assert lenient.exit_code == 0
    assert "Error: Input required and not supplied: token" in lenient.output
