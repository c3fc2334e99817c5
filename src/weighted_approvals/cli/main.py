"""CLI entrypoints for weighted-approvals."""

from __future__ import annotations

import os
from pathlib import Path

import typer

from weighted_approvals.app import (
    evaluate_snapshot,
    initialize_config,
    load_event,
    run_check,
    validate_configs,
)
from weighted_approvals.config import SettingsError, load_settings, require_token, update_config_path
from weighted_approvals.directives import parse_trusted_associations
from weighted_approvals.engine import DecisionOptions
from weighted_approvals.github.client import GitHubClient
from weighted_approvals.normalizer import ConfigError
from weighted_approvals.util.logging import annotate, configure_logging

app = typer.Typer(help="Weighted pull-request approval checks.")


@app.callback()
def main(
    log_level: str = typer.Option(
        "INFO",
        "--log-level",
        help="Logging level (e.g., DEBUG, INFO, WARNING).",
    ),
) -> None:
    """Configure CLI-level options."""

    configure_logging(log_level)


@app.command("run")
def run_command(
    config_path: str | None = typer.Option(
        None,
        "--config-path",
        help="Policy file path in the repository (overrides INPUT_CONFIG_PATH).",
    ),
) -> None:
    """Evaluate the pull request of the current GitHub Actions event."""

    settings = load_settings()
    if config_path:
        settings = update_config_path(settings, config_path)
    if settings.debug:
        configure_logging(debug=True)

    try:
        require_token(settings)
        repository = os.environ.get("GITHUB_REPOSITORY", "")
        if not repository:
            raise SettingsError("GITHUB_REPOSITORY missing")
        event = load_event(os.environ.get("GITHUB_EVENT_PATH"))
        client = GitHubClient.from_repository(
            settings.token,
            repository,
            api_url=os.environ.get("GITHUB_API_URL") or "https://api.github.com",
        )
        outcome = run_check(
            settings,
            event,
            repository,
            client,
            event_name=os.environ.get("GITHUB_EVENT_NAME"),
        )
    except Exception as exc:
        annotate("error", str(exc))
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1 if settings.fail_on_error else 0) from exc

    if outcome.passed:
        annotate("notice", outcome.status_line)
        return
    annotate("error", outcome.status_line)
    raise typer.Exit(code=1)


@app.command("evaluate")
def evaluate_command(
    config: Path = typer.Argument(..., help="Local policy file."),
    snapshot: Path = typer.Argument(..., help="JSON snapshot of the pull request."),
    label_prefix: str = typer.Option("wa:+", "--label-prefix", help="Required-total label prefix."),
    directive_prefix: str = typer.Option("ma:", "--directive-prefix", help="Comment directive prefix."),
    trusted: str = typer.Option(
        "OWNER,MEMBER,COLLABORATOR",
        "--trusted-associations",
        help="Comma-separated author associations allowed to issue directives.",
    ),
) -> None:
    """Evaluate a local snapshot offline and print the summary."""

    options = DecisionOptions(
        label_prefix=label_prefix,
        directive_prefix=directive_prefix,
        trusted_associations=parse_trusted_associations(trusted),
    )
    try:
        outcome = evaluate_snapshot(config, snapshot, options)
    except Exception as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1) from exc

    typer.echo(outcome.summary)
    if not outcome.passed:
        raise typer.Exit(code=1)


@app.command("validate")
def validate_command(
    configs: list[Path] = typer.Argument(..., help="Policy files to check."),
) -> None:
    """Normalize policy files and report dropped entries."""

    failed = False
    for result in validate_configs(configs):
        if not result.ok:
            failed = True
            typer.echo(f"{result.path}: error: {result.error}")
            continue
        rules = len(result.policy.rules) if result.policy else 0
        typer.echo(f"{result.path}: ok ({rules} rules)")
        for reason in result.dropped_rules:
            typer.echo(f"  dropped rule: {reason}")
        for reason in result.dropped_weights:
            typer.echo(f"  dropped weight: {reason}")
    if failed:
        raise typer.Exit(code=1)


@app.command()
def init(workspace: Path = typer.Argument(Path("."))) -> None:
    """Write a starter policy file into a repository workspace."""

    try:
        config_path = initialize_config(workspace)
    except ConfigError as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1) from exc
    typer.echo(f"Created configuration at {config_path}")
