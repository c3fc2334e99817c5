"""Application wiring: GitHub event in, check run out."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from weighted_approvals.advisory import (
    AdvisoryError,
    AdvisoryResult,
    create_advisory_analyzer,
    result_from_payload,
)
from weighted_approvals.config import ActionSettings
from weighted_approvals.engine import (
    DecisionEngine,
    DecisionOptions,
    PullRequestFacts,
    Verdict,
    evaluate_offline,
)
from weighted_approvals.github.base import GitHubError, PullRequestSource
from weighted_approvals.llm.base import LLMClient, LLMClientError
from weighted_approvals.normalizer import (
    ConfigError,
    NormalizationReport,
    load_policy_text,
    normalize,
)
from weighted_approvals.policy import Policy, format_number
from weighted_approvals.summary import SummaryContext, render_summary
from weighted_approvals.util.logging import get_logger
from weighted_approvals.util.observability import ObservabilityManager, create_observability_manager

_LOGGER = get_logger("weighted_approvals.app")

STARTER_CONFIG = """\
# Weighted approvals policy. Read from the pull request's base commit.
weights:
  default: 1
  precedence: max        # max | user | team
  users:
    octocat: 2
  teams:
    my-org/platform: 2

rules:
  - paths: ["**"]
    required_total: 1
  - paths: ["/src/**"]
    required_total: 2
    approvers:
      any:
        my-org/platform: 1
"""


class EventError(RuntimeError):
    """Raised when the triggering event does not describe a pull request."""


@dataclass(frozen=True)
class CheckOutcome:
    """Result of one check run.

    Attributes:
        passed: Whether the pull request satisfies the policy.
        required_total: Final required weight.
        current_total: Counted approval weight.
        summary: Rendered report.
        verdict: Full verdict for callers that need more detail.
    """

    passed: bool
    required_total: float
    current_total: float
    summary: str
    verdict: Verdict

    @property
    def status_line(self) -> str:
        return (
            f"weighted-approvals: required={format_number(self.required_total)} "
            f"current={format_number(self.current_total)}"
        )


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one policy file."""

    path: Path
    policy: Policy | None = None
    dropped_rules: list[str] = field(default_factory=list)
    dropped_weights: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def load_event(path: Path | str | None) -> dict[str, Any]:
    """Read the webhook payload written by the Actions runner.

    Raises:
        EventError: If the path is missing or the file is unreadable.
    """

    if not path:
        raise EventError("GITHUB_EVENT_PATH missing/unreadable")
    return _read_json_object(Path(path), "GITHUB_EVENT_PATH")


def resolve_pull_number(event: Mapping[str, Any], event_name: str | None = None) -> int:
    """Return the pull-request number of a PR, review or issue-comment event.

    Raises:
        EventError: If no number is present or the issue is not a pull request.
    """

    pr = event.get("pull_request") if isinstance(event.get("pull_request"), Mapping) else None
    issue = event.get("issue") if isinstance(event.get("issue"), Mapping) else None
    number = (pr or {}).get("number") or event.get("number") or (issue or {}).get("number")
    if not number:
        raise EventError(f"Not a PR/issue event (missing number). event={event_name}")
    if pr is None and not (issue and issue.get("pull_request")):
        raise EventError(f"Event is not a PR (issue has no pull_request). event={event_name}")
    return int(number)


def run_check(
    settings: ActionSettings,
    event: Mapping[str, Any],
    repository: str,
    client: PullRequestSource,
    *,
    event_name: str | None = None,
    llm_client: LLMClient | None = None,
    environ: Mapping[str, str] | None = None,
    observability: ObservabilityManager | None = None,
) -> CheckOutcome:
    """Evaluate the pull request behind ``event`` and publish the check run.

    Args:
        settings: Runtime inputs.
        event: Webhook payload.
        repository: ``owner/repo`` the event belongs to.
        client: GitHub collaborator.
        event_name: Event name, used in error messages only.
        llm_client: Optional LLM client overriding the configured provider.
        environ: Environment holding the advisory API key.
        observability: Optional observability manager.

    Returns:
        The check outcome.

    Raises:
        EventError: If the event is not about a pull request.
        ConfigError: If the policy file is unusable.
        GitHubError: If a required GitHub call fails.
    """

    pull_number = resolve_pull_number(event, event_name)
    observability = observability or create_observability_manager(repository=repository)
    observability = replace(
        observability, events=observability.events.bind(pull_number=pull_number)
    )
    pr = event.get("pull_request")
    if not isinstance(pr, Mapping):
        pr = client.get_pull_request(pull_number)

    head_sha = (pr.get("head") or {}).get("sha")
    if not head_sha:
        raise EventError("Missing pull_request.head.sha")
    base = pr.get("base") or {}
    config_ref = base.get("sha") or base.get("ref") or "main"

    _LOGGER.info("Evaluating %s#%s at %s", repository, pull_number, head_sha)
    policy = normalize(load_policy_text(client.fetch_repo_file(settings.config_path, config_ref)))
    changed_files = client.list_pull_files(pull_number)
    reviews = _mappings(client.list_pull_reviews(pull_number))
    try:
        comments = _mappings(client.list_issue_comments(pull_number))
    except GitHubError as exc:
        _LOGGER.debug(
            "Unable to read PR comments for %s override: %s", settings.comment_directive_prefix, exc
        )
        comments = []

    advisory, advisory_note = _run_advisory(
        policy,
        client,
        pull_number,
        pr,
        changed_files,
        llm_client=llm_client,
        environ=environ,
        observability=observability,
    )

    facts = PullRequestFacts(
        changed_files=tuple(changed_files),
        reviews=tuple(reviews),
        labels=tuple(label for label in pr.get("labels") or () if isinstance(label, Mapping)),
        comments=tuple(comments),
        advisory=advisory,
        advisory_note=advisory_note,
    )
    engine = DecisionEngine(client, options=settings.decision_options(), observability=observability)
    verdict = engine.evaluate(policy, facts)

    summary = render_summary(
        SummaryContext(
            repository=repository,
            pull_number=pull_number,
            head_sha=head_sha,
            config_path=settings.config_path,
            changed_files_count=len(changed_files),
        ),
        verdict,
    )
    _publish_check_run(client, settings.check_name, head_sha, verdict, summary, observability)
    observability.log_event("run.metrics", observability.metrics.snapshot(), level="DEBUG")
    return CheckOutcome(
        passed=verdict.passed,
        required_total=verdict.required_total,
        current_total=verdict.current_total,
        summary=summary,
        verdict=verdict,
    )


def _run_advisory(
    policy: Policy,
    client: PullRequestSource,
    pull_number: int,
    pr: Mapping[str, Any],
    changed_files: list[str],
    *,
    llm_client: LLMClient | None,
    environ: Mapping[str, str] | None,
    observability: ObservabilityManager,
) -> tuple[AdvisoryResult | None, str | None]:
    if policy.advisory is None:
        return None, None
    try:
        analyzer = create_advisory_analyzer(
            policy.advisory, environ=environ, client=llm_client, observability=observability
        )
        if analyzer is None:
            return None, None
        _LOGGER.debug("Advisory analysis enabled, fetching diff")
        diff = client.get_pull_diff(pull_number)
        result = analyzer.analyze(diff, changed_files, pr.get("title"), pr.get("body"))
    except (AdvisoryError, GitHubError, LLMClientError, ValueError) as exc:
        message = str(exc) or exc.__class__.__name__
        _LOGGER.warning("Advisory analysis failed, using path-based rules only: %s", message)
        observability.log_event("advisory.failed", {"error": message}, level="WARNING")
        return None, message
    return result, None


def _publish_check_run(
    client: PullRequestSource,
    check_name: str,
    head_sha: str,
    verdict: Verdict,
    summary: str,
    observability: ObservabilityManager,
) -> None:
    title = "Weighted approvals satisfied" if verdict.passed else "Weighted approvals missing"
    output = {"title": title, "summary": summary, "text": summary}

    existing_id: int | None = None
    try:
        for run in client.list_check_runs(head_sha):
            if run.get("name") == check_name and run.get("id"):
                existing_id = int(run["id"])
                break
    except GitHubError as exc:
        _LOGGER.debug("Unable to list existing check runs: %s", exc)

    if existing_id is not None:
        client.update_check_run(
            check_run_id=existing_id, conclusion=verdict.conclusion, output=output
        )
    else:
        client.create_check_run(
            name=check_name, head_sha=head_sha, conclusion=verdict.conclusion, output=output
        )
    observability.log_event(
        "check_run.published",
        {"name": check_name, "conclusion": verdict.conclusion, "updated": existing_id is not None},
    )


def evaluate_snapshot(
    config_path: Path,
    snapshot_path: Path,
    options: DecisionOptions | None = None,
) -> CheckOutcome:
    """Evaluate a local policy file against a JSON snapshot of a pull request.

    The snapshot holds ``changed_files``, ``reviews``, ``labels``, ``comments``,
    ``team_members`` (``{team: [login, ...]}``) and optionally ``advisory``,
    ``repository``, ``pull_number`` and ``head_sha``.

    Raises:
        ConfigError: If the policy file is unusable.
        EventError: If the snapshot cannot be read.
    """

    policy = normalize(load_policy_text(config_path.read_text(encoding="utf-8")))
    snapshot = _read_json_object(snapshot_path, "Snapshot")

    advisory = None
    raw_advisory = snapshot.get("advisory")
    if raw_advisory is not None and policy.advisory is not None:
        try:
            advisory = result_from_payload(raw_advisory, policy.advisory.teams)
        except ValueError as exc:
            raise EventError(f"Invalid advisory block in snapshot: {exc}") from exc

    changed_files = [str(path) for path in snapshot.get("changed_files") or []]
    facts = PullRequestFacts(
        changed_files=tuple(changed_files),
        reviews=tuple(_mappings(snapshot.get("reviews"))),
        labels=tuple(_mappings(snapshot.get("labels"))),
        comments=tuple(_mappings(snapshot.get("comments"))),
        advisory=advisory,
    )
    verdict = evaluate_offline(policy, facts, snapshot.get("team_members") or {}, options)
    summary = render_summary(
        SummaryContext(
            repository=str(snapshot.get("repository") or "local/snapshot"),
            pull_number=int(snapshot.get("pull_number") or 0),
            head_sha=str(snapshot.get("head_sha") or "unknown"),
            config_path=str(config_path),
            changed_files_count=len(changed_files),
        ),
        verdict,
    )
    return CheckOutcome(
        passed=verdict.passed,
        required_total=verdict.required_total,
        current_total=verdict.current_total,
        summary=summary,
        verdict=verdict,
    )


def validate_configs(paths: Iterable[Path]) -> list[ValidationResult]:
    """Normalize each policy file and collect what was dropped."""

    results: list[ValidationResult] = []
    for path in paths:
        report = NormalizationReport()
        try:
            policy = normalize(load_policy_text(path.read_text(encoding="utf-8")), report)
        except (ConfigError, OSError) as exc:
            results.append(ValidationResult(path=path, error=str(exc)))
            continue
        results.append(
            ValidationResult(
                path=path,
                policy=policy,
                dropped_rules=report.dropped_rules,
                dropped_weights=report.dropped_weights,
            )
        )
    return results


def initialize_config(workspace: Path) -> Path:
    """Write a starter policy file into ``workspace``.

    Raises:
        ConfigError: If the policy file already exists.
    """

    config_path = workspace.resolve() / ".github" / "weighted-approvals.yml"
    if config_path.exists():
        raise ConfigError(
            f"Config file already exists at {config_path}. Remove it or edit it in place."
        )
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(STARTER_CONFIG, encoding="utf-8")
    _LOGGER.info("Wrote starter policy to %s", config_path)
    return config_path


def _read_json_object(path: Path, what: str) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise EventError(f"{what} missing/unreadable: {path}") from exc
    if not isinstance(data, dict):
        raise EventError(f"{what} at {path} is not a JSON object.")
    return data


def _mappings(raw: Any) -> list[Mapping[str, Any]]:
    if not isinstance(raw, list):
        return []
    return [item for item in raw if isinstance(item, Mapping)]
