"""Decision composition for one pull request.

:func:`decide` is pure: given a policy, the pull-request facts and the
resolved approver weights it returns a :class:`Verdict`. :class:`DecisionEngine`
adds the team-membership lookups and structured logging around it.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from weighted_approvals.advisory import AdvisoryResult, map_criticality_to_approvers
from weighted_approvals.conditions import (
    TeamSatisfaction,
    compute_required_by_team,
    compute_team_satisfaction,
    is_approver_allowed,
    merge_required,
)
from weighted_approvals.directives import (
    DEFAULT_TRUSTED_ASSOCIATIONS,
    apply_ma_cap,
    find_latest_ma_override,
    parse_timestamp,
)
from weighted_approvals.github.base import TeamMembershipOracle
from weighted_approvals.normalizer import normalize
from weighted_approvals.policy import MaOverride, Policy, Rule
from weighted_approvals.rules import compute_required, find_label_override
from weighted_approvals.util.logging import get_logger
from weighted_approvals.util.observability import ObservabilityManager
from weighted_approvals.weights import (
    ApproverWeight,
    StaticTeamMembership,
    WeightResolution,
    WeightResolver,
)

_LOGGER = get_logger("weighted_approvals.engine")
_TIMESTAMP_KEYS = ("submitted_at", "submittedAt", "created_at", "createdAt")


@dataclass(frozen=True)
class DecisionOptions:
    """Runtime knobs that are not part of the policy file.

    Attributes:
        label_prefix: Prefix of ``<prefix>N`` labels raising the required total.
        directive_prefix: Prefix of ``ma:`` comment directives.
        trusted_associations: Author associations whose directives are honored.
    """

    label_prefix: str = "wa:+"
    directive_prefix: str = "ma:"
    trusted_associations: frozenset[str] = DEFAULT_TRUSTED_ASSOCIATIONS


@dataclass(frozen=True)
class PullRequestFacts:
    """Everything observed about the pull request being evaluated.

    Attributes:
        changed_files: Repository-relative paths touched by the PR.
        reviews: Raw review payloads, in API order.
        labels: Raw label payloads (``{"name": ...}``).
        comments: Raw issue comment payloads.
        advisory: Advisory result, when the analysis ran and succeeded.
        advisory_note: Why the advisory analysis did not contribute, if it failed.
    """

    changed_files: tuple[str, ...] = ()
    reviews: tuple[Mapping[str, Any], ...] = ()
    labels: tuple[Mapping[str, Any], ...] = ()
    comments: tuple[Mapping[str, Any], ...] = ()
    advisory: AdvisoryResult | None = None
    advisory_note: str | None = None


@dataclass(frozen=True)
class LatestReview:
    """The most recent review left by one login."""

    login: str
    review: Mapping[str, Any]


@dataclass(frozen=True)
class CountedApprover:
    """An approver whose weight counted toward the current total."""

    login: str
    weight: float
    matched_teams: tuple[str, ...] = ()


@dataclass(frozen=True)
class Verdict:
    """Outcome of evaluating a pull request against a policy.

    Attributes:
        required_total: Final threshold (rules, label and advisory floors).
        current_total: Sum of counted approver weights.
        required_by_team: Mandatory headcount per team.
        team_satisfaction: Per-team headcount check.
        passed: True when both the total and the team requirements are met.
        counted_approvers: Approvers whose weight counted, in review order.
        skipped_approvers: Annotated logins whose approval did not count.
        matched_rules: Rules matching at least one changed file.
        max_rules: Matched rules setting the rule-derived threshold.
        rules_required_total: Threshold from rules alone.
        label_override: Threshold requested by a label, if any.
        ma_override: Active comment override, if any.
        team_errors: Team-membership lookup failures.
        advisory: Advisory result, if one contributed.
        advisory_required: Threshold derived from the advisory criticality.
        advisory_note: Why advisory analysis was skipped, if it was.
    """

    required_total: float
    current_total: float
    required_by_team: dict[str, float]
    team_satisfaction: TeamSatisfaction
    passed: bool
    counted_approvers: tuple[CountedApprover, ...] = ()
    skipped_approvers: tuple[str, ...] = ()
    matched_rules: tuple[Rule, ...] = ()
    max_rules: tuple[Rule, ...] = ()
    rules_required_total: float = 0
    label_override: int | None = None
    ma_override: MaOverride | None = None
    team_errors: tuple[str, ...] = ()
    advisory: AdvisoryResult | None = None
    advisory_required: float | None = None
    advisory_note: str | None = None

    @property
    def total_satisfied(self) -> bool:
        return self.current_total >= self.required_total

    @property
    def conclusion(self) -> str:
        return "success" if self.passed else "failure"


def review_timestamp(review: Mapping[str, Any]) -> float:
    """Return a review's timestamp in epoch seconds, 0 when unknown."""

    for key in _TIMESTAMP_KEYS:
        if review.get(key):
            return parse_timestamp(review[key])
    return 0.0


def latest_reviews_by_user(reviews: Iterable[Mapping[str, Any]]) -> list[LatestReview]:
    """Keep the newest review per login.

    On equal timestamps the later entry wins. Logins keep their first-seen
    order; reviews without a login are ignored.
    """

    latest: dict[str, tuple[float, Mapping[str, Any]]] = {}
    for review in reviews:
        login = _review_login(review)
        if not login:
            continue
        timestamp = review_timestamp(review)
        previous = latest.get(login)
        if previous is None or timestamp >= previous[0]:
            latest[login] = (timestamp, review)
    return [LatestReview(login=login, review=review) for login, (_, review) in latest.items()]


def approved_logins(reviews: Iterable[Mapping[str, Any]]) -> list[str]:
    """Return logins whose latest review approves the pull request."""

    return [
        entry.login
        for entry in latest_reviews_by_user(reviews)
        if str(entry.review.get("state") or "").upper() == "APPROVED"
    ]


def decide(
    policy: Policy,
    facts: PullRequestFacts,
    resolution: WeightResolution,
    options: DecisionOptions | None = None,
) -> Verdict:
    """Combine policy, facts and resolved weights into a verdict.

    Args:
        policy: Normalized policy.
        facts: Pull-request observations.
        resolution: Weights for the approving logins, see :mod:`weights`.
        options: Label and directive settings.

    Returns:
        The verdict. Identical inputs always produce an identical verdict.
    """

    options = options or DecisionOptions()
    totals = compute_required(policy.rules, facts.changed_files)
    label_override = find_label_override(options.label_prefix, facts.labels)

    advisory_required: float | None = None
    advisory_teams: dict[str, float] = {}
    if facts.advisory is not None and policy.advisory is not None:
        advisory_required = map_criticality_to_approvers(
            facts.advisory.criticality, policy.advisory.criticality_range
        )
        advisory_teams = {team: 1 for team in facts.advisory.suggested_teams}

    required_total = max(totals.required_total, label_override or 0, advisory_required or 0)
    required_by_team = merge_required(compute_required_by_team(totals.max_rules), advisory_teams)

    ma_override = find_latest_ma_override(
        options.directive_prefix,
        options.trusted_associations,
        facts.comments,
        policy,
    )

    counted: list[CountedApprover] = []
    skipped: list[str] = []
    current_total: float = 0
    for login in approved_logins(facts.reviews):
        info = resolution.per_user.get(login) or ApproverWeight(weight=0, user_weight=0)
        allowed = is_approver_allowed(login, info.matched_teams, totals.max_rules)
        effective = apply_ma_cap(ma_override, info.matched_teams, info.weight)
        if not allowed or effective <= 0:
            skipped.append(
                _skip_annotation(login, allowed, effective, info.weight, ma_override, options)
            )
            continue
        current_total += effective
        counted.append(
            CountedApprover(login=login, weight=effective, matched_teams=info.matched_teams)
        )

    satisfaction = compute_team_satisfaction(
        required_by_team, (approver.matched_teams for approver in counted)
    )
    return Verdict(
        required_total=required_total,
        current_total=current_total,
        required_by_team=required_by_team,
        team_satisfaction=satisfaction,
        passed=current_total >= required_total and satisfaction.ok,
        counted_approvers=tuple(counted),
        skipped_approvers=tuple(skipped),
        matched_rules=totals.matched_rules,
        max_rules=totals.max_rules,
        rules_required_total=totals.required_total,
        label_override=label_override,
        ma_override=ma_override,
        team_errors=resolution.team_errors,
        advisory=facts.advisory if advisory_required is not None else None,
        advisory_required=advisory_required,
        advisory_note=facts.advisory_note,
    )


class DecisionEngine:
    """Evaluate pull requests, probing team membership through an oracle."""

    def __init__(
        self,
        oracle: TeamMembershipOracle,
        *,
        options: DecisionOptions | None = None,
        observability: ObservabilityManager | None = None,
    ) -> None:
        self._options = options or DecisionOptions()
        self._observability = observability
        self._resolver = WeightResolver(oracle, observability=observability)

    def evaluate(self, policy: Policy | Mapping[str, Any], facts: PullRequestFacts) -> Verdict:
        """Evaluate one pull request.

        Args:
            policy: A normalized policy or the raw parsed configuration tree.
            facts: Pull-request observations.

        Returns:
            The verdict.

        Raises:
            ConfigError: If a raw configuration is not a mapping.
        """

        if not isinstance(policy, Policy):
            policy = normalize(policy)
        approvers = approved_logins(facts.reviews)
        resolution = self._resolver.compute(policy, approvers)
        verdict = decide(policy, facts, resolution, self._options)
        _LOGGER.info(
            "Verdict %s: required=%s current=%s",
            verdict.conclusion,
            verdict.required_total,
            verdict.current_total,
        )
        if self._observability is not None:
            self._observability.log_event(
                "evaluation.completed",
                {
                    "passed": verdict.passed,
                    "total_satisfied": verdict.total_satisfied,
                    "required_total": verdict.required_total,
                    "current_total": verdict.current_total,
                    "counted": [approver.login for approver in verdict.counted_approvers],
                    "skipped": list(verdict.skipped_approvers),
                    "missing_teams": list(verdict.team_satisfaction.missing),
                },
            )
        return verdict


def _review_login(review: Mapping[str, Any]) -> str | None:
    for key in ("user", "author"):
        actor = review.get(key)
        if isinstance(actor, Mapping) and actor.get("login"):
            return str(actor["login"])
    login = review.get("login")
    return str(login) if login else None


def _skip_annotation(
    login: str,
    allowed: bool,
    effective: float,
    raw: float,
    ma_override: MaOverride | None,
    options: DecisionOptions,
) -> str:
    annotation = login
    if not allowed:
        annotation += " (not allowed)"
    if effective <= 0:
        annotation += " (weight=0)"
    if ma_override is not None and effective < raw:
        annotation += f" (capped_by_{options.directive_prefix})"
    return annotation


def evaluate_offline(
    policy: Policy | Mapping[str, Any],
    facts: PullRequestFacts,
    members_by_team: Mapping[str, Sequence[str]],
    options: DecisionOptions | None = None,
) -> Verdict:
    """Evaluate against a fixed team table instead of a live oracle."""

    return DecisionEngine(StaticTeamMembership(members_by_team), options=options).evaluate(
        policy, facts
    )
