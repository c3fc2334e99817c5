"""Approver condition evaluation over the rules that set the threshold.

Two questions are answered, both over ``max_rules`` only:

* eligibility: is this approver relevant to any conditioned max rule at all?
  Every name anywhere in the tree counts, whatever its AND/OR position.
* hard per-team requirements: which teams need a minimum headcount? Only
  entries reached through ``AllOf`` nodes (or a bare ``Explicit`` leaf) count;
  ``AnyOf`` branches never create one because another branch may satisfy the OR.

The two deliberately disagree for ``AllOf`` nested inside ``AnyOf``: its teams
are eligible but not required.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from weighted_approvals.policy import (
    AllOf,
    AnyOf,
    ApproverCondition,
    Explicit,
    Rule,
    format_number,
)


@dataclass(frozen=True)
class TeamSatisfaction:
    """Per-team headcount check.

    Attributes:
        ok: True when every required team reached its count.
        counts: Counted approvers per required team.
        missing: ``"<team> (<have>/<need>)"`` entries for unmet teams.
    """

    ok: bool
    counts: dict[str, int]
    missing: tuple[str, ...]


def collect_names(condition: ApproverCondition) -> frozenset[str]:
    """Return every team or user name reachable in the condition tree."""

    names: set[str] = set()
    _collect(condition, names)
    return frozenset(names)


def _collect(condition: ApproverCondition, names: set[str]) -> None:
    if isinstance(condition, (AnyOf, AllOf)):
        if isinstance(condition.children, tuple):
            for child in condition.children:
                _collect(child, names)
        else:
            names.update(condition.children)
    elif isinstance(condition, Explicit):
        names.update(condition.teams or {})
        names.update(condition.users or {})
    else:
        raise TypeError(f"Unsupported approver condition: {condition!r}")


def is_allowed_by_condition(
    login: str,
    matched_teams: Iterable[str],
    condition: ApproverCondition,
) -> bool:
    """Return True if the login or one of its teams is named in the condition."""

    names = collect_names(condition)
    if not names:
        return True
    if login in names:
        return True
    return any(team in names for team in matched_teams)


def is_approver_allowed(
    login: str,
    matched_teams: Iterable[str],
    max_rules: Sequence[Rule],
) -> bool:
    """Return True if the approver may contribute toward the active threshold.

    Rules without an ``approvers`` condition impose no restriction. When no max
    rule carries a condition everyone is eligible; otherwise at least one
    conditioned rule must allow the approver.
    """

    conditions = [rule.approvers for rule in max_rules if rule.approvers is not None]
    if not conditions:
        return True
    teams = tuple(matched_teams)
    return any(is_allowed_by_condition(login, teams, condition) for condition in conditions)


def compute_required_by_team(max_rules: Sequence[Rule]) -> dict[str, float]:
    """Return the mandatory headcount per team across the max rules.

    The highest count wins when a team is required more than once.
    """

    required: dict[str, float] = {}
    for rule in max_rules:
        if rule.approvers is not None:
            _extract_required(rule.approvers, required)
    return required


def _extract_required(condition: ApproverCondition, required: dict[str, float]) -> None:
    if isinstance(condition, AllOf):
        if isinstance(condition.children, tuple):
            for child in condition.children:
                _extract_required(child, required)
        else:
            _merge_max(required, condition.children)
    elif isinstance(condition, AnyOf):
        return
    elif isinstance(condition, Explicit):
        _merge_max(required, condition.teams or {})
    else:
        raise TypeError(f"Unsupported approver condition: {condition!r}")


def merge_required(required: Mapping[str, float], extra: Mapping[str, float]) -> dict[str, float]:
    """Return ``required`` with ``extra`` merged in, keeping the max per team."""

    merged = dict(required)
    _merge_max(merged, extra)
    return merged


def _merge_max(target: dict[str, float], counts: Mapping[str, float]) -> None:
    for team, count in counts.items():
        if count > 0:
            target[team] = max(target.get(team, 0), count)


def compute_team_satisfaction(
    required_by_team: Mapping[str, float],
    counted_teams: Iterable[Iterable[str]],
) -> TeamSatisfaction:
    """Check per-team headcounts against the counted approvers.

    Args:
        required_by_team: Mandatory headcount per team.
        counted_teams: Matched teams of each counted approver.
    """

    counts = {team: 0 for team in required_by_team}
    for teams in counted_teams:
        member_of = set(teams)
        for team in required_by_team:
            if team in member_of:
                counts[team] += 1

    missing = tuple(
        f"{team} ({counts[team]}/{format_number(need)})"
        for team, need in required_by_team.items()
        if counts[team] < need
    )
    return TeamSatisfaction(ok=not missing, counts=counts, missing=missing)
