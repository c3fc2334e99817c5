"""Effective approver weights.

:func:`resolve_weight` is the pure rule, given the teams a login is known to
belong to. :class:`WeightResolver` queries a :class:`TeamMembershipOracle` for
every configured team and feeds the results in. Lookups run one at a time so
``matched_teams`` and ``team_errors`` keep the configured team order.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from weighted_approvals.github.base import TeamMembershipOracle
from weighted_approvals.policy import Policy, Weights
from weighted_approvals.util.logging import get_logger
from weighted_approvals.util.observability import ObservabilityManager

_LOGGER = get_logger("weighted_approvals.weights")


@dataclass(frozen=True)
class ApproverWeight:
    """Resolved weight for one approving login.

    Attributes:
        weight: Effective weight after applying precedence.
        user_weight: Explicit user weight, or the default weight.
        matched_teams: Configured teams the login is an active member of.
    """

    weight: float
    user_weight: float
    matched_teams: tuple[str, ...] = ()


@dataclass(frozen=True)
class WeightResolution:
    """Weights for every approving login plus team lookup failures."""

    per_user: dict[str, ApproverWeight] = field(default_factory=dict)
    team_errors: tuple[str, ...] = ()


def resolve_weight(weights: Weights, login: str, matched_teams: Iterable[str]) -> ApproverWeight:
    """Combine user and team weights according to ``weights.precedence``.

    ``user`` precedence only lets an explicit user entry override teams; users
    on the default weight still benefit from team membership.
    """

    teams = tuple(matched_teams)
    explicit = login in weights.users
    user_weight = weights.users[login] if explicit else weights.default
    max_team_weight = max([0, *(weights.teams.get(team, 0) for team in teams)])

    if weights.precedence == "user" and explicit:
        weight = user_weight
    elif weights.precedence == "team":
        weight = max_team_weight if max_team_weight > 0 else user_weight
    else:
        weight = max(user_weight, max_team_weight)
    return ApproverWeight(weight=weight, user_weight=user_weight, matched_teams=teams)


def resolve_weights(
    policy: Policy,
    memberships: Mapping[str, Sequence[str]],
    logins: Iterable[str],
) -> WeightResolution:
    """Resolve weights from a precomputed ``login -> matched teams`` map."""

    return WeightResolution(
        per_user={
            login: resolve_weight(policy.weights, login, memberships.get(login, ()))
            for login in logins
        }
    )


class StaticTeamMembership(TeamMembershipOracle):
    """Oracle answering from a fixed ``{team_key: [login, ...]}`` table."""

    def __init__(self, members_by_team: Mapping[str, Iterable[str]]) -> None:
        self._members = {team: frozenset(logins) for team, logins in members_by_team.items()}

    def is_user_in_team(self, team_key: str, login: str) -> bool:
        return login in self._members.get(team_key, frozenset())


class WeightResolver:
    """Resolve approver weights by probing team membership."""

    def __init__(
        self,
        oracle: TeamMembershipOracle,
        *,
        observability: ObservabilityManager | None = None,
    ) -> None:
        self._oracle = oracle
        self._observability = observability

    def compute(self, policy: Policy, approver_logins: Sequence[str]) -> WeightResolution:
        """Check every configured team for every login and resolve weights.

        Lookup failures are collected into ``team_errors`` and treated as
        "not a member"; they never abort the evaluation.
        """

        memberships: dict[str, list[str]] = {}
        errors: list[str] = []
        for login in approver_logins:
            memberships[login] = self._lookup_login(policy, login, errors)
        resolution = resolve_weights(policy, memberships, approver_logins)
        return WeightResolution(per_user=resolution.per_user, team_errors=tuple(errors))

    def _lookup_login(self, policy: Policy, login: str, errors: list[str]) -> list[str]:
        matched: list[str] = []
        for team_key in policy.weights.teams:
            if self._observability is not None:
                self._observability.metrics.increment("team_lookups")
            try:
                if self._oracle.is_user_in_team(team_key, login):
                    matched.append(team_key)
            except Exception as exc:  # noqa: BLE001
                message = str(exc) or exc.__class__.__name__
                errors.append(message)
                _LOGGER.warning("Team membership lookup %s for %s failed: %s", team_key, login, message)
                if self._observability is not None:
                    self._observability.metrics.increment("team_lookup_errors")
                    self._observability.log_event(
                        "team_lookup.failed",
                        {"team": team_key, "login": login, "error": message},
                        level="WARNING",
                    )
        return matched
