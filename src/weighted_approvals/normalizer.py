"""Normalize an untyped configuration tree into a :class:`Policy`.

Parsing is permissive: malformed weight entries are dropped, rules whose
``required_total`` is not a finite number are dropped, and approver conditions
that do not normalize to anything become ``None`` (no restriction). Only a
top-level value that is not a mapping is fatal.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Mapping

import yaml

from weighted_approvals.policy import (
    ADVISORY_PROVIDERS,
    PRECEDENCES,
    AdvisoryConfig,
    AllOf,
    AnyOf,
    ApproverCondition,
    CriticalityRange,
    Explicit,
    Policy,
    Rule,
    Weights,
)
from weighted_approvals.util.logging import get_logger

_LOGGER = get_logger("weighted_approvals.normalizer")


class ConfigError(ValueError):
    """Raised when the policy configuration cannot be used at all."""


@dataclass
class NormalizationReport:
    """Entries dropped while normalizing, for diagnostics only."""

    dropped_rules: list[str] = field(default_factory=list)
    dropped_weights: list[str] = field(default_factory=list)


def load_policy_text(text: str) -> Any:
    """Parse policy file text (YAML or JSON) into an untyped tree.

    Raises:
        ConfigError: If the text is not valid YAML.
    """

    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Policy file is not valid YAML: {exc}") from exc


def normalize(raw: Any, report: NormalizationReport | None = None) -> Policy:
    """Normalize a parsed configuration tree.

    Args:
        raw: Parsed configuration (mapping expected).
        report: Optional collector for dropped rules and weight entries.

    Returns:
        The normalized policy.

    Raises:
        ConfigError: If ``raw`` is not a mapping.
    """

    if not isinstance(raw, Mapping):
        raise ConfigError("Config must be a YAML mapping/object.")
    report = report if report is not None else NormalizationReport()

    weights_raw = raw.get("weights")
    weights_raw = weights_raw if isinstance(weights_raw, Mapping) else {}

    users = _parse_weight_map(weights_raw.get("users"), "users", report)
    teams = _parse_weight_map(weights_raw.get("teams"), "teams", report)
    default = to_number(weights_raw.get("default"))
    precedence = weights_raw.get("precedence")
    if precedence not in PRECEDENCES:
        precedence = "max"

    rules_raw = raw.get("rules")
    rules: list[Rule] = []
    for index, item in enumerate(rules_raw if isinstance(rules_raw, list) else []):
        rule = _parse_rule(item)
        if rule is None:
            reason = (
                f"rules[{index}]: required_total is not a finite number"
                if isinstance(item, Mapping)
                else f"rules[{index}]: not a mapping"
            )
            _LOGGER.debug("Dropping %s", reason)
            report.dropped_rules.append(reason)
            continue
        rules.append(rule)

    labels = raw.get("labels")
    return Policy(
        weights=Weights(
            users=users,
            teams=teams,
            default=default if default is not None else 1,
            precedence=precedence,
        ),
        rules=tuple(rules),
        labels=dict(labels) if isinstance(labels, Mapping) else None,
        advisory=parse_advisory_config(raw.get("ai")),
    )


def to_number(value: Any) -> float | None:
    """Return ``value`` as a finite number, or None when it does not parse.

    Integral values come back as ``int`` so they render without a fraction.
    """

    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, str)):
        return None
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (ValueError, OverflowError):
        return None
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


def parse_approver_condition(raw: Any) -> ApproverCondition | None:
    """Parse any accepted approvers shape into a condition tree.

    Accepted shapes::

        {any: {team: count, ...}}      {any: [condition, ...]}
        {all: {team: count, ...}}      {all: [condition, ...]}
        {teams: {team: count}, users: {user: count}}

    Anything else, or a shape that ends up empty, yields None.
    """

    if not isinstance(raw, Mapping):
        return None
    if "any" in raw:
        children = _parse_children(raw["any"])
        return AnyOf(children) if children else None
    if "all" in raw:
        children = _parse_children(raw["all"])
        return AllOf(children) if children else None
    if "teams" in raw or "users" in raw:
        teams = _parse_count_map(raw.get("teams"))
        users = _parse_count_map(raw.get("users"))
        if not teams and not users:
            return None
        return Explicit(teams=teams or None, users=users or None)
    return None


def parse_advisory_config(raw: Any) -> AdvisoryConfig | None:
    """Parse the ``ai:`` block; invalid or disabled blocks yield None."""

    if not isinstance(raw, Mapping) or raw.get("enabled") is not True:
        return None
    provider = raw.get("provider")
    if provider not in ADVISORY_PROVIDERS:
        return None
    api_key_env = raw.get("api_key_env")
    if not isinstance(api_key_env, str) or not api_key_env:
        return None

    criticality_range = CriticalityRange()
    range_raw = raw.get("criticality_range")
    if isinstance(range_raw, Mapping):
        low = to_number(range_raw.get("min"))
        high = to_number(range_raw.get("max"))
        if low is not None and high is not None and low > 0 and high >= low:
            criticality_range = CriticalityRange(min=low, max=high)

    teams: list[str] = []
    if isinstance(raw.get("teams"), list):
        teams = [team.strip() for team in raw["teams"] if isinstance(team, str) and team.strip()]

    descriptions: dict[str, str] | None = None
    if isinstance(raw.get("team_descriptions"), Mapping):
        descriptions = {
            str(key): value
            for key, value in raw["team_descriptions"].items()
            if isinstance(value, str)
        }
        descriptions = descriptions or None

    model = raw.get("model")
    return AdvisoryConfig(
        provider=provider,
        api_key_env=api_key_env,
        model=model if isinstance(model, str) else None,
        criticality_range=criticality_range,
        teams=tuple(teams),
        team_descriptions=descriptions,
    )


def _parse_rule(raw: Any) -> Rule | None:
    if not isinstance(raw, Mapping):
        return None
    required_total = to_number(raw.get("required_total"))
    if required_total is None:
        return None
    paths = raw.get("paths")
    return Rule(
        paths=tuple(str(path) for path in paths) if isinstance(paths, list) else (),
        required_total=required_total,
        approvers=parse_approver_condition(raw.get("approvers")),
    )


def _parse_children(raw: Any) -> tuple[ApproverCondition, ...] | dict[str, float]:
    if isinstance(raw, list):
        nested = (parse_approver_condition(item) for item in raw)
        return tuple(condition for condition in nested if condition is not None)
    if isinstance(raw, Mapping):
        return _parse_count_map(raw)
    return ()


def _parse_count_map(raw: Any) -> dict[str, float]:
    if not isinstance(raw, Mapping):
        return {}
    counts: dict[str, float] = {}
    for key, value in raw.items():
        number = to_number(value)
        if number is not None and number > 0:
            counts[str(key)] = number
    return counts


def _parse_weight_map(
    raw: Any,
    section: str,
    report: NormalizationReport,
) -> dict[str, float]:
    if not isinstance(raw, Mapping):
        return {}
    weights: dict[str, float] = {}
    for key, value in raw.items():
        number = to_number(value)
        if number is None:
            reason = f"weights.{section}.{key}: {value!r} is not a finite number"
            _LOGGER.debug("Dropping %s", reason)
            report.dropped_weights.append(reason)
            continue
        weights[str(key)] = number
    return weights
