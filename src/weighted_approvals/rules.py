"""Rule matching and required-total resolution."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Mapping

from weighted_approvals.globbing import any_match
from weighted_approvals.policy import Rule

_DIGITS = re.compile(r"^[0-9]+$")


@dataclass(frozen=True)
class RequiredTotals:
    """Outcome of matching rules against the changed files.

    Attributes:
        required_total: Highest ``required_total`` among matched rules, or 0.
        matched_rules: Every rule matching at least one changed file, in policy order.
        max_rules: Matched rules achieving ``required_total``; ties are all kept.
    """

    required_total: float
    matched_rules: tuple[Rule, ...]
    max_rules: tuple[Rule, ...]


def rule_matches(rule: Rule, changed_files: Iterable[str]) -> bool:
    """Return True if any changed file matches any of the rule's paths."""

    return any(any_match(rule.paths, path) for path in changed_files)


def compute_required(rules: Sequence[Rule], changed_files: Sequence[str]) -> RequiredTotals:
    """Compute the approval threshold for a set of changed files.

    Thresholds do not add up: the most restrictive matched rule wins.
    """

    matched = tuple(rule for rule in rules if rule_matches(rule, changed_files))
    if not matched:
        return RequiredTotals(required_total=0, matched_rules=(), max_rules=())
    highest = max(rule.required_total for rule in matched)
    max_rules = tuple(rule for rule in matched if rule.required_total == highest)
    return RequiredTotals(required_total=highest, matched_rules=matched, max_rules=max_rules)


def find_label_override(label_prefix: str, labels: Iterable[Mapping[str, Any]] | None) -> int | None:
    """Return N from the first ``<prefix>N`` label, or None.

    Args:
        label_prefix: Label prefix such as ``wa:+``; empty disables overrides.
        labels: PR labels as ``{"name": ...}`` mappings.
    """

    if not label_prefix:
        return None
    for label in labels or ():
        name = label.get("name") if isinstance(label, Mapping) else None
        if not isinstance(name, str) or not name.startswith(label_prefix):
            continue
        remainder = name[len(label_prefix):].strip()
        if _DIGITS.match(remainder):
            return int(remainder)
    return None
