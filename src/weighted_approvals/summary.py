"""Deterministic plain-text report of a verdict.

The report is the check-run body and doubles as the audit trail, so it holds
no timestamps and only ordered collections.
"""

from __future__ import annotations

from dataclasses import dataclass

from weighted_approvals.directives import describe_override
from weighted_approvals.engine import Verdict
from weighted_approvals.policy import format_number

MAX_TEAM_ERRORS = 5


@dataclass(frozen=True)
class SummaryContext:
    """Provenance shown at the top and bottom of the report."""

    repository: str
    pull_number: int
    head_sha: str
    config_path: str
    changed_files_count: int


def render_summary(context: SummaryContext, verdict: Verdict) -> str:
    """Render ``verdict`` as newline-separated text."""

    lines = [
        f"Repo: {context.repository}",
        f"PR: #{context.pull_number}",
        f"Head SHA: {context.head_sha}",
        f"Changed files: {context.changed_files_count}",
        "",
    ]

    required = f"Required total: {format_number(verdict.required_total)}"
    if verdict.label_override is not None:
        required += f" (label override: {verdict.label_override})"
    lines.append(required)
    lines.append(f"Current total: {format_number(verdict.current_total)}")

    if verdict.required_by_team:
        lines.append("")
        lines.append("Required by team:")
        for team, count in verdict.required_by_team.items():
            lines.append(f"- {team}: {format_number(count)}")
        if not verdict.team_satisfaction.ok:
            lines.append("Missing team approvals:")
            lines.extend(f"- {missing}" for missing in verdict.team_satisfaction.missing)

    if verdict.ma_override is not None:
        lines.append("")
        lines.append(describe_override(verdict.ma_override))
        if verdict.ma_override.ignored_teams:
            lines.append(
                f"Ignored teams in directive: {', '.join(verdict.ma_override.ignored_teams)}"
            )

    lines.extend(_advisory_lines(verdict))

    lines.append("")
    lines.append("Counted approvers:")
    if not verdict.counted_approvers:
        lines.append("- (none)")
    for approver in verdict.counted_approvers:
        teams = f" teams=[{', '.join(approver.matched_teams)}]" if approver.matched_teams else ""
        lines.append(f"- {approver.login}: +{format_number(approver.weight)}{teams}")

    if verdict.skipped_approvers:
        lines.append("")
        lines.append("Skipped approvers (not allowed for max-required rules or weight=0):")
        lines.extend(f"- {skipped}" for skipped in verdict.skipped_approvers)

    lines.append("")
    lines.append(f"Config: {context.config_path}")
    lines.append("")
    lines.append("Matched rules:")
    if not verdict.matched_rules:
        lines.append("- (none)")
    for rule in verdict.matched_rules:
        is_max = any(rule is max_rule for max_rule in verdict.max_rules)
        lines.append(
            f"- required_total={format_number(rule.required_total)}"
            f"{' (max)' if is_max else ''} paths=[{', '.join(rule.paths)}]"
        )

    if verdict.team_errors:
        unique = list(dict.fromkeys(verdict.team_errors))
        lines.append("")
        lines.append("Team membership check warnings:")
        lines.extend(f"- {error}" for error in unique[:MAX_TEAM_ERRORS])
        if len(unique) > MAX_TEAM_ERRORS:
            lines.append(f"- (and {len(unique) - MAX_TEAM_ERRORS} more)")

    return "\n".join(lines)


def _advisory_lines(verdict: Verdict) -> list[str]:
    if verdict.advisory is not None and verdict.advisory_required is not None:
        teams = ", ".join(verdict.advisory.suggested_teams) or "(none)"
        return [
            "",
            "AI analysis:",
            f"- Criticality: {format_number(verdict.advisory.criticality)}/10",
            f"- Required approvers: {format_number(verdict.advisory_required)}",
            f"- Suggested teams: {teams}",
            f"- Reasoning: {verdict.advisory.reasoning}",
        ]
    if verdict.advisory_note:
        return ["", f"AI analysis skipped: {verdict.advisory_note}"]
    return []
