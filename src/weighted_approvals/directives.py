"""Trusted-comment ``ma:`` directives.

A trusted commenter can write ``ma:@org/team +N`` to say that no single
approval counts for N or more unless it comes from a member of ``org/team``.
Only the newest trusted comment containing a directive is consulted.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Final

from weighted_approvals.policy import MaOverride, Policy, format_number

DEFAULT_TRUSTED_ASSOCIATIONS: Final[frozenset[str]] = frozenset({"OWNER", "MEMBER", "COLLABORATOR"})
_NAME = r"[A-Za-z0-9_.-]+"


@dataclass(frozen=True)
class Directive:
    """A single ``<prefix>@org/team +N`` occurrence."""

    team_key: str
    n: int


def parse_trusted_associations(csv: str | None) -> frozenset[str]:
    """Parse a comma-separated association list; empty means the default set."""

    values = {part.strip().upper() for part in str(csv or "").split(",") if part.strip()}
    return frozenset(values) if values else DEFAULT_TRUSTED_ASSOCIATIONS


def parse_directives(prefix: str, body: str | None) -> list[Directive]:
    """Return every directive in ``body`` in order of appearance."""

    if not prefix:
        return []
    pattern = re.compile(
        re.escape(prefix) + rf"\s*@({_NAME})/({_NAME})\s*\+?([0-9]+)",
    )
    return [
        Directive(team_key=f"{match.group(1)}/{match.group(2)}", n=int(match.group(3)))
        for match in pattern.finditer(str(body or ""))
    ]


def find_latest_ma_override(
    prefix: str,
    trusted_associations: str | Iterable[str] | None,
    comments: Sequence[Mapping[str, Any]],
    policy: Policy,
) -> MaOverride | None:
    """Return the override from the newest trusted comment whose directive qualifies.

    Within a comment the highest N wins; a team named at that N qualifies
    only when configured with a team weight of at least N. A comment with a
    ceiling below 2 or naming only unqualified teams is skipped in favour of
    older comments.
    """

    if not prefix:
        return None
    if trusted_associations is None or isinstance(trusted_associations, str):
        trusted = parse_trusted_associations(trusted_associations)
    else:
        trusted = frozenset(str(value).upper() for value in trusted_associations)

    ordered = sorted(comments, key=_created_at, reverse=True)
    for comment in ordered:
        association = str(comment.get("author_association") or "").upper()
        if association not in trusted:
            continue
        directives = parse_directives(prefix, comment.get("body"))
        if not directives:
            continue

        max_n = max(directive.n for directive in directives)
        allowed: list[str] = []
        ignored: list[str] = []
        for directive in directives:
            if directive.n != max_n:
                continue
            team_weight = policy.weights.teams.get(directive.team_key)
            if team_weight is None or team_weight < max_n:
                ignored.append(f"{directive.team_key} (not configured with weight >= {max_n})")
            elif directive.team_key not in allowed:
                allowed.append(directive.team_key)

        if max_n >= 2 and allowed:
            return MaOverride(
                n=max_n,
                allowed_teams=tuple(allowed),
                comment_id=_comment_id(comment),
                comment_author=_comment_author(comment),
                comment_association=association,
                ignored_teams=tuple(ignored),
            )
    return None


def apply_ma_cap(
    override: MaOverride | None,
    matched_teams: Iterable[str],
    raw_weight: float,
) -> float:
    """Cap a weight at ``n - 1`` unless the approver is in an allowed team.

    Weights below the ceiling are untouched.
    """

    if override is None or override.n < 2:
        return raw_weight
    if raw_weight < override.n:
        return raw_weight
    if any(team in override.allowed_teams for team in matched_teams):
        return raw_weight
    return min(raw_weight, override.n - 1)


def describe_override(override: MaOverride) -> str:
    """Return the one-line explanation of an override used in the summary."""

    return (
        f"PR override: only members of [{', '.join(override.allowed_teams)}] may contribute "
        f"weight >= {format_number(override.n)} (from comment by {override.comment_author} / "
        f"{override.comment_association})."
    )


def _created_at(comment: Mapping[str, Any]) -> float:
    raw = comment.get("created_at") or comment.get("createdAt")
    return parse_timestamp(raw)


def parse_timestamp(raw: Any) -> float:
    """Return an ISO-8601 timestamp as epoch seconds; unparseable values are 0."""

    if isinstance(raw, datetime):
        return raw.timestamp()
    if not isinstance(raw, str) or not raw:
        return 0.0
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return 0.0


def _comment_id(comment: Mapping[str, Any]) -> int:
    try:
        return int(comment.get("id") or 0)
    except (TypeError, ValueError):
        return 0


def _comment_author(comment: Mapping[str, Any]) -> str:
    user = comment.get("user")
    if isinstance(user, Mapping) and user.get("login"):
        return str(user["login"])
    author = comment.get("author")
    if isinstance(author, Mapping) and author.get("login"):
        return str(author["login"])
    if isinstance(author, str) and author:
        return author
    return "unknown"
