"""Normalized policy model.

The configuration file is loosely typed; :mod:`weighted_approvals.normalizer`
turns it into the frozen values defined here. Approver conditions form a small
tagged union::

    ApproverCondition = AnyOf | AllOf | Explicit

``AnyOf`` and ``AllOf`` hold either a tuple of nested conditions or a
``{team_or_user: count}`` mapping. ``Explicit`` names teams and users directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Final, Literal, Mapping, Union

Precedence = Literal["max", "user", "team"]
PRECEDENCES: Final[tuple[str, ...]] = ("max", "user", "team")

AdvisoryProvider = Literal["openai", "anthropic"]
ADVISORY_PROVIDERS: Final[tuple[str, ...]] = ("openai", "anthropic")


@dataclass(frozen=True)
class AnyOf:
    """OR node: satisfied when any child or map entry is covered."""

    children: tuple[ApproverCondition, ...] | Mapping[str, float]


@dataclass(frozen=True)
class AllOf:
    """AND node: every child or map entry must be covered.

    Map entries under an ``AllOf`` are hard per-team requirements.
    """

    children: tuple[ApproverCondition, ...] | Mapping[str, float]


@dataclass(frozen=True)
class Explicit:
    """Leaf naming exact teams and users with their counts."""

    teams: Mapping[str, float] | None = None
    users: Mapping[str, float] | None = None


ApproverCondition = Union[AnyOf, AllOf, Explicit]


@dataclass(frozen=True)
class Rule:
    """A path rule.

    Attributes:
        paths: Glob patterns; the rule matches when any changed file matches one.
        required_total: Approval weight this rule asks for.
        approvers: Optional condition restricting who counts toward this rule.
    """

    paths: tuple[str, ...]
    required_total: float
    approvers: ApproverCondition | None = None


@dataclass(frozen=True)
class Weights:
    """Weight configuration.

    Attributes:
        users: Explicit per-login weights.
        teams: Per-team weights keyed by ``org/slug``.
        default: Weight for logins without an explicit entry.
        precedence: How user and team weights combine.
    """

    users: Mapping[str, float] = field(default_factory=dict)
    teams: Mapping[str, float] = field(default_factory=dict)
    default: float = 1
    precedence: Precedence = "max"


@dataclass(frozen=True)
class CriticalityRange:
    """Approver-count range that advisory criticality 1..10 maps onto."""

    min: float = 1
    max: float = 3


@dataclass(frozen=True)
class AdvisoryConfig:
    """Configuration of the optional LLM advisory service (``ai:`` block).

    Attributes:
        provider: LLM provider name.
        api_key_env: Environment variable holding the provider API key.
        model: Optional model override.
        criticality_range: Range criticality maps onto.
        teams: Teams the advisory service may suggest.
        team_descriptions: Optional descriptions shown to the model.
    """

    provider: AdvisoryProvider
    api_key_env: str
    model: str | None = None
    criticality_range: CriticalityRange = field(default_factory=CriticalityRange)
    teams: tuple[str, ...] = ()
    team_descriptions: Mapping[str, str] | None = None


@dataclass(frozen=True)
class Policy:
    """A normalized weighted-approvals policy."""

    weights: Weights = field(default_factory=Weights)
    rules: tuple[Rule, ...] = ()
    labels: Mapping[str, Any] | None = None
    advisory: AdvisoryConfig | None = None


@dataclass(frozen=True)
class MaOverride:
    """Result of a trusted ``ma:`` comment directive.

    Attributes:
        n: Weight ceiling; contributions at or above it are restricted.
        allowed_teams: Teams whose members keep their full weight.
        comment_id: Identifier of the winning comment.
        comment_author: Login of the comment author.
        comment_association: Author association of the comment.
        ignored_teams: Directive entries naming teams without enough weight.
    """

    n: int
    allowed_teams: tuple[str, ...]
    comment_id: int = 0
    comment_author: str = "unknown"
    comment_association: str = ""
    ignored_teams: tuple[str, ...] = ()


def format_number(value: float) -> str:
    """Render a weight or count, dropping the fraction of integral values."""

    number = float(value)
    return str(int(number)) if number.is_integer() else str(number)
