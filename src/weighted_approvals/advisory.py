"""LLM advisory analysis of a pull request.

The advisory service reads the diff and returns a criticality score (1-10)
plus suggested reviewing teams. The engine turns the score into an extra
required-total floor and each suggested team into a one-approval requirement.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from weighted_approvals.llm.base import LLMClient
from weighted_approvals.llm.registry import create_llm_client
from weighted_approvals.policy import AdvisoryConfig, CriticalityRange
from weighted_approvals.util.logging import get_logger
from weighted_approvals.util.observability import ObservabilityManager, create_observability_manager

MAX_DIFF_CHARS = 80_000
TRUNCATION_MARKER = "\n\n... [diff truncated due to length] ..."
SYSTEM_PROMPT = (
    "You are a code review assistant that analyzes pull requests to determine their "
    "criticality and which teams should review them. Always respond with valid JSON."
)

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)
_LOGGER = get_logger("weighted_approvals.advisory")


class AdvisoryError(RuntimeError):
    """Raised when the advisory response cannot be used."""


@dataclass(frozen=True)
class AdvisoryResult:
    """Parsed advisory output.

    Attributes:
        criticality: Score between 1 and 10.
        suggested_teams: Configured teams the model asked to review.
        reasoning: Short explanation from the model.
    """

    criticality: float
    suggested_teams: tuple[str, ...] = ()
    reasoning: str = "No reasoning provided"


def map_criticality_to_approvers(criticality: float, criticality_range: CriticalityRange) -> float:
    """Map a 1-10 criticality linearly onto ``criticality_range``.

    Halves round up, and the result is clamped to the range.
    """

    low, high = criticality_range.min, criticality_range.max
    clamped = max(1.0, min(10.0, float(criticality)))
    approvers = math.floor(low + (clamped - 1) / 9 * (high - low) + 0.5)
    return max(low, min(high, approvers))


class AdvisoryAnalyzer:
    """Ask an LLM how critical a pull request is and who should review it."""

    def __init__(
        self,
        config: AdvisoryConfig,
        client: LLMClient,
        *,
        observability: ObservabilityManager | None = None,
    ) -> None:
        self._config = config
        self._client = client
        self._observability = observability or create_observability_manager()

    def analyze(
        self,
        diff: str,
        files: Sequence[str],
        pr_title: str | None = None,
        pr_description: str | None = None,
    ) -> AdvisoryResult:
        """Run the analysis.

        Args:
            diff: Unified diff of the pull request.
            files: Changed file paths.
            pr_title: Optional pull-request title.
            pr_description: Optional pull-request body.

        Returns:
            The parsed advisory result.

        Raises:
            AdvisoryError: If the response is not a usable analysis.
            LLMClientError: If the provider call fails.
        """

        prompt = self.build_prompt(diff, files, pr_title, pr_description)
        _LOGGER.debug("Advisory prompt:\n%s", prompt)
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
        with self._observability.track_duration("advisory.duration"):
            response = self._client.complete_chat(messages, temperature=0.3, max_tokens=1024)
        result = self.parse_response(response)
        _LOGGER.info(
            "Advisory result: criticality=%s teams=%s",
            result.criticality,
            ", ".join(result.suggested_teams) or "(none)",
        )
        return result

    def build_prompt(
        self,
        diff: str,
        files: Sequence[str],
        pr_title: str | None = None,
        pr_description: str | None = None,
    ) -> str:
        """Build the user prompt sent to the model."""

        if len(diff) > MAX_DIFF_CHARS:
            diff = diff[:MAX_DIFF_CHARS] + TRUNCATION_MARKER

        team_section = ""
        if self._config.teams:
            descriptions = self._config.team_descriptions or {}
            lines = ["", "", "Available teams for review:"]
            for team in self._config.teams:
                description = descriptions.get(team)
                lines.append(f"- {team}: {description}" if description else f"- {team}")
            team_section = "\n".join(lines) + "\n"

        title_section = f"## PR Title\n{pr_title}\n" if pr_title else ""
        description_section = f"## PR Description\n{pr_description}\n" if pr_description else ""
        file_list = "\n".join(f"- {path}" for path in files)

        return f"""Analyze this pull request and assess its criticality level for code review.

{title_section}
{description_section}
## Changed Files
{file_list}

## Diff
```diff
{diff}
```
{team_section}
Based on the changes above, provide your analysis in the following JSON format:

{{
  "criticality": <number 1-10>,
  "suggestedTeams": [<list of team names from the available teams>],
  "reasoning": "<brief explanation of why this criticality level>"
}}

Criticality scale:
- 1-2: Trivial changes (typos, comments, minor formatting)
- 3-4: Low risk (small bug fixes, minor refactors, test additions)
- 5-6: Medium risk (new features, moderate refactors, dependency updates)
- 7-8: High risk (security-related, database changes, API changes, breaking changes)
- 9-10: Critical (authentication, authorization, payment processing, data migration)

Consider:
- What areas of the codebase are affected?
- Could this change break existing functionality?
- Are there security implications?
- Is this touching critical infrastructure?

Respond with ONLY the JSON object, no additional text."""

    def parse_response(self, response: str) -> AdvisoryResult:
        """Parse the model reply into an :class:`AdvisoryResult`.

        Raises:
            AdvisoryError: If no JSON object is found or the criticality is invalid.
        """

        try:
            return self._parse(response)
        except (ValueError, TypeError, OverflowError) as exc:
            raise AdvisoryError(
                f"Failed to parse advisory response: {exc}. Response: {response[:200]}"
            ) from exc

    def _parse(self, response: str) -> AdvisoryResult:
        match = _JSON_OBJECT.search(response)
        if match is None:
            raise ValueError("No JSON object found in response")
        return result_from_payload(json.loads(match.group(0)), self._config.teams)


def result_from_payload(parsed: Any, teams: Sequence[str]) -> AdvisoryResult:
    """Build a result from a decoded ``{criticality, suggestedTeams, reasoning}`` object.

    Suggested teams outside ``teams`` are dropped.

    Raises:
        ValueError: If ``parsed`` is not an object or the criticality is invalid.
    """

    if not isinstance(parsed, Mapping):
        raise ValueError("Response JSON is not an object")

    raw_criticality = parsed.get("criticality")
    criticality = _to_float(raw_criticality)
    if criticality is None or not 1 <= criticality <= 10:
        raise ValueError(f"Invalid criticality value: {raw_criticality}. Expected 1-10.")

    suggested: tuple[str, ...] = ()
    raw_teams = parsed.get("suggestedTeams")
    if isinstance(raw_teams, list):
        suggested = tuple(team for team in raw_teams if isinstance(team, str) and team in teams)

    reasoning = parsed.get("reasoning")
    return AdvisoryResult(
        criticality=criticality,
        suggested_teams=suggested,
        reasoning=reasoning if isinstance(reasoning, str) else "No reasoning provided",
    )


def create_advisory_analyzer(
    config: AdvisoryConfig | None,
    *,
    environ: Mapping[str, str] | None = None,
    client: LLMClient | None = None,
    observability: ObservabilityManager | None = None,
) -> AdvisoryAnalyzer | None:
    """Build an analyzer for an enabled ``ai:`` block, or None when disabled.

    Raises:
        LLMConfigurationError: If no client is given and one cannot be built.
    """

    if config is None:
        return None
    if client is None:
        client = create_llm_client(config, environ=environ, observability=observability)
    return AdvisoryAnalyzer(config, client, observability=observability)


def _to_float(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None
