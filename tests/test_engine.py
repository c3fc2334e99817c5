from __future__ import annotations

import json
import logging
from typing import Any

import pytest

from weighted_approvals.advisory import AdvisoryResult
from weighted_approvals.engine import (
    DecisionEngine,
    DecisionOptions,
    PullRequestFacts,
    approved_logins,
    evaluate_offline,
    latest_reviews_by_user,
)
from weighted_approvals.normalizer import ConfigError
from weighted_approvals.summary import SummaryContext, render_summary
from weighted_approvals.util.observability import create_observability_manager
from weighted_approvals.weights import StaticTeamMembership


def _review(login: str, state: str, submitted_at: str | None = "2024-01-01T00:00:00Z") -> dict[str, Any]:
    review: dict[str, Any] = {"user": {"login": login}, "state": state}
    if submitted_at is not None:
        review["submitted_at"] = submitted_at
    return review


def _config() -> dict[str, Any]:
    return {
        "weights": {"users": {"alice": 2, "bob": 1}, "teams": {}},
        "rules": [{"paths": ["src/**"], "required_total": 2}],
    }


def test_latest_review_per_login_wins() -> None:
    reviews = [
        _review("alice", "APPROVED", "2024-01-01T00:00:00Z"),
        _review("bob", "APPROVED", "2024-01-01T00:00:00Z"),
        _review("alice", "CHANGES_REQUESTED", "2024-01-02T00:00:00Z"),
        {"state": "APPROVED"},
    ]

    latest = latest_reviews_by_user(reviews)

    assert [entry.login for entry in latest] == ["alice", "bob"]
    assert latest[0].review["state"] == "CHANGES_REQUESTED"
    assert approved_logins(reviews) == ["bob"]


def test_equal_timestamps_prefer_later_entry() -> None:
    reviews = [
        _review("alice", "APPROVED", None),
        _review("alice", "COMMENTED", None),
    ]

    assert approved_logins(reviews) == []


def test_review_state_is_case_insensitive() -> None:
    assert approved_logins([_review("alice", "approved")]) == ["alice"]


def test_end_to_end_alice_passes() -> None:
    facts = PullRequestFacts(changed_files=("src/a.ts",), reviews=(_review("alice", "APPROVED"),))

    verdict = evaluate_offline(_config(), facts, {})

    assert verdict.current_total == 2
    assert verdict.required_total == 2
    assert verdict.passed


def test_end_to_end_bob_alone_fails() -> None:
    facts = PullRequestFacts(changed_files=("src/a.ts",), reviews=(_review("bob", "APPROVED"),))

    verdict = evaluate_offline(_config(), facts, {})

    assert verdict.current_total == 1
    assert not verdict.passed
    assert verdict.conclusion == "failure"


def test_nothing_matched_passes_without_approvals() -> None:
    verdict = evaluate_offline(_config(), PullRequestFacts(changed_files=("docs/a.md",)), {})

    assert verdict.required_total == 0
    assert verdict.passed


def test_label_override_raises_threshold() -> None:
    facts = PullRequestFacts(
        changed_files=("src/a.ts",),
        reviews=(_review("alice", "APPROVED"),),
        labels=({"name": "wa:+3"},),
    )

    verdict = evaluate_offline(_config(), facts, {})

    assert verdict.label_override == 3
    assert verdict.rules_required_total == 2
    assert verdict.required_total == 3
    assert not verdict.passed


def test_ineligible_approver_is_skipped() -> None:
    config = {
        "weights": {"users": {"alice": 2}, "teams": {"org/platform": 2}},
        "rules": [
            {
                "paths": ["src/**"],
                "required_total": 2,
                "approvers": {"any": {"org/platform": 1}},
            }
        ],
    }
    facts = PullRequestFacts(
        changed_files=("src/a.ts",),
        reviews=(_review("alice", "APPROVED"), _review("bob", "APPROVED")),
    )

    verdict = evaluate_offline(config, facts, {"org/platform": ["bob"]})

    assert [approver.login for approver in verdict.counted_approvers] == ["bob"]
    assert verdict.skipped_approvers == ("alice (not allowed)",)
    assert verdict.current_total == 2
    assert verdict.passed


def test_zero_weight_approver_is_skipped() -> None:
    config = {"weights": {"default": 0}, "rules": [{"paths": ["**"], "required_total": 1}]}
    facts = PullRequestFacts(changed_files=("a.txt",), reviews=(_review("dave", "APPROVED"),))

    verdict = evaluate_offline(config, facts, {})

    assert verdict.skipped_approvers == ("dave (weight=0)",)
    assert not verdict.passed


def test_team_requirement_blocks_pass() -> None:
    config = {
        "weights": {"users": {"alice": 5}, "teams": {"org/security": 1}},
        "rules": [
            {
                "paths": ["src/**"],
                "required_total": 2,
                "approvers": {"all": {"org/security": 1, "alice": 1}},
            }
        ],
    }
    facts = PullRequestFacts(changed_files=("src/a.ts",), reviews=(_review("alice", "APPROVED"),))

    verdict = evaluate_offline(config, facts, {})

    assert verdict.total_satisfied
    assert verdict.required_by_team == {"org/security": 1, "alice": 1}
    assert not verdict.team_satisfaction.ok
    assert not verdict.passed


def test_ma_override_caps_non_member() -> None:
    config = {
        "weights": {"users": {"alice": 3}, "teams": {"org/platform": 2}},
        "rules": [{"paths": ["**"], "required_total": 3}],
    }
    comment = {
        "id": 9,
        "body": "ma:@org/platform +2",
        "author_association": "OWNER",
        "created_at": "2024-01-01T00:00:00Z",
        "user": {"login": "lead"},
    }
    facts = PullRequestFacts(
        changed_files=("a.txt",),
        reviews=(_review("alice", "APPROVED"),),
        comments=(comment,),
    )

    verdict = evaluate_offline(config, facts, {})

    assert verdict.ma_override is not None
    assert verdict.counted_approvers[0].weight == 1
    assert verdict.current_total == 1
    assert not verdict.passed


def test_custom_directive_prefix_is_used_in_skip_annotation() -> None:
    config = {
        "weights": {"users": {"alice": 1}, "teams": {"org/platform": 2}},
        "rules": [{"paths": ["**"], "required_total": 1}],
    }
    comment = {
        "body": "cap:@org/platform +2",
        "author_association": "OWNER",
        "created_at": "2024-01-01T00:00:00Z",
    }
    facts = PullRequestFacts(
        changed_files=("a.txt",),
        reviews=(_review("alice", "APPROVED"),),
        comments=(comment,),
    )

    verdict = evaluate_offline(config, facts, {}, DecisionOptions(directive_prefix="cap:"))

    assert verdict.ma_override is not None
    assert verdict.ma_override.comment_author == "unknown"
    assert verdict.current_total == 1


def test_advisory_adds_floor_and_team() -> None:
    config = {
        "weights": {"users": {"alice": 2}},
        "rules": [{"paths": ["src/**"], "required_total": 1}],
        "ai": {
            "enabled": True,
            "provider": "openai",
            "api_key_env": "OPENAI_API_KEY",
            "criticality_range": {"min": 1, "max": 3},
            "teams": ["org/security"],
        },
    }
    facts = PullRequestFacts(
        changed_files=("src/auth.py",),
        reviews=(_review("alice", "APPROVED"),),
        advisory=AdvisoryResult(criticality=10, suggested_teams=("org/security",), reasoning="auth"),
    )

    verdict = evaluate_offline(config, facts, {})

    assert verdict.advisory_required == 3
    assert verdict.required_total == 3
    assert verdict.required_by_team == {"org/security": 1}
    assert verdict.team_satisfaction.missing == ("org/security (0/1)",)
    assert not verdict.passed


def test_advisory_ignored_without_ai_block() -> None:
    facts = PullRequestFacts(
        changed_files=("src/a.ts",),
        reviews=(_review("alice", "APPROVED"),),
        advisory=AdvisoryResult(criticality=10),
    )

    verdict = evaluate_offline(_config(), facts, {})

    assert verdict.advisory is None
    assert verdict.required_total == 2


def test_raw_config_must_be_mapping() -> None:
    with pytest.raises(ConfigError):
        evaluate_offline(["nope"], PullRequestFacts(), {})  # type: ignore[arg-type]


def test_evaluation_is_idempotent() -> None:
    config = {
        "weights": {"users": {"alice": 2}, "teams": {"org/a": 3}},
        "rules": [
            {"paths": ["src/**"], "required_total": 2, "approvers": {"all": {"org/a": 1}}},
            {"paths": ["**"], "required_total": 1},
        ],
    }
    facts = PullRequestFacts(
        changed_files=("src/a.ts", "README.md"),
        reviews=(_review("alice", "APPROVED"), _review("bob", "APPROVED")),
        labels=({"name": "wa:+1"},),
    )
    context = SummaryContext("o/r", 1, "abc", ".github/weighted-approvals.yml", 2)

    first = evaluate_offline(config, facts, {"org/a": ["bob"]})
    second = evaluate_offline(config, facts, {"org/a": ["bob"]})

    assert first == second
    assert render_summary(context, first) == render_summary(context, second)


def test_engine_logs_completion_event(caplog: pytest.LogCaptureFixture) -> None:
    observability = create_observability_manager(repository="o/r")
    engine = DecisionEngine(StaticTeamMembership({}), observability=observability)
    caplog.set_level(logging.INFO, logger="weighted_approvals.events")

    engine.evaluate(
        _config(),
        PullRequestFacts(changed_files=("src/a.ts",), reviews=(_review("alice", "APPROVED"),)),
    )

    events = [
        json.loads(record.message)
        for record in caplog.records
        if record.name == "weighted_approvals.events"
    ]
    assert events[-1]["event_type"] == "evaluation.completed"
    assert events[-1]["payload"]["passed"] is True
    assert events[-1]["payload"]["total_satisfied"] is True
    assert events[-1]["context"] == {"repository": "o/r"}


def test_completion_event_separates_total_from_team_shortfall(caplog: pytest.LogCaptureFixture) -> None:
    config = {
        "weights": {"users": {"alice": 5}, "teams": {"org/security": 1}},
        "rules": [{"paths": ["**"], "required_total": 2, "approvers": {"all": {"org/security": 1, "alice": 1}}}],
    }
    engine = DecisionEngine(StaticTeamMembership({}), observability=create_observability_manager())
    caplog.set_level(logging.INFO, logger="weighted_approvals.events")

    verdict = engine.evaluate(
        config, PullRequestFacts(changed_files=("a.txt",), reviews=(_review("alice", "APPROVED"),))
    )

    payload = [
        json.loads(record.message)["payload"]
        for record in caplog.records
        if record.name == "weighted_approvals.events"
    ][-1]
    assert not verdict.passed
    assert payload["total_satisfied"] is True
    assert payload["passed"] is False
    assert "org/security (0/1)" in payload["missing_teams"]
