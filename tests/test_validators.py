"""
Input-shape validator tests.

Tests cover:
  - validate_idea: length bounds, disclaimer, collaboration deadline, team effort
  - validate_review / validate_decision: enum and comment bounds
  - validate_proposal / parse_proposed_values: proposed_* parsing
  - validate_challenge / validate_submission: deadline and cost rules
  - helpers: parse_bool, parse_date_input
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from ideaportal.utils.helpers import parse_bool, parse_date_input, parse_datetime_input
from ideaportal.utils.validators import (
    parse_proposed_values,
    validate_challenge,
    validate_decision,
    validate_idea,
    validate_proposal,
    validate_review,
    validate_submission,
)

TEXT = "A" * 150
TODAY = date(2026, 3, 1)


def _idea(**overrides):
    body = {
        "idea_title": "Solar car park",
        "thematic_area_id": 1,
        "abstract": TEXT,
        "problem_statement": TEXT,
        "proposed_solution": TEXT,
        "cost_benefit_analysis": TEXT,
        "declaration_of_interests": TEXT,
        "original_idea_disclaimer": True,
    }
    body.update(overrides)
    return body


class TestValidateIdea:
    def test_valid_payload_defaults(self):
        clean, errors = validate_idea(_idea(), today=TODAY)
        assert errors == {}
        assert clean["comments_enabled"] is True
        assert clean["collaboration_enabled"] is False
        assert clean["team_members"] is None

    @pytest.mark.parametrize("title", ["Too short", "T" * 51])
    def test_title_bounds(self, title):
        _, errors = validate_idea(_idea(idea_title=title), today=TODAY)
        assert "idea_title" in errors

    def test_title_bounds_inclusive(self):
        for title in ("T" * 10, "T" * 50):
            _, errors = validate_idea(_idea(idea_title=title), today=TODAY)
            assert "idea_title" not in errors

    @pytest.mark.parametrize("length", [99, 401])
    def test_narrative_bounds(self, length):
        _, errors = validate_idea(_idea(abstract="a" * length), today=TODAY)
        assert "abstract" in errors

    def test_disclaimer_must_be_accepted(self):
        _, errors = validate_idea(_idea(original_idea_disclaimer=False), today=TODAY)
        assert "original_idea_disclaimer" in errors

    def test_collaboration_requires_future_deadline(self):
        _, errors = validate_idea(_idea(collaboration_enabled=True), today=TODAY)
        assert "collaboration_deadline" in errors

        _, errors = validate_idea(
            _idea(collaboration_enabled=True, collaboration_deadline="2026-03-01"), today=TODAY,
        )
        assert "future" in errors["collaboration_deadline"]

        clean, errors = validate_idea(
            _idea(collaboration_enabled="true", collaboration_deadline="15.04.2026"), today=TODAY,
        )
        assert errors == {}
        assert clean["collaboration_deadline"] == date(2026, 4, 15)

    def test_stored_deadline_not_rechecked_on_update(self):
        current = {"collaboration_enabled": True, "collaboration_deadline": date(2026, 2, 1)}
        _, errors = validate_idea(
            _idea(collaboration_enabled=True, collaboration_deadline="2026-02-01"), today=TODAY, current=current,
        )
        assert errors == {}

        # moving the deadline, or switching collaboration on, needs a future date
        _, errors = validate_idea(
            _idea(collaboration_enabled=True, collaboration_deadline="2026-02-10"), today=TODAY, current=current,
        )
        assert "future" in errors["collaboration_deadline"]
        _, errors = validate_idea(
            _idea(collaboration_enabled=True, collaboration_deadline="2026-02-01"), today=TODAY,
            current=dict(current, collaboration_enabled=False),
        )
        assert "future" in errors["collaboration_deadline"]

    def test_team_effort_requires_members(self):
        _, errors = validate_idea(_idea(team_effort=True), today=TODAY)
        assert "team_members" in errors

    def test_team_members_are_validated(self):
        members = [
            {"name": "Jo", "email": "jo@example.com", "role": "Analyst"},
            {"name": "", "email": "not-an-email", "role": "Lead"},
        ]
        _, errors = validate_idea(_idea(team_effort=True, team_members=members), today=TODAY)
        assert "team_members.1.name" in errors
        assert "team_members.1.email" in errors
        assert not any(k.startswith("team_members.0") for k in errors)

    def test_team_members_normalised(self):
        members = [{"name": " Jo ", "email": "Jo@Example.com", "role": "Analyst"}]
        clean, errors = validate_idea(_idea(team_effort=True, team_members=members), today=TODAY)
        assert errors == {}
        assert clean["team_members"][0]["name"] == "Jo"


class TestValidateReviewAndDecision:
    def test_review_bounds(self):
        _, errors = validate_review({"recommendation": "approve", "comments": "short"}, min_len=50, max_len=2000)
        assert "comments" in errors
        _, errors = validate_review({"recommendation": "approve", "comments": "c" * 2001}, min_len=50, max_len=2000)
        assert "comments" in errors
        _, errors = validate_review({"recommendation": "approve", "comments": "c" * 50}, min_len=50, max_len=2000)
        assert errors == {}

    def test_review_recommendation_enum(self):
        _, errors = validate_review({"recommendation": "maybe", "comments": "c" * 60}, min_len=50)
        assert "recommendation" in errors

    def test_decision_compiled_minimum(self):
        _, errors = validate_decision({"decision": "approve", "compiled_comments": "too short"})
        assert "compiled_comments" in errors
        _, errors = validate_decision({"decision": "approve", "compiled_comments": "ok"}, compiled_min=None)
        assert errors == {}

    def test_decision_dd_comments_max(self):
        _, errors = validate_decision(
            {"decision": "reject", "compiled_comments": "c" * 60, "dd_comments": "d" * 1001},
        )
        assert "dd_comments" in errors


class TestValidateProposal:
    def test_required_notes_and_summary(self):
        _, errors = validate_proposal({})
        assert set(errors) == {"collaboration_notes", "change_summary"}

    def test_change_summary_max(self):
        _, errors = validate_proposal({"collaboration_notes": "n", "change_summary": "s" * 501})
        assert "change_summary" in errors

    def test_proposed_values_are_typed(self):
        clean, errors = validate_proposal({
            "collaboration_notes": "Tightened the wording",
            "change_summary": "Clearer abstract",
            "proposed_abstract": "  A sharper abstract  ",
            "proposed_solution": "Same solution, fewer steps",
            "proposed_team_effort": "false",
            "proposed_thematic_area_id": "3",
        })
        assert errors == {}
        assert clean["proposed"] == {
            "abstract": "A sharper abstract",
            "proposed_solution": "Same solution, fewer steps",
            "team_effort": False,
            "thematic_area_id": 3,
        }

    def test_unprefixed_edits(self):
        errors = {}
        values = parse_proposed_values({"idea_title": "Edited title", "collaboration_deadline": "bad"},
                                       errors, prefixed=False)
        assert values == {"idea_title": "Edited title"}
        assert "collaboration_deadline" in errors


class TestValidateChallengeAndSubmission:
    def test_deadline_must_be_future(self):
        now = datetime(2026, 3, 1, tzinfo=timezone.utc)
        body = {"title": "T", "description": "D", "guidelines": "G", "reward": "R"}
        _, errors = validate_challenge(dict(body, deadline="2026-02-28T12:00:00Z"), now=now)
        assert "deadline" in errors
        clean, errors = validate_challenge(dict(body, deadline="2026-04-01"), now=now)
        assert errors == {}
        assert clean["deadline"] == datetime(2026, 4, 1, tzinfo=timezone.utc)

    def test_submission_cost(self):
        body = {"title": "T", "description": "D", "motivation": "M", "original_disclaimer": "Mine"}
        _, errors = validate_submission(dict(body, cost_of_implementation=-1))
        assert "cost_of_implementation" in errors
        _, errors = validate_submission(dict(body, cost_of_implementation="abc"))
        assert "cost_of_implementation" in errors
        clean, errors = validate_submission(dict(body, cost_of_implementation="1250.50"))
        assert errors == {}
        assert clean["cost_of_implementation"] == Decimal("1250.50")


class TestHelpers:
    @pytest.mark.parametrize("raw,expected", [
        (True, True), ("on", True), ("1", True), ("false", False), ("", False), (None, False),
    ])
    def test_parse_bool(self, raw, expected):
        assert parse_bool(raw) is expected

    def test_parse_bool_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_bool("perhaps")

    def test_parse_date_input_formats(self):
        assert parse_date_input("2026-05-04") == date(2026, 5, 4)
        assert parse_date_input("04.05.2026") == date(2026, 5, 4)
        assert parse_date_input("") is None
        with pytest.raises(ValueError):
            parse_date_input("May 4th")

    def test_parse_datetime_naive_is_utc(self):
        parsed = parse_datetime_input("2026-05-04T10:00:00")
        assert parsed.tzinfo == timezone.utc
        assert parsed - timedelta(hours=10) == datetime(2026, 5, 4, tzinfo=timezone.utc)
