"""
Operator CLI commands (``flask seed-roles`` etc.).
"""

import pytest

from ideaportal.models.auth import ROLE_BOARD, ROLE_SME, User
from ideaportal.models.idea import ThematicArea
from ideaportal.services.jwt_service import decode_access_token


@pytest.fixture()
def runner(app):
    return app.test_cli_runner()


class TestSeedCommands:
    def test_seed_roles_is_idempotent(self, runner):
        result = runner.invoke(args=["seed-roles"])
        assert result.exit_code == 0, result.output
        assert "Seeded 0 roles, 0 permissions, 0 grants." in result.output

    def test_seed_thematic_areas(self, runner):
        result = runner.invoke(args=["seed-thematic-areas"])
        assert result.exit_code == 0, result.output
        assert "Seeded 7 new thematic areas." in result.output
        assert ThematicArea.query.count() == 7

        again = runner.invoke(args=["seed-thematic-areas"])
        assert "Seeded 0 new thematic areas." in again.output


class TestUserCommands:
    def test_create_user_with_roles(self, runner):
        result = runner.invoke(args=[
            "create-user", "reviewer@example.com", "Rae Viewer", "--role", ROLE_SME, "--role", ROLE_BOARD,
        ])
        assert result.exit_code == 0, result.output
        user = User.query.filter_by(email="reviewer@example.com").one()
        assert set(user.role_names) == {ROLE_SME, ROLE_BOARD}

    def test_create_user_adds_roles_to_existing(self, runner, sme):
        result = runner.invoke(args=["create-user", sme.email, "Ignored Name", "--role", ROLE_BOARD])
        assert result.exit_code == 0, result.output
        assert User.query.filter_by(email=sme.email).count() == 1
        assert set(User.query.filter_by(email=sme.email).one().role_names) == {ROLE_SME, ROLE_BOARD}

    def test_create_user_unknown_role(self, runner):
        result = runner.invoke(args=["create-user", "x@example.com", "X", "--role", "overlord"])
        assert result.exit_code != 0
        assert "Unknown role: overlord" in result.output

    def test_issue_token(self, runner, author):
        result = runner.invoke(args=["issue-token", author.email, "--expires-in", "120"])
        assert result.exit_code == 0, result.output
        payload = decode_access_token(result.output.strip())
        assert payload["sub"] == str(author.id)
        assert payload["exp"] - payload["iat"] == 120

    def test_issue_token_unknown_user(self, runner):
        result = runner.invoke(args=["issue-token", "ghost@example.com"])
        assert result.exit_code != 0
        assert "No user with email" in result.output
