"""
Shared pytest fixtures for the Innovation Review Portal test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup, roles re-seeded (autouse)
    - client: Flask test client (function-scoped)
    - make_user / auth: users with roles and their bearer headers
    - area: a thematic area
    - author, sme, board, dd, admin: one user per workflow role
    - idea_payload: a valid idea body
"""

import pytest

from ideaportal import create_app
from ideaportal.models import db as _db
from ideaportal.models.auth import (
    ROLE_ADMIN,
    ROLE_AUTHOR,
    ROLE_BOARD,
    ROLE_DEPUTY_DIRECTOR,
    ROLE_SME,
    User,
)
from ideaportal.models.idea import ThematicArea
from ideaportal.services.jwt_service import generate_access_token
from ideaportal.services.permission_service import (
    assign_role,
    invalidate_all_cache,
    seed_roles_and_permissions,
)

NARRATIVE = (
    "Reduce paper use across regional offices by moving approval forms online. " * 2
).strip()


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, seed roles, recreate tables afterwards."""
    with app.app_context():
        # ids are reused across tests; stale cache entries would leak roles
        invalidate_all_cache()
        seed_roles_and_permissions()
        _db.session.commit()
        yield
        invalidate_all_cache()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Users & tokens ───────────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    """Factory: make_user("sme@example.com", ROLE_SME) → committed User."""
    counter = {"n": 0}

    def _make(email=None, *roles, full_name=None):
        counter["n"] += 1
        email = email or f"user{counter['n']}@example.com"
        user = User(email=email, full_name=full_name or email.split("@")[0].title())
        _db.session.add(user)
        _db.session.flush()
        for role in roles:
            assign_role(user, role)
        _db.session.commit()
        return user

    return _make


def _bearer(user):
    return {"Authorization": f"Bearer {generate_access_token(user.id, user.role_names)}"}


@pytest.fixture()
def auth():
    """auth(user) → Authorization header dict for ``user``."""
    return _bearer


@pytest.fixture()
def author(make_user):
    return make_user("author@example.com", ROLE_AUTHOR, full_name="Ada Author")


@pytest.fixture()
def other_author(make_user):
    return make_user("colleague@example.com", ROLE_AUTHOR, full_name="Cole League")


@pytest.fixture()
def sme(make_user):
    return make_user("sme@example.com", ROLE_SME, full_name="Sam Expert")


@pytest.fixture()
def board(make_user):
    return make_user("board@example.com", ROLE_BOARD, full_name="Bo Ard")


@pytest.fixture()
def dd(make_user):
    return make_user("dd@example.com", ROLE_DEPUTY_DIRECTOR, full_name="Dee Director")


@pytest.fixture()
def admin(make_user):
    return make_user("admin@example.com", ROLE_ADMIN, full_name="Adam Admin")


# ── Domain fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def area():
    a = ThematicArea(name="Digital Transformation", slug="digital-transformation", sort_order=1)
    _db.session.add(a)
    _db.session.commit()
    return a


@pytest.fixture()
def idea_payload(area):
    """Factory for a valid idea body; keyword overrides replace fields."""

    def _payload(**overrides):
        body = {
            "idea_title": "Paperless approvals",
            "thematic_area_id": area.id,
            "abstract": NARRATIVE,
            "problem_statement": NARRATIVE,
            "proposed_solution": NARRATIVE,
            "cost_benefit_analysis": NARRATIVE,
            "declaration_of_interests": NARRATIVE,
            "original_idea_disclaimer": True,
        }
        body.update(overrides)
        return body

    return _payload


@pytest.fixture()
def submitted_idea(client, author, idea_payload):
    """An idea by ``author`` in 'stage 1 review'."""
    res = client.post("/api/v1/ideas", json=idea_payload(), headers=_bearer(author))
    assert res.status_code == 201, res.get_json()
    return res.get_json()
