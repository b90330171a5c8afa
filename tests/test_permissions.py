"""
RBAC grants and the per-user permission cache.
"""

import pytest

from ideaportal.models import db
from ideaportal.models.auth import (
    ROLE_ADMIN,
    ROLE_AUTHOR,
    ROLE_BOARD,
    ROLE_CHALLENGE_REVIEWER,
    ROLE_DEPUTY_DIRECTOR,
    ROLE_SME,
    Role,
    UserRole,
)
from ideaportal.services.permission_service import (
    PERMISSIONS,
    assign_role,
    count_role_holders,
    get_user_permissions,
    get_user_roles,
    has_any_permission,
    invalidate_cache,
    role_holder_ids,
)


class TestRoleGrants:
    @pytest.mark.parametrize("role, granted, denied", [
        (ROLE_AUTHOR, {"submit.ideas", "manage.collaboration-proposals"},
         {"review.ideas-stage1", "review.challenge-submissions"}),
        (ROLE_SME, {"review.ideas-stage1", "review.challenge-submissions"},
         {"review.ideas-stage2", "manage.idea-workflow"}),
        (ROLE_BOARD, {"review.ideas-stage2", "review.challenge-submissions"},
         {"review.ideas-stage1", "manage.review-decisions"}),
        (ROLE_CHALLENGE_REVIEWER, {"review.challenge-submissions", "view.ideas"},
         {"review.ideas-stage1", "review.ideas-stage2"}),
        (ROLE_DEPUTY_DIRECTOR, {"manage.idea-workflow", "manage.review-decisions", "create.challenges"},
         {"manage.thematic-areas"}),
    ])
    def test_role_matrix(self, make_user, role, granted, denied):
        user = make_user(None, role)
        perms = get_user_permissions(user.id)
        assert granted <= perms
        assert not (denied & perms)

    def test_admin_holds_everything(self, admin):
        assert get_user_permissions(admin.id) == set(PERMISSIONS)

    def test_user_without_roles_has_nothing(self, make_user):
        user = make_user()
        assert get_user_permissions(user.id) == set()
        assert get_user_roles(user.id) == set()
        assert not has_any_permission(user.id, ["view.ideas", "submit.ideas"])


class TestPermissionCache:
    def test_assign_role_invalidates(self, author):
        assert "review.ideas-stage1" not in get_user_permissions(author.id)
        assign_role(author, ROLE_SME)
        assert "review.ideas-stage1" in get_user_permissions(author.id)
        assert get_user_roles(author.id) == {ROLE_AUTHOR, ROLE_SME}

    def test_stale_until_invalidated(self, author):
        assert get_user_roles(author.id) == {ROLE_AUTHOR}
        board_role = Role.query.filter_by(name=ROLE_BOARD).one()
        db.session.add(UserRole(user_id=author.id, role_id=board_role.id))
        db.session.flush()

        assert get_user_roles(author.id) == {ROLE_AUTHOR}
        invalidate_cache(author.id)
        assert get_user_roles(author.id) == {ROLE_AUTHOR, ROLE_BOARD}

    def test_assign_role_twice_is_noop(self, author):
        first = assign_role(author, ROLE_AUTHOR)
        assert first.id == assign_role(author, ROLE_AUTHOR).id
        assert UserRole.query.filter_by(user_id=author.id).count() == 1

    def test_unknown_role(self, author):
        with pytest.raises(ValueError, match="Unknown role"):
            assign_role(author, "overlord")


class TestRoleHolders:
    def test_inactive_users_not_counted(self, make_user):
        active = make_user("one@example.com", ROLE_SME)
        inactive = make_user("two@example.com", ROLE_SME)
        inactive.status = "inactive"
        db.session.commit()

        assert count_role_holders(ROLE_SME) == 1
        assert role_holder_ids(ROLE_SME) == [active.id]
