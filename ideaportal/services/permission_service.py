"""
Permission Service — DB-driven RBAC with a per-user cache.

Evaluation is deny-by-default: a permission is granted only if at least
one of the user's roles grants the codename. Role names are cached
alongside permissions because the review workflow checks roles directly
(SME for stage 1, Board for stage 2, Deputy Director for decisions).

Also owns the canonical role → permission grants and the idempotent
``seed_roles_and_permissions`` used by ``flask seed-roles`` and tests.
"""

import logging
import threading
import time

from ideaportal.models import db
from ideaportal.models.auth import (
    ALL_ROLES,
    ROLE_ADMIN,
    ROLE_AUTHOR,
    ROLE_BOARD,
    ROLE_CHALLENGE_REVIEWER,
    ROLE_DEPUTY_DIRECTOR,
    ROLE_SME,
    Permission,
    Role,
    RolePermission,
    User,
    UserRole,
)

logger = logging.getLogger(__name__)

CACHE_TTL = 300  # 5 minutes

# user_id → (cached_at, role names, permission codenames)
_cache: dict[int, tuple[float, frozenset[str], frozenset[str]]] = {}
_cache_lock = threading.Lock()


# ── Canonical grants ─────────────────────────────────────────────────────────

PERMISSIONS = {
    "submit.ideas": "ideas",
    "view.ideas": "ideas",
    "review.ideas-stage1": "review",
    "review.ideas-stage2": "review",
    "manage.idea-workflow": "review",
    "approve.ideas": "review",
    "manage.review-decisions": "review",
    "create.challenges": "challenges",
    "manage.challenges": "challenges",
    "submit.challenge-responses": "challenges",
    "review.challenge-submissions": "challenges",
    "submit.collaboration-proposals": "collaboration",
    "manage.collaboration-proposals": "collaboration",
    "manage.thematic-areas": "admin",
}

_EVERYONE = {
    "submit.ideas",
    "view.ideas",
    "submit.challenge-responses",
    "submit.collaboration-proposals",
}

ROLE_PERMISSIONS = {
    ROLE_ADMIN: set(PERMISSIONS),
    ROLE_DEPUTY_DIRECTOR: set(PERMISSIONS) - {"manage.thematic-areas"},
    ROLE_BOARD: _EVERYONE | {"review.ideas-stage2", "review.challenge-submissions"},
    ROLE_SME: _EVERYONE | {"review.ideas-stage1", "review.challenge-submissions"},
    ROLE_CHALLENGE_REVIEWER: _EVERYONE | {"review.challenge-submissions"},
    ROLE_AUTHOR: _EVERYONE | {"manage.collaboration-proposals"},
}


# ── Cache ────────────────────────────────────────────────────────────────────

def invalidate_cache(user_id: int) -> None:
    with _cache_lock:
        _cache.pop(user_id, None)


def invalidate_all_cache() -> None:
    with _cache_lock:
        _cache.clear()


def _load(user_id: int) -> tuple[frozenset[str], frozenset[str]]:
    with _cache_lock:
        entry = _cache.get(user_id)
        if entry is not None and time.time() - entry[0] <= CACHE_TTL:
            return entry[1], entry[2]

    rows = (
        db.session.query(Role.name, Permission.codename)
        .select_from(UserRole)
        .join(Role, Role.id == UserRole.role_id)
        .outerjoin(RolePermission, RolePermission.role_id == Role.id)
        .outerjoin(Permission, Permission.id == RolePermission.permission_id)
        .filter(UserRole.user_id == user_id)
        .all()
    )
    roles = frozenset(r for r, _ in rows)
    perms = frozenset(p for _, p in rows if p)

    with _cache_lock:
        _cache[user_id] = (time.time(), roles, perms)
    return roles, perms


# ── Queries ──────────────────────────────────────────────────────────────────

def get_user_roles(user_id: int) -> set[str]:
    return set(_load(user_id)[0])


def get_user_permissions(user_id: int) -> set[str]:
    return set(_load(user_id)[1])


def has_role(user_id: int, *role_names: str) -> bool:
    roles = _load(user_id)[0]
    return any(r in roles for r in role_names)


def has_permission(user_id: int, codename: str) -> bool:
    return codename in _load(user_id)[1]


def has_any_permission(user_id: int, codenames: list[str]) -> bool:
    perms = _load(user_id)[1]
    return any(c in perms for c in codenames)


def count_role_holders(role_name: str) -> int:
    """Number of active users holding ``role_name``."""
    return (
        db.session.query(UserRole.user_id)
        .join(Role, Role.id == UserRole.role_id)
        .join(User, User.id == UserRole.user_id)
        .filter(Role.name == role_name, User.status == "active")
        .distinct()
        .count()
    )


def role_holder_ids(role_name: str) -> list[int]:
    rows = (
        db.session.query(UserRole.user_id)
        .join(Role, Role.id == UserRole.role_id)
        .join(User, User.id == UserRole.user_id)
        .filter(Role.name == role_name, User.status == "active")
        .distinct()
        .all()
    )
    return [r[0] for r in rows]


# ── Mutations ────────────────────────────────────────────────────────────────

def assign_role(user: User, role_name: str) -> UserRole:
    """Grant ``role_name`` to ``user`` (no-op if already held). Flushes only."""
    role = Role.query.filter_by(name=role_name).first()
    if role is None:
        raise ValueError(f"Unknown role: {role_name}")
    existing = UserRole.query.filter_by(user_id=user.id, role_id=role.id).first()
    if existing:
        return existing
    ur = UserRole(user_id=user.id, role_id=role.id)
    db.session.add(ur)
    db.session.flush()
    invalidate_cache(user.id)
    return ur


def seed_roles_and_permissions() -> dict:
    """
    Create the canonical roles, permissions and grants. Idempotent.

    Returns counts of newly created rows. Flushes only; callers commit.
    """
    created = {"roles": 0, "permissions": 0, "grants": 0}

    perms = {p.codename: p for p in Permission.query.all()}
    for codename, category in PERMISSIONS.items():
        if codename not in perms:
            p = Permission(
                codename=codename,
                category=category,
                display_name=codename.replace(".", " ").replace("-", " ").title(),
            )
            db.session.add(p)
            perms[codename] = p
            created["permissions"] += 1

    roles = {r.name: r for r in Role.query.all()}
    for name in ALL_ROLES:
        if name not in roles:
            r = Role(name=name, display_name=name.replace("-", " ").title())
            db.session.add(r)
            roles[name] = r
            created["roles"] += 1
    db.session.flush()

    existing = {
        (rp.role_id, rp.permission_id) for rp in RolePermission.query.all()
    }
    for role_name, codenames in ROLE_PERMISSIONS.items():
        role = roles[role_name]
        for codename in sorted(codenames):
            key = (role.id, perms[codename].id)
            if key not in existing:
                db.session.add(RolePermission(role_id=role.id, permission_id=perms[codename].id))
                existing.add(key)
                created["grants"] += 1
    db.session.flush()
    invalidate_all_cache()

    logger.info(
        "Seeded roles=%d permissions=%d grants=%d",
        created["roles"], created["permissions"], created["grants"],
    )
    return created
