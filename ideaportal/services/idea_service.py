"""
Idea Service — idea CRUD, likes and comments.

All functions flush and leave the commit to the caller (blueprints use
``db_commit_or_error``). Input shape is validated by
``ideaportal.utils.validators.validate_idea`` before it reaches here;
this module enforces the rules that need the database or the acting user:

    - thematic area must exist                       → ValidationError (422)
    - gate checks (edit / delete / toggle / comment) → PermissionDenied (403)
    - missing or soft-deleted idea                   → NotFoundError (404)
"""

from __future__ import annotations

import logging
import random
import string

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ideaportal.core.exceptions import ConflictError, NotFoundError, PermissionDenied, ValidationError
from ideaportal.models import db
from ideaportal.models.audit import write_audit
from ideaportal.models.idea import (
    DELETED_COMMENT_TEXT,
    IDEA_CONTENT_FIELDS,
    Comment,
    Idea,
    IdeaLike,
    TeamMember,
    ThematicArea,
)
from ideaportal.models.workflow import STATUS_DRAFT, STATUS_STAGE1_REVIEW
from ideaportal.services.policy import authorize

logger = logging.getLogger(__name__)

_rng = random.SystemRandom()

TOGGLEABLE_SETTINGS = ("collaboration_enabled", "comments_enabled")


# ── Slugs ────────────────────────────────────────────────────────────────────

def _slug_candidate() -> str:
    chars = _rng.sample(string.ascii_lowercase, 4) + [_rng.choice(string.digits) for _ in range(4)]
    _rng.shuffle(chars)
    return f"{''.join(chars[:4])}-{''.join(chars[4:])}"


def generate_slug() -> str:
    """Random ``abcd-1234``-shaped slug (letters and digits shuffled), unique among ideas."""
    slug = _slug_candidate()
    while db.session.query(Idea.query.filter_by(slug=slug).exists()).scalar():
        slug = _slug_candidate()
    return slug


# ── Lookups ──────────────────────────────────────────────────────────────────

def get_idea(slug: str) -> Idea:
    idea = Idea.query_active().filter_by(slug=slug).first()
    if idea is None:
        raise NotFoundError("Idea", slug)
    return idea


def get_idea_by_id(idea_id: int) -> Idea:
    idea = db.session.get(Idea, idea_id)
    if idea is None or idea.is_deleted:
        raise NotFoundError("Idea", idea_id)
    return idea


def can_view(user, idea: Idea) -> bool:
    """Drafts are private to their author."""
    return idea.status != STATUS_DRAFT or idea.user_id == user.id


def get_visible_idea(slug: str, user) -> Idea:
    idea = get_idea(slug)
    if not can_view(user, idea):
        # Someone else's draft is indistinguishable from a missing idea
        raise NotFoundError("Idea", slug)
    return idea


def _require_thematic_area(thematic_area_id):
    if thematic_area_id is None:
        return
    if db.session.get(ThematicArea, thematic_area_id) is None:
        raise ValidationError(
            "Unknown thematic area",
            details={"thematic_area_id": f"Thematic area {thematic_area_id} does not exist"},
        )


# ── Create / update ──────────────────────────────────────────────────────────

def _set_attachment(idea: Idea, upload: dict | None) -> None:
    idea.attachment = upload["content"] if upload else None
    idea.attachment_filename = upload["filename"] if upload else None
    idea.attachment_mime = upload["mime"] if upload else None
    idea.attachment_size = upload["size"] if upload else None


def _replace_team(idea: Idea, members: list[dict]) -> None:
    idea.team_members.clear()
    for m in members:
        idea.team_members.append(TeamMember(name=m["name"], email=m["email"], role=m["role"]))


def create_idea(user, data: dict, attachment: dict | None = None, save_as_draft: bool = False) -> Idea:
    """Create an idea from validated ``data``; straight into stage 1 review unless a draft."""
    _require_thematic_area(data.get("thematic_area_id"))

    idea = Idea(
        slug=generate_slug(),
        user_id=user.id,
        status=STATUS_DRAFT if save_as_draft else STATUS_STAGE1_REVIEW,
        current_revision_number=1,
        **{f: data[f] for f in IDEA_CONTENT_FIELDS if data.get(f) is not None},
    )
    if attachment:
        _set_attachment(idea, attachment)
    if data.get("team_members"):
        _replace_team(idea, data["team_members"])

    db.session.add(idea)
    db.session.flush()
    write_audit(
        entity_type="idea", entity_id=idea.id, action="idea.create", actor_user_id=user.id,
        diff={"status": idea.status, "slug": idea.slug},
    )
    logger.info(
        "Idea %s created by user %s (%s)", idea.slug, user.id, idea.status,
        extra={"event_type": "idea.create", "entity_type": "idea", "entity_id": idea.id},
    )
    return idea


def update_idea(idea: Idea, user, data: dict, attachment: dict | None = None,
                remove_attachment: bool = False) -> Idea:
    """Apply validated ``data`` to ``idea``; team members replaced when supplied."""
    authorize("edit-idea", user, idea)
    _require_thematic_area(data.get("thematic_area_id"))

    before = idea.content_snapshot()
    for field in IDEA_CONTENT_FIELDS:
        if field in data:
            setattr(idea, field, data[field])
    if data.get("team_members") is not None:
        _replace_team(idea, data["team_members"])
    if attachment:
        _set_attachment(idea, attachment)
    elif remove_attachment:
        _set_attachment(idea, None)
    db.session.flush()

    after = idea.content_snapshot()
    changed = {f: {"old": before[f], "new": after[f]} for f in IDEA_CONTENT_FIELDS if before[f] != after[f]}
    write_audit(entity_type="idea", entity_id=idea.id, action="idea.update", actor_user_id=user.id, diff=changed)
    return idea


# ── Listing ──────────────────────────────────────────────────────────────────

def _apply_filters(q, filters: dict):
    status = filters.get("status")
    if status:
        q = q.filter(Idea.status == status)
    area = filters.get("thematic_area_id")
    if area:
        q = q.filter(Idea.thematic_area_id == area)
    term = (filters.get("q") or "").strip()
    if term:
        like = f"%{term}%"
        q = q.filter(or_(Idea.idea_title.ilike(like), Idea.abstract.ilike(like)))
    return q


def list_my_ideas(user, filters: dict | None = None):
    """Query of the user's own ideas (drafts included), newest first."""
    q = Idea.query_active().filter(Idea.user_id == user.id)
    return _apply_filters(q, filters or {}).order_by(Idea.created_at.desc(), Idea.id.desc())


def list_public_ideas(filters: dict | None = None):
    """Query of every non-draft idea, newest first."""
    q = Idea.query_active().filter(Idea.status != STATUS_DRAFT)
    return _apply_filters(q, filters or {}).order_by(Idea.created_at.desc(), Idea.id.desc())


def with_like_info(ideas: list[Idea], user) -> list[dict]:
    """Serialise ideas with ``likes_count`` and ``liked_by_me`` in two queries."""
    ids = [i.id for i in ideas]
    counts = dict(
        db.session.query(IdeaLike.idea_id, func.count(IdeaLike.id))
        .filter(IdeaLike.idea_id.in_(ids))
        .group_by(IdeaLike.idea_id)
        .all()
    ) if ids else {}
    mine = {
        row[0] for row in
        db.session.query(IdeaLike.idea_id).filter(IdeaLike.idea_id.in_(ids), IdeaLike.user_id == user.id).all()
    } if ids else set()
    out = []
    for idea in ideas:
        d = idea.to_dict()
        d["likes_count"] = counts.get(idea.id, 0)
        d["liked_by_me"] = idea.id in mine
        out.append(d)
    return out


def attachment_for(idea: Idea) -> Idea:
    if not idea.has_attachment:
        raise NotFoundError("Attachment", idea.slug)
    return idea


# ── Delete ───────────────────────────────────────────────────────────────────

def _delete(idea: Idea, user) -> str:
    mode = "hard" if idea.status == STATUS_DRAFT else "soft"
    write_audit(
        entity_type="idea", entity_id=idea.id, action="idea.delete", actor_user_id=user.id,
        diff={"mode": mode, "status": idea.status, "slug": idea.slug},
    )
    if mode == "hard":
        db.session.delete(idea)
    else:
        idea.soft_delete()
    db.session.flush()
    logger.info(
        "Idea %s %s-deleted by user %s", idea.slug, mode, user.id,
        extra={"event_type": "idea.delete", "entity_type": "idea", "entity_id": idea.id},
    )
    return mode


def delete_idea(idea_id: int, user) -> str:
    """Drafts are removed outright; anything else is soft-deleted. Returns the mode."""
    idea = get_idea_by_id(idea_id)
    if not can_view(user, idea):
        raise NotFoundError("Idea", idea_id)
    authorize("delete-idea", user, idea)
    return _delete(idea, user)


def delete_selected(ids: list[int], user) -> dict:
    deleted, skipped = [], []
    for idea_id in ids:
        idea = db.session.get(Idea, idea_id)
        if idea is None or idea.is_deleted or not can_view(user, idea):
            skipped.append(idea_id)
            continue
        try:
            authorize("delete-idea", user, idea)
        except PermissionDenied:
            skipped.append(idea_id)
            continue
        _delete(idea, user)
        deleted.append(idea_id)
    return {"deleted": deleted, "skipped": skipped}


# ── Settings & likes ─────────────────────────────────────────────────────────

def toggle_setting(idea: Idea, user, field: str) -> bool:
    if field not in TOGGLEABLE_SETTINGS:
        raise ValueError(f"Not a toggleable setting: {field}")
    authorize("toggle-idea-setting", user, idea)
    value = not getattr(idea, field)
    setattr(idea, field, value)
    db.session.flush()
    logger.info("Idea %s %s=%s by user %s", idea.slug, field, value, user.id)
    return value


def likes_count(idea: Idea) -> int:
    return IdeaLike.query.filter_by(idea_id=idea.id).count()


def toggle_like(idea: Idea, user) -> dict:
    existing = IdeaLike.query.filter_by(idea_id=idea.id, user_id=user.id).first()
    if existing:
        db.session.delete(existing)
        db.session.flush()
        liked = False
    else:
        db.session.add(IdeaLike(idea_id=idea.id, user_id=user.id))
        try:
            db.session.flush()
        except IntegrityError as exc:
            db.session.rollback()
            raise ConflictError("IdeaLike", "idea_id/user_id", f"{idea.id}/{user.id}") from exc
        liked = True
    return {"liked": liked, "likes_count": likes_count(idea)}


# ── Comments ─────────────────────────────────────────────────────────────────

def list_comments(idea: Idea) -> list[Comment]:
    return idea.comments.order_by(Comment.created_at.asc(), Comment.id.asc()).all()


def add_comment(idea: Idea, user, content: str) -> Comment:
    authorize("comment-on-idea", user, idea)
    comment = Comment(idea_id=idea.id, user_id=user.id, content=content)
    db.session.add(comment)
    db.session.flush()
    return comment


def _own_comment(idea: Idea, comment_id: int, user) -> Comment:
    comment = db.session.get(Comment, comment_id)
    if comment is None or comment.idea_id != idea.id:
        raise NotFoundError("Comment", comment_id)
    if comment.user_id != user.id:
        raise PermissionDenied("edit-comment", "only the author may change a comment", user_id=user.id)
    return comment


def update_comment(idea: Idea, comment_id: int, user, content: str) -> Comment:
    comment = _own_comment(idea, comment_id, user)
    if comment.is_deleted:
        raise ValidationError("Deleted comments cannot be edited", details={"comment_id": comment_id})
    comment.content = content
    db.session.flush()
    return comment


def delete_comment(idea: Idea, comment_id: int, user) -> Comment:
    """Overwrite the text; the row stays so the thread keeps its shape."""
    comment = _own_comment(idea, comment_id, user)
    comment.content = DELETED_COMMENT_TEXT
    comment.is_deleted = True
    db.session.flush()
    return comment
