"""Input-shape validators.

Each ``validate_*`` takes a raw payload (JSON body or form dict) and
returns ``(clean, errors)``. ``errors`` maps field name → message and is
empty on success; blueprints turn a non-empty ``errors`` into HTTP 400 via
``api_error(E.VALIDATION_INVALID, ...)``. Rules that need the database
(thematic area exists, challenge open, ...) live in the services.
"""

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation

from email_validator import EmailNotValidError, validate_email

from ideaportal.models.collaboration import PROPOSED_FIELD_MAP
from ideaportal.models.workflow import DECISIONS
from ideaportal.utils.helpers import parse_bool, parse_date_input, parse_datetime_input

IDEA_TITLE_LENGTH = (10, 50)
IDEA_NARRATIVE_LENGTH = (100, 400)
IDEA_NARRATIVE_FIELDS = (
    "abstract",
    "problem_statement",
    "proposed_solution",
    "cost_benefit_analysis",
    "declaration_of_interests",
)
IDEA_FLAG_DEFAULTS = {
    "collaboration_enabled": False,
    "team_effort": False,
    "comments_enabled": True,
}
TEAM_MEMBER_FIELD_MAX = 255
COMMENT_MAX = 1000
CHANGE_SUMMARY_MAX = 500
DD_COMMENTS_MAX = 1000


def _text(data, field, errors, *, required=True, min_len=None, max_len=None):
    """Strip and length-check a text field. Returns the value or None."""
    raw = data.get(field)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        if required:
            errors[field] = f"{field} is required"
        return None
    if not isinstance(raw, str):
        errors[field] = f"{field} must be a string"
        return None
    value = raw.strip()
    if min_len is not None and len(value) < min_len:
        errors[field] = f"{field} must be at least {min_len} characters"
    elif max_len is not None and len(value) > max_len:
        errors[field] = f"{field} must be at most {max_len} characters"
    return value


def _flag(data, field, errors, default=False):
    try:
        return parse_bool(data.get(field), default)
    except ValueError:
        errors[field] = f"{field} must be a boolean"
        return default


def _int(data, field, errors, *, required=True):
    raw = data.get(field)
    if raw in (None, ""):
        if required:
            errors[field] = f"{field} is required"
        return None
    if isinstance(raw, bool):
        errors[field] = f"{field} must be an integer"
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        errors[field] = f"{field} must be an integer"
        return None


# ── Ideas ────────────────────────────────────────────────────────────────────

def _team_members(raw, errors):
    if not isinstance(raw, list):
        errors["team_members"] = "team_members must be a list"
        return None
    members = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            errors[f"team_members.{i}"] = "must be an object with name, email and role"
            continue
        member = {}
        for key in ("name", "role"):
            value = item.get(key)
            if not isinstance(value, str) or not value.strip():
                errors[f"team_members.{i}.{key}"] = f"The team member {key} field is required."
            elif len(value.strip()) > TEAM_MEMBER_FIELD_MAX:
                errors[f"team_members.{i}.{key}"] = f"must be at most {TEAM_MEMBER_FIELD_MAX} characters"
            else:
                member[key] = value.strip()
        email = item.get("email")
        if not isinstance(email, str) or not email.strip():
            errors[f"team_members.{i}.email"] = "The team member email field is required."
        else:
            try:
                member["email"] = validate_email(email.strip(), check_deliverability=False).normalized
            except EmailNotValidError:
                errors[f"team_members.{i}.email"] = "The team member email must be a valid email address."
        members.append(member)
    return members


def _deadline_unchanged(current, deadline) -> bool:
    return bool(
        current
        and current.get("collaboration_enabled")
        and current.get("collaboration_deadline") == deadline
    )


def validate_idea(data: dict, *, today: date | None = None, current: dict | None = None):
    """Validate a full idea payload.

    ``team_members`` in the result is None when the payload did not carry
    the key (updates then leave the existing rows alone).

    ``current`` is the stored content snapshot on updates. A deadline that
    is already stored with collaboration enabled is not re-checked against
    today, so an idea stays editable after its collaboration window closes.
    """
    errors: dict = {}
    today = today or datetime.now(timezone.utc).date()
    clean: dict = {}

    clean["idea_title"] = _text(data, "idea_title", errors,
                                min_len=IDEA_TITLE_LENGTH[0], max_len=IDEA_TITLE_LENGTH[1])
    clean["thematic_area_id"] = _int(data, "thematic_area_id", errors)
    lo, hi = IDEA_NARRATIVE_LENGTH
    for field in IDEA_NARRATIVE_FIELDS:
        clean[field] = _text(data, field, errors, min_len=lo, max_len=hi)

    if not _flag(data, "original_idea_disclaimer", errors):
        errors.setdefault("original_idea_disclaimer", "original_idea_disclaimer must be accepted")
    clean["original_idea_disclaimer"] = True

    for field, default in IDEA_FLAG_DEFAULTS.items():
        clean[field] = _flag(data, field, errors, default)

    deadline = None
    try:
        deadline = parse_date_input(data.get("collaboration_deadline"))
    except ValueError as exc:
        errors["collaboration_deadline"] = str(exc)
    if clean["collaboration_enabled"] and "collaboration_deadline" not in errors:
        if deadline is None:
            errors["collaboration_deadline"] = "collaboration_deadline is required when collaboration is enabled"
        elif deadline <= today and not _deadline_unchanged(current, deadline):
            errors["collaboration_deadline"] = "collaboration_deadline must be in the future"
    clean["collaboration_deadline"] = deadline

    clean["team_members"] = None
    if "team_members" in data and data["team_members"] not in (None, ""):
        clean["team_members"] = _team_members(data["team_members"], errors)
    if clean["team_effort"] and not clean["team_members"] and "team_members" not in errors:
        errors["team_members"] = "At least one team member is required when team effort is enabled."

    return clean, errors


# ── Comments / reviews / decisions ───────────────────────────────────────────

def validate_comment(data: dict):
    errors: dict = {}
    content = _text(data, "content", errors, min_len=1, max_len=COMMENT_MAX)
    return {"content": content}, errors


def validate_review(data: dict, *, min_len: int, max_len: int | None = None):
    errors: dict = {}
    recommendation = data.get("recommendation")
    if recommendation not in DECISIONS:
        errors["recommendation"] = f"recommendation must be one of {', '.join(DECISIONS)}"
    comments = _text(data, "comments", errors, min_len=min_len, max_len=max_len)
    return {"recommendation": recommendation, "comments": comments}, errors


def validate_decision(data: dict, *, compiled_min: int | None = 50):
    errors: dict = {}
    decision = data.get("decision")
    if decision not in DECISIONS:
        errors["decision"] = f"decision must be one of {', '.join(DECISIONS)}"
    compiled = _text(data, "compiled_comments", errors, min_len=compiled_min)
    dd_comments = _text(data, "dd_comments", errors, required=False, max_len=DD_COMMENTS_MAX)
    return {
        "decision": decision,
        "compiled_comments": compiled,
        "dd_comments": dd_comments,
    }, errors


# ── Collaboration proposals ──────────────────────────────────────────────────

_PROPOSED_BOOL_FIELDS = {
    "original_idea_disclaimer", "collaboration_enabled", "team_effort", "comments_enabled",
}


def parse_proposed_values(data: dict, errors: dict, *, prefixed=True) -> dict:
    """Idea field → proposed value for every field present in ``data``.

    With ``prefixed`` the payload uses the stored column names
    (``proposed_idea_title``); otherwise plain idea field names, as in an
    owner's ``edited_proposal``.
    """
    values = {}
    for field, column in PROPOSED_FIELD_MAP.items():
        key = column if prefixed else field
        if key not in data or data[key] in (None, ""):
            continue
        raw = data[key]
        if field in _PROPOSED_BOOL_FIELDS:
            try:
                values[field] = parse_bool(raw)
            except ValueError:
                errors[key] = f"{key} must be a boolean"
        elif field == "thematic_area_id":
            try:
                values[field] = int(raw)
            except (TypeError, ValueError):
                errors[key] = f"{key} must be an integer"
        elif field == "collaboration_deadline":
            try:
                values[field] = parse_date_input(raw)
            except ValueError as exc:
                errors[key] = str(exc)
        elif not isinstance(raw, str):
            errors[key] = f"{key} must be a string"
        elif field == "idea_title" and len(raw.strip()) > 255:
            errors[key] = f"{key} must be at most 255 characters"
        else:
            values[field] = raw.strip()
    return values


def validate_proposal(data: dict):
    errors: dict = {}
    clean = {
        "collaboration_notes": _text(data, "collaboration_notes", errors),
        "change_summary": _text(data, "change_summary", errors, max_len=CHANGE_SUMMARY_MAX),
        "proposed": parse_proposed_values(data, errors),
    }
    return clean, errors


# ── Challenges ───────────────────────────────────────────────────────────────

def validate_challenge(data: dict, *, now: datetime | None = None):
    errors: dict = {}
    now = now or datetime.now(timezone.utc)
    clean = {
        "title": _text(data, "title", errors, max_len=255),
        "description": _text(data, "description", errors),
        "guidelines": _text(data, "guidelines", errors),
        "reward": _text(data, "reward", errors),
    }
    deadline = None
    if data.get("deadline") in (None, ""):
        errors["deadline"] = "deadline is required"
    else:
        try:
            deadline = parse_datetime_input(data["deadline"])
        except ValueError as exc:
            errors["deadline"] = str(exc)
        else:
            if deadline <= now:
                errors["deadline"] = "deadline must be in the future"
    clean["deadline"] = deadline
    return clean, errors


def validate_submission(data: dict):
    errors: dict = {}
    clean = {
        "title": _text(data, "title", errors, max_len=255),
        "description": _text(data, "description", errors),
        "motivation": _text(data, "motivation", errors),
        "original_disclaimer": _text(data, "original_disclaimer", errors),
    }
    cost = data.get("cost_of_implementation")
    clean["cost_of_implementation"] = None
    if cost not in (None, ""):
        try:
            value = Decimal(str(cost))
        except InvalidOperation:
            errors["cost_of_implementation"] = "cost_of_implementation must be a number"
        else:
            if not value.is_finite() or value < 0:
                errors["cost_of_implementation"] = "cost_of_implementation must be at least 0"
            else:
                clean["cost_of_implementation"] = value
    return clean, errors


def validate_thematic_area(data: dict):
    errors: dict = {}
    clean = {
        "name": _text(data, "name", errors, max_len=150),
        "description": _text(data, "description", errors, required=False),
        "sort_order": _int(data, "sort_order", errors, required=False) or 0,
        "is_active": _flag(data, "is_active", errors, True),
    }
    return clean, errors
