"""Shared request/response helpers used by every blueprint.

db_commit_or_error:  commit with IntegrityError → 409 mapping
parse_date_input:    ISO / DD.MM.YYYY dates, raises ValueError
parse_datetime_input: ISO datetimes (date-only means midnight UTC)
parse_bool:          JSON booleans and multipart strings ("true", "1", "on")
json_object:         JSON body as a dict (400 when it is another JSON type)
request_payload:     JSON body or multipart form as one dict
read_upload:         attachment from request.files with size/type checks
"""
import json
import logging
from datetime import date, datetime, timezone

from flask import abort, current_app, jsonify, make_response, request
from sqlalchemy.exc import IntegrityError, OperationalError

from ideaportal.models import db
from ideaportal.utils.errors import E, api_error

logger = logging.getLogger(__name__)

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off", ""}

ALLOWED_ATTACHMENT_MIMES = {"application/pdf"}


# ── Database commit helper ───────────────────────────────────────────────────

def db_commit_or_error():
    """Commit the current SQLAlchemy session, returning an error response on failure.

    Returns:
        None on success.
        (response, status_code) tuple on failure, ready for ``return``.

    Usage::

        err = db_commit_or_error()
        if err:
            return err

    IntegrityError → 409 (duplicate / constraint violation)
    OperationalError → 500 (connection / lock issues)
    """
    try:
        db.session.commit()
        return None
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        return jsonify({"error": "Duplicate or constraint violation"}), 409
    except OperationalError:
        db.session.rollback()
        logger.exception("Database operational error on commit")
        return jsonify({"error": "Database error"}), 500


# ── Parsing ──────────────────────────────────────────────────────────────────

def parse_date_input(value):
    """Parse a date string, raising ValueError on bad input.

    Supports: YYYY-MM-DD, DD.MM.YYYY, date objects. Empty → None.
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        try:
            return datetime.strptime(str(value), "%d.%m.%Y").date()
        except ValueError as exc:
            raise ValueError(
                "Invalid date format. Use YYYY-MM-DD or DD.MM.YYYY."
            ) from exc


def parse_datetime_input(value):
    """Parse an ISO datetime; naive values and bare dates are taken as UTC."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValueError("Invalid datetime format. Use ISO 8601.") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_bool(value, default=False):
    """Coerce JSON booleans and form strings; raises ValueError otherwise."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise ValueError(f"Not a boolean: {value!r}")


# ── Request payloads ─────────────────────────────────────────────────────────

def json_object() -> dict:
    """Return the JSON body as a dict; a missing or unparsable body is ``{}``.

    Arrays and scalars abort the request with 400.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        abort(make_response(*api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")))
    return data


def request_payload() -> dict:
    """Return the JSON body, or the multipart/urlencoded form as a flat dict.

    ``team_members`` may arrive as a JSON-encoded string in a form post.
    """
    if request.is_json:
        return json_object()
    data = request.form.to_dict()
    raw = data.get("team_members")
    if isinstance(raw, str) and raw.strip():
        try:
            data["team_members"] = json.loads(raw)
        except ValueError:
            pass  # left as a string; the validator reports it
    return data


def read_upload(field="attachment", pdf_only=True):
    """Read an uploaded file from ``request.files``.

    Returns:
        (None, None) when no file was sent,
        (dict(content, filename, mime, size), None) on success,
        (None, error message) when the file is too large or not a PDF.
    """
    storage = request.files.get(field)
    if storage is None or not storage.filename:
        return None, None

    content = storage.read()
    limit = current_app.config["MAX_ATTACHMENT_BYTES"]
    if len(content) > limit:
        return None, f"{field} exceeds {limit // 1024} KB"

    mime = storage.mimetype or "application/octet-stream"
    if pdf_only:
        if mime not in ALLOWED_ATTACHMENT_MIMES and not storage.filename.lower().endswith(".pdf"):
            return None, f"{field} must be a PDF"
        mime = "application/pdf"

    return {
        "content": content,
        "filename": storage.filename,
        "mime": mime,
        "size": len(content),
    }, None
