"""
Thematic Area Service.

Thematic areas are the categories ideas are filed under. The slug is
derived from the name and made unique with a numeric suffix.
"""

import logging
import re

from ideaportal.core.exceptions import NotFoundError
from ideaportal.models import db
from ideaportal.models.idea import ThematicArea

logger = logging.getLogger(__name__)

DEFAULT_AREAS = (
    "Digital Transformation",
    "Process Improvement",
    "Customer Experience",
    "Sustainability",
    "Cost Reduction",
    "Health and Safety",
    "Learning and Development",
)

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    return _NON_SLUG.sub("-", name.lower()).strip("-")[:150] or "area"


def _unique_slug(name: str, exclude_id: int | None = None) -> str:
    base = slugify(name)
    slug, n = base, 2
    while True:
        q = ThematicArea.query.filter_by(slug=slug)
        if exclude_id is not None:
            q = q.filter(ThematicArea.id != exclude_id)
        if q.first() is None:
            return slug
        slug = f"{base}-{n}"
        n += 1


def list_active() -> list[ThematicArea]:
    return ThematicArea.query_active_ordered().all()


def list_all() -> list[ThematicArea]:
    return ThematicArea.query.order_by(ThematicArea.sort_order, ThematicArea.name).all()


def get_area(area_id: int) -> ThematicArea:
    area = db.session.get(ThematicArea, area_id)
    if area is None:
        raise NotFoundError("ThematicArea", area_id)
    return area


def create_area(data: dict) -> ThematicArea:
    area = ThematicArea(slug=_unique_slug(data["name"]), **data)
    db.session.add(area)
    db.session.flush()
    logger.info("Thematic area '%s' created", area.slug)
    return area


def update_area(area: ThematicArea, data: dict) -> ThematicArea:
    if data["name"] != area.name:
        area.slug = _unique_slug(data["name"], exclude_id=area.id)
    for field, value in data.items():
        setattr(area, field, value)
    db.session.flush()
    return area


def seed_defaults() -> int:
    """Create any missing default area; returns how many were added."""
    added = 0
    for order, name in enumerate(DEFAULT_AREAS, start=1):
        if ThematicArea.query.filter_by(slug=slugify(name)).first() is None:
            db.session.add(ThematicArea(name=name, slug=slugify(name), sort_order=order))
            added += 1
    db.session.flush()
    return added
