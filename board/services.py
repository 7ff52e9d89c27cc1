"""Shared business logic for the Board API and MCP server."""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from board.models import Artist, Category, Competitor, Idea, Invitation, Research, Sme, Tag
from board.utils import iso, random_color

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Shared field tuples
# ---------------------------------------------------------------------------

COMPETITOR_FIELDS = ("name", "url", "category", "notes")
CATEGORY_FIELDS = ("name", "description", "color")
ARTIST_FIELDS = ("name", "profile_url", "specialty", "notes")
SME_FIELDS = ("name", "profile_url", "expertise", "organization", "notes")
IDEA_FIELDS = ("title", "notes", "category")
INVITATION_FIELDS = ("email", "note")
RESEARCH_FIELDS = ("type", "title", "content", "url", "category")

# Table name -> (model, writable fields). Research and tags have dedicated helpers.
TABLES: dict[str, tuple[type, tuple[str, ...]]] = {
    "competitors": (Competitor, COMPETITOR_FIELDS),
    "categories": (Category, CATEGORY_FIELDS),
    "artists": (Artist, ARTIST_FIELDS),
    "sme": (Sme, SME_FIELDS),
    "ideas": (Idea, IDEA_FIELDS),
    "invitations": (Invitation, INVITATION_FIELDS),
}

# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def row_summary(obj, fields: tuple[str, ...]) -> dict:
    return {
        "id": obj.id,
        **{f: getattr(obj, f) for f in fields},
        "created_at": iso(obj.created_at),
    }


def tag_summary(tag: Tag) -> dict:
    return {"id": tag.id, "name": tag.name, "color": tag.color}


def research_summary(item: Research) -> dict:
    base = row_summary(item, RESEARCH_FIELDS)
    base["tags"] = [tag_summary(t) for t in item.tags]
    return base


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


# ---------------------------------------------------------------------------
# Generic row operations
# ---------------------------------------------------------------------------


def get_entity(session: Session, model, entity_id: int):
    return session.execute(select(model).where(model.id == entity_id)).scalars().first()


def list_rows(session: Session, model) -> list:
    """All rows of *model*, newest first."""
    return list(session.execute(
        select(model).order_by(model.created_at.desc(), model.id.desc())
    ).scalars().all())


def list_table(session: Session, table: str) -> list[dict]:
    model, fields = TABLES[table]
    return [row_summary(obj, fields) for obj in list_rows(session, model)]


def create_row(session: Session, table: str, data: dict[str, Any]) -> dict:
    """Insert one row. Optional text fields submitted blank are stored as NULL."""
    model, fields = TABLES[table]
    columns = model.__table__.c
    values = {
        f: _blank_to_none(data[f]) if columns[f].nullable else data[f]
        for f in fields if f in data
    }
    obj = model(**values)
    session.add(obj)
    session.commit()
    session.refresh(obj)
    return row_summary(obj, fields)


def delete_row(session: Session, model, entity_id: int) -> bool:
    obj = get_entity(session, model, entity_id)
    if obj is None:
        return False
    session.delete(obj)
    session.commit()
    return True


# ---------------------------------------------------------------------------
# Competitors
# ---------------------------------------------------------------------------


def list_competitors(session: Session, category: str | None = None) -> list[dict]:
    """Competitors newest first; ``category`` of ``None`` or ``"all"`` disables the filter."""
    items = list_table(session, "competitors")
    if category and category != "all":
        items = [i for i in items if i["category"] == category]
    return items


def competitor_categories(session: Session) -> list[str]:
    """Distinct category labels in use, in list order."""
    seen: dict[str, None] = {}
    for item in list_table(session, "competitors"):
        if item["category"]:
            seen.setdefault(item["category"], None)
    return list(seen)


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------


def list_tags(session: Session) -> list[dict]:
    tags = session.execute(select(Tag).order_by(Tag.name, Tag.id)).scalars().all()
    return [tag_summary(t) for t in tags]


def find_tag(session: Session, name: str) -> Tag | None:
    """Case-insensitive exact name match."""
    return session.execute(
        select(Tag).where(func.lower(Tag.name) == name.strip().lower()).order_by(Tag.id)
    ).scalars().first()


def resolve_or_create_tag(session: Session, name: str) -> tuple[dict, bool]:
    """Return ``(tag, created)`` for *name*, inserting a new tag with a random color on a miss.

    There is no uniqueness constraint on tag names, so concurrent callers
    resolving the same new name can both insert.
    """
    name = name.strip()
    if not name:
        raise ValueError("tag name must not be blank")
    existing = find_tag(session, name)
    if existing is not None:
        return tag_summary(existing), False
    tag = Tag(name=name, color=random_color())
    session.add(tag)
    session.commit()
    session.refresh(tag)
    log.info("Created tag %r (%s)", tag.name, tag.id)
    return tag_summary(tag), True


def select_tag(selected: list[int], tag_id: int) -> list[int]:
    """Add *tag_id* to a selection without duplicating it."""
    if tag_id in selected:
        return list(selected)
    return [*selected, tag_id]


def deselect_tag(selected: list[int], tag_id: int) -> list[int]:
    return [t for t in selected if t != tag_id]


def suggest_tags(tags: list[dict], query: str, selected: list[int]) -> list[dict]:
    """Tags whose name contains *query* (case-insensitive) and are not selected yet."""
    q = query.lower()
    return [t for t in tags if q in t["name"].lower() and t["id"] not in selected]


# ---------------------------------------------------------------------------
# Research
# ---------------------------------------------------------------------------


def list_research(session: Session, tag_id: int | None = None) -> list[dict]:
    items = list_rows(session, Research)
    if tag_id is not None:
        items = [i for i in items if any(t.id == tag_id for t in i.tags)]
    return [research_summary(i) for i in items]


def _load_tags(session: Session, tag_ids: list[int]) -> list[Tag]:
    if not tag_ids:
        return []
    tags = session.execute(select(Tag).where(Tag.id.in_(tag_ids)).order_by(Tag.name)).scalars().all()
    found = {t.id for t in tags}
    missing = [t for t in tag_ids if t not in found]
    if missing:
        raise LookupError(f"Unknown tag ids: {missing}")
    return list(tags)


def create_research(session: Session, data: dict[str, Any]) -> dict:
    """Insert a research note; the url is kept only for ``link`` items."""
    kind = data.get("type") or "link"
    item = Research(
        type=kind,
        title=data["title"],
        content=data.get("content") or "",
        url=(data.get("url") or None) if kind == "link" else None,
        category=_blank_to_none(data.get("category")),
    )
    item.tags = _load_tags(session, list(dict.fromkeys(data.get("tag_ids") or [])))
    session.add(item)
    session.commit()
    session.refresh(item)
    return research_summary(item)


def set_research_tags(session: Session, research_id: int, tag_ids: list[int]) -> dict | None:
    item = get_entity(session, Research, research_id)
    if item is None:
        return None
    item.tags = _load_tags(session, list(dict.fromkeys(tag_ids)))
    session.commit()
    return research_summary(item)
