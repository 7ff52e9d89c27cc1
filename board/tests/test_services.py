"""Tests for relational row operations, tag resolution, and the document store."""
from __future__ import annotations

import random
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker

from board import services
from board.docstore import DocumentStore, validate_collection
from board.models import Base, Competitor, Research, Tag, research_tags
from board.utils import json_parse, random_color

# ---------------------------------------------------------------------------
# Fixtures: in-memory SQLite database
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine():
    eng = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture()
def session(engine):
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    sess = SessionLocal()
    try:
        yield sess
    finally:
        sess.close()


def _tag_count(session: Session) -> int:
    return session.execute(select(func.count()).select_from(Tag)).scalar()


class TestUtils:
    def test_json_parse(self):
        assert json_parse('{"a": 1}') == {"a": 1}
        assert json_parse("not json") == {}
        assert json_parse(None, []) == []

    def test_random_color_format(self):
        rng = random.Random(3)
        for _ in range(50):
            color = random_color(rng)
            assert len(color) == 7
            assert color.startswith("#")
            int(color[1:], 16)


# =========================================================================
# Generic rows
# =========================================================================

class TestRows:
    def test_create_and_list_newest_first(self, session):
        services.create_row(session, "competitors", {"name": "First", "url": "https://a.dev"})
        services.create_row(session, "competitors", {"name": "Second", "url": "https://b.dev"})
        items = services.list_table(session, "competitors")
        assert [i["name"] for i in items] == ["Second", "First"]
        assert items[0]["created_at"] is not None

    def test_blank_optional_fields_become_null(self, session):
        row = services.create_row(session, "artists", {
            "name": "Ada", "profile_url": "https://ada.art", "specialty": "", "notes": "  ",
        })
        assert row["specialty"] is None
        assert row["notes"] is None
        assert row["profile_url"] == "https://ada.art"

    def test_sme_fields(self, session):
        row = services.create_row(session, "sme", {
            "name": "Dr. K", "profile_url": "https://k.org", "expertise": "Sleep",
            "organization": "Clinic", "notes": None,
        })
        assert row["expertise"] == "Sleep"
        assert row["organization"] == "Clinic"

    def test_delete_row(self, session):
        row = services.create_row(session, "ideas", {"title": "Podcast"})
        assert services.delete_row(session, services.TABLES["ideas"][0], row["id"]) is True
        assert services.list_table(session, "ideas") == []

    def test_delete_missing_row(self, session):
        assert services.delete_row(session, Competitor, 999) is False

    def test_category_default_color(self, session):
        row = services.create_row(session, "categories", {"name": "Tools", "color": "#3B82F6"})
        assert row["color"] == "#3B82F6"
        assert row["description"] is None


class TestCompetitors:
    def test_filter_by_category(self, session):
        services.create_row(session, "competitors", {"name": "A", "category": "Tool"})
        services.create_row(session, "competitors", {"name": "B", "category": "Platform"})
        services.create_row(session, "competitors", {"name": "C", "category": "Tool"})
        assert [c["name"] for c in services.list_competitors(session, "Tool")] == ["C", "A"]
        assert len(services.list_competitors(session, "all")) == 3
        assert len(services.list_competitors(session, None)) == 3

    def test_distinct_categories(self, session):
        for name, cat in (("A", "Tool"), ("B", None), ("C", "Platform"), ("D", "Tool")):
            services.create_row(session, "competitors", {"name": name, "category": cat})
        assert services.competitor_categories(session) == ["Tool", "Platform"]


# =========================================================================
# Tags
# =========================================================================

class TestResolveOrCreateTag:
    def test_creates_on_first_use(self, session):
        tag, created = services.resolve_or_create_tag(session, "Sleep")
        assert created is True
        assert tag["name"] == "Sleep"
        assert tag["color"].startswith("#")

    def test_second_call_is_case_insensitive_and_does_not_insert(self, session):
        first, _ = services.resolve_or_create_tag(session, "Sleep")
        second, created = services.resolve_or_create_tag(session, "sLEEP")
        assert created is False
        assert second["id"] == first["id"]
        assert _tag_count(session) == 1

    def test_at_most_one_insert_per_call(self, session):
        with patch.object(session, "add", wraps=session.add) as add:
            services.resolve_or_create_tag(session, "New")
            services.resolve_or_create_tag(session, "new")
        assert add.call_count == 1

    def test_substring_is_not_a_match(self, session):
        services.resolve_or_create_tag(session, "Sleep")
        _, created = services.resolve_or_create_tag(session, "Sle")
        assert created is True

    def test_blank_name(self, session):
        with pytest.raises(ValueError):
            services.resolve_or_create_tag(session, "   ")

    def test_list_tags_by_name(self, session):
        for name in ("zeta", "Alpha", "mid"):
            services.resolve_or_create_tag(session, name)
        assert [t["name"] for t in services.list_tags(session)] == ["Alpha", "mid", "zeta"]


class TestTagSelection:
    def test_select_does_not_duplicate(self):
        assert services.select_tag([1, 2], 2) == [1, 2]
        assert services.select_tag([1], 3) == [1, 3]

    def test_deselect(self):
        assert services.deselect_tag([1, 2, 3], 2) == [1, 3]

    def test_suggest_excludes_selected(self):
        tags = [{"id": 1, "name": "Sleep"}, {"id": 2, "name": "Sleepy"}, {"id": 3, "name": "Food"}]
        assert [t["id"] for t in services.suggest_tags(tags, "sle", [1])] == [2]


# =========================================================================
# Research
# =========================================================================

class TestResearch:
    def test_link_keeps_url_thought_drops_it(self, session):
        link = services.create_research(session, {
            "type": "link", "title": "Paper", "content": "", "url": "https://x.org",
        })
        thought = services.create_research(session, {
            "type": "thought", "title": "Idea", "content": "hmm", "url": "https://ignored",
        })
        assert link["url"] == "https://x.org"
        assert thought["url"] is None

    def test_attach_tags(self, session):
        a, _ = services.resolve_or_create_tag(session, "b-tag")
        b, _ = services.resolve_or_create_tag(session, "a-tag")
        item = services.create_research(session, {
            "type": "thought", "title": "Tagged", "tag_ids": [a["id"], b["id"], a["id"]],
        })
        assert [t["name"] for t in item["tags"]] == ["a-tag", "b-tag"]

    def test_unknown_tag_id(self, session):
        with pytest.raises(LookupError):
            services.create_research(session, {"type": "thought", "title": "X", "tag_ids": [42]})

    def test_filter_by_tag(self, session):
        tag, _ = services.resolve_or_create_tag(session, "keep")
        services.create_research(session, {"type": "thought", "title": "In", "tag_ids": [tag["id"]]})
        services.create_research(session, {"type": "thought", "title": "Out"})
        assert [r["title"] for r in services.list_research(session, tag_id=tag["id"])] == ["In"]

    def test_set_tags(self, session):
        tag, _ = services.resolve_or_create_tag(session, "later")
        item = services.create_research(session, {"type": "thought", "title": "Note"})
        updated = services.set_research_tags(session, item["id"], [tag["id"]])
        assert [t["id"] for t in updated["tags"]] == [tag["id"]]
        assert services.set_research_tags(session, 999, []) is None

    def test_delete_removes_join_rows(self, session):
        tag, _ = services.resolve_or_create_tag(session, "gone")
        item = services.create_research(session, {"type": "thought", "title": "X", "tag_ids": [tag["id"]]})
        services.delete_row(session, Research, item["id"])
        count = session.execute(select(func.count()).select_from(research_tags)).scalar()
        assert count == 0
        assert _tag_count(session) == 1


# =========================================================================
# Document store
# =========================================================================

class TestDocumentStore:
    def test_set_get_replace(self, session):
        store = DocumentStore(session)
        store.set("challenges", "day1", {"day": 1, "title": "A", "extra": True})
        store.set("challenges", "day1", {"day": 1, "title": "B"})
        assert store.get("challenges", "day1") == {"day": 1, "title": "B"}

    def test_list_all_is_per_collection(self, session):
        store = DocumentStore(session)
        store.set("challenges", "day1", {"day": 1})
        store.set("courseContent", "day1", {"day": 1, "title": "x"})
        assert store.list_all("challenges") == {"day1": {"day": 1}}

    def test_get_missing(self, session):
        assert DocumentStore(session).get("challenges", "nope") is None

    @pytest.mark.parametrize("name", ["", "  ", "bad name", "a/b"])
    def test_invalid_collection(self, name):
        with pytest.raises(ValueError):
            validate_collection(name)
