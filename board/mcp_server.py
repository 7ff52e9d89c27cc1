from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

from mcp.server.fastmcp import FastMCP

from board import challenges as ch
from board import services
from board.db import init_db, session_scope
from board.docstore import DocumentStore
from board.models import Competitor, Research
from board.timeline import compute_weeks, project_start

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def board_lifespan(server: FastMCP) -> AsyncIterator[None]:
    init_db()
    yield


mcp = FastMCP(
    "Board",
    instructions=(
        "Board is a research board and challenge content editor. "
        "Use these tools to browse and add competitors and research notes, "
        "and to inspect or extend the day-by-day challenge content."
    ),
    lifespan=board_lifespan,
    json_response=True,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _challenge_or_error(store: DocumentStore, key: str):
    challenge = ch.load_challenges(store).get(key)
    if challenge is None:
        return None, {"error": f"Challenge {key} not found"}
    return challenge, None


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


@mcp.resource("board://overview")
def board_overview() -> str:
    """Overview of Board: data model and challenge conventions."""
    return json.dumps({
        "system": "Board: research tracking and challenge content",
        "data_model": {
            "competitor": "Name, URL, optional category label and notes.",
            "research": "A link or a thought with title, content, optional category and tags.",
            "tag": "Label attached to research notes; created on first use with a random color.",
            "challenge": "One day of content keyed 'day<N>': cards plus scheduled notifications.",
            "courseContent": "Reduced copy of each challenge (day, title, description, enabled, order).",
        },
        "card_types": list(ch.CARD_TYPES),
        "notification_slots": {"morning": 9, "afternoon": 14, "evening": 19},
    }, indent=2)


# ---------------------------------------------------------------------------
# Tools: Research board
# ---------------------------------------------------------------------------


@mcp.tool()
def list_competitors(category: str | None = None) -> list[dict]:
    """List competitors, newest first. Optionally only one category label."""
    with session_scope() as session:
        return services.list_competitors(session, category=category)


@mcp.tool()
def add_competitor(name: str, url: str = "", category: str | None = None, notes: str | None = None) -> dict:
    """Add a competitor."""
    with session_scope() as session:
        return services.create_row(session, "competitors", {
            "name": name, "url": url, "category": category, "notes": notes,
        })


@mcp.tool()
def delete_competitor(competitor_id: int) -> dict:
    """Delete a competitor by id."""
    with session_scope() as session:
        if not services.delete_row(session, Competitor, competitor_id):
            return {"error": f"Competitor {competitor_id} not found"}
        return {"ok": True, "deleted_competitor_id": competitor_id}


@mcp.tool()
def list_research(tag: str | None = None) -> list[dict]:
    """List research notes, newest first. Optionally only notes carrying the named tag."""
    with session_scope() as session:
        tag_id = None
        if tag:
            found = services.find_tag(session, tag)
            if found is None:
                return []
            tag_id = found.id
        return services.list_research(session, tag_id=tag_id)


@mcp.tool()
def add_research(
    title: str, content: str = "", type: str = "thought", url: str | None = None,
    category: str | None = None, tags: list[str] | None = None,
) -> dict:
    """Add a research note. ``type`` is 'link' or 'thought'; tag names are created if missing."""
    if type not in ("link", "thought"):
        return {"error": "type must be 'link' or 'thought'"}
    with session_scope() as session:
        tag_ids = [services.resolve_or_create_tag(session, name)[0]["id"] for name in (tags or []) if name.strip()]
        return services.create_research(session, {
            "type": type, "title": title, "content": content, "url": url,
            "category": category, "tag_ids": tag_ids,
        })


@mcp.tool()
def delete_research(research_id: int) -> dict:
    """Delete a research note by id."""
    with session_scope() as session:
        if not services.delete_row(session, Research, research_id):
            return {"error": f"Research note {research_id} not found"}
        return {"ok": True, "deleted_research_id": research_id}


@mcp.tool()
def list_tags() -> list[dict]:
    """List all tags by name."""
    with session_scope() as session:
        return services.list_tags(session)


@mcp.tool()
def get_timeline() -> dict:
    """Weekly project timeline up to today."""
    start = project_start()
    weeks = compute_weeks(start, datetime.now())
    return {
        "start": start.isoformat(),
        "weeks": [
            {"number": w.number, "start": w.start.date().isoformat(),
             "end": w.end.date().isoformat(), "current": w.current}
            for w in weeks
        ],
    }


# ---------------------------------------------------------------------------
# Tools: Challenges
# ---------------------------------------------------------------------------


@mcp.tool()
def list_challenges() -> list[dict]:
    """List challenges sorted by day (without card bodies)."""
    with session_scope() as session:
        return [
            {"key": key, "day": c.day, "title": c.title, "enabled": c.enabled,
             "cards": len(c.cards), "notifications": len(c.notifications or [])}
            for key, c in ch.sorted_challenges(ch.load_challenges(DocumentStore(session)))
        ]


@mcp.tool()
def get_challenge(key: str) -> dict:
    """Full challenge document, e.g. key 'day3'."""
    with session_scope() as session:
        challenge, err = _challenge_or_error(DocumentStore(session), key)
        return err if err else ch.dump_challenge(challenge)


@mcp.tool()
def create_challenge() -> dict:
    """Create the next day's challenge from the default template."""
    with session_scope() as session:
        try:
            key, challenge = ch.create_challenge(DocumentStore(session))
        except ch.PartialWriteError as exc:
            return {"error": str(exc), "partial": True}
        return {"key": key, **ch.dump_challenge(challenge)}


@mcp.tool()
def add_challenge_notification(key: str) -> dict:
    """Append a notification in the next time slot and save the challenge."""
    with session_scope() as session:
        store = DocumentStore(session)
        challenge, err = _challenge_or_error(store, key)
        if err:
            return err
        challenge = ch.add_notification(challenge)
        try:
            ch.save_challenge(store, key, challenge)
        except ch.PartialWriteError as exc:
            return {"error": str(exc), "partial": True}
        return ch.dump_challenge(challenge)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    """Run the Board MCP server over stdio."""
    mcp.run()


if __name__ == "__main__":
    main()
