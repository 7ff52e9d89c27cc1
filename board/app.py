from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Generator

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from board import challenges as ch
from board import services
from board.db import get_session, init_db
from board.docstore import DocumentStore, validate_collection
from board.models import Artist, Category, Competitor, Idea, Invitation, Research, Sme, Tag
from board.schemas import (
    ArtistCreate,
    ArtistOut,
    CategoryCreate,
    CategoryOut,
    Challenge,
    ChallengeEntry,
    CompetitorCreate,
    CompetitorOut,
    IdeaCreate,
    IdeaOut,
    InvitationCreate,
    InvitationOut,
    ResearchCreate,
    ResearchOut,
    ResearchTagsUpdate,
    SmeCreate,
    SmeOut,
    TagOut,
    TagResolve,
    TimelineOut,
)
from board.timeline import compute_weeks, project_start, week_count

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="Board",
    version="0.1.0",
    description=(
        "Research board and challenge content editor. "
        "Track competitors, research notes, ideas, artists and experts, "
        "and edit multi-day challenge content. No authentication required."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Competitors", "description": "Competitor list and category filter."},
        {"name": "Research", "description": "Research links and thoughts with tags."},
        {"name": "Tags", "description": "Tags, created on first use."},
        {"name": "People", "description": "Artists and subject-matter experts."},
        {"name": "Ideas", "description": "Content ideas."},
        {"name": "Categories", "description": "Managed categories."},
        {"name": "Invitations", "description": "Pending invitations."},
        {"name": "Documents", "description": "Raw document collections."},
        {"name": "Challenges", "description": "Challenge documents and their courseContent projection."},
        {"name": "Timeline", "description": "Weekly project timeline."},
    ],
)


# ---------------------------------------------------------------------------
# Dependencies & Helpers
# ---------------------------------------------------------------------------


def db_session() -> Generator[Session, None, None]:
    session = get_session()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def doc_store(session: Session = Depends(db_session)) -> DocumentStore:
    return DocumentStore(session)


def _delete_or_404(session: Session, model, entity_id: int, label: str) -> dict:
    if not services.delete_row(session, model, entity_id):
        raise HTTPException(404, f"{label} not found")
    return {"ok": True}


def _collection_or_400(name: str) -> str:
    try:
        return validate_collection(name)
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc


# ---------------------------------------------------------------------------
# Routes: Competitors
# ---------------------------------------------------------------------------


@app.get("/api/competitors", response_model=list[CompetitorOut],
         tags=["Competitors"], summary="List competitors, newest first")
async def list_competitors(
    category: str | None = Query(None, description="Only this category label; 'all' disables the filter"),
    session: Session = Depends(db_session),
):
    return services.list_competitors(session, category=category)


@app.get("/api/competitors/categories", response_model=list[str],
         tags=["Competitors"], summary="Distinct category labels used by competitors")
async def list_competitor_categories(session: Session = Depends(db_session)):
    return services.competitor_categories(session)


@app.post("/api/competitors", response_model=CompetitorOut, status_code=201,
          tags=["Competitors"], summary="Add a competitor")
async def create_competitor(body: CompetitorCreate, session: Session = Depends(db_session)):
    return services.create_row(session, "competitors", body.model_dump())


@app.delete("/api/competitors/{competitor_id}", tags=["Competitors"], summary="Delete a competitor")
async def delete_competitor(competitor_id: int, session: Session = Depends(db_session)):
    return _delete_or_404(session, Competitor, competitor_id, "Competitor")


# ---------------------------------------------------------------------------
# Routes: Research
# ---------------------------------------------------------------------------


@app.get("/api/research", response_model=list[ResearchOut],
         tags=["Research"], summary="List research notes, newest first")
async def list_research(
    tag_id: int | None = Query(None, description="Only notes carrying this tag"),
    session: Session = Depends(db_session),
):
    return services.list_research(session, tag_id=tag_id)


@app.post("/api/research", response_model=ResearchOut, status_code=201,
          tags=["Research"], summary="Add a research link or thought")
async def create_research(body: ResearchCreate, session: Session = Depends(db_session)):
    try:
        return services.create_research(session, body.model_dump())
    except LookupError as exc:
        raise HTTPException(400, str(exc)) from exc


@app.put("/api/research/{research_id}/tags", response_model=ResearchOut,
         tags=["Research", "Tags"], summary="Replace the tags attached to a research note")
async def update_research_tags(research_id: int, body: ResearchTagsUpdate,
                               session: Session = Depends(db_session)):
    try:
        result = services.set_research_tags(session, research_id, body.tag_ids)
    except LookupError as exc:
        raise HTTPException(400, str(exc)) from exc
    if result is None:
        raise HTTPException(404, "Research note not found")
    return result


@app.delete("/api/research/{research_id}", tags=["Research"], summary="Delete a research note")
async def delete_research(research_id: int, session: Session = Depends(db_session)):
    return _delete_or_404(session, Research, research_id, "Research note")


# ---------------------------------------------------------------------------
# Routes: Tags
# ---------------------------------------------------------------------------


@app.get("/api/tags", response_model=list[TagOut], tags=["Tags"], summary="List tags by name")
async def list_tags(session: Session = Depends(db_session)):
    return services.list_tags(session)


@app.post("/api/tags/resolve", tags=["Tags"],
          summary="Find a tag by name (case-insensitive) or create it with a random color")
async def resolve_tag(body: TagResolve, session: Session = Depends(db_session)):
    tag, created = services.resolve_or_create_tag(session, body.name)
    return {"tag": tag, "created": created}


@app.delete("/api/tags/{tag_id}", tags=["Tags"], summary="Delete a tag")
async def delete_tag(tag_id: int, session: Session = Depends(db_session)):
    return _delete_or_404(session, Tag, tag_id, "Tag")


# ---------------------------------------------------------------------------
# Routes: Artists & experts
# ---------------------------------------------------------------------------


@app.get("/api/artists", response_model=list[ArtistOut], tags=["People"], summary="List artists")
async def list_artists(session: Session = Depends(db_session)):
    return services.list_table(session, "artists")


@app.post("/api/artists", response_model=ArtistOut, status_code=201, tags=["People"], summary="Add an artist")
async def create_artist(body: ArtistCreate, session: Session = Depends(db_session)):
    return services.create_row(session, "artists", body.model_dump())


@app.delete("/api/artists/{artist_id}", tags=["People"], summary="Delete an artist")
async def delete_artist(artist_id: int, session: Session = Depends(db_session)):
    return _delete_or_404(session, Artist, artist_id, "Artist")


@app.get("/api/sme", response_model=list[SmeOut], tags=["People"], summary="List subject-matter experts")
async def list_sme(session: Session = Depends(db_session)):
    return services.list_table(session, "sme")


@app.post("/api/sme", response_model=SmeOut, status_code=201, tags=["People"],
          summary="Add a subject-matter expert")
async def create_sme(body: SmeCreate, session: Session = Depends(db_session)):
    return services.create_row(session, "sme", body.model_dump())


@app.delete("/api/sme/{sme_id}", tags=["People"], summary="Delete a subject-matter expert")
async def delete_sme(sme_id: int, session: Session = Depends(db_session)):
    return _delete_or_404(session, Sme, sme_id, "Expert")


# ---------------------------------------------------------------------------
# Routes: Ideas, categories, invitations
# ---------------------------------------------------------------------------


@app.get("/api/ideas", response_model=list[IdeaOut], tags=["Ideas"], summary="List content ideas")
async def list_ideas(session: Session = Depends(db_session)):
    return services.list_table(session, "ideas")


@app.post("/api/ideas", response_model=IdeaOut, status_code=201, tags=["Ideas"], summary="Add a content idea")
async def create_idea(body: IdeaCreate, session: Session = Depends(db_session)):
    return services.create_row(session, "ideas", body.model_dump())


@app.delete("/api/ideas/{idea_id}", tags=["Ideas"], summary="Delete a content idea")
async def delete_idea(idea_id: int, session: Session = Depends(db_session)):
    return _delete_or_404(session, Idea, idea_id, "Idea")


@app.get("/api/categories", response_model=list[CategoryOut], tags=["Categories"], summary="List categories")
async def list_categories(session: Session = Depends(db_session)):
    return services.list_table(session, "categories")


@app.post("/api/categories", response_model=CategoryOut, status_code=201,
          tags=["Categories"], summary="Add a category")
async def create_category(body: CategoryCreate, session: Session = Depends(db_session)):
    return services.create_row(session, "categories", body.model_dump())


@app.delete("/api/categories/{category_id}", tags=["Categories"], summary="Delete a category")
async def delete_category(category_id: int, session: Session = Depends(db_session)):
    return _delete_or_404(session, Category, category_id, "Category")


@app.get("/api/invitations", response_model=list[InvitationOut],
         tags=["Invitations"], summary="List invitations")
async def list_invitations(session: Session = Depends(db_session)):
    return services.list_table(session, "invitations")


@app.post("/api/invitations", response_model=InvitationOut, status_code=201,
          tags=["Invitations"], summary="Add an invitation")
async def create_invitation(body: InvitationCreate, session: Session = Depends(db_session)):
    return services.create_row(session, "invitations", body.model_dump())


@app.delete("/api/invitations/{invitation_id}", tags=["Invitations"], summary="Delete an invitation")
async def delete_invitation(invitation_id: int, session: Session = Depends(db_session)):
    return _delete_or_404(session, Invitation, invitation_id, "Invitation")


# ---------------------------------------------------------------------------
# Routes: Documents
# ---------------------------------------------------------------------------


@app.get("/api/documents/{collection}", tags=["Documents"], summary="List all documents in a collection")
async def list_documents(collection: str, store: DocumentStore = Depends(doc_store)):
    return store.list_all(_collection_or_400(collection))


@app.get("/api/documents/{collection}/{key}", tags=["Documents"], summary="Get one document")
async def get_document(collection: str, key: str, store: DocumentStore = Depends(doc_store)):
    data = store.get(_collection_or_400(collection), key)
    if data is None:
        raise HTTPException(404, "Document not found")
    return data


@app.put("/api/documents/{collection}/{key}", tags=["Documents"], summary="Replace one document")
async def set_document(collection: str, key: str, body: dict[str, Any],
                       store: DocumentStore = Depends(doc_store)):
    store.set(_collection_or_400(collection), key, body)
    return body


# ---------------------------------------------------------------------------
# Routes: Challenges (create before parameterized)
# ---------------------------------------------------------------------------


@app.get("/api/challenges", response_model=list[ChallengeEntry],
         tags=["Challenges"], summary="List challenges sorted by day")
async def list_challenges(store: DocumentStore = Depends(doc_store)):
    return [
        {"key": key, "challenge": challenge}
        for key, challenge in ch.sorted_challenges(ch.load_challenges(store))
    ]


def _partial_write_response(exc: ch.PartialWriteError) -> JSONResponse:
    return JSONResponse(status_code=502, content={
        "detail": str(exc), "partial": True, "key": exc.key,
        "written": exc.written, "failed": exc.failed,
    })


@app.post("/api/challenges", response_model=ChallengeEntry, status_code=201,
          tags=["Challenges"], summary="Create the next day's challenge from the template")
async def create_challenge(store: DocumentStore = Depends(doc_store)):
    try:
        key, challenge = ch.create_challenge(store)
    except ch.PartialWriteError as exc:
        return _partial_write_response(exc)
    return {"key": key, "challenge": challenge}


@app.put("/api/challenges/{key}", response_model=ChallengeEntry,
         tags=["Challenges"], summary="Save a challenge and its courseContent projection")
async def save_challenge(key: str, body: Challenge, store: DocumentStore = Depends(doc_store)):
    try:
        ch.save_challenge(store, key, body)
    except ch.PartialWriteError as exc:
        return _partial_write_response(exc)
    return {"key": key, "challenge": body}


# ---------------------------------------------------------------------------
# Routes: Timeline
# ---------------------------------------------------------------------------


@app.get("/api/timeline", response_model=TimelineOut, tags=["Timeline"],
         summary="Week markers from the project start to today")
async def get_timeline(now: datetime | None = Query(None, description="Override the current time (ISO datetime)")):
    start = project_start()
    current = now or datetime.now()
    weeks = compute_weeks(start, current)
    return {
        "start": start, "now": current, "total_weeks": week_count(start, current),
        "weeks": [
            {"number": w.number, "start": w.start.date(), "end": w.end.date(), "current": w.current}
            for w in weeks
        ],
    }


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def main():
    import uvicorn
    uvicorn.run("board.app:app", host="127.0.0.1", port=8002, reload=True)


if __name__ == "__main__":
    main()
