"""Keyed JSON document collections stored alongside the relational tables."""
from __future__ import annotations

import json
import logging
import re
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from board.models import Document
from board.utils import json_parse

log = logging.getLogger(__name__)

COLLECTION_NAME_RE = re.compile(r"^[a-zA-Z0-9_-]+$")


def validate_collection(name: str) -> str:
    """Strip and validate a collection name. Raises ValueError if invalid."""
    name = name.strip()
    if not name or not COLLECTION_NAME_RE.match(name):
        raise ValueError("Invalid collection name (letters, numbers, hyphens, underscores only)")
    return name


class DocumentStore:
    """List/get/set documents by ``(collection, key)`` over one SQLAlchemy session.

    ``set`` replaces the whole document and commits immediately, so two
    consecutive ``set`` calls are two independent writes.
    """

    def __init__(self, session: Session):
        self.session = session

    def _row(self, collection: str, key: str) -> Document | None:
        return self.session.execute(
            select(Document).where(Document.collection == collection, Document.key == key)
        ).scalars().first()

    def list_all(self, collection: str) -> dict[str, dict[str, Any]]:
        collection = validate_collection(collection)
        rows = self.session.execute(
            select(Document).where(Document.collection == collection).order_by(Document.key)
        ).scalars().all()
        return {row.key: json_parse(row.data_json, {}) for row in rows}

    def get(self, collection: str, key: str) -> dict[str, Any] | None:
        row = self._row(validate_collection(collection), key)
        if row is None:
            return None
        return json_parse(row.data_json, {})

    def set(self, collection: str, key: str, data: dict[str, Any]) -> None:
        collection = validate_collection(collection)
        if not key:
            raise ValueError("Document key must not be empty")
        payload = json.dumps(data)
        try:
            row = self._row(collection, key)
            if row is None:
                self.session.add(Document(collection=collection, key=key, data_json=payload))
            else:
                row.data_json = payload
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        log.debug("Wrote %s/%s", collection, key)
