"""Client-side list and form state, kept in sync by reloading after every write.

A :class:`ListStore` never patches its collection: every successful write is
followed by a full reload. Reloads may overlap (e.g. two deletes in quick
succession); they resolve in the order they were requested, so a slow older
response can never overwrite a newer one.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from board.client import BoardClient

log = logging.getLogger(__name__)

Fetch = Callable[[], Awaitable[list[dict]]]
Insert = Callable[[dict[str, Any]], Awaitable[dict]]
Remove = Callable[[Any], Awaitable[bool]]


class ListStore:
    """In-memory ordered collection for one entity, refreshed wholesale from the backend."""

    def __init__(self, name: str, fetch: Fetch, insert: Insert | None = None, remove: Remove | None = None):
        self.name = name
        self._fetch = fetch
        self._insert = insert
        self._remove = remove
        self.items: list[dict] = []
        self.last_error: Exception | None = None
        self._issued = 0
        self._applied = 0
        self._pending: dict[int, asyncio.Future] = {}
        self._cancelled: set[int] = set()

    @classmethod
    def for_table(cls, client: BoardClient, table: str, **filters: Any) -> ListStore:
        async def fetch() -> list[dict]:
            return await client.select(table, **filters)

        async def insert(row: dict[str, Any]) -> dict:
            return await client.insert(table, row)

        async def remove(row_id: Any) -> bool:
            return await client.delete(table, row_id)

        return cls(table, fetch, insert, remove)

    @property
    def loading(self) -> bool:
        return bool(self._pending)

    async def load(self) -> bool:
        """Replace the collection with a fresh query.

        Returns True if this call's result was applied. A failed read leaves
        the collection unchanged and records ``last_error``.
        """
        self._issued += 1
        ticket = self._issued
        task = asyncio.ensure_future(self._fetch())
        self._pending[ticket] = task
        try:
            items = await task
        except asyncio.CancelledError:
            if ticket in self._cancelled:
                log.debug("%s: refresh %d cancelled", self.name, ticket)
                return False
            raise
        except Exception as exc:
            log.warning("Failed to load %s: %s", self.name, exc)
            self.last_error = exc
            return False
        finally:
            self._pending.pop(ticket, None)
            self._cancelled.discard(ticket)

        if ticket < self._applied:
            log.debug("%s: discarding stale refresh %d (applied %d)", self.name, ticket, self._applied)
            return False
        self.items = list(items)
        self._applied = ticket
        self.last_error = None
        for older in [t for t in self._pending if t < ticket]:
            self._cancel_ticket(older)
        return True

    def _cancel_ticket(self, ticket: int) -> None:
        self._cancelled.add(ticket)
        self._pending[ticket].cancel()

    def cancel(self) -> None:
        """Cancel every in-flight refresh."""
        for ticket in list(self._pending):
            self._cancel_ticket(ticket)

    async def insert(self, row: dict[str, Any]) -> dict | None:
        """Insert one row and reload on success; on failure nothing is reloaded."""
        if self._insert is None:
            raise RuntimeError(f"{self.name} does not support insert")
        try:
            created = await self._insert(row)
        except Exception as exc:
            log.warning("Failed to insert into %s: %s", self.name, exc)
            self.last_error = exc
            return None
        await self.load()
        return created

    async def delete(self, row_id: Any) -> bool:
        """Delete by id, then reload whether or not the delete had any effect."""
        if self._remove is None:
            raise RuntimeError(f"{self.name} does not support delete")
        deleted = False
        try:
            deleted = await self._remove(row_id)
        except Exception as exc:
            log.warning("Failed to delete %s from %s: %s", row_id, self.name, exc)
            self.last_error = exc
        await self.load()
        return deleted


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class FormState:
    """Draft fields for one record being composed for insert.

    ``defaults`` holds the reset values; ``nullable`` names fields whose blank
    value is submitted as ``None``.
    """

    def __init__(self, store: ListStore, defaults: dict[str, Any], nullable: tuple[str, ...] = ()):
        self.store = store
        self.defaults = dict(defaults)
        self.nullable = nullable
        self.fields: dict[str, Any] = dict(defaults)
        self.busy = False
        self.status = ""

    def set(self, field: str, value: Any) -> None:
        if field not in self.defaults:
            raise KeyError(f"Unknown form field: {field}")
        self.fields[field] = value

    def reset(self) -> None:
        self.fields = dict(self.defaults)

    def payload(self) -> dict[str, Any]:
        return {
            k: (None if k in self.nullable and _is_blank(v) else v)
            for k, v in self.fields.items()
        }

    async def submit(self) -> bool:
        """Insert the draft; reset on success, keep the fields on failure."""
        if self.busy:
            return False
        self.busy = True
        try:
            created = await self.store.insert(self.payload())
            if created is None:
                self.status = f"Failed to save {self.store.name}"
                return False
            self.reset()
            self.status = ""
            return True
        finally:
            self.busy = False
