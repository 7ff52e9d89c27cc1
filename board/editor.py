"""Staged challenge editor: edits stay in memory until ``save`` is called."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol

from board import challenges as ch
from board.schemas import Challenge

log = logging.getLogger(__name__)

STATUS_TTL = 3.0


class ChallengeBackend(Protocol):
    async def list_challenges(self) -> dict[str, Challenge]: ...
    async def create_challenge(self) -> tuple[str, Challenge]: ...
    async def save_challenge(self, key: str, challenge: Challenge) -> None: ...


class ChallengeEditor:
    """Holds every challenge keyed by document key and applies list edits locally.

    ``status`` is the transient message shown next to the editor; a successful
    save clears it again after ``status_ttl`` seconds.
    """

    def __init__(self, backend: ChallengeBackend, status_ttl: float = STATUS_TTL):
        self.backend = backend
        self.status_ttl = status_ttl
        self.challenges: dict[str, Challenge] = {}
        self.status = ""
        self.loading = False
        self.expanded_day: int | None = 1
        self.last_error: Exception | None = None
        self._status_timer: asyncio.TimerHandle | None = None

    # -- loading -------------------------------------------------------------

    async def load(self) -> bool:
        self.loading = True
        try:
            self.challenges = await self.backend.list_challenges()
            self.last_error = None
            return True
        except Exception as exc:
            log.warning("Failed to load challenges: %s", exc)
            self.last_error = exc
            self.status = "Failed to load challenges."
            return False
        finally:
            self.loading = False

    def ordered(self) -> list[tuple[str, Challenge]]:
        return ch.sorted_challenges(self.challenges)

    def toggle(self, day: int) -> None:
        self.expanded_day = None if self.expanded_day == day else day

    # -- local edits ---------------------------------------------------------

    def _apply(self, key: str, edit: Callable[..., Challenge], *args: Any) -> Challenge:
        updated = edit(self.challenges[key], *args)
        self.challenges = {**self.challenges, key: updated}
        return updated

    def update_challenge(self, key: str, field: str, value: Any) -> Challenge:
        return self._apply(key, ch.update_challenge_field, field, value)

    def add_card(self, key: str) -> Challenge:
        return self._apply(key, ch.add_card_at_end)

    def insert_card_at(self, key: str, position: int) -> Challenge:
        return self._apply(key, ch.insert_card_at, position)

    def remove_card(self, key: str, index: int) -> Challenge:
        return self._apply(key, ch.remove_card, index)

    def move_card(self, key: str, index: int, direction: str) -> Challenge:
        return self._apply(key, ch.move_card, index, direction)

    def update_card(self, key: str, index: int, field: str, value: Any) -> Challenge:
        return self._apply(key, ch.update_card_field, index, field, value)

    def add_notification(self, key: str) -> Challenge:
        return self._apply(key, ch.add_notification)

    def update_notification(self, key: str, index: int, field: str, value: Any) -> Challenge:
        return self._apply(key, ch.update_notification_field, index, field, value)

    def remove_notification(self, key: str, index: int) -> Challenge:
        return self._apply(key, ch.remove_notification, index)

    # -- writes --------------------------------------------------------------

    def _set_status(self, message: str, clear: bool = False) -> None:
        if self._status_timer is not None:
            self._status_timer.cancel()
            self._status_timer = None
        self.status = message
        if clear:
            loop = asyncio.get_running_loop()
            self._status_timer = loop.call_later(self.status_ttl, self._clear_status, message)

    def _clear_status(self, message: str) -> None:
        if self.status == message:
            self.status = ""
        self._status_timer = None

    async def save(self, key: str) -> bool:
        self._set_status("Saving...")
        try:
            await self.backend.save_challenge(key, self.challenges[key])
        except ch.PartialWriteError as exc:
            log.warning("Partial save of %s: %s", key, exc)
            self.last_error = exc
            self._set_status("Saved challenge, but the course listing was not updated!")
            return False
        except Exception as exc:
            log.warning("Error saving challenge %s: %s", key, exc)
            self.last_error = exc
            self._set_status("Save failed!")
            return False
        self._set_status("Saved successfully!", clear=True)
        return True

    async def create(self) -> str | None:
        """Create the next day from the template; returns its key."""
        try:
            key, challenge = await self.backend.create_challenge()
        except ch.PartialWriteError as exc:
            log.warning("Partial create of %s: %s", exc.key, exc)
            # The challenge document exists; pick it up from the backend.
            await self.load()
            self.last_error = exc
            self._set_status("Created challenge, but the course listing was not updated!")
            return None
        except Exception as exc:
            log.warning("Error creating challenge: %s", exc)
            self.last_error = exc
            self._set_status("Failed to create challenge")
            return None
        self.challenges = {**self.challenges, key: challenge}
        self.expanded_day = challenge.day
        self._set_status(f"Day {challenge.day} created successfully!")
        return key
