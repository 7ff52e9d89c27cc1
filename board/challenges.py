"""Challenge documents: card/notification list editing and the paired projection write.

Every editing function takes a :class:`Challenge` and returns a new one; the
input is never mutated. Cards and notifications are addressed by their
position in the list. Card ids are only for display and are allocated as
``max(existing ids, 0) + 1``.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, ValidationError

from board.docstore import DocumentStore
from board.schemas import Challenge, ChallengeCard, CourseContent, NotificationMessage

log = logging.getLogger(__name__)

CHALLENGES = "challenges"
COURSE_CONTENT = "courseContent"

CARD_TYPES = ("intro", "instruction", "notification", "why", "custom")

NEW_CARD_TITLE = "New Screen"
NEW_CARD_CONTENT = "Enter your content here..."
NEW_NOTIFICATION_BODY = "Enter notification message here..."

DEFAULT_SLOT = ("morning", 9)
# Rotation stops at evening: an evening entry is followed by morning again.
NEXT_SLOT = {
    "morning": ("afternoon", 14),
    "afternoon": ("evening", 19),
}


class PartialWriteError(Exception):
    """The challenge document was written but its courseContent projection was not."""

    def __init__(self, key: str, written: list[str], failed: str, reason: str = ""):
        message = f"Partial write for {key}: wrote {', '.join(written)} but not {failed}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.key = key
        self.written = written
        self.failed = failed


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def _field_name(model: type[BaseModel], field: str) -> str:
    """Map an attribute name or its document alias (``buttonText``) to the attribute name."""
    for name, info in model.model_fields.items():
        if field == name or field == info.alias:
            return name
    raise ValueError(f"Unknown {model.__name__} field: {field}")


def _with_field(obj: BaseModel, name: str, value: Any) -> BaseModel:
    """Copy of *obj* with one field replaced, validated like a freshly loaded document.

    Raises :class:`pydantic.ValidationError` for a value the field does not accept.
    """
    return type(obj).model_validate({**obj.model_dump(), name: value})


# ---------------------------------------------------------------------------
# Cards
# ---------------------------------------------------------------------------


def next_card_id(cards: Iterable[ChallengeCard]) -> int:
    return max([c.id for c in cards] + [0]) + 1


def new_card(card_id: int) -> ChallengeCard:
    return ChallengeCard(id=card_id, type="custom", title=NEW_CARD_TITLE, content=NEW_CARD_CONTENT)


def add_card_at_end(challenge: Challenge) -> Challenge:
    card = new_card(next_card_id(challenge.cards))
    return challenge.model_copy(update={"cards": [*challenge.cards, card]})


def insert_card_at(challenge: Challenge, position: int) -> Challenge:
    """Insert a new card before the card currently at *position* (0 = first)."""
    cards = list(challenge.cards)
    cards.insert(position, new_card(next_card_id(cards)))
    return challenge.model_copy(update={"cards": cards})


def remove_card(challenge: Challenge, index: int) -> Challenge:
    cards = [c for i, c in enumerate(challenge.cards) if i != index]
    return challenge.model_copy(update={"cards": cards})


def move_card(challenge: Challenge, index: int, direction: str) -> Challenge:
    """Swap the card at *index* with its neighbour; returns *challenge* itself when out of bounds."""
    if direction not in ("up", "down"):
        raise ValueError(f"direction must be 'up' or 'down', not {direction!r}")
    target = index - 1 if direction == "up" else index + 1
    cards = list(challenge.cards)
    if not 0 <= index < len(cards) or not 0 <= target < len(cards):
        return challenge
    cards[index], cards[target] = cards[target], cards[index]
    return challenge.model_copy(update={"cards": cards})


def update_card_field(challenge: Challenge, index: int, field: str, value: Any) -> Challenge:
    name = _field_name(ChallengeCard, field)
    cards = [
        _with_field(c, name, value) if i == index else c
        for i, c in enumerate(challenge.cards)
    ]
    return challenge.model_copy(update={"cards": cards})


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


def next_slot(notifications: list[NotificationMessage] | None) -> tuple[str, int]:
    if not notifications:
        return DEFAULT_SLOT
    return NEXT_SLOT.get(notifications[-1].time, DEFAULT_SLOT)


def add_notification(challenge: Challenge) -> Challenge:
    existing = challenge.notifications or []
    time, hour = next_slot(existing)
    notification = NotificationMessage(
        time=time, hour=hour,
        title=f"Day {challenge.day} {time.capitalize()}",
        body=NEW_NOTIFICATION_BODY,
    )
    return challenge.model_copy(update={"notifications": [*existing, notification]})


def update_notification_field(challenge: Challenge, index: int, field: str, value: Any) -> Challenge:
    name = _field_name(NotificationMessage, field)
    notifications = [
        _with_field(n, name, value) if i == index else n
        for i, n in enumerate(challenge.notifications or [])
    ]
    return challenge.model_copy(update={"notifications": notifications})


def remove_notification(challenge: Challenge, index: int) -> Challenge:
    notifications = [n for i, n in enumerate(challenge.notifications or []) if i != index]
    return challenge.model_copy(update={"notifications": notifications})


def format_hour(hour: int) -> str:
    """12-hour preview of an hour of day; the time bucket plays no part."""
    if hour < 12:
        return f"{12 if hour == 0 else hour}:00 AM"
    return f"{12 if hour == 12 else hour - 12}:00 PM"


def update_challenge_field(challenge: Challenge, field: str, value: Any) -> Challenge:
    name = _field_name(Challenge, field)
    if name in ("cards", "notifications"):
        raise ValueError(f"Use the card/notification helpers to edit {name}")
    return _with_field(challenge, name, value)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


def challenge_key(day: int) -> str:
    return f"day{day}"


def next_day(challenges: Iterable[Challenge]) -> int:
    """``max(existing days, 0) + 1``; not guaranteed unique if days were edited by hand."""
    return max([c.day for c in challenges] + [0]) + 1


def new_challenge(day: int) -> Challenge:
    return Challenge(
        day=day,
        title=f"Day {day} Challenge",
        description="New challenge description",
        enabled=True,
        order=day,
        final_button_text="Start Challenge",
        cards=[
            ChallengeCard(id=1, type="intro", title=f"Day {day} Intro",
                          content="Introduction content here..."),
            ChallengeCard(id=2, type="instruction", title="How it works",
                          content="Instructions here..."),
            ChallengeCard(id=3, type="notification", title="Reminders",
                          content="Reminder settings...", button_text="Enable Reminders"),
            ChallengeCard(id=4, type="why", title="Why this works",
                          content="Explanation here..."),
        ],
    )


def projection(challenge: Challenge) -> CourseContent:
    return CourseContent(
        day=challenge.day, title=challenge.title, description=challenge.description,
        enabled=challenge.enabled, order=challenge.order,
    )


def dump_challenge(challenge: Challenge) -> dict[str, Any]:
    """Document form: camelCase keys, unset optional fields omitted."""
    return challenge.model_dump(by_alias=True, exclude_none=True)


def load_challenges(store: DocumentStore) -> dict[str, Challenge]:
    challenges: dict[str, Challenge] = {}
    for key, data in store.list_all(CHALLENGES).items():
        try:
            challenges[key] = Challenge.model_validate(data)
        except ValidationError as exc:
            log.warning("Skipping malformed challenge document %s: %s", key, exc)
    return challenges


def sorted_challenges(challenges: dict[str, Challenge]) -> list[tuple[str, Challenge]]:
    return sorted(challenges.items(), key=lambda kv: kv[1].day)


def save_challenge(store: DocumentStore, key: str, challenge: Challenge) -> None:
    """Write the full document, then its projection.

    The writes are independent. A failure of the first propagates unchanged;
    a failure of the second raises :class:`PartialWriteError`.
    """
    store.set(CHALLENGES, key, dump_challenge(challenge))
    try:
        store.set(COURSE_CONTENT, key, projection(challenge).model_dump())
    except Exception as exc:
        log.warning("Projection write failed for %s: %s", key, exc)
        raise PartialWriteError(key, [CHALLENGES], COURSE_CONTENT, str(exc)) from exc


def create_challenge(store: DocumentStore) -> tuple[str, Challenge]:
    day = next_day(load_challenges(store).values())
    key = challenge_key(day)
    challenge = new_challenge(day)
    save_challenge(store, key, challenge)
    log.info("Created challenge %s", key)
    return key, challenge
