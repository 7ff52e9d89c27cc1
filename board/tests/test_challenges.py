"""Tests for challenge card/notification editing and the paired projection write."""
from __future__ import annotations

from collections import Counter
from unittest.mock import patch

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from board import challenges as ch
from board.docstore import DocumentStore
from board.models import Base
from board.schemas import Challenge, ChallengeCard, NotificationMessage


@pytest.fixture()
def store():
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    try:
        yield DocumentStore(session)
    finally:
        session.close()


def _challenge(card_ids=(1, 2, 3), day=1, notifications=None) -> Challenge:
    return Challenge(
        day=day, title=f"Day {day}", description="desc", enabled=True, order=day,
        cards=[ChallengeCard(id=i, title=f"Card {i}") for i in card_ids],
        notifications=notifications,
    )


def _ids(challenge: Challenge) -> list[int]:
    return [c.id for c in challenge.cards]


# =========================================================================
# Card ids
# =========================================================================

class TestCardIds:
    def test_add_at_end_uses_max_plus_one(self):
        result = ch.add_card_at_end(_challenge((1, 5, 3)))
        assert _ids(result) == [1, 5, 3, 6]
        new = result.cards[-1]
        assert new.type == "custom"
        assert new.title == "New Screen"
        assert new.content == "Enter your content here..."

    def test_first_card_gets_id_one(self):
        result = ch.add_card_at_end(_challenge(()))
        assert _ids(result) == [1]

    def test_negative_ids_still_start_at_one(self):
        assert ch.next_card_id([ChallengeCard(id=-4)]) == 1

    def test_remove_max_then_add_does_not_collide(self):
        challenge = _challenge((1, 2, 3))
        challenge = ch.remove_card(challenge, 2)  # removes id 3
        challenge = ch.add_card_at_end(challenge)
        ids = _ids(challenge)
        assert len(ids) == len(set(ids))
        assert ids == [1, 2, 3]

    def test_remove_does_not_renumber(self):
        result = ch.remove_card(_challenge((1, 2, 3)), 0)
        assert _ids(result) == [2, 3]

    def test_remove_out_of_range_is_unchanged(self):
        assert _ids(ch.remove_card(_challenge((1, 2)), 7)) == [1, 2]

    def test_insert_at_position(self):
        result = ch.insert_card_at(_challenge((1, 2, 3)), 1)
        assert _ids(result) == [1, 4, 2, 3]

    def test_insert_at_zero_goes_first(self):
        result = ch.insert_card_at(_challenge((1, 2)), 0)
        assert _ids(result) == [3, 1, 2]

    def test_edits_do_not_mutate_input(self):
        original = _challenge((1, 2))
        ch.add_card_at_end(original)
        ch.insert_card_at(original, 0)
        ch.remove_card(original, 0)
        ch.update_card_field(original, 0, "title", "Changed")
        assert _ids(original) == [1, 2]
        assert original.cards[0].title == "Card 1"


# =========================================================================
# Moving and field updates
# =========================================================================

class TestMoveCard:
    def test_first_up_is_noop(self):
        challenge = _challenge((1, 2, 3))
        assert ch.move_card(challenge, 0, "up") is challenge

    def test_last_down_is_noop(self):
        challenge = _challenge((1, 2, 3))
        assert ch.move_card(challenge, 2, "down") is challenge

    def test_interior_move_swaps_neighbours(self):
        challenge = _challenge((1, 2, 3, 4))
        up = ch.move_card(challenge, 2, "up")
        down = ch.move_card(challenge, 1, "down")
        assert _ids(up) == [1, 3, 2, 4]
        assert _ids(down) == [1, 3, 2, 4]
        assert Counter(_ids(up)) == Counter(_ids(challenge))

    def test_invalid_direction(self):
        with pytest.raises(ValueError):
            ch.move_card(_challenge(), 1, "sideways")


class TestUpdateFields:
    def test_update_card_field_only_touches_one_card(self):
        result = ch.update_card_field(_challenge((1, 2)), 1, "title", "Second")
        assert [c.title for c in result.cards] == ["Card 1", "Second"]

    def test_update_card_field_accepts_document_alias(self):
        result = ch.update_card_field(_challenge((1,)), 0, "buttonText", "Continue")
        assert result.cards[0].button_text == "Continue"
        assert ch.dump_challenge(result)["cards"][0]["buttonText"] == "Continue"

    def test_update_unknown_card_field(self):
        with pytest.raises(ValueError):
            ch.update_card_field(_challenge(), 0, "colour", "red")

    def test_update_challenge_field(self):
        result = ch.update_challenge_field(_challenge(), "finalButtonText", "Let's Do This")
        assert result.final_button_text == "Let's Do This"
        result = ch.update_challenge_field(result, "enabled", False)
        assert result.enabled is False

    def test_update_challenge_field_rejects_lists(self):
        with pytest.raises(ValueError):
            ch.update_challenge_field(_challenge(), "cards", [])

    def test_update_challenge_field_coerces_like_a_loaded_document(self):
        result = ch.update_challenge_field(_challenge(), "day", "7")
        assert result.day == 7
        assert ch.next_day([result, _challenge(day=2)]) == 8

    def test_update_challenge_field_rejects_wrong_type(self):
        with pytest.raises(ValidationError):
            ch.update_challenge_field(_challenge(), "day", "seven")

    def test_update_card_field_rejects_wrong_type(self):
        challenge = _challenge((1, 2))
        with pytest.raises(ValidationError):
            ch.update_card_field(challenge, 0, "id", "first")
        assert _ids(challenge) == [1, 2]


# =========================================================================
# Notifications
# =========================================================================

class TestNotifications:
    def test_first_notification_is_morning(self):
        result = ch.add_notification(_challenge(day=3))
        n = result.notifications[0]
        assert (n.time, n.hour) == ("morning", 9)
        assert n.title == "Day 3 Morning"
        assert n.body == "Enter notification message here..."

    def test_morning_then_afternoon(self):
        challenge = _challenge(notifications=[NotificationMessage(time="morning", hour=9)])
        n = ch.add_notification(challenge).notifications[-1]
        assert (n.time, n.hour) == ("afternoon", 14)

    def test_afternoon_then_evening(self):
        challenge = _challenge(day=2, notifications=[NotificationMessage(time="afternoon", hour=14)])
        n = ch.add_notification(challenge).notifications[-1]
        assert (n.time, n.hour) == ("evening", 19)
        assert n.title == "Day 2 Evening"

    def test_evening_wraps_to_morning(self):
        # Rotation does not advance past evening; known boundary of the heuristic.
        challenge = _challenge(notifications=[NotificationMessage(time="evening", hour=19)])
        n = ch.add_notification(challenge).notifications[-1]
        assert (n.time, n.hour) == ("morning", 9)

    def test_rotation_only_looks_at_last_entry(self):
        challenge = _challenge(notifications=[
            NotificationMessage(time="afternoon", hour=14),
            NotificationMessage(time="morning", hour=23),
        ])
        n = ch.add_notification(challenge).notifications[-1]
        assert n.time == "afternoon"

    def test_update_and_remove(self):
        challenge = ch.add_notification(ch.add_notification(_challenge()))
        challenge = ch.update_notification_field(challenge, 1, "hour", 23)
        assert challenge.notifications[1].hour == 23
        assert challenge.notifications[1].time == "afternoon"
        challenge = ch.remove_notification(challenge, 0)
        assert [n.time for n in challenge.notifications] == ["afternoon"]

    def test_update_notification_rejects_unknown_slot(self):
        challenge = ch.add_notification(_challenge())
        with pytest.raises(ValidationError):
            ch.update_notification_field(challenge, 0, "time", "night")
        with pytest.raises(ValidationError):
            ch.update_notification_field(challenge, 0, "hour", "noon")
        assert challenge.notifications[0].time == "morning"

    @pytest.mark.parametrize("hour,expected", [
        (0, "12:00 AM"), (9, "9:00 AM"), (11, "11:00 AM"),
        (12, "12:00 PM"), (14, "2:00 PM"), (23, "11:00 PM"),
    ])
    def test_format_hour(self, hour, expected):
        assert ch.format_hour(hour) == expected


# =========================================================================
# Documents
# =========================================================================

class TestChallengeDocuments:
    def test_new_challenge_template(self):
        challenge = ch.new_challenge(7)
        assert challenge.title == "Day 7 Challenge"
        assert challenge.order == 7
        assert challenge.final_button_text == "Start Challenge"
        assert [c.type for c in challenge.cards] == ["intro", "instruction", "notification", "why"]
        assert challenge.cards[2].button_text == "Enable Reminders"
        assert challenge.notifications is None

    def test_dump_uses_document_field_names(self):
        data = ch.dump_challenge(ch.new_challenge(1))
        assert data["finalButtonText"] == "Start Challenge"
        assert "notifications" not in data
        assert "buttonText" not in data["cards"][0]
        assert data["cards"][2]["buttonText"] == "Enable Reminders"

    def test_create_assigns_max_day_plus_one(self, store):
        for day in (1, 2, 4):
            ch.save_challenge(store, ch.challenge_key(day), ch.new_challenge(day))
        key, challenge = ch.create_challenge(store)
        assert key == "day5"
        assert challenge.day == 5
        proj = store.get(ch.COURSE_CONTENT, "day5")
        assert proj == {
            "day": 5, "title": "Day 5 Challenge", "description": "New challenge description",
            "enabled": True, "order": 5,
        }

    def test_create_on_empty_store_is_day_one(self, store):
        key, challenge = ch.create_challenge(store)
        assert (key, challenge.day) == ("day1", 1)

    def test_deleted_highest_day_is_reused(self, store):
        # max+1 heuristic: after a hand edit lowers the top day, its key is handed out again.
        ch.save_challenge(store, "day1", ch.new_challenge(1))
        key, _ = ch.create_challenge(store)
        assert key == "day2"
        store.set(ch.CHALLENGES, "day2", {**ch.dump_challenge(ch.new_challenge(2)), "day": 1})
        key, _ = ch.create_challenge(store)
        assert key == "day2"

    def test_save_updates_projection(self, store):
        ch.save_challenge(store, "day1", ch.new_challenge(1))
        edited = ch.update_challenge_field(ch.load_challenges(store)["day1"], "title", "Renamed")
        ch.save_challenge(store, "day1", edited)
        assert store.get(ch.CHALLENGES, "day1")["title"] == "Renamed"
        assert store.get(ch.COURSE_CONTENT, "day1")["title"] == "Renamed"

    def test_sorted_by_day(self, store):
        for day in (3, 1, 2):
            ch.save_challenge(store, ch.challenge_key(day), ch.new_challenge(day))
        days = [c.day for _, c in ch.sorted_challenges(ch.load_challenges(store))]
        assert days == [1, 2, 3]

    def test_malformed_document_is_skipped(self, store):
        store.set(ch.CHALLENGES, "broken", {"title": "no day"})
        ch.save_challenge(store, "day1", ch.new_challenge(1))
        assert list(ch.load_challenges(store)) == ["day1"]

    def test_projection_failure_is_partial_write(self, store):
        real_set = store.set

        def flaky_set(collection, key, data):
            if collection == ch.COURSE_CONTENT:
                raise RuntimeError("backend down")
            real_set(collection, key, data)

        with patch.object(store, "set", side_effect=flaky_set):
            with pytest.raises(ch.PartialWriteError) as info:
                ch.save_challenge(store, "day1", ch.new_challenge(1))
        assert info.value.written == [ch.CHALLENGES]
        assert info.value.failed == ch.COURSE_CONTENT
        assert store.get(ch.CHALLENGES, "day1") is not None
        assert store.get(ch.COURSE_CONTENT, "day1") is None

    def test_first_write_failure_propagates_unchanged(self, store):
        with patch.object(store, "set", side_effect=RuntimeError("down")):
            with pytest.raises(RuntimeError):
                ch.save_challenge(store, "day1", ch.new_challenge(1))
