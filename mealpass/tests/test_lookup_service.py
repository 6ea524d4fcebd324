from datetime import date

import pytest

from ..models.participant import ParticipantKind
from ..services.lookup_service import LookupService
from ..services.selection_service import SelectionService
from ..services.slot_service import SlotService
from ..services.validation_service import ValidationService


@pytest.fixture
def meal_setup(test_db, factory, event_id):
    """7月10日午餐：一名志愿者、一名艺人、一名票务参与者"""
    SlotService(test_db).reconcile(event_id)
    lunch_id = factory.slot_id(event_id, date(2024, 7, 10), "LUNCH")

    volunteer_id = factory.volunteer(event_id, user_id=factory.user("Alice", "Martin", pseudo="Ali"))
    artist_id = factory.artist(event_id, user_id=factory.user("Bob", "Durand"))
    tier_id = factory.tier(event_id)
    factory.grant_tier(tier_id, lunch_id)
    item_id = factory.order_item(event_id, tier_id, first_name="Claire", last_name="Petit")

    selections = SelectionService(test_db)
    volunteer_sel = next(
        v.selection_id for v in selections.sync_volunteer(event_id, volunteer_id) if v.meal_id == lunch_id)
    artist_sel = next(
        v.selection_id for v in selections.sync_artist(event_id, artist_id) if v.meal_id == lunch_id)

    return {
        "lunch_id": lunch_id,
        "volunteer_selection": volunteer_sel,
        "artist_selection": artist_sel,
        "order_item": item_id,
    }


class TestPending:
    """待核销列表测试"""

    def test_all_kinds_sorted_by_name(self, test_db, event_id, meal_setup):
        pending = LookupService(test_db).pending(event_id, meal_setup["lunch_id"])

        assert [h.unique_id for h in pending] == [
            f"artist-{meal_setup['artist_selection']}",
            f"volunteer-{meal_setup['volunteer_selection']}",
            f"participant-{meal_setup['order_item']}",
        ]

    def test_validated_removed(self, test_db, event_id, meal_setup):
        ValidationService(test_db).validate(
            event_id, meal_setup["lunch_id"], "volunteer", meal_setup["volunteer_selection"])

        pending = LookupService(test_db).pending(event_id, meal_setup["lunch_id"])

        assert all(h.kind != ParticipantKind.VOLUNTEER for h in pending)
        assert len(pending) == 2

    def test_filter_by_kind(self, test_db, event_id, meal_setup):
        pending = LookupService(test_db).pending(event_id, meal_setup["lunch_id"], ParticipantKind.PARTICIPANT)

        assert len(pending) == 1
        assert pending[0].id == meal_setup["order_item"]
        assert pending[0].email == "claire@example.com"


class TestSearch:
    """检索测试"""

    def test_search_by_pseudo_includes_consumed(self, test_db, event_id, meal_setup):
        ValidationService(test_db).validate(
            event_id, meal_setup["lunch_id"], "volunteer", meal_setup["volunteer_selection"])

        results = LookupService(test_db).search(event_id, meal_setup["lunch_id"], "ALI")

        assert len(results) == 1
        assert results[0].kind == ParticipantKind.VOLUNTEER
        assert results[0].consumed_at is not None

    def test_search_ticket_holder_by_last_name(self, test_db, event_id, meal_setup):
        results = LookupService(test_db).search(event_id, meal_setup["lunch_id"], "pet")

        assert [r.unique_id for r in results] == [f"participant-{meal_setup['order_item']}"]

    def test_short_term_returns_nothing(self, test_db, event_id, meal_setup):
        assert LookupService(test_db).search(event_id, meal_setup["lunch_id"], "a") == []
