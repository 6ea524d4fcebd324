from datetime import date

import pytest

from ..models.base import PaginationParams
from ..models.meal import MealType, Phase
from ..models.participant import ParticipantKind
from ..services.catering_service import CateringService
from ..services.export_service import ExportService
from ..services.selection_service import SelectionService
from ..services.slot_service import SlotService
from ..services.stats_service import StatsService

DAY = date(2024, 7, 10)


@pytest.fixture
def roster(test_db, factory, event_id):
    """7月10日的用餐人员"""
    SlotService(test_db).reconcile(event_id)
    selections = SelectionService(test_db)

    zoe = factory.volunteer(
        event_id, user_id=factory.user("Zoe", "Bernard"), dietary="VEGETARIAN",
        allergies="Arachides", severity="SEVERE", emergency_name="Paul Bernard", emergency_phone="0600000000",
    )
    adam = factory.volunteer(event_id, user_id=factory.user("Adam", "Bernard"), dietary="VEGAN")
    late = factory.volunteer(event_id, user_id=factory.user("Leo", "Roux"), arrival="2024-07-10_evening")
    artist = factory.artist(event_id, user_id=factory.user("Nina", "Simon"))
    for volunteer_id in (zoe, adam, late):
        selections.sync_volunteer(event_id, volunteer_id)
    selections.sync_artist(event_id, artist)

    return {"zoe": zoe, "adam": adam, "late": late, "artist": artist}


class TestCateringReport:
    """备餐报表测试"""

    def test_meals_and_counts(self, test_db, event_id, roster):
        report = CateringService(test_db).report(event_id, DAY)

        assert [m.meal_type for m in report.meals] == [MealType.BREAKFAST, MealType.LUNCH, MealType.DINNER]
        assert [m.count for m in report.meals] == [3, 3, 4]
        assert report.summary.total_meals == 10
        assert report.meals[0].counts_by_kind == {"volunteer": 2, "artist": 1, "participant": 0}

    def test_people_sorted_by_last_then_first_name(self, test_db, event_id, roster):
        dinner = CateringService(test_db).report(event_id, DAY).meals[2]

        assert [(p.last_name, p.first_name) for p in dinner.people] == [
            ("Bernard", "Adam"), ("Bernard", "Zoe"), ("Roux", "Leo"), ("Simon", "Nina"),
        ]

    def test_dietary_and_allergies(self, test_db, event_id, roster):
        summary = CateringService(test_db).report(event_id, DAY).summary

        assert summary.dietary_counts == {"NONE": 4, "VEGAN": 3, "VEGETARIAN": 3}
        assert len(summary.allergies) == 1
        allergy = summary.allergies[0]
        assert allergy.allergies == "Arachides"
        assert allergy.allergy_severity == "SEVERE"
        assert allergy.emergency_contact_phone == "0600000000"
        assert allergy.meal_types == [MealType.BREAKFAST, MealType.LUNCH, MealType.DINNER]

    def test_declined_and_disabled_excluded(self, test_db, event_id, roster):
        selections = SelectionService(test_db)
        breakfast = selections.sync_volunteer(event_id, roster["zoe"])[0]
        assert (breakfast.date, breakfast.meal_type) == (DAY, MealType.BREAKFAST)
        selections.update_selection(ParticipantKind.VOLUNTEER, event_id, breakfast.selection_id, accepted=False)
        with test_db.transaction() as conn:
            conn.execute("UPDATE meal_slots SET enabled=FALSE WHERE date=? AND meal_type='LUNCH'", [DAY])

        report = CateringService(test_db).report(event_id, DAY)

        assert [m.meal_type for m in report.meals] == [MealType.BREAKFAST, MealType.DINNER]
        assert report.meals[0].count == 2

    def test_ticket_holders_counted_through_tier_only(self, test_db, factory, event_id, roster):
        """报表只按票档统计票务参与者，与核销统计的去重口径不同"""
        lunch_id = factory.slot_id(event_id, DAY, "LUNCH")
        tier_id = factory.tier(event_id)
        option_id = factory.option(event_id)
        factory.grant_tier(tier_id, lunch_id)
        factory.grant_option(option_id, lunch_id)
        factory.order_item(event_id, tier_id, option_ids=[option_id], first_name="Both")
        factory.order_item(event_id, None, option_ids=[option_id], first_name="OptionOnly")

        lunch = CateringService(test_db).report(event_id, DAY).meals[1]
        stats = StatsService(test_db).stats(event_id, lunch_id)

        assert [p.first_name for p in lunch.people if p.kind == ParticipantKind.PARTICIPANT] == ["Both"]
        assert stats.breakdown.participants.total == 2

    def test_day_outside_event(self, test_db, event_id, roster):
        report = CateringService(test_db).report(event_id, "2024-08-01")

        assert report.meals == []
        assert report.summary.total_meals == 0


class TestListParticipants:
    """餐次名单分页测试"""

    def test_pagination(self, test_db, event_id, roster):
        service = CateringService(test_db)

        page = service.list_participants(event_id, PaginationParams(page=1, size=10))

        # 3名志愿者(9+9+7) + 艺人15 = 40
        assert page.total == 40
        assert page.pages == 4
        assert len(page.items) == 10
        assert (page.items[0].last_name, page.items[0].first_name) == ("Bernard", "Adam")

    def test_filters(self, test_db, event_id, roster):
        service = CateringService(test_db)

        setup_page = service.list_participants(event_id, PaginationParams(), phase=Phase.SETUP)
        artist_page = service.list_participants(event_id, PaginationParams(), kind=ParticipantKind.ARTIST)
        search_page = service.list_participants(event_id, PaginationParams(), search="roux")

        assert setup_page.total == 6
        assert all(item.kind == ParticipantKind.ARTIST for item in setup_page.items)
        assert artist_page.total == 15
        assert search_page.total == 7


class TestExportReport:
    """备餐报表导出测试"""

    def test_export_workbook(self, test_db, event_id, roster):
        import io
        from openpyxl import load_workbook

        data = ExportService(test_db).export_report_excel(event_id, DAY)

        workbook = load_workbook(io.BytesIO(data))
        assert workbook.sheetnames == ["当日概况", "用餐名单", "过敏清单"]
        assert workbook["用餐名单"].max_row == 11
