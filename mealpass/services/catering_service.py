"""
备餐报表服务
为厨房按天汇总用餐人员、饮食偏好和过敏信息，并提供餐次名单分页查询

报表口径：
- 志愿者：已录取且接受该餐的选餐记录
- 艺人：接受该餐的选餐记录
- 票务参与者：票档授权了该餐次的有效订单项（只看票档，不与附加选项去重）
  与核销统计的口径不同，统计见 stats_service
"""

import logging
from collections import Counter
from datetime import date
from typing import Dict, List, Optional

from ..core.database import DatabaseManager, db_manager
from ..models.base import PaginatedResponse, PaginationParams
from ..models.entitlement import (
    AllergyEntry,
    CateringMeal,
    CateringPerson,
    CateringReport,
    CateringSummary,
    MealParticipant,
)
from ..models.meal import MealSlot, Phase
from ..models.participant import COUNTED_ITEM_STATES, OrderStatus, ParticipantKind
from .slot_service import reconcile_slots
from .stores import ARTIST_STORE, VOLUNTEER_STORE, SelectionStore
from .time_window import DateLike, normalize_day

logger = logging.getLogger(__name__)

NO_DIETARY_PREFERENCE = "NONE"

_PERSON_COLUMNS = """
    p.id, u.first_name, u.last_name, u.pseudo,
    p.dietary_preference, p.allergies, p.allergy_severity,
    p.emergency_contact_name, p.emergency_contact_phone
"""


def _person_sort_key(person) -> tuple:
    return (
        (person.last_name or "").lower(),
        (person.first_name or "").lower(),
        person.kind.value,
        person.id,
    )


def _allergy_sort_key(entry: AllergyEntry) -> tuple:
    return ((entry.last_name or "").lower(), (entry.first_name or "").lower(), entry.kind.value)


class CateringService:
    """备餐报表服务（只读，读取前先对账餐次）"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or db_manager

    def report(self, event_id: int, day: DateLike) -> CateringReport:
        """
        生成某天的备餐报表

        Args:
            event_id: 活动ID
            day: 日期（date 或 YYYY-MM-DD）

        Returns:
            CateringReport: 每个启用餐次的人员名单，以及当天的饮食偏好统计和过敏清单

        Raises:
            EventNotFoundError: 活动不存在时
            InvalidPeriodError: 日期无法解析或活动日期区间非法时
        """
        target = normalize_day(day)
        with self.db.transaction() as conn:
            slots, _, _ = reconcile_slots(conn, event_id)
            day_slots = [s for s in slots if s.enabled and s.date == target]
            meals = [self._build_meal(conn, event_id, slot) for slot in day_slots]

        return CateringReport(
            event_id=event_id,
            summary=self._summarize(target, meals),
            meals=meals,
        )

    def list_participants(self, event_id: int, pagination: PaginationParams,
                          search: Optional[str] = None, phase: Optional[Phase] = None,
                          kind: Optional[ParticipantKind] = None) -> PaginatedResponse:
        """
        分页列出所有启用餐次上已接受的志愿者/艺人选餐

        Args:
            search: 按姓名/邮箱模糊匹配
            phase: 只看属于该阶段的餐次
            kind: volunteer 或 artist
        """
        with self.db.transaction() as conn:
            slots, _, _ = reconcile_slots(conn, event_id)
            enabled = {s.id: s for s in slots if s.enabled}
            if phase is not None:
                enabled = {k: s for k, s in enabled.items() if Phase(phase) in s.phases}

            entries: List[MealParticipant] = []
            for store in (VOLUNTEER_STORE, ARTIST_STORE):
                if kind is not None and ParticipantKind(kind) != store.kind:
                    continue
                entries.extend(self._participant_rows(conn, store, event_id, enabled))

        if search:
            term = search.strip().lower()
            entries = [
                e for e in entries
                if any(term in (v or "").lower() for v in (e.first_name, e.last_name, e.email))
            ]

        entries.sort(key=lambda e: (
            (e.last_name or "").lower(),
            (e.first_name or "").lower(),
            e.meal_date,
            e.meal_type.order,
        ))
        page = entries[pagination.offset:pagination.offset + pagination.size]
        return PaginatedResponse.create(page, len(entries), pagination)

    def _build_meal(self, conn, event_id: int, slot: MealSlot) -> CateringMeal:
        people = (
            self._selection_people(conn, VOLUNTEER_STORE, event_id, slot.id, "AND p.status='ACCEPTED'")
            + self._selection_people(conn, ARTIST_STORE, event_id, slot.id)
            + self._ticket_people(conn, event_id, slot.id)
        )
        people.sort(key=_person_sort_key)
        counts = Counter(person.kind.value for person in people)
        return CateringMeal(
            meal_id=slot.id,
            meal_type=slot.meal_type,
            phases=slot.phases,
            count=len(people),
            counts_by_kind={k.value: counts.get(k.value, 0) for k in ParticipantKind},
            people=people,
        )

    def _selection_people(self, conn, store: SelectionStore, event_id: int, meal_id: int,
                          extra_filter: str = "") -> List[CateringPerson]:
        after_show = "s.after_show" if store.has_after_show else "FALSE"
        rows = conn.execute(
            f"""
            SELECT {_PERSON_COLUMNS}, {after_show}
            FROM {store.table} s
            JOIN {store.owner_table} p ON p.id = s.{store.owner_column}
            JOIN users u ON u.id = p.user_id
            WHERE s.meal_id=? AND s.accepted AND p.event_id=? {extra_filter}
            """,
            [meal_id, event_id],
        ).fetchall()
        return [
            CateringPerson(
                kind=store.kind,
                id=row[0],
                first_name=row[1],
                last_name=row[2],
                pseudo=row[3],
                dietary_preference=row[4],
                allergies=row[5],
                allergy_severity=row[6],
                emergency_contact_name=row[7],
                emergency_contact_phone=row[8],
                after_show=bool(row[9]),
            )
            for row in rows
        ]

    def _ticket_people(self, conn, event_id: int, meal_id: int) -> List[CateringPerson]:
        # 只按票档授权统计，订单项若同时经附加选项可达也不在此处去重
        rows = conn.execute(
            """
            SELECT oi.id, oi.first_name, oi.last_name
            FROM tier_meal_grants g
            JOIN ticket_order_items oi ON oi.tier_id = g.tier_id
            JOIN ticket_orders o ON o.id = oi.order_id
            WHERE g.meal_id=? AND o.event_id=? AND o.status=?
              AND oi.state IN (?, ?)
            """,
            [meal_id, event_id, OrderStatus.PROCESSED.value, *COUNTED_ITEM_STATES],
        ).fetchall()
        return [
            CateringPerson(kind=ParticipantKind.PARTICIPANT, id=row[0], first_name=row[1], last_name=row[2])
            for row in rows
        ]

    def _summarize(self, target: date, meals: List[CateringMeal]) -> CateringSummary:
        dietary = Counter()
        allergies: Dict[tuple, AllergyEntry] = {}

        for meal in meals:
            for person in meal.people:
                dietary[person.dietary_preference or NO_DIETARY_PREFERENCE] += 1
                if not (person.allergies and person.allergies.strip()):
                    continue
                key = (person.kind, person.id)
                if key not in allergies:
                    allergies[key] = AllergyEntry(
                        kind=person.kind,
                        first_name=person.first_name,
                        last_name=person.last_name,
                        pseudo=person.pseudo,
                        allergies=person.allergies.strip(),
                        allergy_severity=person.allergy_severity,
                        emergency_contact_name=person.emergency_contact_name,
                        emergency_contact_phone=person.emergency_contact_phone,
                    )
                allergies[key].meal_types.append(meal.meal_type)

        return CateringSummary(
            date=target,
            total_meals=sum(meal.count for meal in meals),
            dietary_counts=dict(sorted(dietary.items())),
            allergies=sorted(allergies.values(), key=_allergy_sort_key),
        )

    def _participant_rows(self, conn, store: SelectionStore, event_id: int,
                          slots: Dict[int, MealSlot]) -> List[MealParticipant]:
        if not slots:
            return []
        status_filter = "AND p.status='ACCEPTED'" if store.kind == ParticipantKind.VOLUNTEER else ""
        after_show = "s.after_show" if store.has_after_show else "FALSE"
        rows = conn.execute(
            f"""
            SELECT s.id, p.user_id, u.first_name, u.last_name, u.email, u.phone, s.meal_id,
                   p.dietary_preference, p.allergies, p.allergy_severity, {after_show}
            FROM {store.table} s
            JOIN {store.owner_table} p ON p.id = s.{store.owner_column}
            JOIN users u ON u.id = p.user_id
            WHERE s.accepted AND p.event_id=? {status_filter}
            """,
            [event_id],
        ).fetchall()

        entries = []
        for row in rows:
            slot = slots.get(row[6])
            if slot is None:
                continue
            entries.append(MealParticipant(
                kind=store.kind,
                selection_id=row[0],
                user_id=row[1],
                first_name=row[2],
                last_name=row[3],
                email=row[4],
                phone=row[5],
                meal_id=slot.id,
                meal_date=slot.date,
                meal_type=slot.meal_type,
                meal_phases=slot.phases,
                dietary_preference=row[7],
                allergies=row[8],
                allergy_severity=row[9],
                after_show=bool(row[10]),
            ))
        return entries
