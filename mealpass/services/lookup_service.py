"""
扫码端查询服务
- pending: 某餐次尚未核销的权益列表
- search: 按姓名/昵称/邮箱检索某餐次的权益（含已核销）

返回的 unique_id 为 "<type>-<id>"，id 即核销接口所需的选餐记录ID或订单项ID。
"""

import logging
from typing import List, Optional

from ..config.settings import settings
from ..core.database import DatabaseManager, db_manager, placeholders
from ..models.entitlement import EntitlementHolder
from ..models.participant import ParticipantKind
from .slot_service import fetch_slot
from .stats_service import entitled_items
from .stores import ARTIST_STORE, VOLUNTEER_STORE, SelectionStore

logger = logging.getLogger(__name__)

_SEARCH_FIELDS = ("first_name", "last_name", "pseudo", "email")


def _holder(kind: ParticipantKind, row) -> EntitlementHolder:
    return EntitlementHolder(
        unique_id=f"{kind.value}-{row[0]}",
        id=row[0],
        kind=kind,
        first_name=row[1],
        last_name=row[2],
        pseudo=row[3],
        email=row[4],
        phone=row[5],
        consumed_at=row[6],
    )


def _sort_key(holder: EntitlementHolder):
    return ((holder.last_name or "").lower(), (holder.first_name or "").lower(), holder.unique_id)


class LookupService:
    """扫码端查询服务（只读）"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or db_manager

    def pending(self, event_id: int, meal_id: int,
                kind: Optional[ParticipantKind] = None) -> List[EntitlementHolder]:
        """
        获取餐次的待核销列表

        Args:
            kind: 只返回某一类参与者，None 表示全部
        """
        kinds = [ParticipantKind(kind)] if kind else list(ParticipantKind)
        with self.db.transaction() as conn:
            fetch_slot(conn, event_id, meal_id)
            holders = self._collect(conn, event_id, meal_id, kinds)

        return sorted((h for h in holders if h.consumed_at is None), key=_sort_key)

    def search(self, event_id: int, meal_id: int, q: str) -> List[EntitlementHolder]:
        """
        检索餐次的权益

        检索词短于 search_min_length 时直接返回空列表。
        """
        term = (q or "").strip().lower()
        if len(term) < settings.search_min_length:
            return []

        with self.db.transaction() as conn:
            fetch_slot(conn, event_id, meal_id)
            holders = self._collect(conn, event_id, meal_id, list(ParticipantKind))

        results = [
            h for h in holders
            if any(term in (getattr(h, field) or "").lower() for field in _SEARCH_FIELDS)
        ]
        logger.debug("Meal %s search %r matched %d", meal_id, term, len(results))
        return sorted(results, key=_sort_key)

    def _collect(self, conn, event_id: int, meal_id: int,
                 kinds: List[ParticipantKind]) -> List[EntitlementHolder]:
        holders = []
        if ParticipantKind.VOLUNTEER in kinds:
            holders.extend(self._selection_holders(
                conn, VOLUNTEER_STORE, event_id, meal_id, "AND p.status='ACCEPTED'"))
        if ParticipantKind.ARTIST in kinds:
            holders.extend(self._selection_holders(conn, ARTIST_STORE, event_id, meal_id))
        if ParticipantKind.PARTICIPANT in kinds:
            holders.extend(self._ticket_holders(conn, event_id, meal_id))
        return holders

    def _selection_holders(self, conn, store: SelectionStore, event_id: int, meal_id: int,
                           extra_filter: str = "") -> List[EntitlementHolder]:
        rows = conn.execute(
            f"""
            SELECT s.id, u.first_name, u.last_name, u.pseudo, u.email, u.phone, s.consumed_at
            FROM {store.table} s
            JOIN {store.owner_table} p ON p.id = s.{store.owner_column}
            JOIN users u ON u.id = p.user_id
            WHERE s.meal_id=? AND p.event_id=? {extra_filter}
            """,
            [meal_id, event_id],
        ).fetchall()
        return [_holder(store.kind, row) for row in rows]

    def _ticket_holders(self, conn, event_id: int, meal_id: int) -> List[EntitlementHolder]:
        item_ids = sorted(entitled_items(conn, event_id, meal_id))
        if not item_ids:
            return []
        rows = conn.execute(
            f"""
            SELECT oi.id, oi.first_name, oi.last_name, NULL, oi.email, NULL, g.consumed_at
            FROM ticket_order_items oi
            LEFT JOIN order_item_meals g ON g.order_item_id = oi.id AND g.meal_id = ?
            WHERE oi.id IN ({placeholders(item_ids)})
            """,
            [meal_id, *item_ids],
        ).fetchall()
        return [_holder(ParticipantKind.PARTICIPANT, row) for row in rows]
