"""
选餐同步服务
为志愿者/艺人维护选餐记录，使其与当前资格判定保持一致

主要功能：
- 先对账餐次，再逐个判定启用餐次的资格
- 新符合资格的餐次创建选餐记录（默认接受）
- 不再符合资格的餐次删除选餐记录
- 参与者婉拒某餐、艺人演出后用餐标记

业务规则：
- 只有已录取（ACCEPTED）的志愿者才有餐次权益
- 已核销的记录默认保留（见 preserve_consumed_selections 配置）
- 同一参与者并发同步时，唯一约束冲突视为"已同步"，重新读取即可
"""

import json
import logging
from typing import List, Optional, Union

from ..config.settings import settings
from ..core.database import DatabaseManager, db_manager, placeholders
from ..core.exceptions import (
    ConcurrencyError,
    NotEligibleError,
    SelectionNotFoundError,
    ValidationError,
)
from ..models.entitlement import SelectionView
from ..models.participant import (
    ArtistProfile,
    ParticipantKind,
    VolunteerProfile,
    VolunteerStatus,
)
from .eligibility import eligible_slots
from .slot_service import reconcile_slots
from .stores import ARTIST_STORE, SELECTION_STORES, VOLUNTEER_STORE, SelectionStore, load_artist, load_volunteer

logger = logging.getLogger(__name__)

SYNC_ATTEMPTS = 2


class SelectionService:
    """选餐同步服务"""

    def __init__(self, db: Optional[DatabaseManager] = None,
                 preserve_consumed: Optional[bool] = None):
        self.db = db or db_manager
        self.preserve_consumed = (
            settings.preserve_consumed_selections if preserve_consumed is None else preserve_consumed
        )

    def sync_volunteer(self, event_id: int, volunteer_id: int) -> List[SelectionView]:
        """
        同步志愿者的选餐记录并返回其餐次视图

        Raises:
            ParticipantNotFoundError: 志愿者不存在时
            NotEligibleError: 志愿者尚未被录取时
        """
        return self._sync_with_retry(
            VOLUNTEER_STORE, lambda conn: load_volunteer(conn, event_id, volunteer_id))

    def sync_artist(self, event_id: int, artist_id: int) -> List[SelectionView]:
        """同步艺人的选餐记录并返回其餐次视图"""
        return self._sync_with_retry(
            ARTIST_STORE, lambda conn: load_artist(conn, event_id, artist_id))

    def update_selection(self, kind: ParticipantKind, event_id: int, selection_id: int,
                         accepted: Optional[bool] = None,
                         after_show: Optional[bool] = None) -> SelectionView:
        """
        修改选餐记录：接受/婉拒、演出后用餐（仅艺人）

        Raises:
            ValidationError: 类型不支持或志愿者设置 after_show 时
            SelectionNotFoundError: 记录不存在或不属于该活动时
        """
        store = self._store(kind)
        if after_show is not None and not store.has_after_show:
            raise ValidationError("只有艺人可以设置演出后用餐")

        with self.db.transaction() as conn:
            self._fetch_owned_selection(conn, store, event_id, selection_id)
            if accepted is not None:
                conn.execute(f"UPDATE {store.table} SET accepted=? WHERE id=?", [accepted, selection_id])
            if after_show is not None:
                conn.execute(f"UPDATE {store.table} SET after_show=? WHERE id=?", [after_show, selection_id])
            row = conn.execute(
                f"""
                SELECT s.id, s.accepted, s.consumed_at, m.id, m.date, m.meal_type, m.phases_json
                FROM {store.table} s JOIN meal_slots m ON m.id = s.meal_id
                WHERE s.id=?
                """,
                [selection_id],
            ).fetchone()

        return SelectionView(
            meal_id=row[3],
            date=row[4],
            meal_type=row[5],
            phases=json.loads(row[6]),
            selection_id=row[0],
            accepted=row[1],
            consumed_at=row[2],
        )

    def selection_owner(self, kind: ParticipantKind, event_id: int, selection_id: int) -> int:
        """返回选餐记录所属的志愿者/艺人ID"""
        store = self._store(kind)
        with self.db.transaction() as conn:
            return self._fetch_owned_selection(conn, store, event_id, selection_id)[1]

    def _store(self, kind) -> SelectionStore:
        store = SELECTION_STORES.get(ParticipantKind(kind))
        if store is None:
            raise ValidationError("票务参与者没有选餐记录", details={"type": str(kind)})
        return store

    def _sync_with_retry(self, store: SelectionStore, loader) -> List[SelectionView]:
        for attempt in range(SYNC_ATTEMPTS):
            try:
                with self.db.transaction() as conn:
                    return self._sync(conn, store, loader(conn))
            except ConcurrencyError:
                if attempt == SYNC_ATTEMPTS - 1:
                    raise
                logger.info("Concurrent %s selection sync, re-reading", store.kind.value)

    def _sync(self, conn, store: SelectionStore,
              profile: Union[VolunteerProfile, ArtistProfile]) -> List[SelectionView]:
        if isinstance(profile, VolunteerProfile) and profile.status != VolunteerStatus.ACCEPTED:
            raise NotEligibleError(
                "志愿者申请尚未被录取",
                details={"volunteer_id": profile.id, "status": profile.status.value},
            )

        slots, _, _ = reconcile_slots(conn, profile.event_id)
        eligible = eligible_slots(profile, slots)
        eligible_ids = {slot.id for slot in eligible}

        existing = self._load_selections(conn, store, profile.id)

        stale_ids = [
            selection_id
            for meal_id, (selection_id, _, consumed_at) in existing.items()
            if meal_id not in eligible_ids
            and not (self.preserve_consumed and consumed_at is not None)
        ]
        if stale_ids:
            conn.execute(
                f"DELETE FROM {store.table} WHERE id IN ({placeholders(stale_ids)})", stale_ids)

        missing = [slot for slot in eligible if slot.id not in existing]
        for slot in missing:
            conn.execute(
                f"INSERT INTO {store.table}({store.owner_column}, meal_id, accepted) VALUES (?,?,?)",
                [profile.id, slot.id, True],
            )

        if stale_ids or missing:
            logger.debug(
                "Synced %s %s meal selections: created=%d deleted=%d",
                store.kind.value, profile.id, len(missing), len(stale_ids),
            )
            existing = self._load_selections(conn, store, profile.id)

        views = []
        for slot in eligible:
            selection_id, accepted, consumed_at = existing[slot.id]
            views.append(SelectionView(
                meal_id=slot.id,
                date=slot.date,
                meal_type=slot.meal_type,
                phases=slot.phases,
                selection_id=selection_id,
                accepted=accepted,
                consumed_at=consumed_at,
            ))
        return views

    def _load_selections(self, conn, store: SelectionStore, owner_id: int) -> dict:
        """返回 {meal_id: (selection_id, accepted, consumed_at)}"""
        rows = conn.execute(
            f"SELECT meal_id, id, accepted, consumed_at FROM {store.table} WHERE {store.owner_column}=?",
            [owner_id],
        ).fetchall()
        return {row[0]: (row[1], row[2], row[3]) for row in rows}

    def _fetch_owned_selection(self, conn, store: SelectionStore, event_id: int, selection_id: int):
        row = conn.execute(
            f"""
            SELECT s.id, s.{store.owner_column} FROM {store.table} s
            JOIN {store.owner_table} p ON p.id = s.{store.owner_column}
            WHERE s.id=? AND p.event_id=?
            """,
            [selection_id, event_id],
        ).fetchone()
        if not row:
            raise SelectionNotFoundError(
                "选餐记录不存在",
                details={"type": store.kind.value, "selection_id": selection_id},
            )
        return row
