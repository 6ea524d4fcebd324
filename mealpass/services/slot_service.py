"""
餐次对账服务
根据活动日期区间维护 meal_slots：补齐缺失的餐次、删除区间外的餐次（级联删除选餐/核销记录）。

对账是幂等的，每次读取餐次列表时就地执行，不依赖定时任务。
已存在且仍在区间内的餐次保持不动，保留工作人员对 enabled / phases 的修改。
"""

import json
import logging
from typing import List, Optional, Tuple

from ..core.database import DatabaseManager, db_manager, placeholders, record_log, utcnow
from ..core.exceptions import ConcurrencyError, EventNotFoundError, MealNotFoundError
from ..models.meal import SLOT_COLUMNS, MealSlot, MealSlotUpdate, MealType
from .time_window import resolve_days

logger = logging.getLogger(__name__)

# 删除餐次时需要一并清理的从属表
DEPENDENT_TABLES = (
    "volunteer_meal_selections",
    "artist_meal_selections",
    "order_item_meals",
    "tier_meal_grants",
    "option_meal_grants",
)

RECONCILE_ATTEMPTS = 2


def fetch_event(conn, event_id: int) -> tuple:
    """获取活动日期信息 (id, start_date, end_date, setup_start_date, teardown_end_date)"""
    row = conn.execute(
        "SELECT id, start_date, end_date, setup_start_date, teardown_end_date FROM events WHERE id=?",
        [event_id],
    ).fetchone()
    if not row:
        raise EventNotFoundError(f"活动不存在: {event_id}", details={"event_id": event_id})
    return row


def fetch_slot(conn, event_id: int, meal_id: int) -> MealSlot:
    """获取属于该活动的餐次"""
    row = conn.execute(
        f"SELECT {SLOT_COLUMNS} FROM meal_slots WHERE id=? AND event_id=?",
        [meal_id, event_id],
    ).fetchone()
    if not row:
        raise MealNotFoundError("餐次不存在", details={"event_id": event_id, "meal_id": meal_id})
    return MealSlot.from_row(row)


def load_slots(conn, event_id: int, enabled_only: bool = False) -> List[MealSlot]:
    query = f"SELECT {SLOT_COLUMNS} FROM meal_slots WHERE event_id=?"
    if enabled_only:
        query += " AND enabled"
    slots = [MealSlot.from_row(row) for row in conn.execute(query, [event_id]).fetchall()]
    return sorted(slots, key=lambda s: s.sort_key)


def delete_slots_cascade(conn, slot_ids: List[int]):
    """删除餐次及其全部选餐、核销和票务授权记录"""
    if not slot_ids:
        return
    marks = placeholders(slot_ids)
    for table in DEPENDENT_TABLES:
        conn.execute(f"DELETE FROM {table} WHERE meal_id IN ({marks})", slot_ids)
    conn.execute(f"DELETE FROM meal_slots WHERE id IN ({marks})", slot_ids)


def reconcile_slots(conn, event_id: int) -> Tuple[List[MealSlot], int, int]:
    """
    在调用方事务内执行对账

    Returns:
        tuple: (对账后的餐次列表, 新建数量, 删除数量)

    Raises:
        EventNotFoundError: 活动不存在时
        InvalidPeriodError: 活动日期区间非法时（拒绝对账，不产生任何修改）
    """
    _, start_date, end_date, setup_start, teardown_end = fetch_event(conn, event_id)
    expected = resolve_days(start_date, end_date, setup_start, teardown_end)

    existing = load_slots(conn, event_id)
    stale_ids = [slot.id for slot in existing if slot.date not in expected]
    delete_slots_cascade(conn, stale_ids)

    present = {(slot.date, slot.meal_type) for slot in existing if slot.date in expected}
    created = 0
    for day, phase in expected.items():
        for meal_type in MealType:
            if (day, meal_type) in present:
                continue
            conn.execute(
                "INSERT INTO meal_slots(event_id, date, meal_type, phases_json, enabled) VALUES (?,?,?,?,?)",
                [event_id, day, meal_type.value, json.dumps([phase.value]), True],
            )
            created += 1

    if created or stale_ids:
        logger.info(
            "Reconciled meal slots for event %s: created=%d deleted=%d",
            event_id, created, len(stale_ids),
        )
        record_log(conn, "meal_slots_reconcile", None, {
            "event_id": event_id,
            "created": created,
            "deleted_meal_ids": stale_ids,
        })
        return load_slots(conn, event_id), created, len(stale_ids)
    return existing, 0, 0


class SlotService:
    """餐次服务：对账、列表与工作人员调整"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or db_manager

    def reconcile(self, event_id: int) -> List[MealSlot]:
        """
        对账并返回活动的全部餐次

        并发对账时唯一约束冲突说明另一请求已经补齐了餐次，重新执行一次即可收敛。
        """
        for attempt in range(RECONCILE_ATTEMPTS):
            try:
                with self.db.transaction() as conn:
                    slots, _, _ = reconcile_slots(conn, event_id)
                    return slots
            except ConcurrencyError:
                if attempt == RECONCILE_ATTEMPTS - 1:
                    raise
                logger.info("Concurrent reconciliation for event %s, retrying", event_id)

    def list_slots(self, event_id: int) -> List[MealSlot]:
        return self.reconcile(event_id)

    def update_slot(self, event_id: int, meal_id: int, update: MealSlotUpdate,
                    actor_id: Optional[int] = None) -> MealSlot:
        """
        工作人员调整餐次：启用/停用、手动设置阶段

        Raises:
            MealNotFoundError: 餐次不存在或不属于该活动时
        """
        with self.db.transaction() as conn:
            slot = fetch_slot(conn, event_id, meal_id)
            changes = {}
            if update.enabled is not None and update.enabled != slot.enabled:
                changes["enabled"] = update.enabled
            if update.phases is not None and update.phases != slot.phases:
                changes["phases"] = [phase.value for phase in update.phases]

            if changes:
                conn.execute(
                    "UPDATE meal_slots SET enabled=?, phases_json=?, updated_at=? WHERE id=?",
                    [
                        changes.get("enabled", slot.enabled),
                        json.dumps(changes.get("phases", [p.value for p in slot.phases])),
                        utcnow(),
                        meal_id,
                    ],
                )
                record_log(conn, "meal_slot_update", actor_id, {
                    "event_id": event_id,
                    "meal_id": meal_id,
                    "changes": changes,
                })
            return fetch_slot(conn, event_id, meal_id)
