"""
餐次核销服务
把一条权益从"未核销"原子地转为"已核销"，保证每条权益最多核销一次

三类权益：
- volunteer / artist: 按选餐记录ID核销
- participant: 按票务订单项ID核销，核销记录在首次核销时惰性创建

并发控制：
- 使用单条条件更新 UPDATE ... WHERE consumed_at IS NULL，不做先读后写
- 影响行数为0即为已核销；惰性创建时的唯一约束冲突同样视为已核销
"""

import logging
from typing import Callable, Dict, Optional

from ..core.database import DatabaseManager, db_manager, record_log, utcnow
from ..core.exceptions import (
    AlreadyValidatedError,
    ConcurrencyError,
    NotEligibleError,
    NotValidatedError,
    SelectionNotFoundError,
    ValidationError,
)
from ..models.entitlement import ConsumptionResult
from ..models.meal import MealSlot
from ..models.participant import ParticipantKind, TicketOrderItem
from .slot_service import fetch_slot
from .stores import ARTIST_STORE, VOLUNTEER_STORE, SelectionStore, load_order_item

logger = logging.getLogger(__name__)


def parse_kind(kind) -> ParticipantKind:
    try:
        return ParticipantKind(kind)
    except ValueError as e:
        raise ValidationError(f"未知的参与者类型: {kind}", details={"type": kind}) from e


def granting_sources(conn, item: TicketOrderItem, meal_id: int) -> Dict[str, list]:
    """返回订单项通过票档/附加选项获得该餐次的来源"""
    sources = {"tier": [], "options": []}
    if item.tier_id is not None:
        row = conn.execute(
            "SELECT tier_id FROM tier_meal_grants WHERE tier_id=? AND meal_id=?",
            [item.tier_id, meal_id],
        ).fetchone()
        if row:
            sources["tier"].append(row[0])
    if item.option_ids:
        marks = ",".join(["?"] * len(item.option_ids))
        rows = conn.execute(
            f"SELECT option_id FROM option_meal_grants WHERE meal_id=? AND option_id IN ({marks})",
            [meal_id, *item.option_ids],
        ).fetchall()
        sources["options"] = [r[0] for r in rows]
    return sources


class ValidationService:
    """核销服务"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or db_manager
        self._validators: Dict[ParticipantKind, Callable] = {
            ParticipantKind.VOLUNTEER: lambda conn, slot, ident, now: self._consume_selection(
                conn, VOLUNTEER_STORE, slot, ident, now),
            ParticipantKind.ARTIST: lambda conn, slot, ident, now: self._consume_selection(
                conn, ARTIST_STORE, slot, ident, now),
            ParticipantKind.PARTICIPANT: self._consume_grant,
        }
        self._unvalidators: Dict[ParticipantKind, Callable] = {
            ParticipantKind.VOLUNTEER: lambda conn, slot, ident: self._reset_selection(
                conn, VOLUNTEER_STORE, slot, ident),
            ParticipantKind.ARTIST: lambda conn, slot, ident: self._reset_selection(
                conn, ARTIST_STORE, slot, ident),
            ParticipantKind.PARTICIPANT: self._reset_grant,
        }

    def validate(self, event_id: int, meal_id: int, kind, ident: int,
                 actor_id: Optional[int] = None) -> ConsumptionResult:
        """
        核销一条权益

        Args:
            event_id: 活动ID
            meal_id: 餐次ID
            kind: volunteer / artist / participant
            ident: 选餐记录ID（志愿者/艺人）或订单项ID（票务参与者）
            actor_id: 扫码的工作人员

        Returns:
            ConsumptionResult: 包含写入的核销时间

        Raises:
            MealNotFoundError / SelectionNotFoundError / ParticipantNotFoundError: 记录不存在
            NotEligibleError: 票务参与者无权享用或已退款
            AlreadyValidatedError: 已核销过
        """
        kind = parse_kind(kind)
        now = utcnow()
        try:
            with self.db.transaction() as conn:
                slot = fetch_slot(conn, event_id, meal_id)
                consumed_at = self._validators[kind](conn, slot, ident, now)
                record_log(conn, "meal_validate", actor_id, {
                    "event_id": event_id,
                    "meal_id": meal_id,
                    "type": kind.value,
                    "id": ident,
                    "consumed_at": consumed_at.isoformat(),
                })
        except ConcurrencyError as e:
            # 只有惰性创建核销记录会触发唯一约束冲突：另一台设备刚刚核销了同一权益
            logger.info("Concurrent validation of %s %s for meal %s", kind.value, ident, meal_id)
            raise AlreadyValidatedError(details={"type": kind.value, "id": ident}) from e
        except AlreadyValidatedError:
            logger.info("Meal %s already validated for %s %s", meal_id, kind.value, ident)
            raise

        return ConsumptionResult(kind=kind, id=ident, meal_id=meal_id, consumed_at=consumed_at)

    def unvalidate(self, event_id: int, meal_id: int, kind, ident: int,
                   actor_id: Optional[int] = None) -> None:
        """
        撤销核销（管理操作，不属于正常扫码流程）

        Raises:
            NotValidatedError: 该权益尚未核销时
        """
        kind = parse_kind(kind)
        with self.db.transaction() as conn:
            slot = fetch_slot(conn, event_id, meal_id)
            self._unvalidators[kind](conn, slot, ident)
            record_log(conn, "meal_unvalidate", actor_id, {
                "event_id": event_id,
                "meal_id": meal_id,
                "type": kind.value,
                "id": ident,
            })

    def _owned_selection(self, conn, store: SelectionStore, slot: MealSlot, selection_id: int):
        row = conn.execute(
            f"""
            SELECT s.id, s.meal_id, p.event_id
            FROM {store.table} s
            JOIN {store.owner_table} p ON p.id = s.{store.owner_column}
            WHERE s.id=?
            """,
            [selection_id],
        ).fetchone()
        if not row or row[1] != slot.id or row[2] != slot.event_id:
            raise SelectionNotFoundError(
                "选餐记录不存在",
                details={"type": store.kind.value, "selection_id": selection_id, "meal_id": slot.id},
            )

    def _consume_selection(self, conn, store: SelectionStore, slot: MealSlot,
                           selection_id: int, now):
        self._owned_selection(conn, store, slot, selection_id)
        updated = conn.execute(
            f"UPDATE {store.table} SET consumed_at=? WHERE id=? AND consumed_at IS NULL RETURNING consumed_at",
            [now, selection_id],
        ).fetchone()
        if updated is None:
            current = conn.execute(
                f"SELECT consumed_at FROM {store.table} WHERE id=?", [selection_id]).fetchone()
            raise AlreadyValidatedError(
                current[0] if current else None,
                details={"type": store.kind.value, "id": selection_id},
            )
        return updated[0]

    def _eligible_order_item(self, conn, slot: MealSlot, order_item_id: int) -> TicketOrderItem:
        item = load_order_item(conn, slot.event_id, order_item_id)
        if item.is_refunded:
            raise NotEligibleError(
                "该票已退款，无权用餐",
                details={"order_item_id": order_item_id, "state": item.state.value},
            )
        sources = granting_sources(conn, item, slot.id)
        if not sources["tier"] and not sources["options"]:
            raise NotEligibleError(
                "该参与者的票档与附加选项均不包含此餐",
                details={"order_item_id": order_item_id, "meal_id": slot.id},
            )
        return item

    def _consume_grant(self, conn, slot: MealSlot, order_item_id: int, now):
        self._eligible_order_item(conn, slot, order_item_id)

        updated = conn.execute(
            """
            UPDATE order_item_meals SET consumed_at=?
            WHERE order_item_id=? AND meal_id=? AND consumed_at IS NULL
            RETURNING consumed_at
            """,
            [now, order_item_id, slot.id],
        ).fetchone()
        if updated is not None:
            return updated[0]

        existing = conn.execute(
            "SELECT consumed_at FROM order_item_meals WHERE order_item_id=? AND meal_id=?",
            [order_item_id, slot.id],
        ).fetchone()
        if existing is not None:
            raise AlreadyValidatedError(
                existing[0], details={"type": ParticipantKind.PARTICIPANT.value, "id": order_item_id})

        created = conn.execute(
            "INSERT INTO order_item_meals(order_item_id, meal_id, consumed_at) VALUES (?,?,?) RETURNING consumed_at",
            [order_item_id, slot.id, now],
        ).fetchone()
        return created[0]

    def _reset_selection(self, conn, store: SelectionStore, slot: MealSlot, selection_id: int):
        self._owned_selection(conn, store, slot, selection_id)
        reset = conn.execute(
            f"UPDATE {store.table} SET consumed_at=NULL WHERE id=? AND consumed_at IS NOT NULL RETURNING id",
            [selection_id],
        ).fetchone()
        if reset is None:
            raise NotValidatedError("该餐次尚未核销", details={"type": store.kind.value, "id": selection_id})

    def _reset_grant(self, conn, slot: MealSlot, order_item_id: int):
        load_order_item(conn, slot.event_id, order_item_id)
        reset = conn.execute(
            """
            UPDATE order_item_meals SET consumed_at=NULL
            WHERE order_item_id=? AND meal_id=? AND consumed_at IS NOT NULL
            RETURNING id
            """,
            [order_item_id, slot.id],
        ).fetchone()
        if reset is None:
            raise NotValidatedError(
                "该餐次尚未核销",
                details={"type": ParticipantKind.PARTICIPANT.value, "id": order_item_id},
            )
