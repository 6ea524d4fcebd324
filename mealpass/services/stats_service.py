"""
餐次核销统计服务
对单个餐次汇总三类权益的应发/已核销数量

票务参与者去重规则：
- 通过票档授权可达的订单项集合 ∪ 通过附加选项授权可达的订单项集合
- 同一订单项两条路径都可达时只计一次
- 只统计状态为 Valid/Processed 且订单已处理（Processed）的订单项
"""

import logging
from typing import Optional, Set

from ..core.database import DatabaseManager, db_manager
from ..models.entitlement import CountPair, MealStats, StatsBreakdown
from ..models.participant import COUNTED_ITEM_STATES, OrderStatus
from .slot_service import fetch_slot

logger = logging.getLogger(__name__)

_COUNTED_ITEMS_FILTER = """
    oi.state IN ('{}', '{}')
    AND o.status = '{}'
    AND o.event_id = ?
""".format(*COUNTED_ITEM_STATES, OrderStatus.PROCESSED.value)


def tier_reachable_items(conn, event_id: int, meal_id: int) -> Set[int]:
    """通过票档授权可达该餐次的订单项ID"""
    rows = conn.execute(
        f"""
        SELECT oi.id
        FROM ticket_order_items oi
        JOIN ticket_orders o ON o.id = oi.order_id
        JOIN tier_meal_grants g ON g.tier_id = oi.tier_id AND g.meal_id = ?
        WHERE {_COUNTED_ITEMS_FILTER}
        """,
        [meal_id, event_id],
    ).fetchall()
    return {row[0] for row in rows}


def option_reachable_items(conn, event_id: int, meal_id: int) -> Set[int]:
    """通过已购附加选项授权可达该餐次的订单项ID"""
    rows = conn.execute(
        f"""
        SELECT DISTINCT oi.id
        FROM ticket_order_items oi
        JOIN ticket_orders o ON o.id = oi.order_id
        JOIN ticket_order_item_options io ON io.order_item_id = oi.id
        JOIN option_meal_grants g ON g.option_id = io.option_id AND g.meal_id = ?
        WHERE {_COUNTED_ITEMS_FILTER}
        """,
        [meal_id, event_id],
    ).fetchall()
    return {row[0] for row in rows}


def entitled_items(conn, event_id: int, meal_id: int) -> Set[int]:
    """有权享用该餐次的订单项（票档与附加选项两条路径去重合并）"""
    return tier_reachable_items(conn, event_id, meal_id) | option_reachable_items(conn, event_id, meal_id)


def consumed_items(conn, meal_id: int) -> Set[int]:
    rows = conn.execute(
        "SELECT order_item_id FROM order_item_meals WHERE meal_id=? AND consumed_at IS NOT NULL",
        [meal_id],
    ).fetchall()
    return {row[0] for row in rows}


def _count_selections(conn, query: str, params: list) -> CountPair:
    total, validated = conn.execute(query, params).fetchone()
    return CountPair(total=total or 0, validated=validated or 0)


class StatsService:
    """核销统计服务（只读）"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or db_manager

    def stats(self, event_id: int, meal_id: int) -> MealStats:
        """
        获取单个餐次的核销统计

        Raises:
            MealNotFoundError: 餐次不存在或不属于该活动时
        """
        with self.db.transaction() as conn:
            fetch_slot(conn, event_id, meal_id)

            volunteers = _count_selections(
                conn,
                """
                SELECT COUNT(*), COUNT(s.consumed_at)
                FROM volunteer_meal_selections s
                JOIN volunteers v ON v.id = s.volunteer_id
                WHERE s.meal_id=? AND v.event_id=? AND v.status='ACCEPTED'
                """,
                [meal_id, event_id],
            )
            artists = _count_selections(
                conn,
                """
                SELECT COUNT(*), COUNT(s.consumed_at)
                FROM artist_meal_selections s
                JOIN artists a ON a.id = s.artist_id
                WHERE s.meal_id=? AND a.event_id=?
                """,
                [meal_id, event_id],
            )

            entitled = entitled_items(conn, event_id, meal_id)
            validated_items = entitled & consumed_items(conn, meal_id)
            participants = CountPair(total=len(entitled), validated=len(validated_items))

        total = volunteers.total + artists.total + participants.total
        validated = volunteers.validated + artists.validated + participants.validated
        percentage = round(validated / total * 100) if total > 0 else 0

        logger.debug("Meal %s stats: %d/%d validated", meal_id, validated, total)

        return MealStats(
            meal_id=meal_id,
            total=total,
            validated=validated,
            percentage=percentage,
            breakdown=StatsBreakdown(
                volunteers=volunteers,
                artists=artists,
                participants=participants,
            ),
        )
