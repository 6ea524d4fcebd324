"""
三类权益记录的存储描述与档案加载

志愿者、艺人的选餐记录结构相同，只是表名和归属列不同；
票务参与者的核销记录（order_item_meals）按订单项惰性创建，单独处理。
"""

from dataclasses import dataclass
from typing import Dict

from ..core.exceptions import ParticipantNotFoundError
from ..models.participant import (
    ArtistProfile,
    DietaryInfo,
    OrderItemState,
    OrderStatus,
    ParticipantKind,
    TicketOrderItem,
    VolunteerProfile,
)
from .eligibility import parse_boundary


@dataclass(frozen=True)
class SelectionStore:
    kind: ParticipantKind
    table: str
    owner_column: str
    owner_table: str
    has_after_show: bool = False


VOLUNTEER_STORE = SelectionStore(
    kind=ParticipantKind.VOLUNTEER,
    table="volunteer_meal_selections",
    owner_column="volunteer_id",
    owner_table="volunteers",
)

ARTIST_STORE = SelectionStore(
    kind=ParticipantKind.ARTIST,
    table="artist_meal_selections",
    owner_column="artist_id",
    owner_table="artists",
    has_after_show=True,
)

SELECTION_STORES: Dict[ParticipantKind, SelectionStore] = {
    ParticipantKind.VOLUNTEER: VOLUNTEER_STORE,
    ParticipantKind.ARTIST: ARTIST_STORE,
}

_DIETARY_COLUMNS = (
    "dietary_preference, allergies, allergy_severity, "
    "emergency_contact_name, emergency_contact_phone"
)


def _dietary(row) -> DietaryInfo:
    return DietaryInfo(
        dietary_preference=row[0],
        allergies=row[1],
        allergy_severity=row[2],
        emergency_contact_name=row[3],
        emergency_contact_phone=row[4],
    )


def load_volunteer(conn, event_id: int, volunteer_id: int) -> VolunteerProfile:
    row = conn.execute(
        f"""
        SELECT id, event_id, user_id, status, setup_available, event_available,
               teardown_available, arrival_datetime, departure_datetime, {_DIETARY_COLUMNS}
        FROM volunteers WHERE id=? AND event_id=?
        """,
        [volunteer_id, event_id],
    ).fetchone()
    if not row:
        raise ParticipantNotFoundError(
            "志愿者不存在", details={"event_id": event_id, "volunteer_id": volunteer_id})
    return VolunteerProfile(
        id=row[0],
        event_id=row[1],
        user_id=row[2],
        status=row[3],
        setup_available=bool(row[4]),
        event_available=bool(row[5]),
        teardown_available=bool(row[6]),
        arrival=parse_boundary(row[7]),
        departure=parse_boundary(row[8]),
        dietary=_dietary(row[9:]),
    )


def load_artist(conn, event_id: int, artist_id: int) -> ArtistProfile:
    row = conn.execute(
        f"""
        SELECT id, event_id, user_id, arrival_datetime, departure_datetime, {_DIETARY_COLUMNS}
        FROM artists WHERE id=? AND event_id=?
        """,
        [artist_id, event_id],
    ).fetchone()
    if not row:
        raise ParticipantNotFoundError(
            "艺人不存在", details={"event_id": event_id, "artist_id": artist_id})
    return ArtistProfile(
        id=row[0],
        event_id=row[1],
        user_id=row[2],
        arrival=parse_boundary(row[3]),
        departure=parse_boundary(row[4]),
        dietary=_dietary(row[5:]),
    )


def load_order_item(conn, event_id: int, order_item_id: int) -> TicketOrderItem:
    """加载属于该活动的票务订单项及其已购附加选项"""
    row = conn.execute(
        """
        SELECT oi.id, oi.order_id, o.event_id, oi.tier_id, oi.state, o.status,
               oi.first_name, oi.last_name, oi.email
        FROM ticket_order_items oi
        JOIN ticket_orders o ON o.id = oi.order_id
        WHERE oi.id=? AND o.event_id=?
        """,
        [order_item_id, event_id],
    ).fetchone()
    if not row:
        raise ParticipantNotFoundError(
            "参与者不存在", details={"event_id": event_id, "order_item_id": order_item_id})
    option_ids = [
        r[0] for r in conn.execute(
            "SELECT option_id FROM ticket_order_item_options WHERE order_item_id=? ORDER BY option_id",
            [order_item_id],
        ).fetchall()
    ]
    return TicketOrderItem(
        id=row[0],
        order_id=row[1],
        event_id=row[2],
        tier_id=row[3],
        state=OrderItemState(row[4]),
        order_status=OrderStatus(row[5]),
        option_ids=option_ids,
        first_name=row[6],
        last_name=row[7],
        email=row[8],
    )
