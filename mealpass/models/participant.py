"""
参与者相关数据模型
志愿者、艺人档案以及票务订单项（票务参与者不单独建档，由订单项推导）
"""

from datetime import date
from enum import Enum
from typing import FrozenSet, List, Optional

from pydantic import BaseModel, Field

from .meal import Phase


class ParticipantKind(str, Enum):
    """参与者类型（核销接口的 type 字段）"""
    VOLUNTEER = "volunteer"
    ARTIST = "artist"
    PARTICIPANT = "participant"


class TimeOfDay(str, Enum):
    """到达/离开的时段"""
    MORNING = "morning"
    NOON = "noon"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"


class VolunteerStatus(str, Enum):
    """志愿者申请状态"""
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class OrderStatus(str, Enum):
    """票务订单状态"""
    PENDING = "Pending"
    PROCESSED = "Processed"
    REFUNDED = "Refunded"
    CANCELED = "Canceled"


class OrderItemState(str, Enum):
    """票务订单项状态"""
    PENDING = "Pending"
    VALID = "Valid"
    PROCESSED = "Processed"
    REFUNDED = "Refunded"
    CANCELED = "Canceled"


# 统计与名单中计入的订单项状态
COUNTED_ITEM_STATES = (OrderItemState.VALID.value, OrderItemState.PROCESSED.value)


class PresenceBoundary(BaseModel):
    """到达或离开：日期 + 时段，存储格式为 YYYY-MM-DD_timeOfDay"""
    model_config = {"frozen": True}

    date: date
    time_of_day: TimeOfDay

    def encode(self) -> str:
        return f"{self.date.isoformat()}_{self.time_of_day.value}"


class DietaryInfo(BaseModel):
    """饮食与过敏信息"""
    dietary_preference: Optional[str] = None
    allergies: Optional[str] = None
    allergy_severity: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None


class PersonName(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    pseudo: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class VolunteerProfile(BaseModel):
    """志愿者档案"""
    id: int
    event_id: int
    user_id: int
    status: VolunteerStatus = VolunteerStatus.PENDING
    setup_available: bool = False
    event_available: bool = True
    teardown_available: bool = False
    arrival: Optional[PresenceBoundary] = None
    departure: Optional[PresenceBoundary] = None
    dietary: DietaryInfo = Field(default_factory=DietaryInfo)

    def available_phases(self) -> FrozenSet[Phase]:
        phases = set()
        if self.setup_available:
            phases.add(Phase.SETUP)
        if self.event_available:
            phases.add(Phase.EVENT)
        if self.teardown_available:
            phases.add(Phase.TEARDOWN)
        return frozenset(phases)


class ArtistProfile(BaseModel):
    """艺人档案：没有阶段可用性，只受到达/离开时间约束"""
    id: int
    event_id: int
    user_id: int
    arrival: Optional[PresenceBoundary] = None
    departure: Optional[PresenceBoundary] = None
    dietary: DietaryInfo = Field(default_factory=DietaryInfo)

    def available_phases(self) -> FrozenSet[Phase]:
        return frozenset(Phase)


class TicketOrderItem(BaseModel):
    """票务订单项（票务参与者）"""
    id: int
    order_id: int
    event_id: int
    tier_id: Optional[int] = None
    state: OrderItemState
    order_status: OrderStatus
    option_ids: List[int] = Field(default_factory=list)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None

    @property
    def is_refunded(self) -> bool:
        return (
            self.state == OrderItemState.REFUNDED
            or self.order_status == OrderStatus.REFUNDED
        )
