"""
餐次权益相关数据模型
选餐记录视图、核销结果、统计与备餐报表
"""

import datetime as dt
from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .meal import MealType, Phase
from .participant import ParticipantKind


class SelectionView(BaseModel):
    """参与者视角的餐次列表项（餐次信息 + 选餐记录）"""
    meal_id: int = Field(..., description="餐次ID")
    date: dt.date = Field(..., description="日期")
    meal_type: MealType = Field(..., description="餐别")
    phases: List[Phase] = Field(..., description="所属阶段")
    selection_id: Optional[int] = Field(None, description="选餐记录ID")
    accepted: bool = Field(True, description="是否接受该餐")
    consumed_at: Optional[datetime] = Field(None, description="核销时间")


class ConsumptionResult(BaseModel):
    """核销结果"""
    kind: ParticipantKind
    id: int
    meal_id: int
    consumed_at: datetime


class CountPair(BaseModel):
    total: int = 0
    validated: int = 0


class StatsBreakdown(BaseModel):
    volunteers: CountPair = Field(default_factory=CountPair)
    artists: CountPair = Field(default_factory=CountPair)
    participants: CountPair = Field(default_factory=CountPair)


class MealStats(BaseModel):
    """单个餐次的核销统计"""
    meal_id: int
    total: int
    validated: int
    percentage: int
    breakdown: StatsBreakdown


class EntitlementHolder(BaseModel):
    """待核销/检索结果中的一条权益"""
    unique_id: str = Field(..., description="<type>-<id>，供扫码端去重")
    id: int = Field(..., description="选餐记录ID或订单项ID（核销时使用）")
    kind: ParticipantKind
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    pseudo: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    consumed_at: Optional[datetime] = None


class CateringPerson(BaseModel):
    """备餐报表中的一人一餐"""
    kind: ParticipantKind
    id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    pseudo: Optional[str] = None
    dietary_preference: Optional[str] = None
    allergies: Optional[str] = None
    allergy_severity: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    after_show: bool = False


class CateringMeal(BaseModel):
    meal_id: int
    meal_type: MealType
    phases: List[Phase]
    count: int
    counts_by_kind: Dict[str, int]
    people: List[CateringPerson]


class AllergyEntry(BaseModel):
    """厨房安全核查用的过敏条目"""
    kind: ParticipantKind
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    pseudo: Optional[str] = None
    allergies: str
    allergy_severity: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    meal_types: List[MealType] = Field(default_factory=list)


class CateringSummary(BaseModel):
    date: date
    total_meals: int
    dietary_counts: Dict[str, int]
    allergies: List[AllergyEntry]


class CateringReport(BaseModel):
    """某一天的备餐报表"""
    event_id: int
    summary: CateringSummary
    meals: List[CateringMeal]


class MealParticipant(BaseModel):
    """餐次名单分页列表项"""
    kind: ParticipantKind
    selection_id: int
    user_id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    meal_id: int
    meal_date: date
    meal_type: MealType
    meal_phases: List[Phase]
    dietary_preference: Optional[str] = None
    allergies: Optional[str] = None
    allergy_severity: Optional[str] = None
    after_show: bool = False
