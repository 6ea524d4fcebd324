"""
餐次相关的请求/响应模式
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional
from ..models.meal import MealSlotUpdate
from ..models.participant import ParticipantKind
from ..models.entitlement import EntitlementHolder


class SlotUpdateRequest(MealSlotUpdate):
    """餐次更新请求（启用/停用、手动设置阶段）"""


class SelectionUpdateRequest(BaseModel):
    """选餐记录更新请求"""
    accepted: Optional[bool] = Field(None, description="是否接受该餐")
    after_show: Optional[bool] = Field(None, description="演出后用餐（仅艺人）")


class ValidateRequest(BaseModel):
    """核销请求"""
    type: ParticipantKind = Field(..., description="volunteer / artist / participant")
    id: int = Field(..., gt=0, description="选餐记录ID或订单项ID")


class ValidateResponse(BaseModel):
    """核销响应"""
    success: bool = True
    type: ParticipantKind
    id: int
    meal_id: int
    consumed_at: datetime = Field(..., description="核销时间")


class HolderListResponse(BaseModel):
    """待核销/检索结果"""
    success: bool = True
    count: int
    results: List[EntitlementHolder]
