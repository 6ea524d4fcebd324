"""
餐次相关数据模型
"""

import json
import datetime as dt
from enum import Enum
from typing import List

from pydantic import BaseModel, Field, field_validator

from .base import BaseEntity, TimestampMixin


class MealType(str, Enum):
    """餐别枚举"""
    BREAKFAST = "BREAKFAST"
    LUNCH = "LUNCH"
    DINNER = "DINNER"

    @property
    def order(self) -> int:
        """一天内的先后顺序"""
        return _MEAL_ORDER[self]


_MEAL_ORDER = {MealType.BREAKFAST: 0, MealType.LUNCH: 1, MealType.DINNER: 2}


class Phase(str, Enum):
    """活动阶段枚举"""
    SETUP = "SETUP"          # 布置
    EVENT = "EVENT"          # 正式活动
    TEARDOWN = "TEARDOWN"    # 撤场


class MealSlot(BaseEntity, TimestampMixin):
    """餐次：某活动某一天的某一餐"""
    id: int = Field(..., description="餐次ID")
    event_id: int = Field(..., description="活动ID")
    date: dt.date = Field(..., description="日期")
    meal_type: MealType = Field(..., description="餐别")
    phases: List[Phase] = Field(..., min_length=1, description="所属阶段")
    enabled: bool = Field(True, description="是否启用")

    @property
    def sort_key(self):
        return (self.date, self.meal_type.order)

    @classmethod
    def from_row(cls, row) -> "MealSlot":
        """由 meal_slots 查询行构建（SLOT_COLUMNS 的列顺序）"""
        return cls(
            id=row[0],
            event_id=row[1],
            date=row[2],
            meal_type=row[3],
            phases=json.loads(row[4]),
            enabled=row[5],
            created_at=row[6],
            updated_at=row[7],
        )


class MealSlotUpdate(BaseModel):
    """餐次更新模型（工作人员手动调整）"""
    enabled: bool | None = Field(None, description="是否启用")
    phases: List[Phase] | None = Field(None, description="所属阶段")

    @field_validator("phases")
    @classmethod
    def validate_phases(cls, v):
        """阶段不能为空，去重并保持顺序"""
        if v is None:
            return v
        if not v:
            raise ValueError("餐次至少属于一个阶段")
        return list(dict.fromkeys(v))


SLOT_COLUMNS = "id, event_id, date, meal_type, phases_json, enabled, created_at, updated_at"
