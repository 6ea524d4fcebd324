"""
餐次管理与核销路由
- 餐次列表（读取时对账）与工作人员调整
- 扫码核销 / 撤销核销
- 核销统计、待核销列表、检索
- 餐次名单分页查询
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...config.settings import settings
from ...core.database import DatabaseManager, get_db
from ...core.error_handler import create_success_response
from ...core.security import Caller, get_caller, require_manager
from ...models.base import PaginationParams
from ...models.meal import Phase
from ...models.participant import ParticipantKind
from ...schemas.meal import (
    HolderListResponse,
    SlotUpdateRequest,
    ValidateRequest,
    ValidateResponse,
)
from ...services.catering_service import CateringService
from ...services.lookup_service import LookupService
from ...services.slot_service import SlotService
from ...services.stats_service import StatsService
from ...services.validation_service import ValidationService

router = APIRouter()


@router.get("/events/{event_id}/meals")
def list_meals(
    event_id: int,
    caller: Caller = Depends(get_caller),
    db: DatabaseManager = Depends(get_db),
):
    """获取活动的全部餐次（读取前自动对账）"""
    require_manager(caller, event_id)
    slots = SlotService(db).list_slots(event_id)
    return create_success_response(
        data=[slot.model_dump(mode="json") for slot in slots],
        message="查询成功",
    )


@router.get("/events/{event_id}/meals/participants")
def list_meal_participants(
    event_id: int,
    page: int = Query(1, ge=1),
    size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    search: Optional[str] = None,
    phase: Optional[Phase] = None,
    kind: Optional[ParticipantKind] = None,
    caller: Caller = Depends(get_caller),
    db: DatabaseManager = Depends(get_db),
):
    """分页获取餐次名单"""
    require_manager(caller, event_id)
    result = CateringService(db).list_participants(
        event_id, PaginationParams(page=page, size=size), search=search, phase=phase, kind=kind,
    )
    return create_success_response(data=result.model_dump(mode="json"), message="查询成功")


@router.patch("/events/{event_id}/meals/{meal_id}")
def update_meal(
    event_id: int,
    meal_id: int,
    request: SlotUpdateRequest,
    caller: Caller = Depends(get_caller),
    db: DatabaseManager = Depends(get_db),
):
    """启用/停用餐次，或手动设置所属阶段"""
    require_manager(caller, event_id)
    slot = SlotService(db).update_slot(event_id, meal_id, request, actor_id=caller.user_id)
    return create_success_response(
        data=slot.model_dump(mode="json"),
        message="餐次已更新",
    )


@router.post("/events/{event_id}/meals/{meal_id}/validate", response_model=ValidateResponse)
def validate_meal(
    event_id: int,
    meal_id: int,
    request: ValidateRequest,
    caller: Caller = Depends(get_caller),
    db: DatabaseManager = Depends(get_db),
):
    """扫码核销一条餐次权益"""
    require_manager(caller, event_id)
    result = ValidationService(db).validate(
        event_id, meal_id, request.type, request.id, actor_id=caller.user_id)
    return ValidateResponse(
        type=result.kind,
        id=result.id,
        meal_id=result.meal_id,
        consumed_at=result.consumed_at,
    )


@router.post("/events/{event_id}/meals/{meal_id}/unvalidate")
def unvalidate_meal(
    event_id: int,
    meal_id: int,
    request: ValidateRequest,
    caller: Caller = Depends(get_caller),
    db: DatabaseManager = Depends(get_db),
):
    """撤销核销（管理操作）"""
    require_manager(caller, event_id)
    ValidationService(db).unvalidate(
        event_id, meal_id, request.type, request.id, actor_id=caller.user_id)
    return create_success_response(message="已撤销核销")


@router.get("/events/{event_id}/meals/{meal_id}/stats")
def meal_stats(
    event_id: int,
    meal_id: int,
    caller: Caller = Depends(get_caller),
    db: DatabaseManager = Depends(get_db),
):
    """获取餐次核销统计"""
    require_manager(caller, event_id)
    stats = StatsService(db).stats(event_id, meal_id)
    return create_success_response(data=stats.model_dump(mode="json"), message="查询成功")


@router.get("/events/{event_id}/meals/{meal_id}/pending", response_model=HolderListResponse)
def pending_validations(
    event_id: int,
    meal_id: int,
    type: Optional[ParticipantKind] = None,
    caller: Caller = Depends(get_caller),
    db: DatabaseManager = Depends(get_db),
):
    """获取待核销列表，可按参与者类型过滤"""
    require_manager(caller, event_id)
    holders = LookupService(db).pending(event_id, meal_id, kind=type)
    return HolderListResponse(count=len(holders), results=holders)


@router.get("/events/{event_id}/meals/{meal_id}/search", response_model=HolderListResponse)
def search_holders(
    event_id: int,
    meal_id: int,
    q: str = "",
    caller: Caller = Depends(get_caller),
    db: DatabaseManager = Depends(get_db),
):
    """按姓名/昵称/邮箱检索餐次权益"""
    require_manager(caller, event_id)
    holders = LookupService(db).search(event_id, meal_id, q)
    return HolderListResponse(count=len(holders), results=holders)
