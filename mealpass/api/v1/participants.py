"""
参与者餐次路由
志愿者/艺人查看自己的餐次（读取时同步选餐记录），以及接受/婉拒某餐
"""

from fastapi import APIRouter, Depends

from ...core.database import DatabaseManager, get_db
from ...core.error_handler import create_success_response
from ...core.exceptions import PermissionDeniedError
from ...core.security import Caller, get_caller, require_self_or_manager
from ...models.participant import ParticipantKind
from ...schemas.meal import SelectionUpdateRequest
from ...services.selection_service import SelectionService

router = APIRouter()


@router.get("/events/{event_id}/volunteers/{volunteer_id}/meals")
def volunteer_meals(
    event_id: int,
    volunteer_id: int,
    caller: Caller = Depends(get_caller),
    db: DatabaseManager = Depends(get_db),
):
    """获取志愿者的餐次（自动同步选餐记录）"""
    require_self_or_manager(caller, event_id, caller.volunteer_ids, volunteer_id)
    views = SelectionService(db).sync_volunteer(event_id, volunteer_id)
    return create_success_response(data=[v.model_dump(mode="json") for v in views], message="查询成功")


@router.get("/events/{event_id}/artists/{artist_id}/meals")
def artist_meals(
    event_id: int,
    artist_id: int,
    caller: Caller = Depends(get_caller),
    db: DatabaseManager = Depends(get_db),
):
    """获取艺人的餐次（自动同步选餐记录）"""
    require_self_or_manager(caller, event_id, caller.artist_ids, artist_id)
    views = SelectionService(db).sync_artist(event_id, artist_id)
    return create_success_response(data=[v.model_dump(mode="json") for v in views], message="查询成功")


@router.patch("/events/{event_id}/selections/{kind}/{selection_id}")
def update_selection(
    event_id: int,
    kind: ParticipantKind,
    selection_id: int,
    request: SelectionUpdateRequest,
    caller: Caller = Depends(get_caller),
    db: DatabaseManager = Depends(get_db),
):
    """
    修改选餐记录

    参与者本人可以接受/婉拒某餐；演出后用餐标记只有管理者可以修改。
    """
    service = SelectionService(db)
    if not caller.can_manage(event_id):
        if request.after_show is not None:
            raise PermissionDeniedError("只有管理者可以设置演出后用餐")
        owner_id = service.selection_owner(kind, event_id, selection_id)
        own_ids = caller.artist_ids if kind == ParticipantKind.ARTIST else caller.volunteer_ids
        require_self_or_manager(caller, event_id, own_ids, owner_id)

    view = service.update_selection(
        kind, event_id, selection_id, accepted=request.accepted, after_show=request.after_show)
    return create_success_response(data=view.model_dump(mode="json"), message="选餐已更新")
