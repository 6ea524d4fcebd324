"""
备餐报表路由
"""

import io

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from ...core.database import DatabaseManager, get_db
from ...core.error_handler import create_success_response
from ...core.security import Caller, get_caller, require_manager
from ...services.catering_service import CateringService
from ...services.export_service import ExportService
from ...services.time_window import normalize_day

router = APIRouter()


@router.get("/events/{event_id}/catering/{day}")
def catering_report(
    event_id: int,
    day: str,
    caller: Caller = Depends(get_caller),
    db: DatabaseManager = Depends(get_db),
):
    """获取某天的备餐报表"""
    require_manager(caller, event_id)
    report = CateringService(db).report(event_id, day)
    return create_success_response(data=report.model_dump(mode="json"), message="查询成功")


@router.get("/events/{event_id}/catering/{day}/export")
def export_catering_report(
    event_id: int,
    day: str,
    caller: Caller = Depends(get_caller),
    db: DatabaseManager = Depends(get_db),
):
    """导出某天的备餐报表为Excel文件"""
    require_manager(caller, event_id)
    target = normalize_day(day)
    excel_data = ExportService(db).export_report_excel(event_id, target)
    filename = f"catering_{event_id}_{target.isoformat()}.xlsx"

    return StreamingResponse(
        io.BytesIO(excel_data),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )
