"""
导出服务
把某天的备餐报表导出为 Excel 文件，供厨房打印使用
"""

import io
from datetime import datetime
from typing import Optional

import pandas as pd

from ..core.database import DatabaseManager
from ..models.entitlement import CateringReport
from .catering_service import CateringService
from .time_window import DateLike

MEAL_TYPE_LABELS = {"BREAKFAST": "早餐", "LUNCH": "午餐", "DINNER": "晚餐"}
KIND_LABELS = {"volunteer": "志愿者", "artist": "艺人", "participant": "票务参与者"}


class ExportService:
    """导出服务"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.catering = CateringService(db)

    def export_report_excel(self, event_id: int, day: DateLike) -> bytes:
        """导出备餐报表为Excel文件"""
        report = self.catering.report(event_id, day)

        excel_buffer = io.BytesIO()
        with pd.ExcelWriter(excel_buffer, engine='openpyxl') as writer:
            # 当日概况工作表
            self._create_summary_sheet(writer, report)

            # 用餐名单工作表
            self._create_roster_sheet(writer, report)

            # 过敏清单工作表
            self._create_allergy_sheet(writer, report)

        excel_buffer.seek(0)
        return excel_buffer.getvalue()

    def _create_summary_sheet(self, writer, report: CateringReport):
        """创建当日概况工作表"""
        items = ["活动ID", "日期", "总用餐人次"]
        values = [report.event_id, report.summary.date.isoformat(), report.summary.total_meals]

        for meal in report.meals:
            items.append(f"{MEAL_TYPE_LABELS[meal.meal_type.value]}人数")
            values.append(meal.count)

        for diet, count in report.summary.dietary_counts.items():
            items.append(f"饮食偏好: {diet}")
            values.append(count)

        items.append("导出时间")
        values.append(datetime.now().strftime("%Y-%m-%d %H:%M:%S"))

        summary_df = pd.DataFrame({"项目": items, "数值": values})
        summary_df.to_excel(writer, sheet_name="当日概况", index=False)

    def _create_roster_sheet(self, writer, report: CateringReport):
        """创建用餐名单工作表"""
        rows = []
        for meal in report.meals:
            for person in meal.people:
                rows.append({
                    "餐别": MEAL_TYPE_LABELS[meal.meal_type.value],
                    "类型": KIND_LABELS[person.kind.value],
                    "姓": person.last_name or "",
                    "名": person.first_name or "",
                    "昵称": person.pseudo or "",
                    "饮食偏好": person.dietary_preference or "NONE",
                    "过敏": person.allergies or "",
                    "演出后用餐": "是" if person.after_show else "",
                })

        if not rows:
            empty_df = pd.DataFrame({"提示": ["当天暂无用餐人员"]})
            empty_df.to_excel(writer, sheet_name="用餐名单", index=False)
            return

        roster_df = pd.DataFrame(rows)
        roster_df.to_excel(writer, sheet_name="用餐名单", index=False)

    def _create_allergy_sheet(self, writer, report: CateringReport):
        """创建过敏清单工作表"""
        if not report.summary.allergies:
            empty_df = pd.DataFrame({"提示": ["暂无过敏信息"]})
            empty_df.to_excel(writer, sheet_name="过敏清单", index=False)
            return

        allergy_df = pd.DataFrame([
            {
                "类型": KIND_LABELS[entry.kind.value],
                "姓": entry.last_name or "",
                "名": entry.first_name or "",
                "过敏": entry.allergies,
                "严重程度": entry.allergy_severity or "",
                "紧急联系人": entry.emergency_contact_name or "",
                "紧急联系电话": entry.emergency_contact_phone or "",
                "涉及餐别": ", ".join(MEAL_TYPE_LABELS[m.value] for m in entry.meal_types),
            }
            for entry in report.summary.allergies
        ])
        allergy_df.to_excel(writer, sheet_name="过敏清单", index=False)
