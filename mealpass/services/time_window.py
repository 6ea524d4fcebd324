"""
活动日期区间解析
把活动的开始/结束日期以及可选的布置开始、撤场结束日期，
展开为需要供餐的日期列表，并标注每天所属的阶段。

纯函数，无 I/O。
"""

from datetime import date, datetime, timedelta, timezone
from typing import Dict, Optional, Union

from ..core.exceptions import InvalidPeriodError
from ..models.meal import Phase

DateLike = Union[date, datetime, str]


def normalize_day(value: DateLike) -> date:
    """统一为日历日（datetime 取 UTC 日期部分，字符串按 ISO 解析）"""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError as e:
            raise InvalidPeriodError(f"无法解析日期: {value}") from e
    raise InvalidPeriodError(f"无法解析日期: {value!r}")


def phase_of_day(day: date, event_start: date, event_end: date) -> Phase:
    """开始前为布置，结束后为撤场，区间内为正式活动"""
    if day < event_start:
        return Phase.SETUP
    if day > event_end:
        return Phase.TEARDOWN
    return Phase.EVENT


def resolve_days(
    event_start: DateLike,
    event_end: DateLike,
    setup_start: Optional[DateLike] = None,
    teardown_end: Optional[DateLike] = None,
) -> Dict[date, Phase]:
    """
    计算需要供餐的日期及其阶段

    Args:
        event_start: 活动开始日期
        event_end: 活动结束日期
        setup_start: 布置开始日期（可选，晚于活动开始时按活动开始计）
        teardown_end: 撤场结束日期（可选，早于活动结束时按活动结束计）

    Returns:
        dict: 按日期升序排列的 {日期: 阶段}

    Raises:
        InvalidPeriodError: 日期区间倒置时
    """
    start = normalize_day(event_start)
    end = normalize_day(event_end)
    if end < start:
        raise InvalidPeriodError(
            "活动结束日期早于开始日期",
            details={"start_date": start.isoformat(), "end_date": end.isoformat()},
        )

    first = start
    if setup_start is not None:
        first = min(normalize_day(setup_start), start)

    last = end
    if teardown_end is not None:
        last = max(normalize_day(teardown_end), end)

    days = {}
    day = first
    while day <= last:
        days[day] = phase_of_day(day, start, end)
        day += timedelta(days=1)
    return days
