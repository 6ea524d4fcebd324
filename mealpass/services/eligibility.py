"""
餐次资格判定
判断单个志愿者/艺人是否有资格享用某个餐次。纯函数，无 I/O。

判定顺序（任何一步失败即不符合）：
1. 阶段：餐次阶段与参与者可用阶段有交集
2. 到达：早于到达日不符合；到达当天按到达时段查表
3. 离开：晚于离开日不符合；离开当天按离开时段查表
"""

from datetime import date
from typing import FrozenSet, Iterable, List, Optional, Union

from ..core.exceptions import ValidationError
from ..models.meal import MealSlot, MealType
from ..models.participant import (
    ArtistProfile,
    PresenceBoundary,
    TimeOfDay,
    VolunteerProfile,
)

B, L, D = MealType.BREAKFAST, MealType.LUNCH, MealType.DINNER

# 到达当天还能赶上的餐
ARRIVAL_MEALS = {
    TimeOfDay.MORNING: frozenset({B, L, D}),
    TimeOfDay.NOON: frozenset({L, D}),
    TimeOfDay.AFTERNOON: frozenset({D}),
    TimeOfDay.EVENING: frozenset({D}),
    TimeOfDay.NIGHT: frozenset(),
}

# 离开当天走之前还能吃到的餐
DEPARTURE_MEALS = {
    TimeOfDay.MORNING: frozenset(),
    TimeOfDay.NOON: frozenset({B}),
    TimeOfDay.AFTERNOON: frozenset({B, L}),
    TimeOfDay.EVENING: frozenset({B, L}),
    TimeOfDay.NIGHT: frozenset({B, L, D}),
}

Profile = Union[VolunteerProfile, ArtistProfile]


def parse_time_of_day(value: Union[str, TimeOfDay]) -> TimeOfDay:
    if isinstance(value, TimeOfDay):
        return value
    try:
        return TimeOfDay(str(value).strip().lower())
    except ValueError as e:
        raise ValidationError(f"未知的时段: {value}", details={"time_of_day": value}) from e


def available_meals_on_arrival(time_of_day: Union[str, TimeOfDay]) -> FrozenSet[MealType]:
    return ARRIVAL_MEALS[parse_time_of_day(time_of_day)]


def available_meals_on_departure(time_of_day: Union[str, TimeOfDay]) -> FrozenSet[MealType]:
    return DEPARTURE_MEALS[parse_time_of_day(time_of_day)]


def parse_boundary(value: Optional[str]) -> Optional[PresenceBoundary]:
    """
    解析 "YYYY-MM-DD_timeOfDay" 格式的到达/离开时间

    空值返回 None；格式错误抛出 ValidationError
    """
    if not value:
        return None
    day_part, sep, tod_part = str(value).partition("_")
    if not sep or not tod_part:
        raise ValidationError(f"到达/离开时间格式错误: {value}")
    try:
        day = date.fromisoformat(day_part)
    except ValueError as e:
        raise ValidationError(f"到达/离开时间格式错误: {value}") from e
    return PresenceBoundary(date=day, time_of_day=parse_time_of_day(tod_part))


def is_eligible(profile: Profile, slot: MealSlot) -> bool:
    """判断参与者是否有资格享用餐次"""
    if not profile.available_phases().intersection(slot.phases):
        return False

    arrival = profile.arrival
    if arrival is not None:
        if slot.date < arrival.date:
            return False
        if slot.date == arrival.date and slot.meal_type not in available_meals_on_arrival(arrival.time_of_day):
            return False

    departure = profile.departure
    if departure is not None:
        if slot.date > departure.date:
            return False
        if slot.date == departure.date and slot.meal_type not in available_meals_on_departure(departure.time_of_day):
            return False

    return True


def eligible_slots(profile: Profile, slots: Iterable[MealSlot]) -> List[MealSlot]:
    """筛选启用且符合资格的餐次"""
    return [slot for slot in slots if slot.enabled and is_eligible(profile, slot)]
