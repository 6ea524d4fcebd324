"""
自定义异常类
提供更精确的错误处理和异常信息

业务拒绝（NotEligible / AlreadyValidated / InvalidPeriod）属于正常流程，
需要与 DatabaseError / NotFound 区分，便于扫码端给出普通提示而非系统错误。
"""

from typing import Any, Dict, Optional


class BaseApplicationError(Exception):
    """应用基础异常类"""

    default_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}
        super().__init__(self.message)


class DatabaseError(BaseApplicationError):
    """数据库相关异常（持久化失败）"""
    default_code = "DATABASE_ERROR"


class ConcurrencyError(BaseApplicationError):
    """并发写入冲突（唯一约束冲突）"""
    default_code = "CONCURRENCY_CONFLICT"


class AuthenticationError(BaseApplicationError):
    """认证相关异常"""
    default_code = "AUTHENTICATION_REQUIRED"


class PermissionDeniedError(BaseApplicationError):
    """权限拒绝错误"""
    default_code = "PERMISSION_DENIED"


class ValidationError(BaseApplicationError):
    """数据验证异常"""
    default_code = "VALIDATION_ERROR"


class BusinessLogicError(BaseApplicationError):
    """业务逻辑异常"""
    default_code = "BUSINESS_RULE_VIOLATION"


class NotFoundError(BaseApplicationError):
    """资源不存在"""
    default_code = "RESOURCE_NOT_FOUND"


class EventNotFoundError(NotFoundError):
    default_code = "EVENT_NOT_FOUND"


class MealNotFoundError(NotFoundError):
    """餐次不存在异常"""
    default_code = "MEAL_NOT_FOUND"


class SelectionNotFoundError(NotFoundError):
    """选餐记录不存在"""
    default_code = "SELECTION_NOT_FOUND"


class ParticipantNotFoundError(NotFoundError):
    """志愿者、艺人或票务参与者不存在"""
    default_code = "PARTICIPANT_NOT_FOUND"


class NotEligibleError(BusinessLogicError):
    """参与者无权享用该餐次"""
    default_code = "NOT_ELIGIBLE"


class AlreadyValidatedError(BusinessLogicError):
    """餐次已核销"""
    default_code = "ALREADY_VALIDATED"

    def __init__(self, consumed_at=None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if consumed_at is not None:
            details["consumed_at"] = consumed_at.isoformat()
        super().__init__("该餐次已核销", details=details)


class NotValidatedError(BusinessLogicError):
    """餐次尚未核销，无法撤销"""
    default_code = "NOT_VALIDATED"


class InvalidPeriodError(BusinessLogicError):
    """活动日期区间非法（结束早于开始等）"""
    default_code = "INVALID_PERIOD"
