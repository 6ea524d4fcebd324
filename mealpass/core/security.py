"""
安全相关功能
解析调用方的 JWT，并根据 token 中的声明做授权判断

token 声明：
- user_id: 调用方用户ID
- managed_event_ids: 可管理餐次的活动ID列表
- volunteer_ids / artist_ids: 调用方本人的志愿者/艺人档案ID
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from ..config.settings import settings
from .exceptions import AuthenticationError, PermissionDeniedError


class Caller(BaseModel):
    """已认证的调用方"""
    user_id: int
    managed_event_ids: List[int] = Field(default_factory=list)
    volunteer_ids: List[int] = Field(default_factory=list)
    artist_ids: List[int] = Field(default_factory=list)

    def can_manage(self, event_id: int) -> bool:
        return event_id in self.managed_event_ids


class SecurityManager:
    """安全管理器"""

    def __init__(self, secret_key: Optional[str] = None, algorithm: Optional[str] = None):
        self.secret_key = secret_key or settings.jwt_secret_key
        self.algorithm = algorithm or settings.jwt_algorithm

    def create_jwt_token(self, user_id: int, additional_claims: Dict[str, Any] = None) -> str:
        """创建JWT token"""
        now = datetime.now(timezone.utc)
        payload = {
            "user_id": user_id,
            "exp": now + timedelta(hours=settings.jwt_expire_hours),
            "iat": now,
        }
        if additional_claims:
            payload.update(additional_claims)
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def decode_jwt_token(self, token: str) -> Dict[str, Any]:
        """解码JWT token"""
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError as e:
            raise AuthenticationError("Token has expired") from e
        except jwt.InvalidTokenError as e:
            raise AuthenticationError(f"Invalid token: {e}") from e

    def caller_from_token(self, token: str) -> Caller:
        payload = self.decode_jwt_token(token)
        if payload.get("user_id") is None:
            raise AuthenticationError("Token missing user_id")
        return Caller(
            user_id=payload["user_id"],
            managed_event_ids=payload.get("managed_event_ids") or [],
            volunteer_ids=payload.get("volunteer_ids") or [],
            artist_ids=payload.get("artist_ids") or [],
        )


# 全局安全管理器实例
security_manager = SecurityManager()

_bearer = HTTPBearer(auto_error=False)


async def get_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer)
) -> Caller:
    """从 Authorization header 中解析调用方"""
    if credentials is None:
        raise AuthenticationError("缺少访问令牌")
    return security_manager.caller_from_token(credentials.credentials)


def require_manager(caller: Caller, event_id: int):
    """要求调用方可以管理该活动的餐次"""
    if not caller.can_manage(event_id):
        raise PermissionDeniedError(
            "没有管理该活动餐次的权限",
            details={"event_id": event_id, "user_id": caller.user_id},
        )


def require_self_or_manager(caller: Caller, event_id: int, own_ids: List[int], profile_id: int):
    """要求调用方是本人（档案ID在其声明中）或活动管理者"""
    if profile_id in own_ids or caller.can_manage(event_id):
        return
    raise PermissionDeniedError(
        "只能查看本人的餐次",
        details={"event_id": event_id, "profile_id": profile_id},
    )
