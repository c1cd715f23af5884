"""
API 公共依赖
"""
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from wf_core.config import get_settings
from wf_core.services.auth_service import get_auth_service
from wf_core.services.base import ServiceResult
from wf_core.utils.errors import ForbiddenError, InternalServerError, UnauthorizedError
from wf_core.utils.logger import user_id_var
from .models import ApiResponse

security = HTTPBearer(auto_error=False)

# 调试模式下未携带令牌时使用的操作员
DEBUG_USER_ID = 1

# 角色层级：operator < manager < admin
ROLE_LEVELS = {"operator": 0, "manager": 1, "admin": 2}


@dataclass
class CurrentUser:
    user_id: int
    role: str = "operator"


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> CurrentUser:
    """获取当前操作员（JWT Token）"""
    if credentials is None:
        if not get_settings().api_debug:
            raise UnauthorizedError(code="MISSING_TOKEN", detail="Bearer token required")
        user = CurrentUser(user_id=DEBUG_USER_ID, role="admin")
    else:
        payload = get_auth_service().decode_token(credentials.credentials)
        user = CurrentUser(user_id=int(payload["sub"]), role=payload.get("role", "operator"))

    # 设置请求状态（供日志和审计使用）
    request.state.user_id = user.user_id
    user_id_var.set(user.user_id)
    return user


def require_role(required_role: str = "manager"):
    """
    创建角色检查依赖，用于删除类操作

    Usage:
        @router.delete("/warehouses/{warehouse_id}")
        async def delete_warehouse(user: CurrentUser = Depends(require_role("manager"))):
            ...
    """
    async def _check_role(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if ROLE_LEVELS.get(user.role, -1) < ROLE_LEVELS[required_role]:
            raise ForbiddenError(
                code="INSUFFICIENT_PERMISSIONS",
                detail=f"Role {user.role} cannot perform this operation, {required_role} or higher required"
            )
        return user

    return _check_role


def unwrap(result: ServiceResult) -> Any:
    """取出服务结果数据；失败结果转换为 500"""
    if not result.success:
        raise InternalServerError(
            code=result.error_code or "INTERNAL_ERROR",
            detail=result.error or "An internal error occurred"
        )
    return result.data


def respond(result: ServiceResult) -> ApiResponse:
    return ApiResponse.success(unwrap(result), metadata=result.metadata)
