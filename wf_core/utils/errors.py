"""
WareFlow 错误处理系统
遵循 RFC7807 Problem Details 标准
"""
import enum
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field


class ErrorKind(str, enum.Enum):
    """错误分类，调用方据此区分失败类型"""
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    INTERNAL = "internal"


class ProblemDetail(BaseModel):
    """RFC7807 Problem Details 模型"""
    type: str = Field(default="about:blank")
    title: str
    status: int
    detail: Optional[str] = None
    instance: Optional[str] = None
    code: Optional[str] = None  # 业务错误码
    kind: Optional[ErrorKind] = None

    model_config = {
        "extra": "allow",
        "json_schema_extra": {
            "example": {
                "type": "about:blank",
                "title": "Conflict",
                "status": 409,
                "detail": "Insufficient stock: requested 12, available 5",
                "code": "INSUFFICIENT_STOCK",
                "kind": "conflict"
            }
        }
    }


class WareFlowException(Exception):
    """WareFlow 基础异常类"""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        status: int,
        code: str,
        title: str,
        detail: Optional[str] = None,
        **kwargs
    ):
        self.status = status
        self.code = code
        self.title = title
        self.detail = detail
        self.extra = kwargs
        super().__init__(detail or title)

    def to_problem_detail(self, instance: Optional[str] = None) -> ProblemDetail:
        """转换为 Problem Details 格式"""
        return ProblemDetail(
            type="about:blank",
            title=self.title,
            status=self.status,
            detail=self.detail,
            instance=instance,
            code=self.code,
            kind=self.kind,
            **self.extra
        )

    def to_response(self, request: Optional[Request] = None) -> JSONResponse:
        """转换为 JSON 响应"""
        instance = str(request.url) if request else None
        problem = self.to_problem_detail(instance)

        return JSONResponse(
            status_code=self.status,
            content={
                "ok": False,
                "error": problem.model_dump(mode="json", exclude_none=True)
            }
        )


class UnauthorizedError(WareFlowException):
    """401 未授权"""
    kind = ErrorKind.UNAUTHORIZED

    def __init__(self, code: str = "UNAUTHORIZED", detail: str = "User not authenticated"):
        super().__init__(status=401, code=code, title="Unauthorized", detail=detail)


class ForbiddenError(WareFlowException):
    """403 禁止访问"""
    kind = ErrorKind.FORBIDDEN

    def __init__(self, code: str = "FORBIDDEN", detail: str = "Access denied"):
        super().__init__(status=403, code=code, title="Forbidden", detail=detail)


class NotFoundError(WareFlowException):
    """404 未找到"""
    kind = ErrorKind.NOT_FOUND

    def __init__(self, code: str, resource: str):
        super().__init__(status=404, code=code, title="Not Found", detail=f"{resource} not found")


class ConflictError(WareFlowException):
    """409 冲突"""
    kind = ErrorKind.CONFLICT

    def __init__(self, code: str, detail: str, **kwargs):
        super().__init__(status=409, code=code, title="Conflict", detail=detail, **kwargs)


class ValidationError(WareFlowException):
    """422 验证失败"""
    kind = ErrorKind.VALIDATION

    def __init__(self, code: str, detail: str, **kwargs):
        super().__init__(status=422, code=code, title="Validation Failed", detail=detail, **kwargs)


class InternalServerError(WareFlowException):
    """500 内部错误"""
    kind = ErrorKind.INTERNAL

    def __init__(self, code: str = "INTERNAL_ERROR", detail: str = "An internal error occurred"):
        super().__init__(status=500, code=code, title="Internal Server Error", detail=detail)
