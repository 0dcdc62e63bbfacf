"""
StoreFlow 错误处理系统
遵循 RFC7807 Problem Details 标准
"""
from typing import List, Optional
from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field


class ProblemDetail(BaseModel):
    """RFC7807 Problem Details 模型"""
    model_config = ConfigDict(
        extra="allow",
        json_schema_extra={
            "example": {
                "type": "about:blank",
                "title": "Insufficient stock",
                "status": 409,
                "detail": "Not enough stock to reserve 2 unit(s) of A",
                "code": "INSUFFICIENT_STOCK",
                "product_id": "A"
            }
        },
    )

    type: str = Field(default="about:blank")
    title: str
    status: int
    detail: Optional[str] = None
    instance: Optional[str] = None
    code: Optional[str] = None  # 业务错误码


class StoreFlowException(Exception):
    """StoreFlow 基础异常类"""

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
                "error": problem.model_dump(exclude_none=True)
            }
        )


# 预定义错误类
class UnauthorizedError(StoreFlowException):
    """401 未授权"""
    def __init__(self, code: str = "UNAUTHORIZED", detail: str = "Authentication required"):
        super().__init__(
            status=401,
            code=code,
            title="Unauthorized",
            detail=detail
        )


class ForbiddenError(StoreFlowException):
    """403 禁止访问"""
    def __init__(self, code: str = "FORBIDDEN", detail: str = "Access denied"):
        super().__init__(
            status=403,
            code=code,
            title="Forbidden",
            detail=detail
        )


class NotFoundError(StoreFlowException):
    """404 未找到"""
    def __init__(self, code: str, resource: str):
        super().__init__(
            status=404,
            code=code,
            title="Not Found",
            detail=f"{resource} not found"
        )


class ConflictError(StoreFlowException):
    """409 冲突"""
    def __init__(self, code: str, detail: str, **kwargs):
        super().__init__(
            status=409,
            code=code,
            title="Conflict",
            detail=detail,
            **kwargs
        )


class ValidationError(StoreFlowException):
    """422 验证失败"""
    def __init__(self, code: str, detail: str, **kwargs):
        super().__init__(
            status=422,
            code=code,
            title="Validation Failed",
            detail=detail,
            **kwargs
        )


class InternalServerError(StoreFlowException):
    """500 内部错误"""
    def __init__(self, code: str = "INTERNAL_ERROR", detail: str = "An internal error occurred"):
        super().__init__(
            status=500,
            code=code,
            title="Internal Server Error",
            detail=detail
        )


# 库存 / 购物车 / 订单业务错误
class InvalidQuantityError(ValidationError):
    """数量非法（非正整数等）"""
    def __init__(self, detail: str):
        super().__init__(code="INVALID_QUANTITY", detail=detail)


class EmptyCartError(ValidationError):
    """购物车为空，无法结算"""
    def __init__(self, user_id: str):
        super().__init__(code="EMPTY_CART", detail=f"Cart of user {user_id} is empty")


class CartValidationError(ValidationError):
    """结算前购物车校验失败，携带每个行项目的错误"""
    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(
            code="CART_VALIDATION_FAILED",
            detail=f"Cart validation failed: {', '.join(self.errors)}",
            errors=self.errors
        )


class OutOfStockError(ConflictError):
    """加入购物车时可用库存不足"""
    def __init__(self, product_id: str, requested: int, available: int):
        self.product_id = product_id
        super().__init__(
            code="OUT_OF_STOCK",
            detail=f"Insufficient stock for {product_id}: requested {requested}, available {available}",
            product_id=product_id,
            requested=requested,
            available=available
        )


class InsufficientStockError(ConflictError):
    """结算预留失败（正常业务结果，已回滚所有部分预留）"""
    def __init__(self, product_id: str, requested: int):
        self.product_id = product_id
        super().__init__(
            code="INSUFFICIENT_STOCK",
            detail=f"Not enough stock to reserve {requested} unit(s) of {product_id}",
            product_id=product_id,
            requested=requested
        )


class ReservationConflictError(ConflictError):
    """并发更新冲突，重试次数耗尽"""
    def __init__(self, product_id: str, attempts: int):
        self.product_id = product_id
        super().__init__(
            code="RESERVATION_CONFLICT",
            detail=f"Concurrent update conflict on {product_id} after {attempts} attempts",
            product_id=product_id,
            attempts=attempts
        )


class InvalidTransitionError(ConflictError):
    """订单状态迁移非法"""
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(
            code="INVALID_TRANSITION",
            detail=f"Invalid status transition from {current} to {target}",
            current_status=current,
            target_status=target
        )
