"""
业务异常定义
服务层抛出，由 app.main 中注册的异常处理器转换为 HTTP 响应
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional


class DomainError(Exception):
    """业务异常基类"""
    status_code = 400

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"detail": self.message}
        if self.errors:
            result["errors"] = self.errors
        return result


class ValidationError(DomainError):
    """输入缺失或格式错误，附带字段级明细"""

    def __init__(self, message: str, field: Optional[str] = None,
                 errors: Optional[List[Dict[str, Any]]] = None):
        if errors is None and field:
            errors = [{"field": field, "message": message}]
        super().__init__(message, errors)
        self.field = field


class NotFoundError(DomainError):
    status_code = 404

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found" if resource_id is None else f"{resource} {resource_id} not found"
        super().__init__(message)
        self.resource = resource
        self.resource_id = resource_id


class RoomUnavailableError(DomainError):
    """房间在入住时不可用（非 CLEAN 或已被占用）"""

    def __init__(self, message: str, room_id: Optional[int] = None):
        super().__init__(message)
        self.room_id = room_id


class NoAvailabilityError(DomainError):
    """房型在该时段已满房"""


class InvalidStatusTransitionError(DomainError):
    """生命周期状态转换不被允许"""

    def __init__(self, entity: str, current_status: Any, action: str):
        status = getattr(current_status, "value", current_status)
        super().__init__(f"Cannot {action} {entity} in status {status}")
        self.entity = entity
        self.current_status = status
        self.action = action


class InvoiceAlreadyIssuedError(DomainError):
    """已开具的发票不能重新生成"""


class OutstandingBalanceError(DomainError):
    """账单余额未结清"""

    def __init__(self, balance: Decimal):
        super().__init__(f"Folio has outstanding balance {balance}")
        self.balance = balance

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["balance"] = str(self.balance)
        return result


class ConcurrentModificationError(DomainError):
    """乐观锁版本校验失败"""
    status_code = 409
