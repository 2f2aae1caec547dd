"""库存核心异常定义

服务层只抛出这里的异常，HTTP 状态码的映射由路由层完成。
"""

from decimal import Decimal
from typing import Any, Dict, Optional


class StockError(Exception):
    """库存异常基类"""

    status_code: int = 500
    code: str = "STOCK_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class StockValidationError(StockError):
    """请求参数不合法（例如数量 <= 0）"""

    status_code = 400
    code = "INVALID_REQUEST"


class NotFoundError(StockError):
    """商品/库存行/预占记录不存在，或预占已处于终态"""

    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, entity: str, identifier: Any, message: Optional[str] = None):
        self.entity = entity
        self.identifier = identifier
        super().__init__(message or f"{entity} 不存在: {identifier}")


class InsufficientStockError(StockError):
    """可用库存不足"""

    status_code = 400
    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: int, available: Decimal, requested: Decimal):
        self.product_id = product_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"库存不足: product_id={product_id}, 可用={available}, 需求={requested}"
        )

    @property
    def shortfall(self) -> Decimal:
        return self.requested - self.available

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(
            available=str(self.available),
            requested=str(self.requested),
            shortfall=str(self.shortfall),
        )
        return data


class TransactionFailure(StockError):
    """事务内发生的存储层异常，整个事务已回滚，可安全重试"""

    status_code = 500
    code = "TRANSACTION_FAILED"


class StockLockError(TransactionFailure):
    """分布式锁获取失败"""

    status_code = 429
    code = "LOCK_CONFLICT"

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"库存操作冲突，请稍后重试: product_id={product_id}")
