"""人工库存调整服务"""

from typing import Any, Dict, Optional
import logging

from mfg_inventory.core.exceptions import (
    InsufficientStockError,
    NotFoundError,
    StockValidationError,
)
from mfg_inventory.db.session import atomic
from mfg_inventory.models.stock_ledger import TxnType
from mfg_inventory.services.base import StockServiceBase
from mfg_inventory.services.stock_store import Number, as_quantity

logger = logging.getLogger(__name__)

MANUAL_REFERENCE_TYPE = "MANUAL"


class AdjustmentService(StockServiceBase):
    """不经过预占的人工修正，直接写台账和余额"""

    def adjust_stock(
        self,
        product_id: int,
        qty: Number,
        unit: Optional[str] = None,
        reason: Optional[str] = None,
        user_id: Optional[int] = None,
        role: Optional[str] = None,
    ) -> Dict[str, Any]:
        """调整可用库存，qty 为正表示入库，为负表示出库

        Returns:
            {"new_balance": 调整后的可用库存}
        """
        qty = as_quantity(qty)
        if qty == 0:
            raise StockValidationError("调整数量不能为0")

        try:
            with self.product_locks([product_id]), atomic(self.db):
                product = self.store.get_product(product_id)
                if product is None:
                    raise NotFoundError("物料", product_id)

                balance = self.store.get_or_create_balance(product_id)
                current = balance.available_quantity
                new_balance = current + qty
                if new_balance < 0:
                    raise InsufficientStockError(product_id, available=current, requested=-qty)

                self.store.append_ledger_entry(
                    product_id=product_id,
                    txn_type=TxnType.IN if qty > 0 else TxnType.OUT,
                    quantity=abs(qty),
                    balance_after=new_balance,
                    reference_type=MANUAL_REFERENCE_TYPE,
                    user_id=user_id,
                    notes=reason,
                    unit=unit or product.unit,
                )
                self.store.update_balance(balance, available=new_balance)
        except Exception as e:
            logger.error(f"库存调整失败: product_id={product_id}, qty={qty}, error={e}")
            raise

        logger.info(
            f"库存调整成功: product_id={product_id}, qty={qty}, new_balance={new_balance}, "
            f"reason={reason}, user={user_id}, role={role}"
        )
        self.invalidate_cache([product_id])
        return {"new_balance": new_balance}
