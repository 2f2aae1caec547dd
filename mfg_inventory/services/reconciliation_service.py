"""库存对账服务

以台账为准重算每个物料的可用库存，覆盖余额表和 products.current_stock。
余额表视为台账的派生缓存，reserved_quantity 不受影响。
"""

from typing import Any, Dict, List
import logging

from mfg_inventory.db.session import atomic
from mfg_inventory.services.base import StockServiceBase
from mfg_inventory.services.stock_store import MAX_QUANTITY

logger = logging.getLogger(__name__)


class ReconciliationService(StockServiceBase):

    def reconcile_inventory(self) -> Dict[str, Any]:
        """按台账重算所有有流水的物料

        Returns:
            {"reconciled_count": 已修正/确认的物料数,
             "skipped_product_ids": 台账合计不合法而跳过的物料}
        """
        reconciled: List[int] = []
        skipped: List[int] = []
        try:
            with atomic(self.db):
                # 按 product_id 升序逐行加锁，避免与其他事务死锁
                for product_id in self.store.ledger_product_ids():
                    balance = self.store.get_or_create_balance(product_id)
                    # 持有行锁后再汇总，期间提交的调整/完工入库都会计入
                    total = self.store.ledger_total(product_id)
                    if total < 0 or total > MAX_QUANTITY:
                        logger.error(f"台账合计不合法，跳过: product_id={product_id}, total={total}")
                        skipped.append(product_id)
                        continue

                    before = balance.available_quantity
                    self.store.update_balance(balance, available=total)
                    reconciled.append(product_id)
                    if before != total:
                        logger.info(f"对账修正: product_id={product_id}, {before} -> {total}")
        except Exception as e:
            logger.error(f"库存对账失败: {e}")
            raise

        logger.info(f"库存对账完成，共处理 {len(reconciled)} 个物料，跳过 {len(skipped)} 个")
        self.invalidate_cache(reconciled)
        return {"reconciled_count": len(reconciled), "skipped_product_ids": skipped}

    def find_drift(self) -> List[Dict[str, Any]]:
        """只读：列出余额与台账不一致的物料，不做任何修改"""
        totals = self.store.ledger_totals()
        drift = []
        for product_id in sorted(totals):
            balance = self.store.get_balance(product_id)
            recorded = balance.available_quantity if balance is not None else None
            if recorded != totals[product_id]:
                drift.append({
                    "product_id": product_id,
                    "recorded": recorded,
                    "calculated": totals[product_id],
                })
        self.db.rollback()
        return drift
