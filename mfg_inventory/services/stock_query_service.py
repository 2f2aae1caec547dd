"""库存查询服务（带 Redis 缓存）"""

from decimal import Decimal
from typing import Any, Dict, List, Optional
import json
import logging

from sqlalchemy import select

from mfg_inventory.core.config import settings
from mfg_inventory.core.exceptions import NotFoundError
from mfg_inventory.models.stock_balance import StockBalance
from mfg_inventory.models.stock_ledger import StockLedgerEntry
from mfg_inventory.services.base import StockServiceBase, stock_level_cache_key

logger = logging.getLogger(__name__)


def _level_from_balance(balance: StockBalance) -> Dict[str, Any]:
    return {
        "product_id": balance.product_id,
        "location_id": balance.location_id,
        "available_quantity": str(balance.available_quantity),
        "reserved_quantity": str(balance.reserved_quantity),
        "free_quantity": str(balance.free_quantity),
    }


class StockQueryService(StockServiceBase):
    """只读查询，不参与任何写事务"""

    def get_stock_level(self, product_id: int) -> Dict[str, Any]:
        """查询物料在默认库位的库存水平（带缓存）"""
        cache_key = None

        # 先查缓存
        if self.redis:
            version = self.cache_versions([product_id])[0]
            cache_key = stock_level_cache_key(product_id, version)
            cached = self.redis.get(cache_key)
            if cached is not None:
                logger.debug(f"Cache hit for product {product_id}")
                return json.loads(cached)

        # 缓存未命中，查询数据库
        balance = self.store.get_balance(product_id)
        if balance is None:
            raise NotFoundError("库存余额", product_id)
        level = _level_from_balance(balance)

        if self.redis:
            self.redis.setex(cache_key, settings.STOCK_CACHE_TTL, json.dumps(level))
            logger.debug(f"Cache set for product {product_id}")

        return level

    def batch_get_stock_levels(self, product_ids: List[int]) -> Dict[int, Decimal]:
        """批量查询可预占数量，未建余额行的物料返回 0"""
        if not product_ids:
            return {}

        results: Dict[int, Decimal] = {}
        uncached_ids = []
        versions: Dict[int, int] = {}

        # 先查缓存
        if self.redis:
            versions = dict(zip(product_ids, self.cache_versions(product_ids)))
            cached_values = self.redis.mget(
                [stock_level_cache_key(pid, versions[pid]) for pid in product_ids]
            )
            for pid, cached in zip(product_ids, cached_values):
                if cached is not None:
                    results[pid] = Decimal(json.loads(cached)["free_quantity"])
                    logger.debug(f"Batch cache hit for product {pid}")
                else:
                    uncached_ids.append(pid)
        else:
            uncached_ids = list(product_ids)

        # 查询未缓存的库存
        if uncached_ids:
            balances = self.db.execute(
                select(StockBalance).where(
                    StockBalance.product_id.in_(uncached_ids),
                    StockBalance.location_id == self.store.location_id,
                )
            ).scalars().all()
            balance_map = {b.product_id: b for b in balances}

            pipe = self.redis.pipeline() if self.redis else None
            for pid in uncached_ids:
                balance = balance_map.get(pid)
                if balance is None:
                    results[pid] = Decimal("0")
                    continue
                results[pid] = balance.free_quantity
                if pipe is not None:
                    pipe.setex(
                        stock_level_cache_key(pid, versions[pid]),
                        settings.STOCK_CACHE_TTL,
                        json.dumps(_level_from_balance(balance)),
                    )
            if pipe is not None:
                pipe.execute()

        return results

    def list_ledger(
        self, product_id: Optional[int] = None, limit: int = 50, offset: int = 0
    ) -> List[StockLedgerEntry]:
        """台账分页查询，最新的在前"""
        return self.store.list_ledger(product_id, limit, offset)
