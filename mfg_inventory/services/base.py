"""库存服务公共部分：依赖注入、分布式锁、缓存失效"""

from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional
import logging

from redis import Redis
from redis.exceptions import RedisError
from redlock import Redlock
from sqlalchemy.orm import Session

from mfg_inventory.core.config import settings
from mfg_inventory.core.exceptions import StockLockError
from mfg_inventory.services.stock_store import StockStore

logger = logging.getLogger(__name__)


def stock_level_cache_key(product_id: int, version: int = 0) -> str:
    return f"stock:level:{product_id}:v{version}"


def stock_version_key(product_id: int) -> str:
    """库存缓存版本号，写操作提交后自增，旧版本的缓存不再被读取"""
    return f"stock:version:{product_id}"


def stock_lock_key(product_id: int) -> str:
    return f"lock:stock:{product_id}"


class StockServiceBase:
    """所有库存服务共用的构造方式：数据库会话 + 可选的 Redis / Redlock"""

    def __init__(self, db: Session, redis: Optional[Redis] = None, rlock: Optional[Redlock] = None):
        self.db = db
        self.redis = redis
        self.rlock = rlock
        self.store = StockStore(db)

    @contextmanager
    def product_locks(self, product_ids: Iterable[int]) -> Iterator[None]:
        """按 product_id 升序获取分布式锁，退出时全部释放

        未配置 Redlock 时不加锁，只依赖数据库行锁。
        """
        locks = []
        try:
            if self.rlock:
                for product_id in sorted(set(product_ids)):
                    lock = self.rlock.lock(stock_lock_key(product_id), settings.STOCK_LOCK_TTL_MS)
                    if not lock:
                        raise StockLockError(product_id)
                    locks.append(lock)
            yield
        finally:
            for lock in locks:
                self.rlock.unlock(lock)

    def invalidate_cache(self, product_ids: Iterable[int]) -> None:
        """自增版本号使旧缓存失效

        并发读请求即使在提交前读到旧余额并写回缓存，也只会写到旧版本的 key 上。
        """
        if not self.redis:
            return
        keys = [stock_version_key(pid) for pid in sorted(set(product_ids))]
        if not keys:
            return
        try:
            pipe = self.redis.pipeline()
            for key in keys:
                pipe.incr(key)
            pipe.execute()
            logger.debug(f"Cache invalidated: {keys}")
        except RedisError as e:
            # 事务已提交，缓存会在 TTL 后自然过期
            logger.warning(f"缓存失效失败: {keys}, error={e}")

    def cache_versions(self, product_ids: List[int]) -> List[int]:
        """读取缓存版本号，必须在查询数据库之前调用"""
        versions = self.redis.mget([stock_version_key(pid) for pid in product_ids])
        return [int(v) if v is not None else 0 for v in versions]
