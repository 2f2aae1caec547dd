"""Redis 客户端配置模块"""

from typing import Optional
import logging

from redis import Redis
from redis.exceptions import RedisError
from redis.asyncio import Redis as AsyncRedis
from redlock import Redlock

from mfg_inventory.core.config import settings

logger = logging.getLogger(__name__)

REDIS_URL = settings.redis_url

# 基础 Redis 客户端
redis_client = Redis.from_url(REDIS_URL, decode_responses=True)
async_redis = AsyncRedis.from_url(REDIS_URL, decode_responses=True)

# Redlock 配置（支持单实例和多实例）
def create_redlock():
    """根据配置动态创建 Redlock 实例"""
    redis_hosts = settings.REDIS_HOSTS or settings.REDIS_HOST
    
    if "," in redis_hosts:  # 多实例模式
        hosts = redis_hosts.split(",")
        servers = [
            {"host": host.strip(), "port": settings.REDIS_PORT, "db": settings.REDIS_DB}
            for host in hosts
        ]
    else:  # 单实例模式
        servers = [
            {"host": redis_hosts.strip(), "port": settings.REDIS_PORT, "db": settings.REDIS_DB}
        ]
    
    return Redlock(servers)

redlock = create_redlock()


def available_redlock(rlock: Optional[Redlock] = None) -> Optional[Redlock]:
    """Redlock 可用时返回实例，否则返回 None（降级为只用数据库行锁）

    创建 Redlock 时不会连接 Redis，这里逐个 ping，达不到多数派即视为不可用。
    """
    rlock = rlock or redlock
    reachable = 0
    for server in rlock.servers:
        try:
            server.ping()
            reachable += 1
        except RedisError as e:
            logger.warning(f"Redlock 节点不可用: {e}")
    if reachable < rlock.quorum:
        logger.warning(f"Redlock 可用节点不足 {reachable}/{len(rlock.servers)}，跳过分布式锁")
        return None
    return rlock

# 导出
__all__ = [
    "redis_client",
    "async_redis", 
    "redlock",
    "available_redlock",
    "REDIS_URL"
]
