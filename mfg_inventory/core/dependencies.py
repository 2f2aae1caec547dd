"""依赖注入配置模块"""

from dataclasses import dataclass
from typing import Optional
import logging

from fastapi import Depends, Header

# 数据库会话依赖
from mfg_inventory.db.session import SessionLocal
from sqlalchemy.orm import Session

# Redis 依赖
from mfg_inventory.core.redis import available_redlock, redis_client, redlock

from mfg_inventory.services.reservation_service import ReservationService
from mfg_inventory.services.adjustment_service import AdjustmentService
from mfg_inventory.services.reconciliation_service import ReconciliationService
from mfg_inventory.services.stock_query_service import StockQueryService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallerContext:
    """上游网关已完成认证，这里只透传身份用于审计"""
    user_id: Optional[int]
    role: Optional[str]


def get_redis():
    """获取同步 Redis 客户端，不可用时返回 None（降级为无缓存）"""
    try:
        redis_client.ping()
    except Exception as e:
        logger.warning(f"Redis 不可用，跳过缓存: {e}")
        return None
    return redis_client

def get_redlock():
    """获取 Redlock 分布式锁实例，Redis 不可达时返回 None"""
    if not getattr(redlock, "servers", None):
        return None
    return available_redlock(redlock)

def get_db() -> Session:
    """获取数据库会话"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_caller(
    x_user_id: Optional[int] = Header(None, description="已认证用户ID"),
    x_user_role: Optional[str] = Header(None, description="已认证用户角色"),
) -> CallerContext:
    """从请求头读取调用方身份"""
    return CallerContext(user_id=x_user_id, role=x_user_role)


def get_reservation_service(
    db: Session = Depends(get_db),
    redis = Depends(get_redis),
    rlock = Depends(get_redlock)
) -> ReservationService:
    """获取预占服务实例（依赖注入）"""
    return ReservationService(db=db, redis=redis, rlock=rlock)


def get_adjustment_service(
    db: Session = Depends(get_db),
    redis = Depends(get_redis),
    rlock = Depends(get_redlock)
) -> AdjustmentService:
    """获取库存调整服务实例"""
    return AdjustmentService(db=db, redis=redis, rlock=rlock)


def get_reconciliation_service(
    db: Session = Depends(get_db),
    redis = Depends(get_redis),
) -> ReconciliationService:
    """获取对账服务实例（对账只依赖数据库行锁）"""
    return ReconciliationService(db=db, redis=redis)


def get_stock_query_service(
    db: Session = Depends(get_db),
    redis = Depends(get_redis),
) -> StockQueryService:
    """获取库存查询服务实例"""
    return StockQueryService(db=db, redis=redis)


# 常用的依赖注入别名
CallerDep = Depends(get_caller)
ReservationServiceDep = Depends(get_reservation_service)
AdjustmentServiceDep = Depends(get_adjustment_service)
ReconciliationServiceDep = Depends(get_reconciliation_service)
StockQueryServiceDep = Depends(get_stock_query_service)
