"""库存相关的 Celery 任务"""

from celery_app import app
from mfg_inventory.db.session import SessionLocal
from mfg_inventory.services.reconciliation_service import ReconciliationService
from mfg_inventory.services.reservation_service import ReservationService
from mfg_inventory.core.redis import available_redlock, redis_client
import logging

logger = logging.getLogger(__name__)

@app.task(name='tasks.stock.reconcile_inventory')
def reconcile_inventory():
    """按台账重算所有物料的可用库存

    Returns:
        {"reconciled_count": 处理的物料数, "skipped_product_ids": 跳过的物料}
    """
    db = SessionLocal()
    try:
        service = ReconciliationService(db, redis_client)
        result = service.reconcile_inventory()
        logger.info(f"对账任务完成: {result}")
        return result
    except Exception as e:
        logger.error(f"对账任务执行失败: {str(e)}")
        db.rollback()
        raise
    finally:
        db.close()

@app.task(name='tasks.stock.release_reference_reservations')
def release_reference_reservations(ref_type: str, ref_id, reason: str = None,
                                   user_id: int = None, role: str = None):
    """工单取消后异步释放该单据下的全部预占

    Args:
        ref_type: 单据类型（WO / MO）
        ref_id: 单据ID
        reason: 释放原因
    """
    db = SessionLocal()
    try:
        service = ReservationService(db, redis_client, available_redlock())
        result = service.release_reservations_for_reference(ref_type, ref_id, reason, user_id, role)
        logger.info(f"单据预占释放完成: {ref_type}:{ref_id}, {result}")
        return result
    except Exception as e:
        logger.error(f"单据预占释放失败: {ref_type}:{ref_id}, error: {str(e)}")
        db.rollback()
        raise
    finally:
        db.close()

# 导出任务
__all__ = [
    'reconcile_inventory',
    'release_reference_reservations',
]
