"""库存预占 / 台账 API 路由

调用方已在网关完成认证和权限校验，这里只做参数校验、
调用服务、把服务层异常翻译成 HTTP 状态码。
"""

from typing import List, Optional
import logging

from fastapi import APIRouter, Body, HTTPException, Path, Query

from celery_app import app as celery_app
from mfg_inventory.core.dependencies import (
    AdjustmentServiceDep,
    CallerContext,
    CallerDep,
    ReconciliationServiceDep,
    ReservationServiceDep,
    StockQueryServiceDep,
)
from mfg_inventory.core.exceptions import StockError
from mfg_inventory.schemas.stock_api import (
    AdjustResponse,
    AdjustStockRequest,
    BatchStockQueryRequest,
    BatchStockResponse,
    CeleryTaskResponse,
    CommitReservationRequest,
    LedgerEntryDetail,
    OperationResponse,
    ReconcileResponse,
    ReleaseByReferenceRequest,
    ReleaseByReferenceResponse,
    ReleaseReservationRequest,
    ReservationDetail,
    ReserveResponse,
    ReserveStockRequest,
    StockLevelResponse,
    TaskStatusResponse,
)
from mfg_inventory.services.adjustment_service import AdjustmentService
from mfg_inventory.services.reconciliation_service import ReconciliationService
from mfg_inventory.services.reservation_service import ReservationService
from mfg_inventory.services.stock_query_service import StockQueryService
from tasks.stock_tasks import reconcile_inventory as celery_reconcile_task

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/stock",
    tags=["库存预占与台账"],
    responses={
        400: {"description": "请求参数错误或库存不足"},
        404: {"description": "资源未找到或预占已处理"},
        422: {"description": "请求验证失败"},
        429: {"description": "库存操作冲突"},
        500: {"description": "服务器内部错误"}
    }
)


def _http_error(e: StockError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.post(
    "/reserve",
    response_model=ReserveResponse,
    summary="预占库存",
    description="""为工单/制造单预占原料，只占用额度，不写台账。

    **特点：**
    - 数据库行级锁 + 可选 Redlock，防止超额预占
    - 可预占数量 = 可用库存 - 已预占
    """,
)
def reserve_stock(
    request: ReserveStockRequest = Body(...),
    caller: CallerContext = CallerDep,
    service: ReservationService = ReservationServiceDep,
):
    try:
        result = service.reserve_stock(
            request.product_id,
            request.qty,
            request.unit,
            request.ref_type,
            request.ref_id,
            caller.user_id,
            caller.role,
        )
        return {"success": True, "message": "预占成功", **result}
    except StockError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"预占库存失败: {str(e)}")
        # 未知异常统一抛 500
        raise HTTPException(status_code=500, detail=str(e))


@router.post(
    "/commit",
    response_model=OperationResponse,
    summary="提交预占（工单完工）",
    description="""消耗预占的原料；传入 finished_product_id / finished_qty 时登记产出入库。

    **注意：**
    - 只能提交 ACTIVE 状态的预占
    - 重复提交返回 404
    """,
)
def commit_reservation(
    request: CommitReservationRequest = Body(...),
    caller: CallerContext = CallerDep,
    service: ReservationService = ReservationServiceDep,
):
    try:
        service.commit_reservation(
            request.reservation_id,
            request.finished_product_id,
            request.finished_qty,
            caller.user_id,
            caller.role,
        )
        return {"success": True, "message": "提交成功"}
    except StockError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"提交预占失败: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post(
    "/release",
    response_model=OperationResponse,
    summary="释放预占（工单取消）",
)
def release_reservation(
    request: ReleaseReservationRequest = Body(...),
    caller: CallerContext = CallerDep,
    service: ReservationService = ReservationServiceDep,
):
    try:
        service.release_reservation(
            request.reservation_id,
            request.reason,
            caller.user_id,
            caller.role,
        )
        return {"success": True, "message": "释放成功"}
    except StockError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"释放预占失败: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post(
    "/release/by-reference",
    response_model=ReleaseByReferenceResponse,
    summary="按单据释放全部预占",
)
def release_by_reference(
    request: ReleaseByReferenceRequest = Body(...),
    caller: CallerContext = CallerDep,
    service: ReservationService = ReservationServiceDep,
):
    try:
        result = service.release_reservations_for_reference(
            request.ref_type,
            request.ref_id,
            request.reason,
            caller.user_id,
            caller.role,
        )
        return {"success": True, "message": "释放完成", **result}
    except StockError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"按单据释放预占失败: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post(
    "/adjust",
    response_model=AdjustResponse,
    summary="人工调整库存",
)
def adjust_stock(
    request: AdjustStockRequest = Body(...),
    caller: CallerContext = CallerDep,
    service: AdjustmentService = AdjustmentServiceDep,
):
    try:
        result = service.adjust_stock(
            request.product_id,
            request.qty,
            request.unit,
            request.reason,
            caller.user_id,
            caller.role,
        )
        return {"success": True, "message": "调整成功", **result}
    except StockError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"库存调整失败: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post(
    "/reconcile",
    response_model=ReconcileResponse,
    summary="库存对账（同步执行）",
    description="以台账为准重算所有物料的可用库存。",
)
def reconcile_inventory(
    caller: CallerContext = CallerDep,
    service: ReconciliationService = ReconciliationServiceDep,
):
    try:
        logger.info(f"触发库存对账: user={caller.user_id}, role={caller.role}")
        result = service.reconcile_inventory()
        return {"success": True, "message": "对账完成", **result}
    except StockError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"库存对账失败: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/reconcile/celery", response_model=CeleryTaskResponse)
def celery_reconcile():
    """触发 Celery 异步对账任务"""
    try:
        task = celery_reconcile_task.delay()
        return {
            "success": True,
            "message": "已提交异步对账任务",
            "task_id": task.id
        }
    except Exception as e:
        logger.error(f"Celery 任务提交失败: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/reconcile/status/{task_id}", response_model=TaskStatusResponse)
def get_reconcile_status(task_id: str):
    """查询 Celery 对账任务执行状态"""
    try:
        task = celery_app.AsyncResult(task_id)

        if task.state == 'PENDING':
            status = "任务等待中"
        elif task.state == 'SUCCESS':
            status = f"任务完成: {task.result}"
        elif task.state == 'FAILURE':
            status = f"任务失败: {str(task.info)}"
        else:
            status = f"任务状态: {task.state}"

        return {
            "task_id": task_id,
            "status": status,
            "state": task.state
        }
    except Exception as e:
        logger.error(f"查询任务状态失败: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get(
    "/levels/{product_id}",
    response_model=StockLevelResponse,
    summary="查询物料库存水平",
    description="先查 Redis 缓存，未命中再查数据库，结果缓存 STOCK_CACHE_TTL 秒。",
)
def get_stock_level(
    product_id: int = Path(..., gt=0, description="物料ID"),
    service: StockQueryService = StockQueryServiceDep,
):
    try:
        return service.get_stock_level(product_id)
    except StockError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"查询库存失败: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post(
    "/levels/batch",
    response_model=BatchStockResponse,
    summary="批量查询可预占数量",
)
def batch_get_stock_levels(
    request: BatchStockQueryRequest = Body(...),
    service: StockQueryService = StockQueryServiceDep,
):
    try:
        data = service.batch_get_stock_levels(request.product_ids)
        return BatchStockResponse(success=True, data=data)
    except StockError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"批量查询库存失败: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/ledger", response_model=List[LedgerEntryDetail], summary="查询库存台账")
def list_ledger(
    product_id: Optional[int] = Query(None, gt=0, description="物料ID"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: StockQueryService = StockQueryServiceDep,
):
    try:
        return service.list_ledger(product_id, limit, offset)
    except Exception as e:
        logger.error(f"查询台账失败: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/reservations", response_model=List[ReservationDetail], summary="查询有效预占")
def list_active_reservations(
    product_id: Optional[int] = Query(None, gt=0, description="物料ID"),
    service: ReservationService = ReservationServiceDep,
):
    try:
        return service.list_active_reservations(product_id)
    except Exception as e:
        logger.error(f"查询预占失败: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/reservations/{reservation_id}", response_model=ReservationDetail, summary="查询预占详情")
def get_reservation(
    reservation_id: str = Path(..., description="预占ID"),
    service: ReservationService = ReservationServiceDep,
):
    try:
        return service.get_reservation(reservation_id)
    except StockError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"查询预占详情失败: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
