"""库存API专用的Pydantic模型和响应格式"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from mfg_inventory.models.stock_ledger import TxnType
from mfg_inventory.models.stock_reservation import ReservationStatus


# ==================== 请求模型 ====================

class ReserveStockRequest(BaseModel):
    """预占库存请求"""
    product_id: int = Field(..., gt=0, description="物料ID", examples=[1])
    qty: Decimal = Field(..., gt=0, max_digits=12, decimal_places=3, description="预占数量", examples=["12.5"])
    unit: str = Field(..., min_length=1, max_length=16, description="计量单位", examples=["kg"])
    ref_type: str = Field(..., min_length=1, max_length=32, description="来源单据类型", examples=["WO"])
    ref_id: Union[int, str] = Field(..., description="来源单据ID", examples=[1001])


class CommitReservationRequest(BaseModel):
    """提交预占请求（工单完工）"""
    reservation_id: str = Field(..., min_length=1, max_length=36, description="预占ID")
    finished_product_id: Optional[int] = Field(None, gt=0, description="产出物料ID")
    finished_qty: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=3, description="产出数量")


class ReleaseReservationRequest(BaseModel):
    """释放预占请求（工单取消）"""
    reservation_id: str = Field(..., min_length=1, max_length=36, description="预占ID")
    reason: Optional[str] = Field(None, max_length=500, description="释放原因")


class ReleaseByReferenceRequest(BaseModel):
    """按单据释放全部预占"""
    ref_type: str = Field(..., min_length=1, max_length=32, description="来源单据类型")
    ref_id: Union[int, str] = Field(..., description="来源单据ID")
    reason: Optional[str] = Field(None, max_length=500, description="释放原因")


class AdjustStockRequest(BaseModel):
    """人工调整请求，qty 为负表示出库"""
    product_id: int = Field(..., gt=0, description="物料ID")
    qty: Decimal = Field(..., max_digits=12, decimal_places=3, description="调整数量（正入负出）", examples=["-5"])
    unit: Optional[str] = Field(None, max_length=16, description="计量单位")
    reason: Optional[str] = Field(None, max_length=500, description="调整原因")


class BatchStockQueryRequest(BaseModel):
    """批量查询库存请求"""
    product_ids: List[int] = Field(
        ...,
        min_length=1,
        max_length=100,
        description="物料ID列表",
        examples=[[1, 2, 3]],
    )


# ==================== 响应模型 ====================

class BaseResponse(BaseModel):
    """基础响应模型"""
    success: bool = Field(..., description="请求是否成功")
    message: Optional[str] = Field(None, description="响应消息")


class ReserveResponse(BaseResponse):
    reservation_id: str = Field(..., description="预占ID")


class OperationResponse(BaseResponse):
    """操作响应（提交、释放）"""


class ReleaseByReferenceResponse(BaseResponse):
    released_count: int = Field(..., ge=0, description="释放的预占数")


class AdjustResponse(BaseResponse):
    new_balance: Decimal = Field(..., description="调整后的可用库存")


class ReconcileResponse(BaseResponse):
    reconciled_count: int = Field(..., ge=0, description="对账处理的物料数")
    skipped_product_ids: List[int] = Field(default_factory=list, description="台账合计不合法而跳过的物料")


class CeleryTaskResponse(BaseResponse):
    """Celery任务响应"""
    task_id: Optional[str] = Field(None, description="任务ID")


class TaskStatusResponse(BaseModel):
    """任务状态响应"""
    task_id: str = Field(..., description="任务ID")
    status: str = Field(..., description="任务状态描述")
    state: str = Field(..., description="任务状态码")


class StockLevelResponse(BaseModel):
    """单个物料库存水平"""
    product_id: int
    location_id: int
    available_quantity: Decimal
    reserved_quantity: Decimal
    free_quantity: Decimal


class BatchStockResponse(BaseResponse):
    """批量库存查询响应"""
    data: Dict[int, Decimal] = Field(..., description="物料ID到可预占数量的映射")


# ==================== 详细信息模型 ====================

class LedgerEntryDetail(BaseModel):
    """台账明细"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    txn_type: TxnType
    quantity: Decimal
    balance_after: Decimal
    unit: Optional[str] = None
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    user_id: Optional[int] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class ReservationDetail(BaseModel):
    """预占记录详情"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    product_id: int
    location_id: int
    qty: Decimal
    unit: str
    ref_type: str
    ref_id: str
    reserved_by: Optional[int] = None
    status: ReservationStatus
    release_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class HealthCheckResponse(BaseModel):
    """健康检查响应"""
    status: str = Field("healthy", description="服务状态")
    service: str = Field("mfg-stock-service", description="服务名称")
    version: str = Field("1.0.0", description="服务版本")
