"""预占服务：reserve → commit / release 状态机

预占只占用额度（reserved_quantity），不写台账；
提交时原料实际消耗，并可选地记录成品/半成品产出。
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import select

from mfg_inventory.core.config import settings
from mfg_inventory.core.exceptions import (
    InsufficientStockError,
    NotFoundError,
    StockValidationError,
)
from mfg_inventory.db.session import atomic
from mfg_inventory.models.stock_ledger import TxnType
from mfg_inventory.models.stock_reservation import ReservationStatus, StockReservation
from mfg_inventory.services.base import StockServiceBase
from mfg_inventory.services.stock_store import Number, as_quantity, utcnow

logger = logging.getLogger(__name__)

# 生产完工入库的台账来源类型
PRODUCTION_REFERENCE_TYPE = "MO"
PRODUCTION_NOTES = "Production completion"


class ReservationService(StockServiceBase):
    """预占管理器：唯一允许在 available / reserved 之间移动数量的组件"""

    def reserve_stock(
        self,
        product_id: int,
        qty: Number,
        unit: str,
        ref_type: str,
        ref_id: Any,
        user_id: Optional[int] = None,
        role: Optional[str] = None,
    ) -> Dict[str, Any]:
        """为工单/制造单预占库存

        Raises:
            StockValidationError: qty <= 0
            NotFoundError: 该物料在默认库位没有余额行
            InsufficientStockError: 可预占数量不足
        """
        qty = as_quantity(qty)
        if qty <= 0:
            raise StockValidationError(f"预占数量必须大于0: {qty}")

        try:
            with self.product_locks([product_id]), atomic(self.db):
                balance = self.store.get_balance(product_id, for_update=True)
                if balance is None:
                    raise NotFoundError("库存余额", product_id, f"物料不在库存中: product_id={product_id}")

                free = balance.free_quantity
                if free < qty:
                    raise InsufficientStockError(product_id, available=free, requested=qty)

                reservation = StockReservation(
                    product_id=product_id,
                    location_id=balance.location_id,
                    qty=qty,
                    unit=unit,
                    ref_type=ref_type,
                    ref_id=str(ref_id),
                    reserved_by=user_id,
                    status=ReservationStatus.ACTIVE,
                )
                self.db.add(reservation)
                self.store.update_balance(balance, reserved_delta=qty)
                self.db.flush()
                reservation_id = reservation.id
        except Exception as e:
            logger.error(f"预占库存失败: product_id={product_id}, qty={qty}, error={e}")
            raise

        logger.info(
            f"预占库存成功: reservation_id={reservation_id}, product_id={product_id}, "
            f"qty={qty} {unit}, ref={ref_type}:{ref_id}, user={user_id}, role={role}"
        )
        self.invalidate_cache([product_id])
        return {"reservation_id": reservation_id}

    def commit_reservation(
        self,
        reservation_id: str,
        finished_product_id: Optional[int] = None,
        finished_qty: Optional[Number] = None,
        user_id: Optional[int] = None,
        role: Optional[str] = None,
    ) -> Dict[str, Any]:
        """提交预占（工单完工）：消耗原料，并可选地登记产出

        消耗的原料默认不写台账，只有产出写 IN 台账；
        LEDGER_COMMIT_CONSUMPTION 打开时额外为原料写 OUT 台账。
        """
        produced = as_quantity(finished_qty) if finished_qty is not None else Decimal("0")
        produces = bool(finished_product_id) and produced > 0

        product_id = self._reservation_product_id(reservation_id)
        product_ids = [product_id] + ([finished_product_id] if produces else [])

        try:
            with self.product_locks(product_ids), atomic(self.db):
                reservation = self._lock_active_reservation(reservation_id)
                balances = self.store.lock_balances(product_ids)
                balance = balances.get(reservation.product_id)
                if balance is None:
                    raise NotFoundError("库存余额", reservation.product_id)

                reservation.status = ReservationStatus.COMMITTED
                reservation.updated_at = utcnow()
                self.store.update_balance(
                    balance,
                    available_delta=-reservation.qty,
                    reserved_delta=-reservation.qty,
                )

                if settings.LEDGER_COMMIT_CONSUMPTION:
                    self.store.append_ledger_entry(
                        product_id=reservation.product_id,
                        txn_type=TxnType.OUT,
                        quantity=reservation.qty,
                        balance_after=balance.available_quantity,
                        reference_type=reservation.ref_type,
                        reference_id=reservation.ref_id,
                        user_id=user_id,
                        notes="Reservation committed",
                        unit=reservation.unit,
                    )

                if produces:
                    self._record_production(reservation, finished_product_id, produced, user_id)
        except Exception as e:
            logger.error(f"提交预占失败: reservation_id={reservation_id}, error={e}")
            raise

        logger.info(
            f"提交预占成功: reservation_id={reservation_id}, "
            f"finished_product_id={finished_product_id if produces else None}, "
            f"finished_qty={produced if produces else None}, user={user_id}, role={role}"
        )
        self.invalidate_cache(product_ids)
        return {"success": True}

    def release_reservation(
        self,
        reservation_id: str,
        reason: Optional[str] = None,
        user_id: Optional[int] = None,
        role: Optional[str] = None,
    ) -> Dict[str, Any]:
        """释放预占（工单取消）：只归还预占额度，在库数量不变"""
        product_id = self._reservation_product_id(reservation_id)

        try:
            with self.product_locks([product_id]), atomic(self.db):
                reservation = self._lock_active_reservation(reservation_id)
                balance = self.store.get_balance(reservation.product_id, for_update=True)
                if balance is None:
                    raise NotFoundError("库存余额", reservation.product_id)

                reservation.status = ReservationStatus.RELEASED
                reservation.release_reason = reason
                reservation.updated_at = utcnow()
                self.store.update_balance(balance, reserved_delta=-reservation.qty)
        except Exception as e:
            logger.error(f"释放预占失败: reservation_id={reservation_id}, error={e}")
            raise

        logger.info(
            f"释放预占成功: reservation_id={reservation_id}, reason={reason}, "
            f"user={user_id}, role={role}"
        )
        self.invalidate_cache([product_id])
        return {"success": True}

    def release_reservations_for_reference(
        self,
        ref_type: str,
        ref_id: Any,
        reason: Optional[str] = None,
        user_id: Optional[int] = None,
        role: Optional[str] = None,
    ) -> Dict[str, Any]:
        """释放某张工单/制造单下所有有效预占，每条预占单独一个事务"""
        reservation_ids = self.db.execute(
            select(StockReservation.id)
            .where(
                StockReservation.ref_type == ref_type,
                StockReservation.ref_id == str(ref_id),
                StockReservation.status == ReservationStatus.ACTIVE,
            )
            .order_by(StockReservation.created_at)
        ).scalars().all()
        # 结束只读查询开启的事务，后续每条释放各自加锁
        self.db.rollback()

        released = 0
        for reservation_id in reservation_ids:
            try:
                self.release_reservation(reservation_id, reason, user_id, role)
                released += 1
            except NotFoundError:
                # 并发处理中已被提交或释放
                logger.warning(f"预占已被其他请求处理，跳过: reservation_id={reservation_id}")

        logger.info(f"按单据释放预占完成: ref={ref_type}:{ref_id}, released={released}")
        return {"released_count": released}

    def get_reservation(self, reservation_id: str) -> StockReservation:
        reservation = self.db.execute(
            select(StockReservation).where(StockReservation.id == reservation_id)
        ).scalar_one_or_none()
        if reservation is None:
            raise NotFoundError("预占记录", reservation_id)
        return reservation

    def list_active_reservations(self, product_id: Optional[int] = None) -> List[StockReservation]:
        stmt = select(StockReservation).where(StockReservation.status == ReservationStatus.ACTIVE)
        if product_id is not None:
            stmt = stmt.where(StockReservation.product_id == product_id)
        stmt = stmt.order_by(StockReservation.created_at.desc())
        return list(self.db.execute(stmt).scalars().all())

    # ---------- 内部方法 ----------

    def _reservation_product_id(self, reservation_id: str) -> int:
        """加分布式锁前先查出涉及的物料"""
        product_id = self.db.execute(
            select(StockReservation.product_id).where(StockReservation.id == reservation_id)
        ).scalar_one_or_none()
        if product_id is None:
            raise NotFoundError(
                "预占记录", reservation_id, f"预占记录不存在或已处理: {reservation_id}"
            )
        return product_id

    def _lock_active_reservation(self, reservation_id: str) -> StockReservation:
        reservation = self.db.execute(
            select(StockReservation)
            .where(
                StockReservation.id == reservation_id,
                StockReservation.status == ReservationStatus.ACTIVE,
            )
            .with_for_update()
        ).scalar_one_or_none()
        if reservation is None:
            raise NotFoundError(
                "预占记录", reservation_id, f"预占记录不存在或已处理: {reservation_id}"
            )
        return reservation

    def _record_production(
        self,
        reservation: StockReservation,
        finished_product_id: int,
        finished_qty: Decimal,
        user_id: Optional[int],
    ) -> None:
        product = self.store.get_product(finished_product_id)
        if product is None:
            raise NotFoundError("物料", finished_product_id)

        balance = self.store.get_or_create_balance(finished_product_id)
        self.store.append_ledger_entry(
            product_id=finished_product_id,
            txn_type=TxnType.IN,
            quantity=finished_qty,
            balance_after=balance.available_quantity + finished_qty,
            reference_type=PRODUCTION_REFERENCE_TYPE,
            reference_id=reservation.ref_id,
            user_id=user_id,
            notes=PRODUCTION_NOTES,
            unit=product.unit,
        )
        self.store.update_balance(balance, available_delta=finished_qty)
