"""库存余额与台账的底层读写

这里的方法都不提交事务，必须在调用方的 atomic() 作用域内使用，
保证余额、台账、预占记录的修改要么全部生效，要么全部回滚。
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional, Union

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session

from mfg_inventory.core.config import settings
from mfg_inventory.core.exceptions import (
    InsufficientStockError,
    StockValidationError,
    TransactionFailure,
)
from mfg_inventory.models.product import Product
from mfg_inventory.models.stock_balance import StockBalance
from mfg_inventory.models.stock_ledger import StockLedgerEntry, TxnType

QUANTUM = Decimal("0.001")
# Numeric(12, 3) 能存下的最大值
MAX_QUANTITY = Decimal("999999999.999")

Number = Union[int, float, str, Decimal]


def as_quantity(value: Number) -> Decimal:
    """把 int/float/str 统一转换为三位小数的 Decimal

    超出 Numeric(12, 3) 范围的数量同样视为不合法。
    """
    if isinstance(value, bool):
        raise StockValidationError(f"数量不合法: {value!r}")
    try:
        qty = Decimal(str(value))
        if not qty.is_finite():
            raise StockValidationError(f"数量不合法: {value!r}")
        qty = qty.quantize(QUANTUM)
    except (InvalidOperation, ValueError):
        raise StockValidationError(f"数量不合法: {value!r}")
    if abs(qty) > MAX_QUANTITY:
        raise StockValidationError(f"数量超出范围: {value!r}")
    return qty


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _signed_quantity():
    return case(
        (StockLedgerEntry.txn_type == TxnType.IN, StockLedgerEntry.quantity),
        (StockLedgerEntry.txn_type == TxnType.OUT, -StockLedgerEntry.quantity),
        else_=0,
    )


def _ledger_sum(total) -> Decimal:
    # 合计可能为负（数据损坏），不做范围校验，交给调用方判断
    return Decimal(str(total or 0)).quantize(QUANTUM)


class StockStore:
    """余额表 + 台账表的原子操作集合"""

    def __init__(self, db: Session, location_id: Optional[int] = None):
        self.db = db
        self.location_id = location_id or settings.DEFAULT_LOCATION_ID

    # ---------- 物料 ----------

    def get_product(self, product_id: int) -> Optional[Product]:
        return self.db.execute(
            select(Product).where(Product.id == product_id)
        ).scalar_one_or_none()

    def sync_product_stock(self, product_id: int, quantity: Decimal) -> None:
        """把默认库位的可用数量同步到 products.current_stock"""
        self.db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(current_stock=quantity)
        )

    # ---------- 余额 ----------

    def get_balance(
        self,
        product_id: int,
        location_id: Optional[int] = None,
        for_update: bool = False,
    ) -> Optional[StockBalance]:
        stmt = select(StockBalance).where(
            StockBalance.product_id == product_id,
            StockBalance.location_id == (location_id or self.location_id),
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def lock_balances(
        self, product_ids: Iterable[int], location_id: Optional[int] = None
    ) -> Dict[int, StockBalance]:
        """按 product_id 升序加行锁，避免多物料事务之间死锁"""
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        rows = self.db.execute(
            select(StockBalance)
            .where(
                StockBalance.product_id.in_(ids),
                StockBalance.location_id == (location_id or self.location_id),
            )
            .order_by(StockBalance.product_id)
            .with_for_update()
        ).scalars().all()
        return {row.product_id: row for row in rows}

    def get_or_create_balance(
        self, product_id: int, location_id: Optional[int] = None
    ) -> StockBalance:
        location_id = location_id or self.location_id
        balance = self.get_balance(product_id, location_id, for_update=True)
        if balance is None:
            balance = StockBalance(
                product_id=product_id,
                location_id=location_id,
                available_quantity=Decimal("0"),
                reserved_quantity=Decimal("0"),
                last_updated=utcnow(),
            )
            self.db.add(balance)
            self.db.flush()
        return balance

    def update_balance(
        self,
        balance: StockBalance,
        available_delta: Number = 0,
        reserved_delta: Number = 0,
        available: Optional[Number] = None,
    ) -> StockBalance:
        """修改余额行；available 传绝对值时忽略 available_delta"""
        if available is not None:
            new_available = as_quantity(available)
        else:
            new_available = balance.available_quantity + as_quantity(available_delta)
        new_reserved = balance.reserved_quantity + as_quantity(reserved_delta)

        if new_available < 0:
            raise InsufficientStockError(
                balance.product_id,
                available=balance.available_quantity,
                requested=balance.available_quantity - new_available,
            )
        if new_available > MAX_QUANTITY or new_reserved > MAX_QUANTITY:
            raise StockValidationError(
                f"库存数量超出范围: product_id={balance.product_id}, "
                f"available={new_available}, reserved={new_reserved}"
            )
        if new_reserved < 0:
            # 预占合计与预占记录不一致，属于数据损坏
            raise TransactionFailure(
                f"预占数量不能为负: product_id={balance.product_id}, reserved={new_reserved}"
            )

        balance.available_quantity = new_available
        balance.reserved_quantity = new_reserved
        balance.last_updated = utcnow()

        if balance.location_id == settings.DEFAULT_LOCATION_ID:
            self.sync_product_stock(balance.product_id, new_available)
        return balance

    # ---------- 台账 ----------

    def append_ledger_entry(
        self,
        product_id: int,
        txn_type: TxnType,
        quantity: Number,
        balance_after: Number,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
        user_id: Optional[int] = None,
        notes: Optional[str] = None,
        unit: Optional[str] = None,
    ) -> StockLedgerEntry:
        entry = StockLedgerEntry(
            product_id=product_id,
            txn_type=txn_type,
            quantity=abs(as_quantity(quantity)),
            balance_after=as_quantity(balance_after),
            unit=unit,
            reference_type=reference_type,
            reference_id=None if reference_id is None else str(reference_id),
            user_id=user_id,
            notes=notes,
            created_at=utcnow(),
        )
        self.db.add(entry)
        return entry

    def ledger_totals(self) -> Dict[int, Decimal]:
        """按物料汇总台账：IN 加、OUT 减，其余类型不影响数量"""
        rows = self.db.execute(
            select(StockLedgerEntry.product_id, func.sum(_signed_quantity()))
            .group_by(StockLedgerEntry.product_id)
            .order_by(StockLedgerEntry.product_id)
        ).all()
        return {product_id: _ledger_sum(total) for product_id, total in rows}

    def ledger_total(self, product_id: int) -> Decimal:
        """单个物料的台账合计，须在持有该物料余额行锁时调用"""
        total = self.db.execute(
            select(func.sum(_signed_quantity())).where(
                StockLedgerEntry.product_id == product_id
            )
        ).scalar_one()
        return _ledger_sum(total)

    def ledger_product_ids(self) -> List[int]:
        """有台账记录的物料，升序"""
        return list(self.db.execute(
            select(StockLedgerEntry.product_id)
            .distinct()
            .order_by(StockLedgerEntry.product_id)
        ).scalars().all())

    def list_ledger(
        self, product_id: Optional[int] = None, limit: int = 50, offset: int = 0
    ) -> List[StockLedgerEntry]:
        stmt = select(StockLedgerEntry)
        if product_id is not None:
            stmt = stmt.where(StockLedgerEntry.product_id == product_id)
        stmt = (
            stmt.order_by(StockLedgerEntry.created_at.desc(), StockLedgerEntry.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(self.db.execute(stmt).scalars().all())
