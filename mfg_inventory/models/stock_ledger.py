import enum

from sqlalchemy import (
    Column,
    BigInteger,
    Integer,
    Numeric,
    String,
    Text,
    TIMESTAMP,
    func,
    Enum,
    Index,
    ForeignKey,
    CheckConstraint,
)
from mfg_inventory.db.base import Base

# 1库存流水类型（数据库 ENUM）
class TxnType(str, enum.Enum):
    IN = "IN"               # 入库 / 生产产出
    OUT = "OUT"             # 出库 / 消耗
    ADJUST = "ADJUST"       # 人工调整
    RESERVED = "RESERVED"   # 预占（仅记录，不影响数量）
    RELEASED = "RELEASED"   # 释放（仅记录，不影响数量）

# 2️库存台账表（只增不改）
class StockLedgerEntry(Base):
    __tablename__ = "stock_ledger"

    id = Column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )

    product_id = Column(
        BigInteger().with_variant(Integer, "sqlite"),
        ForeignKey("products.id"),
        nullable=False,
        index=True,
        comment="物料ID",
    )

    txn_type = Column(
        Enum(
            TxnType,
            name="stock_txn_type",  # 重要！PostgreSQL ENUM 类型名
        ),
        nullable=False,
        comment="流水类型",
    )

    quantity = Column(
        Numeric(12, 3),
        nullable=False,
        comment="变更数量（绝对值，方向由流水类型决定）",
    )

    balance_after = Column(
        Numeric(12, 3),
        nullable=False,
        comment="变更后可用库存",
    )

    unit = Column(
        String(16),
        nullable=True,
        comment="计量单位",
    )

    reference_type = Column(
        String(20),
        nullable=True,
        comment="来源：MO / WO / MANUAL",
    )

    reference_id = Column(
        String(64),
        nullable=True,
        index=True,
        comment="来源单据ID（人工调整为空）",
    )

    user_id = Column(
        BigInteger,
        nullable=True,
        comment="操作人",
    )

    notes = Column(
        Text,
        nullable=True,
    )

    created_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "quantity >= 0",
            name="ck_ledger_quantity_non_negative",
        ),
    )

# 3️组合索引（高频查询优化）


Index(
    "idx_stock_ledger_product_created_desc",
    StockLedgerEntry.product_id,
    StockLedgerEntry.created_at.desc(),
)
