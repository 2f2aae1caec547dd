import enum
import uuid

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
from sqlalchemy.orm import relationship

from mfg_inventory.db.base import Base



# 1️ 预占状态枚举（数据库 ENUM）

class ReservationStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"         # 已预占，尚未处理
    COMMITTED = "COMMITTED"   # 已提交（原料已消耗），终态
    RELEASED = "RELEASED"     # 已释放，终态



# 2️ 预占表

class StockReservation(Base):
    __tablename__ = "stock_reservations"

    id = Column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        comment="预占ID（UUID）",
    )

    product_id = Column(
        BigInteger().with_variant(Integer, "sqlite"),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="物料ID",
    )

    location_id = Column(
        Integer,
        nullable=False,
        server_default="1",
        comment="库位ID",
    )

    qty = Column(
        Numeric(12, 3),
        nullable=False,
        comment="预占数量",
    )

    unit = Column(
        String(16),
        nullable=False,
        comment="计量单位",
    )

    ref_type = Column(
        String(32),
        nullable=False,
        comment="来源单据类型：WO / MO",
    )

    ref_id = Column(
        String(64),
        nullable=False,
        index=True,
        comment="来源单据ID",
    )

    reserved_by = Column(
        BigInteger,
        nullable=True,
        comment="预占操作人",
    )

    status = Column(
        Enum(
            ReservationStatus,
            name="stock_reservation_status",
        ),
        nullable=False,
        default=ReservationStatus.ACTIVE,
        server_default=ReservationStatus.ACTIVE.value,
        comment="预占状态",
    )

    release_reason = Column(
        Text,
        nullable=True,
        comment="释放原因",
    )

    created_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    product = relationship("Product", back_populates="reservations")

    __table_args__ = (
        CheckConstraint(
            "qty > 0",
            name="ck_reservation_qty_positive",
        ),
    )



# 3️ 高频查询优化索引

Index(
    "idx_stock_reservation_product_status",
    StockReservation.product_id,
    StockReservation.status,
)

Index(
    "idx_stock_reservation_ref",
    StockReservation.ref_type,
    StockReservation.ref_id,
)
