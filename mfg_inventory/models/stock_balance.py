from sqlalchemy import (
    Column,
    BigInteger,
    Integer,
    Numeric,
    ForeignKey,
    CheckConstraint,
    TIMESTAMP,
    func,
)
from sqlalchemy.orm import relationship

from mfg_inventory.db.base import Base


class StockBalance(Base):
    """每个物料 × 库位一行的库存余额"""

    __tablename__ = "stock_balances"

    product_id = Column(
        BigInteger().with_variant(Integer, "sqlite"),
        ForeignKey("products.id", ondelete="CASCADE"),
        primary_key=True,
        comment="物料ID",
    )

    location_id = Column(
        Integer,
        primary_key=True,
        server_default="1",
        comment="库位ID",
    )

    available_quantity = Column(
        Numeric(12, 3),
        nullable=False,
        server_default="0",
        comment="未被预占的在库数量",
    )

    reserved_quantity = Column(
        Numeric(12, 3),
        nullable=False,
        server_default="0",
        comment="有效预占数量合计",
    )

    last_updated = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    product = relationship("Product", back_populates="balances")

    __table_args__ = (
        CheckConstraint(
            "available_quantity >= 0",
            name="ck_available_quantity_non_negative",
        ),
        CheckConstraint(
            "reserved_quantity >= 0",
            name="ck_reserved_quantity_non_negative",
        ),
    )

    @property
    def free_quantity(self):
        """可继续预占的数量"""
        return self.available_quantity - self.reserved_quantity
