from sqlalchemy import (
    Column,
    BigInteger,
    Integer,
    Numeric,
    String,
    TIMESTAMP,
    func,
    Index,
)
from sqlalchemy.orm import relationship

from mfg_inventory.db.base import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )

    sku = Column(
        String(64),
        nullable=False,
        unique=True,
        comment="物料唯一编码",
    )

    name = Column(
        String(255),
        nullable=False,
        comment="物料名称",
    )

    unit = Column(
        String(16),
        nullable=False,
        server_default="pcs",
        comment="计量单位",
    )

    # 默认库位 available_quantity 的冗余缓存，供看板/列表快速读取
    current_stock = Column(
        Numeric(12, 3),
        nullable=False,
        server_default="0",
        comment="当前库存（缓存）",
    )

    created_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False,
        onupdate=func.now(),
    )

    balances = relationship("StockBalance", back_populates="product", lazy="select")
    reservations = relationship("StockReservation", back_populates="product", lazy="select")


Index(
    "idx_products_name",
    Product.name,
)
