"""测试配置和 fixtures"""
from decimal import Decimal

import pytest
from unittest.mock import Mock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from redis import Redis
from redlock import Redlock

from mfg_inventory.db.base import Base
from mfg_inventory.models import Product, StockBalance, StockLedgerEntry, TxnType


@pytest.fixture
def db_session():
    """内存 SQLite 数据库会话（SQLite 会忽略 FOR UPDATE，其余语义一致）"""
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    db = SessionLocal()
    
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def mock_redis():
    """创建模拟 Redis 客户端"""
    redis_mock = Mock(spec=Redis)
    redis_mock.get.return_value = None
    redis_mock.setex.return_value = True
    redis_mock.mget.side_effect = lambda keys: [None] * len(keys)
    redis_mock.pipeline.return_value = Mock()
    return redis_mock


@pytest.fixture
def mock_redlock():
    """创建模拟 Redlock 分布式锁"""
    redlock_mock = Mock(spec=Redlock)
    lock_mock = Mock()
    redlock_mock.lock.return_value = lock_mock
    redlock_mock.unlock.return_value = True
    return redlock_mock


def seed_products(db):
    """写入示例数据

    - 原料 RM-001（id=1）：期初入库 100，台账有对应 IN 记录
    - 成品 FG-001（id=2）：无余额行，无库存
    - 原料 RM-002（id=3）：没有余额行
    """
    raw = Product(sku="RM-001", name="钢板", unit="kg", current_stock=Decimal("100"))
    finished = Product(sku="FG-001", name="机柜", unit="pcs", current_stock=Decimal("0"))
    no_balance = Product(sku="RM-002", name="螺栓", unit="pcs", current_stock=Decimal("0"))
    db.add_all([raw, finished, no_balance])
    db.flush()

    db.add(StockBalance(
        product_id=raw.id,
        location_id=1,
        available_quantity=Decimal("100"),
        reserved_quantity=Decimal("0"),
    ))
    db.add(StockLedgerEntry(
        product_id=raw.id,
        txn_type=TxnType.IN,
        quantity=Decimal("100"),
        balance_after=Decimal("100"),
        reference_type="OPENING",
        notes="期初库存",
    ))
    db.commit()
    return {"raw": raw.id, "finished": finished.id, "no_balance": no_balance.id}


@pytest.fixture
def seeded(db_session):
    """示例数据，见 seed_products"""
    return seed_products(db_session)


@pytest.fixture
def seed_data():
    """返回 seed_products，供自建会话的测试使用"""
    return seed_products
