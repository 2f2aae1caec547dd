from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from mfg_inventory.core.config import settings
from mfg_inventory.core.exceptions import TransactionFailure


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """事务作用域：正常退出时提交，任何异常退出（包括请求被取消）都回滚

    存储层异常统一包装为 TransactionFailure，业务异常原样抛出。
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise TransactionFailure(f"数据库事务失败: {e}") from e
    except BaseException:
        db.rollback()
        raise


engine = create_engine(
    settings.database_url,
    pool_size=10,
    max_overflow=20,
    pool_pre_ping=True,
    pool_recycle=1800,
)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
)
