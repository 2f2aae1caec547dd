from .base import Base
from .session import engine, atomic
# db/init_db.py


def init_db():
    from mfg_inventory import models  # noqa: F401  注册所有模型

    Base.metadata.create_all(bind=engine)
# Export for convenience
__all__ = ["Base", "engine", "atomic", "init_db"]
