"""事务作用域 atomic() 单元测试"""
import pytest
from unittest.mock import Mock
from sqlalchemy.exc import OperationalError

from mfg_inventory.core.exceptions import NotFoundError, TransactionFailure
from mfg_inventory.db.session import atomic


class Cancelled(BaseException):
    """模拟请求被取消"""


class TestAtomic:

    def test_commit_on_success(self):
        db = Mock()
        with atomic(db) as session:
            assert session is db

        db.commit.assert_called_once()
        db.rollback.assert_not_called()

    def test_storage_error_wrapped(self):
        db = Mock()
        error = OperationalError("UPDATE stock_balances", {}, Exception("连接断开"))

        with pytest.raises(TransactionFailure) as exc_info:
            with atomic(db):
                raise error

        assert exc_info.value.__cause__ is error
        assert exc_info.value.status_code == 500
        db.rollback.assert_called_once()
        db.commit.assert_not_called()

    def test_commit_failure_wrapped(self):
        db = Mock()
        db.commit.side_effect = OperationalError("COMMIT", {}, Exception("serialization failure"))

        with pytest.raises(TransactionFailure):
            with atomic(db):
                pass

        db.rollback.assert_called_once()

    def test_business_error_passes_through(self):
        db = Mock()

        with pytest.raises(NotFoundError):
            with atomic(db):
                raise NotFoundError("预占记录", "abc")

        db.rollback.assert_called_once()
        db.commit.assert_not_called()

    def test_other_exception_passes_through(self):
        db = Mock()

        with pytest.raises(ValueError):
            with atomic(db):
                raise ValueError("boom")

        db.rollback.assert_called_once()

    def test_cancellation_rolls_back(self):
        db = Mock()

        with pytest.raises(Cancelled):
            with atomic(db):
                raise Cancelled()

        db.rollback.assert_called_once()
        db.commit.assert_not_called()
