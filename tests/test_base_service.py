"""
事务执行与重试测试
"""
import pytest
from sqlalchemy import text
from sqlalchemy.orm.exc import StaleDataError

from wf_core.services.base import BaseService, ServiceResult
from wf_core.utils.errors import ConflictError, InternalServerError, ValidationError


class PlainService(BaseService):
    pass


class FlakyOperation:
    """前 failures 次调用抛出 StaleDataError"""

    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0

    async def __call__(self, session, value):
        self.calls += 1
        if self.calls <= self.failures:
            raise StaleDataError("row version mismatch")
        return (await session.execute(text("SELECT :v"), {"v": value})).scalar_one()


async def test_stale_data_is_retried():
    operation = FlakyOperation(failures=2)

    assert await PlainService().execute_with_transaction(operation, 11) == 11
    assert operation.calls == 3


async def test_retries_are_bounded(configure):
    configure(stock_conflict_retries=1)
    operation = FlakyOperation(failures=5)

    with pytest.raises(ConflictError) as exc:
        await PlainService().execute_with_transaction(operation, 1)

    assert exc.value.code == "CONCURRENT_MODIFICATION"
    assert operation.calls == 2


async def test_domain_errors_pass_through():
    async def operation(session):
        raise ValidationError(code="BAD_INPUT", detail="nope")

    with pytest.raises(ValidationError):
        await PlainService().execute_with_transaction(operation)


async def test_unexpected_errors_become_internal_errors():
    async def operation(session):
        raise RuntimeError("disk on fire")

    with pytest.raises(InternalServerError) as exc:
        await PlainService().execute_with_transaction(operation)

    assert exc.value.code == "TRANSACTION_FAILED"
    assert "disk on fire" in exc.value.detail


def test_validate_required_fields():
    with pytest.raises(ValidationError) as exc:
        PlainService().validate_required_fields({"a": 1, "b": None}, ["a", "b", "c"])
    assert exc.value.detail == "Missing required fields: b, c"


def test_service_result_helpers():
    ok = ServiceResult.ok({"id": 1}, metadata={"limit": 10})
    failed = ServiceResult.error("boom", error_code="X")

    assert ok.success and ok.data == {"id": 1} and ok.metadata == {"limit": 10}
    assert not failed.success and failed.error_code == "X" and failed.data is None
