"""
Pytest 配置和 fixtures
"""
import os
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

# 必须在导入 wf_core 之前设置，wf_core.app 导入时即读取配置
os.environ.setdefault("WF__DB_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("WF__EVENTS_ENABLED", "false")
os.environ.setdefault("WF__SECRET_KEY", "test-secret-key")
os.environ.setdefault("WF__LOG_LEVEL", "WARNING")

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from wf_core.config import get_settings  # noqa: E402
from wf_core.database import get_db_manager, reset_db_manager  # noqa: E402
from wf_core.event_bus import reset_event_bus  # noqa: E402
from wf_core.services import RegistryService, StockLedgerService  # noqa: E402
from wf_core.services.auth_service import get_auth_service, reset_auth_service  # noqa: E402

API = "/api/wf/v1"
USER_ID = 7


def _reset_singletons() -> None:
    get_settings.cache_clear()
    reset_db_manager()
    reset_event_bus()
    reset_auth_service()


@pytest_asyncio.fixture(autouse=True)
async def db_manager(tmp_path, monkeypatch):
    """每个测试使用独立的 SQLite 数据库文件"""
    monkeypatch.setenv("WF__DB_URL", f"sqlite+aiosqlite:///{tmp_path / 'wareflow.db'}")
    monkeypatch.setenv("WF__EVENTS_ENABLED", "false")
    _reset_singletons()

    manager = get_db_manager()
    await manager.create_tables()

    yield manager

    await manager.close()
    _reset_singletons()


@pytest.fixture
def configure(monkeypatch):
    """覆盖配置项，返回新的 Settings；之后创建的服务读取新配置"""
    def _configure(**values):
        for key, value in values.items():
            if isinstance(value, bool):
                value = "true" if value else "false"
            monkeypatch.setenv(f"WF__{key.upper()}", str(value))
        get_settings.cache_clear()
        return get_settings()

    return _configure


@pytest.fixture
def fetch(db_manager):
    """每次用新会话读取记录，避免身份映射缓存"""
    async def _fetch(model, record_id):
        async with db_manager.get_session() as session:
            return await session.get(model, record_id)

    return _fetch


@pytest.fixture
def fetch_all(db_manager):
    async def _fetch_all(stmt):
        async with db_manager.get_session() as session:
            return list((await session.execute(stmt)).scalars().all())

    return _fetch_all


@pytest_asyncio.fixture
async def seed(db_manager):
    """两个仓库、两个商品、一辆运输车"""
    registry = RegistryService()
    main = (await registry.create_warehouse(1, {"name": "Main", "location": "Dock 1"})).data
    north = (await registry.create_warehouse(1, {"name": "North", "location": "Dock 7", "type": "cold"})).data
    apples = (await registry.create_product(1, {"name": "Apples", "sku": "APL-1", "category": "fruit"})).data
    pears = (await registry.create_product(1, {"name": "Pears", "sku": "PER-1", "category": "fruit"})).data
    truck = (await registry.create_transport(1, {
        "name": "Truck 1", "type": "truck", "capacity": 1000, "vehicle_number": "ab-123"
    })).data
    return SimpleNamespace(
        main=main["id"],
        north=north["id"],
        apples=apples["id"],
        pears=pears["id"],
        truck=truck["id"],
    )


@pytest.fixture
def days_ago():
    def _days_ago(days: float) -> datetime:
        return datetime.now(timezone.utc) - timedelta(days=days)

    return _days_ago


@pytest.fixture
def receive():
    """入库一个批次并返回批次字典"""
    async def _receive(warehouse_id, product_id, quantity, unit_cost="2.00", selling_price="3.00", **extra):
        item = {
            "product_id": product_id,
            "quantity": quantity,
            "unit_cost": unit_cost,
            "selling_price": selling_price,
            **extra,
        }
        result = await StockLedgerService().receive_stock(1, warehouse_id, [item])
        assert result.success
        return result.data["batches"][0]

    return _receive


@pytest.fixture
def auth_headers():
    token = get_auth_service().create_access_token(USER_ID)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def client(db_manager):
    """ASGI 测试客户端（不触发 lifespan，不连接 Redis）"""
    from wf_core.app import create_app

    app = create_app()
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c
