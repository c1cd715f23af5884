"""
WareFlow API 路由模块
"""
from fastapi import APIRouter

from .analytics import router as analytics_router
from .audit import router as audit_router
from .registry import router as registry_router
from .sales import router as sales_router
from .shipments import router as shipments_router
from .stock import router as stock_router
from .system import router as system_router
from .transfers import router as transfers_router

# 创建主路由器
api_router = APIRouter()

api_router.include_router(registry_router, tags=["Registry"])
api_router.include_router(stock_router, prefix="/stock", tags=["Stock Ledger"])
api_router.include_router(shipments_router, prefix="/shipments", tags=["Shipments"])
api_router.include_router(transfers_router, prefix="/transfers", tags=["Stock Transfers"])
api_router.include_router(sales_router, prefix="/sales", tags=["Sales"])
api_router.include_router(analytics_router, prefix="/analytics", tags=["Analytics"])
api_router.include_router(audit_router, prefix="/audit-logs", tags=["Audit Logs"])
api_router.include_router(system_router, prefix="/system", tags=["System"])
