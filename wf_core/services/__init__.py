"""
WareFlow 核心服务模块
"""
from .base import BaseService, ServiceResult
from .stock_ledger import StockLedgerService
from .shipments import ShipmentService
from .analytics import AnalyticsService
from .sales import SalesService
from .transfers import StockTransferService
from .registry import RegistryService
from .audit_service import AuditService

__all__ = [
    "BaseService",
    "ServiceResult",
    "StockLedgerService",
    "ShipmentService",
    "AnalyticsService",
    "SalesService",
    "StockTransferService",
    "RegistryService",
    "AuditService",
]
