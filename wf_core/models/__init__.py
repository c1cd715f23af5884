"""
WareFlow 数据模型包
"""
from .base import Base
from .warehouse import Warehouse, Transport
from .product import Product
from .stock_batch import StockBatch
from .shipment import Shipment, ShipmentItem
from .sale import Sale, SaleItem
from .stock_transfer import StockTransfer
from .audit_log import AuditLog

__all__ = [
    "Base",
    "Warehouse",
    "Transport",
    "Product",
    "StockBatch",
    "Shipment",
    "ShipmentItem",
    "Sale",
    "SaleItem",
    "StockTransfer",
    "AuditLog",
]
