"""
调拨申请数据模型
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, BigInteger, CheckConstraint, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, BigIntPK, TimestampMixin, utcnow

TRANSFER_STATUSES = ("pending", "in-transit", "completed", "cancelled")


class StockTransfer(TimestampMixin, Base):
    """调拨申请表"""
    __tablename__ = "stock_transfers"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    transfer_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    from_warehouse_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("warehouses.id"), nullable=False)
    to_warehouse_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("warehouses.id"), nullable=False)

    # [{product_id, quantity, unit_cost}]
    items: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    status: Mapped[str] = mapped_column(
        String(20),
        CheckConstraint(
            "status IN ('pending','in-transit','completed','cancelled')",
            name="ck_stock_transfers_status"
        ),
        nullable=False,
        default="pending"
    )

    requested_by: Mapped[int] = mapped_column(BigInteger, nullable=False)
    approved_by: Mapped[Optional[int]] = mapped_column(BigInteger)
    shipment_id: Mapped[Optional[int]] = mapped_column(BigInteger, ForeignKey("shipments.id"))

    transfer_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    completed_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        Index("ix_stock_transfers_status", "status"),
        Index("ix_stock_transfers_warehouses", "from_warehouse_id", "to_warehouse_id"),
    )
