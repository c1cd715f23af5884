"""
发运数据模型
一次发运 = 两个仓库之间的一次运输
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON, BigInteger, Boolean, CheckConstraint, DateTime, ForeignKey,
    Index, Integer, Numeric, String, Text
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, BigIntPK, SoftDeleteMixin, TimestampMixin

SHIPMENT_STATUSES = ("pending", "in-transit", "delivered", "cancelled", "delayed", "damaged")
SHIPMENT_PRIORITIES = ("low", "medium", "high", "urgent")
ITEM_CONDITIONS = ("excellent", "good", "damaged")


class Shipment(SoftDeleteMixin, TimestampMixin, Base):
    """发运表"""
    __tablename__ = "shipments"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    shipment_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True, comment="发运单号")
    tracking_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True, comment="运单号")

    origin_warehouse_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("warehouses.id"), nullable=False, comment="起始仓库"
    )
    destination_warehouse_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("warehouses.id"), nullable=False, comment="目的仓库"
    )
    transport_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("transports.id"), nullable=False, comment="运输工具"
    )

    status: Mapped[str] = mapped_column(
        String(20),
        CheckConstraint(
            "status IN ('pending','in-transit','delivered','cancelled','delayed','damaged')",
            name="ck_shipments_status"
        ),
        nullable=False,
        default="pending"
    )
    priority: Mapped[str] = mapped_column(
        String(10),
        CheckConstraint("priority IN ('low','medium','high','urgent')", name="ck_shipments_priority"),
        nullable=False,
        default="medium"
    )

    # 时间节点
    scheduled_pickup_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    actual_pickup_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    estimated_delivery_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    actual_delivery_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    total_value: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    total_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # 位置追踪，历史只追加
    current_location: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)
    location_history: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    # 温控
    temperature_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    min_temperature: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 1))
    max_temperature: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 1))
    current_temperature: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 1))

    # 保险
    insured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    insurance_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 2))

    # 质检：{performed, performed_by, performed_at, results, issues, approved}
    quality_check: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)

    delivery_notes: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[int]] = mapped_column(BigInteger)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_shipments_status_pickup", "status", "scheduled_pickup_date"),
        Index("ix_shipments_transport", "transport_id"),
    )

    items: Mapped[List["ShipmentItem"]] = relationship(
        "ShipmentItem",
        back_populates="shipment",
        cascade="all, delete-orphan",
        order_by="ShipmentItem.id",
        lazy="selectin",
    )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["items"] = [item.to_dict() for item in self.items]
        return data


class ShipmentItem(Base):
    """发运明细"""
    __tablename__ = "shipment_items"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    shipment_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("products.id"), nullable=False)

    quantity: Mapped[int] = mapped_column(
        Integer, CheckConstraint("quantity > 0", name="ck_shipment_items_quantity"), nullable=False
    )
    unit_price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    total_value: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    condition: Mapped[str] = mapped_column(
        String(20),
        CheckConstraint("condition IN ('excellent','good','damaged')", name="ck_shipment_items_condition"),
        nullable=False,
        default="good"
    )
    batch_number: Mapped[Optional[str]] = mapped_column(String(50))
    expiry_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    notes: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        Index("ix_shipment_items_shipment", "shipment_id"),
    )

    shipment: Mapped["Shipment"] = relationship("Shipment", back_populates="items")
