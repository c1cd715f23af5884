"""
销售数据模型
周转率分析的数据来源
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, BigIntPK, TimestampMixin, utcnow


class Sale(TimestampMixin, Base):
    """销售单"""
    __tablename__ = "sales"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    warehouse_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("warehouses.id"), nullable=False)
    sale_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    payment_method: Mapped[str] = mapped_column(
        String(10),
        CheckConstraint("payment_method IN ('cash','card','mobile')", name="ck_sales_payment_method"),
        nullable=False,
        default="cash"
    )

    total_revenue: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    total_cost: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    profit: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))

    created_by: Mapped[Optional[int]] = mapped_column(BigInteger)

    __table_args__ = (
        Index("ix_sales_warehouse_date", "warehouse_id", "sale_date"),
    )

    items: Mapped[List["SaleItem"]] = relationship(
        "SaleItem",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
        lazy="selectin",
    )

    def to_dict(self):
        data = super().to_dict()
        data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(Base):
    """销售明细，成本按 FIFO 批次计算"""
    __tablename__ = "sale_items"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    sale_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("sales.id", ondelete="CASCADE"), nullable=False)
    product_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("products.id"), nullable=False)

    quantity: Mapped[int] = mapped_column(
        Integer, CheckConstraint("quantity > 0", name="ck_sale_items_quantity"), nullable=False
    )
    unit_price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    cost_of_goods: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)

    __table_args__ = (
        Index("ix_sale_items_product", "product_id"),
    )

    sale: Mapped["Sale"] = relationship("Sale", back_populates="items")
