"""
库存批次数据模型
一个批次 = 某商品在某仓库的一次到货
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    BigInteger, Boolean, CheckConstraint, DateTime, ForeignKey,
    Index, Integer, Numeric, String, Text
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, BigIntPK, utcnow

QUALITY_GRADES = ("A", "B", "C")


class StockBatch(Base):
    """库存批次表"""
    __tablename__ = "stock_batches"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    product_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("products.id"), nullable=False, comment="商品ID"
    )
    warehouse_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("warehouses.id"), nullable=False, comment="仓库ID"
    )
    batch_number: Mapped[str] = mapped_column(String(50), nullable=False, comment="批次号")

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, comment="入库数量")
    remaining_quantity: Mapped[int] = mapped_column(Integer, nullable=False, comment="剩余数量")

    unit_cost: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    original_unit_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 2), comment="原始采购单价")
    shipping_cost_per_unit: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, default=Decimal("0"), comment="单位分摊运费"
    )
    selling_price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))

    expiry_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), comment="过期日期")
    quality_grade: Mapped[str] = mapped_column(String(1), nullable=False, default="A")
    notes: Mapped[Optional[str]] = mapped_column(Text)

    is_depleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    depleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_by: Mapped[Optional[int]] = mapped_column(BigInteger)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, comment="入库时间（FIFO 排序依据）"
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    # 乐观锁版本号
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_stock_batches_quantity"),
        CheckConstraint("remaining_quantity >= 0", name="ck_stock_batches_remaining_nonneg"),
        CheckConstraint("remaining_quantity <= quantity", name="ck_stock_batches_remaining_le_qty"),
        CheckConstraint("quality_grade IN ('A','B','C')", name="ck_stock_batches_grade"),
        Index("ix_stock_batches_fifo", "warehouse_id", "product_id", "is_depleted", "created_at"),
        Index("ix_stock_batches_expiry", "expiry_date"),
    )

    product = relationship("Product", lazy="raise")
    warehouse = relationship("Warehouse", lazy="raise")

    def consume(self, quantity: int) -> int:
        """从本批次扣减，返回实际扣减数量"""
        taken = min(quantity, self.remaining_quantity)
        self.remaining_quantity -= taken
        if self.remaining_quantity == 0:
            self.is_depleted = True
            self.depleted_at = utcnow()
        return taken
