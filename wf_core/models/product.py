"""
商品数据模型
"""
from decimal import Decimal
from typing import Optional

from sqlalchemy import BigInteger, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, BigIntPK, SoftDeleteMixin, TimestampMixin


class Product(SoftDeleteMixin, TimestampMixin, Base):
    """商品表"""
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    name: Mapped[str] = mapped_column(String(300), nullable=False)
    sku: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, comment="商品SKU")
    category: Mapped[Optional[str]] = mapped_column(String(100))
    description: Mapped[Optional[str]] = mapped_column(Text)
    price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"), comment="标价")

    # 冗余库存总数，与批次写入同事务更新
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment="库存总数（冗余）")

    created_by: Mapped[Optional[int]] = mapped_column(BigInteger)
