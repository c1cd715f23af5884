"""
仓库与运输工具数据模型
"""
from typing import Optional

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, BigIntPK, SoftDeleteMixin, TimestampMixin

WAREHOUSE_TYPES = ("main", "secondary", "cold", "frozen", "distribution")
TRANSPORT_STATUSES = ("available", "in-use", "maintenance")


class Warehouse(SoftDeleteMixin, TimestampMixin, Base):
    """仓库表"""
    __tablename__ = "warehouses"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, comment="仓库名称")
    location: Mapped[str] = mapped_column(String(500), nullable=False, comment="地址")
    description: Mapped[Optional[str]] = mapped_column(Text, comment="描述")
    capacity: Mapped[int] = mapped_column(
        Integer,
        CheckConstraint("capacity >= 0", name="ck_warehouses_capacity"),
        nullable=False,
        default=0,
        comment="容量"
    )
    type: Mapped[str] = mapped_column(
        String(20),
        CheckConstraint(
            "type IN ('main','secondary','cold','frozen','distribution')",
            name="ck_warehouses_type"
        ),
        nullable=False,
        default="main",
        comment="仓库类型"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    manager_id: Mapped[Optional[int]] = mapped_column(BigInteger, comment="负责人ID")
    created_by: Mapped[Optional[int]] = mapped_column(BigInteger)
    modified_by: Mapped[Optional[int]] = mapped_column(BigInteger)


class Transport(SoftDeleteMixin, TimestampMixin, Base):
    """运输工具表"""
    __tablename__ = "transports"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False, comment="车型")
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    location: Mapped[Optional[str]] = mapped_column(String(500))
    vehicle_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True, comment="车牌号")
    driver_name: Mapped[Optional[str]] = mapped_column(String(100))
    driver_contact: Mapped[Optional[str]] = mapped_column(String(50))
    status: Mapped[str] = mapped_column(
        String(20),
        CheckConstraint(
            "status IN ('available','in-use','maintenance')",
            name="ck_transports_status"
        ),
        nullable=False,
        default="available",
        comment="运输状态"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[Optional[int]] = mapped_column(BigInteger)

    __table_args__ = (
        Index("ix_transports_status", "status"),
    )
