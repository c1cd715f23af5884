"""
审计日志模型
记录台账、发运、调拨的所有修改操作
"""
from sqlalchemy import JSON, BigInteger, Column, DateTime, Index, String, Text

from .base import Base, BigIntPK, as_utc, utcnow


class AuditLog(Base):
    """
    审计日志表（只追加）

    changes 示例: {"remaining_quantity": {"old": 10, "new": 7}}
    """
    __tablename__ = "audit_logs"

    id = Column(BigIntPK, primary_key=True)

    user_id = Column(BigInteger, nullable=True, index=True, comment="用户ID")

    module = Column(String(50), nullable=False, index=True, comment="模块名（stock/shipment/transfer/sale）")
    action = Column(String(50), nullable=False, index=True, comment="操作类型（adjust/transfer/status/...）")

    table_name = Column(String(100), nullable=False, comment="表名")
    record_id = Column(String(100), nullable=False, comment="记录ID")

    changes = Column(JSON, nullable=True, comment="变更详情（字段级）")
    request_id = Column(String(100), nullable=True, comment="请求ID（trace_id）")
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("idx_audit_logs_record_lookup", "table_name", "record_id"),
        Index("idx_audit_logs_module_time", "module", "created_at"),
    )

    def to_dict(self):
        """转换为字典"""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "module": self.module,
            "action": self.action,
            "table_name": self.table_name,
            "record_id": self.record_id,
            "changes": self.changes,
            "request_id": self.request_id,
            "notes": self.notes,
            "created_at": as_utc(self.created_at).isoformat() if self.created_at else None,
        }
