"""Service record history model."""

import enum

from autoservice.models.base import Base, as_utc, utcnow
from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String, Text, Uuid

# Marker in changed_fields meaning every field changed
ALL_FIELDS = "*"


class HistoryAction(str, enum.Enum):
    """Lifecycle action recorded in the history log.

    Values are the action codes the record store writes.
    """

    CREATED = "INSERT"
    UPDATED = "UPDATE"
    DELETED = "DELETE"
    RESTORED = "RESTORE"


class ServiceRecordHistory(Base):
    """Append-only history row, one per lifecycle-affecting action.

    Rows are written by the record store in the same transaction as the
    change they describe and are never updated or deleted afterwards.
    """

    __tablename__ = "service_record_history"

    __table_args__ = (
        Index("ix_service_record_history_record_changed", "service_record_id", "changed_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    service_record_id = Column(
        Uuid, ForeignKey("service_records.id", ondelete="CASCADE"), nullable=False, index=True
    )

    action = Column(String(10), nullable=False)
    old_data = Column(JSON)  # null for creation
    new_data = Column(JSON)  # null for deletion
    changed_fields = Column(JSON, nullable=False, default=list)

    changed_by = Column(String(100), nullable=False)
    changed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    change_reason = Column(Text)

    # "metadata" is reserved on declarative classes
    metadata_ = Column("metadata", JSON)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "service_record_id": str(self.service_record_id),
            "action": self.action,
            "old_data": self.old_data,
            "new_data": self.new_data,
            "changed_fields": list(self.changed_fields or []),
            "changed_by": self.changed_by,
            "changed_at": as_utc(self.changed_at).isoformat() if self.changed_at else None,
            "change_reason": self.change_reason,
            "metadata": self.metadata_,
        }

    def __repr__(self):
        return (
            f"<ServiceRecordHistory(id={self.id}, record={self.service_record_id}, "
            f"action='{self.action}')>"
        )
