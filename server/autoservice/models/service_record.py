"""Service record model."""

import uuid

from autoservice.models.base import Base, TimestampMixin, as_utc
from sqlalchemy import Column, DateTime, Index, String, Text, Uuid
from sqlalchemy.orm import relationship

# Fields a caller may overwrite through an update
MUTABLE_FIELDS = ("license_plate", "service_date", "notes")


class ServiceRecord(Base, TimestampMixin):
    """Service record model for a single vehicle service visit.

    Stores:
    - Vehicle identification (license plate, free text)
    - Service date and notes
    - Audit markers (who last changed it and why)
    - Soft-delete markers (deleted_at/deleted_by, null while active)
    """

    __tablename__ = "service_records"

    __table_args__ = (
        Index("ix_service_records_deleted_service_date", "deleted_at", "service_date"),
    )

    # Primary Identity
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Visit Details
    license_plate = Column(String(20), nullable=False, index=True)
    service_date = Column(DateTime(timezone=True), nullable=False, index=True)
    notes = Column(Text)

    # Audit Markers
    updated_by = Column(String(100))
    change_reason = Column(Text)

    # Soft Delete Markers (set and cleared together)
    deleted_at = Column(DateTime(timezone=True), index=True)
    deleted_by = Column(String(100))

    # Relationships
    services = relationship(
        "ServiceRecordService", back_populates="service_record", cascade="all, delete-orphan"
    )
    products = relationship(
        "ServiceRecordProduct", back_populates="service_record", cascade="all, delete-orphan"
    )
    images = relationship(
        "ServiceImage", back_populates="service_record", cascade="all, delete-orphan"
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def snapshot(self) -> dict:
        """JSON-safe copy of the record's fields, as stored in history rows."""
        return {
            "id": str(self.id),
            "license_plate": self.license_plate,
            "service_date": as_utc(self.service_date).isoformat() if self.service_date else None,
            "notes": self.notes,
            "created_at": as_utc(self.created_at).isoformat() if self.created_at else None,
            "updated_at": as_utc(self.updated_at).isoformat() if self.updated_at else None,
            "updated_by": self.updated_by,
            "deleted_at": as_utc(self.deleted_at).isoformat() if self.deleted_at else None,
            "deleted_by": self.deleted_by,
            "change_reason": self.change_reason,
        }

    def __repr__(self):
        return (
            f"<ServiceRecord(id={self.id}, license_plate='{self.license_plate}', "
            f"deleted={self.is_deleted})>"
        )
