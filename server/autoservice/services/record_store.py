"""
Record store for service records.

The store owns durability and the active/deleted state machine. Each mutating
call checks the record's state, applies the change and appends the matching
history row in a single transaction. Callers only learn whether the call
matched a record in the required state (``None``/``False`` when it did not).
"""

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional, Union

from autoservice.models.base import utcnow
from autoservice.models.catalog import ServiceRecordProduct, ServiceRecordService
from autoservice.models.service_record import MUTABLE_FIELDS, ServiceRecord
from autoservice.models.service_record_history import (
    ALL_FIELDS,
    HistoryAction,
    ServiceRecordHistory,
)
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = logging.getLogger(__name__)

RecordId = Union[str, uuid.UUID]


class RecordStoreError(Exception):
    """The store could not be reached or answered with something unusable."""


class RecordStore(ABC):
    """Operations the lifecycle manager needs from a record store."""

    @abstractmethod
    async def insert_record(self, fields: Dict[str, Any], actor: str) -> Dict[str, Any]:
        """Insert a record; the store appends the creation history entry."""

    @abstractmethod
    async def update_active_record(
        self,
        record_id: RecordId,
        fields: Dict[str, Any],
        actor: str,
        reason: Optional[str],
        updated_at: datetime,
    ) -> Optional[Dict[str, Any]]:
        """Update a record only if it is active. Returns None if no active row matched."""

    @abstractmethod
    async def soft_delete_record(
        self, record_id: RecordId, actor: str, reason: Optional[str] = None
    ) -> bool:
        """Mark an active record deleted. False if no active record matched."""

    @abstractmethod
    async def restore_record(
        self, record_id: RecordId, actor: str, reason: Optional[str] = None
    ) -> bool:
        """Clear the deleted marker. False if no deleted record matched."""

    @abstractmethod
    async def get_record_history(self, record_id: RecordId) -> List[Dict[str, Any]]:
        """History entries for a record, newest first."""

    @abstractmethod
    async def list_active_records(
        self,
        license_plate: Optional[str] = None,
        start_date: Optional[Union[date, datetime, str]] = None,
        end_date: Optional[Union[date, datetime, str]] = None,
    ) -> List[Dict[str, Any]]:
        """Active records with their line items, newest service date first."""

    @abstractmethod
    async def list_deleted_records(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Deleted records, most recently deleted first."""


def coerce_datetime(value: Union[date, datetime, str]) -> datetime:
    """Accept a date, datetime or ISO string and return an aware datetime."""
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, date):
        result = datetime.combine(value, time.min)
    elif isinstance(value, str):
        result = datetime.fromisoformat(value)
    else:
        raise ValueError(f"Unsupported date value: {value!r}")

    if result.tzinfo is None:
        result = result.replace(tzinfo=timezone.utc)
    return result


def parse_record_id(record_id: RecordId) -> Optional[uuid.UUID]:
    """Record ids are UUIDs; anything else cannot match a record."""
    if isinstance(record_id, uuid.UUID):
        return record_id
    try:
        return uuid.UUID(str(record_id))
    except ValueError:
        return None


def prepare_updates(fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Coerce update values before any of them touch a record.

    Raises ValueError for a blank or missing plate, or an unparseable or
    missing service date.
    """
    updates = {}
    for name in MUTABLE_FIELDS:
        if name not in fields:
            continue
        value = fields[name]
        if name == "license_plate":
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"Invalid license plate: {value!r}")
        elif name == "service_date":
            value = coerce_datetime(value)
        updates[name] = value
    return updates


def _record_with_items(record: ServiceRecord) -> Dict[str, Any]:
    data = record.snapshot()
    data["services"] = [
        {"service_type": {"id": s.service_type.id, "name": s.service_type.name}}
        for s in record.services
    ]
    data["products"] = [
        {
            "quantity": p.quantity,
            "price_at_time": float(p.price_at_time),
            "product": {"id": p.product.id, "name": p.product.name},
        }
        for p in record.products
    ]
    data["images"] = [
        {
            "id": img.id,
            "image_url": img.image_url,
            "image_date": img.image_date.isoformat() if img.image_date else None,
        }
        for img in record.images
    ]
    return data


class SQLRecordStore(RecordStore):
    """Record store backed by a SQLAlchemy async session.

    Row state is always re-read from the database (``populate_existing``) and
    locked for the rest of the transaction, so two callers racing on the same
    record see at most one of their conflicting changes succeed.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load(self, record_id: uuid.UUID, deleted: bool) -> Optional[ServiceRecord]:
        stmt = select(ServiceRecord).where(ServiceRecord.id == record_id)
        if deleted:
            stmt = stmt.where(ServiceRecord.deleted_at.is_not(None))
        else:
            stmt = stmt.where(ServiceRecord.deleted_at.is_(None))
        stmt = stmt.with_for_update().execution_options(populate_existing=True)

        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    def _append_history(
        self,
        record: ServiceRecord,
        action: HistoryAction,
        actor: str,
        old_data: Optional[Dict[str, Any]],
        new_data: Optional[Dict[str, Any]],
        changed_fields: List[str],
        reason: Optional[str],
        changed_at: datetime,
    ) -> None:
        self.db.add(
            ServiceRecordHistory(
                service_record_id=record.id,
                action=action.value,
                old_data=old_data,
                new_data=new_data,
                changed_fields=changed_fields,
                changed_by=actor,
                changed_at=changed_at,
                change_reason=reason,
            )
        )

    async def insert_record(self, fields: Dict[str, Any], actor: str) -> Dict[str, Any]:
        now = utcnow()
        service_date = coerce_datetime(fields["service_date"])
        try:
            record = ServiceRecord(
                license_plate=fields["license_plate"],
                service_date=service_date,
                notes=fields.get("notes"),
                updated_by=actor,
                created_at=now,
                updated_at=now,
            )
            self.db.add(record)
            await self.db.flush()

            snapshot = record.snapshot()
            self._append_history(
                record, HistoryAction.CREATED, actor, None, snapshot, [ALL_FIELDS], None, now
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise RecordStoreError(f"Failed to insert service record: {e}") from e
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Service record {record.id} created by {actor}")
        return snapshot

    async def update_active_record(
        self,
        record_id: RecordId,
        fields: Dict[str, Any],
        actor: str,
        reason: Optional[str],
        updated_at: datetime,
    ) -> Optional[Dict[str, Any]]:
        parsed_id = parse_record_id(record_id)
        if parsed_id is None:
            return None
        updates = prepare_updates(fields)

        try:
            record = await self._load(parsed_id, deleted=False)
            if record is None:
                await self.db.rollback()
                return None

            old_data = record.snapshot()
            for name, value in updates.items():
                setattr(record, name, value)

            record.updated_at = updated_at
            record.updated_by = actor
            if reason:
                record.change_reason = reason

            new_data = record.snapshot()
            changed_fields = [name for name in MUTABLE_FIELDS if old_data[name] != new_data[name]]
            self._append_history(
                record,
                HistoryAction.UPDATED,
                actor,
                old_data,
                new_data,
                changed_fields,
                reason or None,
                updated_at,
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise RecordStoreError(f"Failed to update service record {record_id}: {e}") from e
        except Exception:
            await self.db.rollback()
            raise

        return new_data

    async def soft_delete_record(
        self, record_id: RecordId, actor: str, reason: Optional[str] = None
    ) -> bool:
        parsed_id = parse_record_id(record_id)
        if parsed_id is None:
            return False

        now = utcnow()
        try:
            record = await self._load(parsed_id, deleted=False)
            if record is None:
                await self.db.rollback()
                return False

            old_data = record.snapshot()
            record.deleted_at = now
            record.deleted_by = actor
            record.change_reason = reason or None
            self._append_history(
                record,
                HistoryAction.DELETED,
                actor,
                old_data,
                None,
                ["deleted_at"],
                reason or None,
                now,
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise RecordStoreError(f"Failed to delete service record {record_id}: {e}") from e
        except Exception:
            await self.db.rollback()
            raise

        return True

    async def restore_record(
        self, record_id: RecordId, actor: str, reason: Optional[str] = None
    ) -> bool:
        parsed_id = parse_record_id(record_id)
        if parsed_id is None:
            return False

        now = utcnow()
        try:
            record = await self._load(parsed_id, deleted=True)
            if record is None:
                await self.db.rollback()
                return False

            old_data = record.snapshot()
            record.deleted_at = None
            record.deleted_by = None
            record.updated_at = now
            record.updated_by = actor
            record.change_reason = reason or None
            self._append_history(
                record,
                HistoryAction.RESTORED,
                actor,
                old_data,
                record.snapshot(),
                ["deleted_at"],
                reason or None,
                now,
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise RecordStoreError(f"Failed to restore service record {record_id}: {e}") from e
        except Exception:
            await self.db.rollback()
            raise

        return True

    async def get_record_history(self, record_id: RecordId) -> List[Dict[str, Any]]:
        parsed_id = parse_record_id(record_id)
        if parsed_id is None:
            return []

        stmt = (
            select(ServiceRecordHistory)
            .where(ServiceRecordHistory.service_record_id == parsed_id)
            .order_by(ServiceRecordHistory.changed_at.desc(), ServiceRecordHistory.id.desc())
        )
        try:
            result = await self.db.execute(stmt)
            return [entry.to_dict() for entry in result.scalars().all()]
        except SQLAlchemyError as e:
            raise RecordStoreError(f"Failed to load history for {record_id}: {e}") from e

    def _with_items(self, stmt):
        return stmt.options(
            selectinload(ServiceRecord.services).selectinload(ServiceRecordService.service_type),
            selectinload(ServiceRecord.products).selectinload(ServiceRecordProduct.product),
            selectinload(ServiceRecord.images),
        ).execution_options(populate_existing=True)

    async def list_active_records(
        self,
        license_plate: Optional[str] = None,
        start_date: Optional[Union[date, datetime, str]] = None,
        end_date: Optional[Union[date, datetime, str]] = None,
    ) -> List[Dict[str, Any]]:
        stmt = self._with_items(select(ServiceRecord)).where(ServiceRecord.deleted_at.is_(None))

        if license_plate:
            stmt = stmt.where(ServiceRecord.license_plate.ilike(f"%{license_plate}%"))
        if start_date:
            stmt = stmt.where(ServiceRecord.service_date >= coerce_datetime(start_date))
        if end_date:
            stmt = stmt.where(ServiceRecord.service_date <= coerce_datetime(end_date))

        stmt = stmt.order_by(ServiceRecord.service_date.desc())

        try:
            result = await self.db.execute(stmt)
            return [_record_with_items(record) for record in result.scalars().all()]
        except SQLAlchemyError as e:
            raise RecordStoreError(f"Failed to list active service records: {e}") from e

    async def list_deleted_records(self, limit: int = 50) -> List[Dict[str, Any]]:
        stmt = (
            self._with_items(select(ServiceRecord))
            .where(ServiceRecord.deleted_at.is_not(None))
            .order_by(ServiceRecord.deleted_at.desc())
            .limit(limit)
        )
        try:
            result = await self.db.execute(stmt)
            return [_record_with_items(record) for record in result.scalars().all()]
        except SQLAlchemyError as e:
            raise RecordStoreError(f"Failed to list deleted service records: {e}") from e
