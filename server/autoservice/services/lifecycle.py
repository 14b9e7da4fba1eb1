"""
Service record lifecycle manager.

Shapes create/update/delete/restore/history requests for a record store and
turns the store's answers into a uniform result. The manager keeps no record
state of its own: every call re-checks against the store, and the store alone
decides whether a record is active or deleted.

Every operation returns a result instead of raising:

- ``SUCCESS``: the store accepted the change
- ``REJECTED``: the record was not in the required state (``rejection`` says why)
- ``TRANSPORT_ERROR``: the store could not be reached or answered garbage
"""

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Tuple

from autoservice.models.base import utcnow
from autoservice.models.service_record import MUTABLE_FIELDS
from autoservice.models.service_record_history import HistoryAction
from autoservice.services.record_store import (
    RecordId,
    RecordStore,
    RecordStoreError,
    prepare_updates,
)

logger = logging.getLogger(__name__)

# User-facing messages (the service center works in Thai)
MSG_CREATE_OK = "บันทึกรายการสำเร็จ"
MSG_CREATE_FAILED = "ไม่สามารถบันทึกรายการได้"
MSG_MISSING_FIELDS = "กรุณากรอกทะเบียนรถและวันที่บริการ"
MSG_INVALID_FIELDS = "ข้อมูลไม่ถูกต้อง กรุณาตรวจสอบทะเบียนรถและวันที่บริการ"
MSG_UPDATE_OK = "อัพเดทรายการสำเร็จ"
MSG_UPDATE_NOT_FOUND = "ไม่พบรายการที่ต้องการอัพเดท"
MSG_UPDATE_FAILED = "ไม่สามารถอัพเดทรายการได้"
MSG_DELETE_OK = "ลบรายการสำเร็จ"
MSG_ALREADY_DELETED = "ไม่พบรายการที่ต้องการลบ หรือรายการถูกลบไปแล้ว"
MSG_DELETE_FAILED = "ไม่สามารถลบรายการได้"
MSG_RESTORE_OK = "กู้คืนรายการสำเร็จ"
MSG_NOT_DELETED = "ไม่พบรายการที่ถูกลบ"
MSG_RESTORE_FAILED = "ไม่สามารถกู้คืนรายการได้"
MSG_HISTORY_FAILED = "ไม่สามารถโหลดประวัติการเปลี่ยนแปลงได้"
MSG_LIST_FAILED = "ไม่สามารถโหลดรายการได้"
MSG_UNEXPECTED = "เกิดข้อผิดพลาด"


class OutcomeStatus(str, enum.Enum):
    """Outcome of a lifecycle operation."""

    SUCCESS = "success"
    REJECTED = "rejected"
    TRANSPORT_ERROR = "transport_error"


class RejectionKind(str, enum.Enum):
    """Why the store (or the manager) refused an operation."""

    NOT_FOUND_OR_DELETED = "not_found_or_deleted"
    ALREADY_DELETED = "already_deleted"
    NOT_DELETED = "not_deleted"
    INVALID_INPUT = "invalid_input"


def _error_code(error: Exception) -> str:
    # Details (SQL, parameters, upstream bodies) stay in the logs
    return type(error).__name__


@dataclass(frozen=True)
class OperationResult:
    """Result of a create/update/delete/restore call."""

    status: OutcomeStatus
    message: str
    rejection: Optional[RejectionKind] = None
    error: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    @property
    def success(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    @classmethod
    def ok(cls, message: str, data: Optional[Dict[str, Any]] = None) -> "OperationResult":
        return cls(OutcomeStatus.SUCCESS, message, data=data)

    @classmethod
    def rejected(cls, kind: RejectionKind, message: str) -> "OperationResult":
        return cls(OutcomeStatus.REJECTED, message, rejection=kind)

    @classmethod
    def failed(cls, message: str, error: Exception) -> "OperationResult":
        return cls(OutcomeStatus.TRANSPORT_ERROR, message, error=_error_code(error))

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.rejection is not None:
            result["rejection"] = self.rejection.value
        if self.error is not None:
            result["error"] = self.error
        if self.data is not None:
            result["data"] = self.data
        return result


@dataclass(frozen=True)
class HistoryEntry:
    """One row of a service record's audit trail."""

    id: str
    service_record_id: Optional[str]
    action: HistoryAction
    old_data: Optional[Dict[str, Any]]
    new_data: Optional[Dict[str, Any]]
    changed_fields: Tuple[str, ...]
    changed_by: str
    changed_at: datetime
    change_reason: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryEntry":
        """Build an entry from a store row. Raises ValueError/KeyError on malformed rows."""
        changed_at = data["changed_at"]
        if isinstance(changed_at, str):
            changed_at = datetime.fromisoformat(changed_at)

        record_id = data.get("service_record_id")
        return cls(
            id=str(data["id"]),
            service_record_id=str(record_id) if record_id is not None else None,
            action=HistoryAction(data["action"]),
            old_data=data.get("old_data"),
            new_data=data.get("new_data"),
            changed_fields=tuple(data.get("changed_fields") or ()),
            changed_by=data["changed_by"],
            changed_at=changed_at,
            change_reason=data.get("change_reason"),
            metadata=data.get("metadata"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "service_record_id": self.service_record_id,
            "action": self.action.value,
            "old_data": self.old_data,
            "new_data": self.new_data,
            "changed_fields": list(self.changed_fields),
            "changed_by": self.changed_by,
            "changed_at": self.changed_at.isoformat(),
            "change_reason": self.change_reason,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class HistoryResult:
    """History for one record, newest entry first. Iterating yields entries."""

    status: OutcomeStatus
    entries: Tuple[HistoryEntry, ...] = ()
    message: str = ""
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    @classmethod
    def failed(cls, message: str, error: Exception) -> "HistoryResult":
        return cls(OutcomeStatus.TRANSPORT_ERROR, message=message, error=_error_code(error))

    @property
    def latest(self) -> Optional[HistoryEntry]:
        return self.entries[0] if self.entries else None

    def __iter__(self) -> Iterator[HistoryEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "success": self.success,
            "data": [entry.to_dict() for entry in self.entries],
        }
        if self.error is not None:
            result["message"] = self.message
            result["error"] = self.error
        return result


@dataclass(frozen=True)
class RecordListResult:
    """A listing of service records."""

    status: OutcomeStatus
    records: List[Dict[str, Any]] = field(default_factory=list)
    message: str = ""
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    @classmethod
    def failed(cls, message: str, error: Exception) -> "RecordListResult":
        return cls(OutcomeStatus.TRANSPORT_ERROR, message=message, error=_error_code(error))

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success, "data": self.records}
        if self.error is not None:
            result["message"] = self.message
            result["error"] = self.error
        return result


class ServiceRecordLifecycleManager:
    """Create, update, soft-delete, restore and audit service records."""

    def __init__(self, store: RecordStore, default_actor: str = "user"):
        self.store = store
        self.default_actor = default_actor

    def _actor(self, actor: Optional[str]) -> str:
        return actor or self.default_actor

    async def create(
        self, fields: Dict[str, Any], actor: Optional[str] = None
    ) -> OperationResult:
        """
        Insert a new service record.

        The store writes the creation history entry itself. On success the
        stored record (including its new ``id``) is returned in ``data``.
        """
        if not fields.get("license_plate") or not fields.get("service_date"):
            return OperationResult.rejected(RejectionKind.INVALID_INPUT, MSG_MISSING_FIELDS)
        try:
            fields = {**fields, **prepare_updates(fields)}
        except ValueError as e:
            logger.info(f"Create rejected, invalid fields: {e}")
            return OperationResult.rejected(RejectionKind.INVALID_INPUT, MSG_INVALID_FIELDS)

        actor = self._actor(actor)
        try:
            record = await self.store.insert_record(fields, actor)
        except RecordStoreError as e:
            logger.error(f"Error creating service record: {e}", exc_info=True)
            return OperationResult.failed(MSG_CREATE_FAILED, e)
        except Exception as e:
            logger.error(f"Unexpected error creating service record: {e}", exc_info=True)
            return OperationResult.failed(MSG_UNEXPECTED, e)

        return OperationResult.ok(MSG_CREATE_OK, data=record)

    async def update(
        self,
        record_id: RecordId,
        fields: Dict[str, Any],
        actor: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> OperationResult:
        """
        Overwrite mutable fields of an active record.

        Only license_plate, service_date and notes are forwarded; anything
        else in ``fields`` is dropped. The reason is stored as given. A record
        that is missing or deleted is rejected with ``NOT_FOUND_OR_DELETED``
        and left untouched. A blank or null plate, or a null or unparseable
        service date, is rejected with ``INVALID_INPUT`` before the store is
        called.
        """
        ignored = sorted(set(fields) - set(MUTABLE_FIELDS))
        if ignored:
            logger.warning(f"Ignoring non-editable fields for record {record_id}: {ignored}")

        try:
            updates = prepare_updates(fields)
        except ValueError as e:
            logger.info(f"Update rejected for record {record_id}, invalid fields: {e}")
            return OperationResult.rejected(RejectionKind.INVALID_INPUT, MSG_INVALID_FIELDS)

        actor = self._actor(actor)
        try:
            record = await self.store.update_active_record(
                record_id, updates, actor, reason, utcnow()
            )
        except RecordStoreError as e:
            logger.error(f"Error updating service record {record_id}: {e}", exc_info=True)
            return OperationResult.failed(MSG_UPDATE_FAILED, e)
        except Exception as e:
            logger.error(
                f"Unexpected error updating service record {record_id}: {e}", exc_info=True
            )
            return OperationResult.failed(MSG_UNEXPECTED, e)

        if record is None:
            logger.info(f"Update rejected, record {record_id} not found or deleted")
            return OperationResult.rejected(
                RejectionKind.NOT_FOUND_OR_DELETED, MSG_UPDATE_NOT_FOUND
            )

        logger.info(f"Service record {record_id} updated by {actor}. Reason: {reason}")
        return OperationResult.ok(MSG_UPDATE_OK, data=record)

    async def soft_delete(
        self,
        record_id: RecordId,
        actor: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> OperationResult:
        """
        Mark an active record deleted.

        Not idempotent: deleting a record that is already deleted is
        rejected with ``ALREADY_DELETED`` and keeps the original deletion
        markers. An empty reason is passed through unchanged.
        """
        actor = self._actor(actor)
        try:
            deleted = await self.store.soft_delete_record(record_id, actor, reason)
        except RecordStoreError as e:
            logger.error(f"Error soft deleting service record {record_id}: {e}", exc_info=True)
            return OperationResult.failed(MSG_DELETE_FAILED, e)
        except Exception as e:
            logger.error(
                f"Unexpected error soft deleting service record {record_id}: {e}", exc_info=True
            )
            return OperationResult.failed(MSG_UNEXPECTED, e)

        if not deleted:
            logger.info(f"Delete rejected, record {record_id} not found or already deleted")
            return OperationResult.rejected(RejectionKind.ALREADY_DELETED, MSG_ALREADY_DELETED)

        logger.info(f"Service record {record_id} deleted by {actor}. Reason: {reason}")
        return OperationResult.ok(MSG_DELETE_OK)

    async def restore(
        self,
        record_id: RecordId,
        actor: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> OperationResult:
        """Clear the deleted marker of a deleted record. Active records are rejected."""
        actor = self._actor(actor)
        try:
            restored = await self.store.restore_record(record_id, actor, reason)
        except RecordStoreError as e:
            logger.error(f"Error restoring service record {record_id}: {e}", exc_info=True)
            return OperationResult.failed(MSG_RESTORE_FAILED, e)
        except Exception as e:
            logger.error(
                f"Unexpected error restoring service record {record_id}: {e}", exc_info=True
            )
            return OperationResult.failed(MSG_UNEXPECTED, e)

        if not restored:
            logger.info(f"Restore rejected, record {record_id} is not deleted")
            return OperationResult.rejected(RejectionKind.NOT_DELETED, MSG_NOT_DELETED)

        logger.info(f"Service record {record_id} restored by {actor}. Reason: {reason}")
        return OperationResult.ok(MSG_RESTORE_OK)

    async def get_history(self, record_id: RecordId) -> HistoryResult:
        """
        Audit trail of a record, newest first.

        Each call re-queries the store. A record without history yields an
        empty, successful result.
        """
        try:
            rows = await self.store.get_record_history(record_id)
            entries = tuple(HistoryEntry.from_dict(row) for row in rows)
        except RecordStoreError as e:
            logger.error(f"Error fetching history for {record_id}: {e}", exc_info=True)
            return HistoryResult.failed(MSG_HISTORY_FAILED, e)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Malformed history row for {record_id}: {e}", exc_info=True)
            return HistoryResult.failed(MSG_HISTORY_FAILED, e)
        except Exception as e:
            logger.error(f"Unexpected error fetching history for {record_id}: {e}", exc_info=True)
            return HistoryResult.failed(MSG_UNEXPECTED, e)

        return HistoryResult(OutcomeStatus.SUCCESS, entries=entries)

    async def list_active(
        self,
        license_plate: Optional[str] = None,
        start_date: Optional[Any] = None,
        end_date: Optional[Any] = None,
    ) -> RecordListResult:
        """Active records matching the optional plate/date filters."""
        try:
            records = await self.store.list_active_records(license_plate, start_date, end_date)
        except Exception as e:
            logger.error(f"Error fetching active service records: {e}", exc_info=True)
            return RecordListResult.failed(MSG_LIST_FAILED, e)

        return RecordListResult(OutcomeStatus.SUCCESS, records=records)

    async def list_deleted(self, limit: int = 50) -> RecordListResult:
        """Deleted records for the admin view, most recently deleted first."""
        try:
            records = await self.store.list_deleted_records(limit)
        except Exception as e:
            logger.error(f"Error fetching deleted service records: {e}", exc_info=True)
            return RecordListResult.failed(MSG_LIST_FAILED, e)

        return RecordListResult(OutcomeStatus.SUCCESS, records=records)
