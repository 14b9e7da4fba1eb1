"""Service record endpoints.

These endpoints are a caller of the lifecycle manager. They add the caller
policy the service desk uses: an update or a delete must say why.
"""

import logging
from datetime import datetime
from typing import AsyncIterator, Optional

from autoservice.config import settings
from autoservice.services.database import get_db
from autoservice.services.lifecycle import (
    OperationResult,
    OutcomeStatus,
    RejectionKind,
    ServiceRecordLifecycleManager,
)
from autoservice.services.record_store import RecordStore, SQLRecordStore
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, field_validator

logger = logging.getLogger(__name__)

router = APIRouter()


class ServiceRecordCreate(BaseModel):
    license_plate: str
    service_date: datetime
    notes: Optional[str] = None
    actor: Optional[str] = None


class ServiceRecordUpdate(BaseModel):
    license_plate: Optional[str] = None
    service_date: Optional[datetime] = None
    notes: Optional[str] = None
    actor: Optional[str] = None
    reason: str

    @field_validator("license_plate", "service_date")
    @classmethod
    def not_null(cls, value):
        # Omit the field to keep it; the record cannot hold a null plate or date
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class RestoreRequest(BaseModel):
    actor: Optional[str] = None
    reason: Optional[str] = None


async def get_record_store(request: Request) -> AsyncIterator[RecordStore]:
    """Record store for one request: the shared REST store, or a SQL store per session."""
    rest_store = getattr(request.app.state, "rest_store", None)
    if rest_store is not None:
        yield rest_store
        return

    async for db in get_db():
        yield SQLRecordStore(db)


async def get_lifecycle_manager(
    store: RecordStore = Depends(get_record_store),
) -> ServiceRecordLifecycleManager:
    return ServiceRecordLifecycleManager(store, default_actor=settings.DEFAULT_ACTOR)


def _require_reason(reason: Optional[str]) -> str:
    if not reason or not reason.strip():
        logger.info("Rejected change request without a reason")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="A reason is required for this change",
        )
    return reason.strip()


def _respond(result: OperationResult, success_status: int = status.HTTP_200_OK) -> JSONResponse:
    """Map a lifecycle result onto an HTTP status code."""
    if result.status is OutcomeStatus.SUCCESS:
        code = success_status
    elif result.status is OutcomeStatus.TRANSPORT_ERROR:
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif result.rejection is RejectionKind.NOT_FOUND_OR_DELETED:
        code = status.HTTP_404_NOT_FOUND
    elif result.rejection is RejectionKind.INVALID_INPUT:
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    else:
        code = status.HTTP_409_CONFLICT

    return JSONResponse(status_code=code, content=result.to_dict())


@router.post("/service-records")
async def create_service_record(
    body: ServiceRecordCreate,
    manager: ServiceRecordLifecycleManager = Depends(get_lifecycle_manager),
):
    """Create a service record. The store writes the creation history entry."""
    fields = body.model_dump(exclude={"actor"})
    result = await manager.create(fields, actor=body.actor)
    return _respond(result, success_status=status.HTTP_201_CREATED)


@router.get("/service-records")
async def list_service_records(
    license_plate: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    manager: ServiceRecordLifecycleManager = Depends(get_lifecycle_manager),
):
    """Active service records, newest service date first."""
    result = await manager.list_active(license_plate, start_date, end_date)
    code = status.HTTP_200_OK if result.success else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=code, content=result.to_dict())


@router.get("/service-records/deleted")
async def list_deleted_service_records(
    limit: Optional[int] = Query(None, ge=1, le=500),
    manager: ServiceRecordLifecycleManager = Depends(get_lifecycle_manager),
):
    """Deleted service records for the admin view."""
    result = await manager.list_deleted(limit or settings.DELETED_RECORDS_LIMIT)
    code = status.HTTP_200_OK if result.success else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=code, content=result.to_dict())


@router.patch("/service-records/{record_id}")
async def update_service_record(
    record_id: str,
    body: ServiceRecordUpdate,
    manager: ServiceRecordLifecycleManager = Depends(get_lifecycle_manager),
):
    """Update an active record. Requires a reason."""
    reason = _require_reason(body.reason)
    fields = body.model_dump(exclude_unset=True, exclude={"actor", "reason"})
    result = await manager.update(record_id, fields, actor=body.actor, reason=reason)
    return _respond(result)


@router.delete("/service-records/{record_id}")
async def delete_service_record(
    record_id: str,
    reason: Optional[str] = Query(None),
    actor: Optional[str] = Query(None),
    manager: ServiceRecordLifecycleManager = Depends(get_lifecycle_manager),
):
    """Soft delete an active record. Requires a reason."""
    reason = _require_reason(reason)
    result = await manager.soft_delete(record_id, actor=actor, reason=reason)
    return _respond(result)


@router.post("/service-records/{record_id}/restore")
async def restore_service_record(
    record_id: str,
    body: Optional[RestoreRequest] = None,
    manager: ServiceRecordLifecycleManager = Depends(get_lifecycle_manager),
):
    """Restore a deleted record. The reason is optional."""
    body = body or RestoreRequest()
    result = await manager.restore(record_id, actor=body.actor, reason=body.reason)
    return _respond(result)


@router.get("/service-records/{record_id}/history")
async def get_service_record_history(
    record_id: str,
    manager: ServiceRecordLifecycleManager = Depends(get_lifecycle_manager),
):
    """Audit trail for a record, newest entry first."""
    result = await manager.get_history(record_id)
    code = status.HTTP_200_OK if result.success else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=code, content=result.to_dict())
