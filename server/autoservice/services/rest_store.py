"""
Record store backed by the hosted database's REST interface.

The hosted database exposes tables at ``/rest/v1/<table>`` and stored
procedures at ``/rest/v1/rpc/<name>``. Soft delete, restore and history are
procedures living in the database; updates are a filtered PATCH that only
matches rows whose ``deleted_at`` is null.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple, Union

import httpx
from autoservice.services.record_store import (
    RecordId,
    RecordStore,
    RecordStoreError,
    parse_record_id,
    prepare_updates,
)

logger = logging.getLogger(__name__)

RECORDS_PATH = "/rest/v1/service_records"
RPC_PATH = "/rest/v1/rpc"

# Embedded line items returned with record listings
ACTIVE_RECORD_SELECT = (
    "*,"
    "services:service_record_services(service_type:service_types(id,name)),"
    "products:service_record_products(quantity,price_at_time,product:products(id,name)),"
    "images:service_images(id,image_url,image_date)"
)
DELETED_RECORD_SELECT = (
    "*,"
    "services:service_record_services(service_type:service_types(id,name)),"
    "products:service_record_products(quantity,price_at_time,product:products(id,name))"
)


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class RestRecordStore(RecordStore):
    """Record store that talks to the hosted database over HTTP."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            base_url: Project URL of the hosted database
            api_key: API key sent as both ``apikey`` and bearer token
            timeout: Request timeout in seconds
            client: Pre-built client (tests pass one with a mock transport)
        """
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout)
        self.headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
        }

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Union[Dict[str, str], List[Tuple[str, str]]]] = None,
        json: Optional[Dict[str, Any]] = None,
        prefer: Optional[str] = None,
    ) -> Any:
        headers = dict(self.headers)
        if prefer:
            headers["Prefer"] = prefer

        try:
            response = await self.client.request(
                method, path, params=params, json=json, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RecordStoreError(
                f"{method} {path} failed with status {e.response.status_code}: {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise RecordStoreError(f"{method} {path} failed: {e}") from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RecordStoreError(f"{method} {path} returned malformed JSON") from e

    async def _rpc(self, name: str, payload: Dict[str, Any]) -> Any:
        return await self._request("POST", f"{RPC_PATH}/{name}", json=payload)

    async def _rpc_bool(self, name: str, payload: Dict[str, Any]) -> bool:
        data = await self._rpc(name, payload)
        if data is None:
            return False
        if not isinstance(data, bool):
            raise RecordStoreError(f"{name} returned {type(data).__name__}, expected boolean")
        return data

    async def insert_record(self, fields: Dict[str, Any], actor: str) -> Dict[str, Any]:
        body = {
            "license_plate": fields["license_plate"],
            "service_date": _jsonable(fields["service_date"]),
            "notes": fields.get("notes"),
            "updated_by": actor,
        }
        rows = await self._request(
            "POST", RECORDS_PATH, json=body, prefer="return=representation"
        )
        if not isinstance(rows, list) or not rows:
            raise RecordStoreError("Insert returned no row")
        return rows[0]

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

        body = {name: _jsonable(value) for name, value in prepare_updates(fields).items()}
        body["updated_by"] = actor
        body["updated_at"] = updated_at.isoformat()
        if reason:
            body["change_reason"] = reason

        rows = await self._request(
            "PATCH",
            RECORDS_PATH,
            params={"id": f"eq.{parsed_id}", "deleted_at": "is.null"},
            json=body,
            prefer="return=representation",
        )
        if rows is None:
            return None
        if not isinstance(rows, list):
            raise RecordStoreError("Update returned an unexpected body")
        return rows[0] if rows else None

    async def soft_delete_record(
        self, record_id: RecordId, actor: str, reason: Optional[str] = None
    ) -> bool:
        parsed_id = parse_record_id(record_id)
        if parsed_id is None:
            return False

        payload = {"p_record_id": str(parsed_id), "p_deleted_by": actor}
        if reason:
            payload["p_reason"] = reason
        return await self._rpc_bool("soft_delete_service_record", payload)

    async def restore_record(
        self, record_id: RecordId, actor: str, reason: Optional[str] = None
    ) -> bool:
        parsed_id = parse_record_id(record_id)
        if parsed_id is None:
            return False

        payload = {"p_record_id": str(parsed_id), "p_restored_by": actor}
        if reason:
            payload["p_reason"] = reason
        return await self._rpc_bool("restore_service_record", payload)

    async def get_record_history(self, record_id: RecordId) -> List[Dict[str, Any]]:
        parsed_id = parse_record_id(record_id)
        if parsed_id is None:
            return []

        data = await self._rpc("get_service_record_history", {"p_record_id": str(parsed_id)})
        if data is None:
            return []
        if not isinstance(data, list):
            raise RecordStoreError("get_service_record_history returned an unexpected body")
        return data

    async def list_active_records(
        self,
        license_plate: Optional[str] = None,
        start_date: Optional[Union[date, datetime, str]] = None,
        end_date: Optional[Union[date, datetime, str]] = None,
    ) -> List[Dict[str, Any]]:
        params = [
            ("select", ACTIVE_RECORD_SELECT),
            ("deleted_at", "is.null"),
            ("order", "service_date.desc"),
        ]
        if license_plate:
            params.append(("license_plate", f"ilike.*{license_plate}*"))
        if start_date:
            params.append(("service_date", f"gte.{_jsonable(start_date)}"))
        if end_date:
            params.append(("service_date", f"lte.{_jsonable(end_date)}"))

        return await self._request("GET", RECORDS_PATH, params=params) or []

    async def list_deleted_records(self, limit: int = 50) -> List[Dict[str, Any]]:
        params = [
            ("select", DELETED_RECORD_SELECT),
            ("deleted_at", "not.is.null"),
            ("order", "deleted_at.desc"),
            ("limit", str(limit)),
        ]
        return await self._request("GET", RECORDS_PATH, params=params) or []
