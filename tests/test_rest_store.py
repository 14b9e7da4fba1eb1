"""
Tests for the REST record store.

Requests go through httpx.MockTransport so the payloads sent to the hosted
database's tables and procedures can be inspected.
"""

import json
from datetime import datetime, timezone

import httpx
import pytest
from autoservice.models.service_record_history import HistoryAction
from autoservice.services.lifecycle import (
    OutcomeStatus,
    RejectionKind,
    ServiceRecordLifecycleManager,
)
from autoservice.services.record_store import RecordStoreError
from autoservice.services.rest_store import RestRecordStore

BASE_URL = "https://project.example.co"
RECORD_ID = "4f1d2c3e-0000-4000-8000-000000000001"


class RecordingHandler:
    """Mock transport handler that records requests and replays canned responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self):
        return json.loads(self.last.content)


def make_store(handler) -> RestRecordStore:
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return RestRecordStore(BASE_URL, "anon-key", client=client)


@pytest.mark.asyncio
async def test_soft_delete_calls_procedure():
    handler = RecordingHandler(httpx.Response(200, json=True))
    store = make_store(handler)

    assert await store.soft_delete_record(RECORD_ID, "staff1", "duplicate entry") is True

    request = handler.last
    assert request.method == "POST"
    assert request.url.path == "/rest/v1/rpc/soft_delete_service_record"
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["Authorization"] == "Bearer anon-key"
    assert handler.last_json() == {
        "p_record_id": RECORD_ID,
        "p_deleted_by": "staff1",
        "p_reason": "duplicate entry",
    }


@pytest.mark.asyncio
async def test_empty_reason_is_left_to_procedure_default():
    handler = RecordingHandler(httpx.Response(200, json=False), httpx.Response(200, json=True))
    store = make_store(handler)

    assert await store.soft_delete_record(RECORD_ID, "staff1", "") is False
    assert "p_reason" not in handler.last_json()

    assert await store.restore_record(RECORD_ID, "staff2") is True
    assert handler.last.url.path == "/rest/v1/rpc/restore_service_record"
    assert handler.last_json() == {"p_record_id": RECORD_ID, "p_restored_by": "staff2"}


@pytest.mark.asyncio
async def test_update_patches_only_active_rows():
    row = {"id": RECORD_ID, "license_plate": "1กก9999", "deleted_at": None}
    handler = RecordingHandler(httpx.Response(200, json=[row]))
    store = make_store(handler)
    updated_at = datetime(2024, 1, 10, 8, 0, tzinfo=timezone.utc)

    result = await store.update_active_record(
        RECORD_ID, {"license_plate": "1กก9999"}, "staff1", "correct misread plate", updated_at
    )

    assert result == row
    request = handler.last
    assert request.method == "PATCH"
    assert request.url.path == "/rest/v1/service_records"
    assert request.url.params["id"] == f"eq.{RECORD_ID}"
    assert request.url.params["deleted_at"] == "is.null"
    assert request.headers["Prefer"] == "return=representation"
    assert handler.last_json() == {
        "license_plate": "1กก9999",
        "updated_by": "staff1",
        "updated_at": "2024-01-10T08:00:00+00:00",
        "change_reason": "correct misread plate",
    }


@pytest.mark.asyncio
async def test_update_with_no_matching_row_returns_none():
    handler = RecordingHandler(httpx.Response(200, json=[]))
    store = make_store(handler)

    result = await store.update_active_record(
        RECORD_ID, {"notes": "x"}, "staff1", "", datetime.now(timezone.utc)
    )

    assert result is None
    assert "change_reason" not in handler.last_json()


@pytest.mark.asyncio
async def test_history_null_is_empty():
    handler = RecordingHandler(httpx.Response(200, json=None))
    store = make_store(handler)

    assert await store.get_record_history(RECORD_ID) == []
    assert handler.last.url.path == "/rest/v1/rpc/get_service_record_history"
    assert handler.last_json() == {"p_record_id": RECORD_ID}


@pytest.mark.asyncio
async def test_list_active_sends_filters():
    handler = RecordingHandler(httpx.Response(200, json=[]))
    store = make_store(handler)

    await store.list_active_records("1กก", "2024-01-01", "2024-01-31")

    params = handler.last.url.params
    assert params["deleted_at"] == "is.null"
    assert params["order"] == "service_date.desc"
    assert params["license_plate"] == "ilike.*1กก*"
    assert params.get_list("service_date") == ["gte.2024-01-01", "lte.2024-01-31"]
    assert "images:service_images" in params["select"]


@pytest.mark.asyncio
async def test_list_deleted_sends_limit():
    handler = RecordingHandler(httpx.Response(200, json=[{"id": RECORD_ID}]))
    store = make_store(handler)

    records = await store.list_deleted_records(limit=10)

    assert records == [{"id": RECORD_ID}]
    params = handler.last.url.params
    assert params["deleted_at"] == "not.is.null"
    assert params["order"] == "deleted_at.desc"
    assert params["limit"] == "10"


@pytest.mark.asyncio
async def test_insert_returns_created_row():
    row = {"id": RECORD_ID, "license_plate": "1กก2345"}
    handler = RecordingHandler(httpx.Response(201, json=[row]))
    store = make_store(handler)

    created = await store.insert_record(
        {"license_plate": "1กก2345", "service_date": datetime(2024, 1, 10, tzinfo=timezone.utc)},
        "user",
    )

    assert created == row
    assert handler.last_json()["service_date"] == "2024-01-10T00:00:00+00:00"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"message": "internal error"}),
        httpx.Response(200, content=b"<html>not json</html>"),
        httpx.Response(200, json={"unexpected": "shape"}),
        httpx.ConnectError("connection refused"),
    ],
)
async def test_transport_problems_raise_store_error(response):
    store = make_store(RecordingHandler(response))

    with pytest.raises(RecordStoreError):
        await store.soft_delete_record(RECORD_ID, "staff1", "dup")


@pytest.mark.asyncio
async def test_manager_over_rest_store():
    history_rows = [
        {
            "id": "h2",
            "service_record_id": RECORD_ID,
            "action": "DELETE",
            "old_data": {"license_plate": "1กก2345"},
            "new_data": None,
            "changed_fields": ["deleted_at"],
            "changed_by": "staff1",
            "changed_at": "2024-01-10T09:00:00+00:00",
            "change_reason": "duplicate entry",
        },
        {
            "id": "h1",
            "service_record_id": RECORD_ID,
            "action": "INSERT",
            "old_data": None,
            "new_data": {"license_plate": "1กก2345"},
            "changed_fields": ["*"],
            "changed_by": "user",
            "changed_at": "2024-01-10T08:00:00+00:00",
            "change_reason": None,
        },
    ]
    handler = RecordingHandler(
        httpx.Response(200, json=True),
        httpx.Response(200, json=False),
        httpx.Response(200, json=history_rows),
        httpx.Response(503, text="upstream unavailable"),
    )
    manager = ServiceRecordLifecycleManager(make_store(handler))

    first = await manager.soft_delete(RECORD_ID, "staff1", "duplicate entry")
    second = await manager.soft_delete(RECORD_ID, "staff1", "again")
    history = await manager.get_history(RECORD_ID)
    failed = await manager.restore(RECORD_ID, "staff2", "restored by mistake")

    assert first.success
    assert second.rejection is RejectionKind.ALREADY_DELETED
    assert [entry.action for entry in history] == [HistoryAction.DELETED, HistoryAction.CREATED]
    assert failed.status is OutcomeStatus.TRANSPORT_ERROR
    assert failed.error == "RecordStoreError"


@pytest.mark.asyncio
async def test_malformed_ids_match_nothing_without_a_request():
    handler = RecordingHandler()
    store = make_store(handler)
    manager = ServiceRecordLifecycleManager(store)

    update = await manager.update("not-a-uuid", {"notes": "x"}, "staff1", "note")
    delete = await manager.soft_delete("not-a-uuid", "staff1", "dup")
    restore = await manager.restore("not-a-uuid", "staff1")
    history = await manager.get_history("not-a-uuid")

    assert update.rejection is RejectionKind.NOT_FOUND_OR_DELETED
    assert delete.rejection is RejectionKind.ALREADY_DELETED
    assert restore.rejection is RejectionKind.NOT_DELETED
    assert history.success and len(history) == 0
    assert handler.requests == []


@pytest.mark.asyncio
async def test_invalid_update_values_are_not_sent():
    handler = RecordingHandler()
    manager = ServiceRecordLifecycleManager(make_store(handler))

    result = await manager.update(RECORD_ID, {"service_date": None}, "staff1", "fix")

    assert result.rejection is RejectionKind.INVALID_INPUT
    assert handler.requests == []
