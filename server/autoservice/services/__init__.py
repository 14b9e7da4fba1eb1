"""
Services package for the service record back end.
"""

from .lifecycle import (
    HistoryEntry,
    HistoryResult,
    OperationResult,
    OutcomeStatus,
    RecordListResult,
    RejectionKind,
    ServiceRecordLifecycleManager,
)
from .record_store import RecordStore, RecordStoreError, SQLRecordStore
from .rest_store import RestRecordStore

__all__ = [
    "ServiceRecordLifecycleManager",
    "OperationResult",
    "HistoryResult",
    "HistoryEntry",
    "RecordListResult",
    "OutcomeStatus",
    "RejectionKind",
    "RecordStore",
    "RecordStoreError",
    "SQLRecordStore",
    "RestRecordStore",
]
