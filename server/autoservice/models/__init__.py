"""Database models for the application."""

from autoservice.models.catalog import (
    Product,
    ServiceImage,
    ServiceRecordProduct,
    ServiceRecordService,
    ServiceType,
)
from autoservice.models.service_record import ServiceRecord
from autoservice.models.service_record_history import HistoryAction, ServiceRecordHistory

__all__ = [
    "ServiceRecord",
    "ServiceRecordHistory",
    "HistoryAction",
    "ServiceType",
    "Product",
    "ServiceRecordService",
    "ServiceRecordProduct",
    "ServiceImage",
]
