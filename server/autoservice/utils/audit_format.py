"""
Display helpers for service record history.

Turns history entries into the short Thai labels shown in the audit trail.
"""

from datetime import datetime, timezone
from typing import Iterable, Optional, Union

from autoservice.models.base import as_utc
from autoservice.models.service_record_history import ALL_FIELDS, HistoryAction

ACTION_LABELS = {
    HistoryAction.CREATED: "สร้างรายการ",
    HistoryAction.UPDATED: "แก้ไข",
    HistoryAction.DELETED: "ลบ",
    HistoryAction.RESTORED: "กู้คืน",
}

FIELD_LABELS = {
    "license_plate": "ทะเบียนรถ",
    "service_date": "วันที่บริการ",
    "notes": "หมายเหตุ",
    "deleted_at": "สถานะการลบ",
}

ALL_FIELDS_LABEL = "ทุกฟิลด์"


def format_action_type(action: Union[HistoryAction, str]) -> str:
    """Label for an action; unknown actions are returned unchanged."""
    try:
        return ACTION_LABELS[HistoryAction(action)]
    except ValueError:
        return str(action)


def format_changed_fields(fields: Optional[Iterable[str]]) -> str:
    """
    Comma-separated labels for the fields an entry changed.

    Returns "-" when nothing changed and a single "all fields" label when
    the entry carries the wildcard marker.
    """
    fields = list(fields or [])
    if not fields:
        return "-"
    if ALL_FIELDS in fields:
        return ALL_FIELDS_LABEL

    return ", ".join(FIELD_LABELS.get(name, name) for name in fields)


def get_time_ago(when: Union[datetime, str], now: Optional[datetime] = None) -> str:
    """Relative time in Thai ("5 นาทีที่แล้ว", "เมื่อวาน", ...)."""
    if isinstance(when, str):
        when = datetime.fromisoformat(when)
    when = as_utc(when)
    now = as_utc(now) if now else datetime.now(timezone.utc)

    seconds = (now - when).total_seconds()
    minutes = int(seconds // 60)
    hours = int(seconds // 3600)
    days = int(seconds // 86400)

    if minutes < 1:
        return "เมื่อสักครู่"
    if minutes < 60:
        return f"{minutes} นาทีที่แล้ว"
    if hours < 24:
        return f"{hours} ชั่วโมงที่แล้ว"
    if days == 1:
        return "เมื่อวาน"
    if days < 7:
        return f"{days} วันที่แล้ว"
    if days < 30:
        return f"{days // 7} สัปดาห์ที่แล้ว"
    if days < 365:
        return f"{days // 30} เดือนที่แล้ว"
    return f"{days // 365} ปีที่แล้ว"
