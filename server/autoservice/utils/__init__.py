"""Utility modules for the service record back end."""

from .audit_format import format_action_type, format_changed_fields, get_time_ago

__all__ = [
    "format_action_type",
    "format_changed_fields",
    "get_time_ago",
]
