"""Audit subsystem — event buffering and async JSONL persistence."""

from secaudit.audit.buffer import EventBuffer
from secaudit.audit.store import AuditLogStore
from secaudit.audit.store import partition_path

__all__ = [
    "AuditLogStore",
    "EventBuffer",
    "partition_path",
]
