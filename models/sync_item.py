"""SQLModel table for queued client mutations."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Index
from sqlmodel import Field, SQLModel

from datetime_utils import utc_now


class SyncStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({SyncStatus.COMPLETED, SyncStatus.FAILED})


class SyncMethod(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"

    @classmethod
    def parse(cls, value) -> "SyncMethod":
        """Accept engine method names as well as the HTTP verbs clients send."""
        if isinstance(value, cls):
            return value
        key = str(value or "").strip().upper()
        if key in _HTTP_ALIASES:
            return _HTTP_ALIASES[key]
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Unsupported method: {value}") from None


_HTTP_ALIASES = {
    "POST": SyncMethod.CREATE,
    "PUT": SyncMethod.UPDATE,
    "PATCH": SyncMethod.UPDATE,
}


class SyncItem(SQLModel, table=True):
    __tablename__ = "sync_item"
    __table_args__ = (
        Index("ix_sync_item_owner_status_order", "owner_id", "status", "priority", "created_at"),
        Index("ix_sync_item_status_retry", "status", "next_retry_at"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: int = Field(index=True)
    resource_endpoint: str
    method: SyncMethod
    payload: str = "{}"
    status: SyncStatus = Field(default=SyncStatus.PENDING)
    attempts: int = Field(default=0)
    max_attempts: int = Field(default=5)
    last_error: Optional[str] = None
    last_result: Optional[str] = None
    device_origin: Optional[str] = None
    priority: int = Field(default=0)
    next_retry_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


__all__ = ["SyncItem", "SyncMethod", "SyncStatus", "TERMINAL_STATUSES"]
