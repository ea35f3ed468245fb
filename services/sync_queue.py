"""Durable, ordered queue of client-originated mutations."""
from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Iterator, List, Mapping, Optional

from sqlalchemy import delete, func, or_, update
from sqlalchemy.exc import OperationalError, StatementError
from sqlmodel import select

from core.errors import StorageError
from core.logs import get_sync_logger
from core.priorities import normalize_max_attempts, normalize_priority
from core.settings import SYNC
from datetime_utils import Clock, ensure_utc, to_rfc3339_utc, utc_now
from models.sync_item import SyncItem, SyncMethod, SyncStatus, TERMINAL_STATUSES
from storage.db import SessionFactory, get_session


MAX_ERROR_LENGTH = 1000


@dataclass(frozen=True)
class QueuedSync:
    id: int
    owner_id: int
    endpoint: str
    method: SyncMethod
    payload: dict
    status: SyncStatus
    attempts: int
    max_attempts: int
    last_error: Optional[str]
    last_result: Any
    device_origin: Optional[str]
    priority: int
    next_retry_at: Optional[datetime]
    created_at: datetime
    updated_at: Optional[datetime]

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "endpoint": self.endpoint,
            "method": self.method.value,
            "data": self.payload,
            "status": self.status.value,
            "attempts": self.attempts,
            "maxAttempts": self.max_attempts,
            "lastError": self.last_error,
            "lastResult": self.last_result,
            "deviceId": self.device_origin,
            "priority": self.priority,
            "nextRetryAt": to_rfc3339_utc(self.next_retry_at),
            "createdAt": to_rfc3339_utc(self.created_at),
            "updatedAt": to_rfc3339_utc(self.updated_at),
        }


def _decode(raw: Optional[str], fallback):
    if raw is None:
        return fallback
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return fallback


def _encode_payload(payload: Optional[Mapping[str, Any]]) -> str:
    if payload is None:
        return "{}"
    if not isinstance(payload, Mapping):
        raise TypeError("payload must be a mapping")
    return json.dumps(dict(payload), ensure_ascii=False)


def _to_view(row: SyncItem) -> QueuedSync:
    payload = _decode(row.payload, {})
    return QueuedSync(
        id=row.id,
        owner_id=row.owner_id,
        endpoint=row.resource_endpoint,
        method=SyncMethod(row.method),
        payload=payload if isinstance(payload, dict) else {},
        status=SyncStatus(row.status),
        attempts=row.attempts,
        max_attempts=row.max_attempts,
        last_error=row.last_error,
        last_result=_decode(row.last_result, None),
        device_origin=row.device_origin,
        priority=row.priority,
        next_retry_at=ensure_utc(row.next_retry_at),
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
    )


@contextmanager
def _storage_guard(action: str) -> Iterator[None]:
    try:
        yield
    except OperationalError as exc:
        raise StorageError(f"Sync queue unavailable during {action}: {exc.orig}") from exc


class SyncQueueStore:
    def __init__(
        self,
        session_factory: SessionFactory = get_session,
        clock: Clock = utc_now,
        *,
        default_max_attempts: int = SYNC.default_max_attempts,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock
        self.default_max_attempts = normalize_max_attempts(default_max_attempts)
        self.logger = logger or get_sync_logger()

    def _now(self) -> datetime:
        return ensure_utc(self._clock())

    def _build(
        self,
        owner_id: int,
        endpoint: Optional[str],
        method,
        payload: Optional[Mapping[str, Any]],
        device_origin: Optional[str],
        priority,
        max_attempts,
    ) -> SyncItem:
        now = self._now()
        return SyncItem(
            owner_id=owner_id,
            resource_endpoint=endpoint or None,
            method=SyncMethod.parse(method),
            payload=_encode_payload(payload),
            status=SyncStatus.PENDING,
            attempts=0,
            max_attempts=normalize_max_attempts(max_attempts, self.default_max_attempts),
            device_origin=device_origin or None,
            priority=normalize_priority(priority),
            next_retry_at=None,
            created_at=now,
            updated_at=now,
        )

    # ----- creation -----
    def enqueue(
        self,
        owner_id: int,
        endpoint: str,
        method,
        payload: Optional[Mapping[str, Any]] = None,
        *,
        device_origin: Optional[str] = None,
        priority: Optional[int] = None,
        max_attempts: Optional[int] = None,
    ) -> QueuedSync:
        record = self._build(owner_id, endpoint, method, payload, device_origin, priority, max_attempts)
        with _storage_guard("enqueue"), self._session_factory() as session:
            session.add(record)
            session.commit()
            session.refresh(record)
            view = _to_view(record)
        self.logger.debug("Queued %s %s for owner %s", view.method.value, view.endpoint, owner_id)
        return view

    def enqueue_batch(self, owner_id: int, items: Iterable[Mapping[str, Any]]) -> int:
        """Insert each item on its own; rejected items are skipped, not rolled back together."""
        inserted = 0
        for index, raw in enumerate(items):
            try:
                if not isinstance(raw, Mapping):
                    raise TypeError("item must be an object")
                record = self._build(
                    owner_id,
                    raw.get("endpoint"),
                    raw.get("method"),
                    raw.get("data") or {},
                    raw.get("deviceId"),
                    raw.get("priority"),
                    raw.get("maxAttempts"),
                )
            except (TypeError, ValueError) as exc:
                self.logger.warning("Batch item %s rejected for owner %s: %s", index, owner_id, exc)
                continue

            try:
                with self._session_factory() as session:
                    session.add(record)
                    session.commit()
            except OperationalError as exc:
                raise StorageError(f"Sync queue unavailable during batch enqueue: {exc.orig}") from exc
            except StatementError as exc:
                self.logger.warning("Batch item %s rejected by store for owner %s: %s", index, owner_id, exc.orig)
                continue
            inserted += 1

        self.logger.info("Batch queued %s item(s) for owner %s", inserted, owner_id)
        return inserted

    # ----- retrieval -----
    def get(self, item_id: int) -> Optional[QueuedSync]:
        with _storage_guard("get"), self._session_factory() as session:
            row = session.get(SyncItem, item_id)
            return _to_view(row) if row else None

    def select_eligible(self, owner_id: int, limit: int) -> List[QueuedSync]:
        now = self._now()
        stmt = (
            select(SyncItem)
            .where(
                SyncItem.owner_id == owner_id,
                SyncItem.status == SyncStatus.PENDING,
                or_(SyncItem.next_retry_at.is_(None), SyncItem.next_retry_at <= now),
            )
            .order_by(SyncItem.priority.desc(), SyncItem.created_at.asc(), SyncItem.id.asc())
            .limit(limit)
        )
        with _storage_guard("select"), self._session_factory() as session:
            return [_to_view(row) for row in session.exec(stmt)]

    def list_pending(self, owner_id: int) -> List[QueuedSync]:
        stmt = (
            select(SyncItem)
            .where(
                SyncItem.owner_id == owner_id,
                SyncItem.status.in_([SyncStatus.PENDING, SyncStatus.PROCESSING]),
            )
            .order_by(SyncItem.priority.desc(), SyncItem.created_at.asc(), SyncItem.id.asc())
        )
        with _storage_guard("list"), self._session_factory() as session:
            return [_to_view(row) for row in session.exec(stmt)]

    def owners_with_eligible(self) -> List[int]:
        now = self._now()
        stmt = (
            select(SyncItem.owner_id)
            .where(
                SyncItem.status == SyncStatus.PENDING,
                or_(SyncItem.next_retry_at.is_(None), SyncItem.next_retry_at <= now),
            )
            .distinct()
            .order_by(SyncItem.owner_id)
        )
        with _storage_guard("select owners"), self._session_factory() as session:
            return list(session.exec(stmt))

    def release_stale(self, claimed_before: datetime, owner_id: Optional[int] = None) -> int:
        """Hand items stuck in processing since before ``claimed_before`` back to pending."""
        conditions = [
            SyncItem.status == SyncStatus.PROCESSING,
            SyncItem.updated_at < ensure_utc(claimed_before),
        ]
        if owner_id is not None:
            conditions.append(SyncItem.owner_id == owner_id)
        stmt = (
            update(SyncItem)
            .where(*conditions)
            .values(status=SyncStatus.PENDING, next_retry_at=None, updated_at=self._now())
        )
        with _storage_guard("release"), self._session_factory() as session:
            result = session.exec(stmt)
            session.commit()
        if result.rowcount:
            self.logger.warning("Released %s stale processing item(s)", result.rowcount)
        return result.rowcount

    def count(self, owner_id: Optional[int] = None) -> int:
        stmt = select(func.count()).select_from(SyncItem)
        if owner_id is not None:
            stmt = stmt.where(SyncItem.owner_id == owner_id)
        with _storage_guard("count"), self._session_factory() as session:
            return int(session.exec(stmt).one())

    # ----- transitions -----
    def _transition(self, action: str, item_id: int, expected: SyncStatus, **values) -> bool:
        values["updated_at"] = self._now()
        stmt = (
            update(SyncItem)
            .where(SyncItem.id == item_id, SyncItem.status == expected)
            .values(**values)
        )
        with _storage_guard(action), self._session_factory() as session:
            result = session.exec(stmt)
            session.commit()
            return result.rowcount == 1

    def mark_processing(self, item_id: int) -> bool:
        """Claim a pending item; False means another pass already holds it."""
        return self._transition("claim", item_id, SyncStatus.PENDING, status=SyncStatus.PROCESSING)

    def mark_completed(self, item_id: int, result: Any, new_attempts: Optional[int] = None) -> bool:
        values = {
            "status": SyncStatus.COMPLETED,
            "last_result": json.dumps(result, ensure_ascii=False, default=str),
            "last_error": None,
            "next_retry_at": None,
        }
        if new_attempts is not None:
            values["attempts"] = new_attempts
        return self._transition("complete", item_id, SyncStatus.PROCESSING, **values)

    def mark_retry(self, item_id: int, error: str, next_retry_at: datetime, new_attempts: int) -> bool:
        return self._transition(
            "retry",
            item_id,
            SyncStatus.PROCESSING,
            status=SyncStatus.PENDING,
            last_error=(error or "")[:MAX_ERROR_LENGTH],
            next_retry_at=ensure_utc(next_retry_at),
            attempts=new_attempts,
        )

    def mark_failed(self, item_id: int, error: str, new_attempts: int) -> bool:
        return self._transition(
            "fail",
            item_id,
            SyncStatus.PROCESSING,
            status=SyncStatus.FAILED,
            last_error=(error or "")[:MAX_ERROR_LENGTH],
            next_retry_at=None,
            attempts=new_attempts,
        )

    # ----- administration -----
    def clear_all(self, owner_id: int) -> int:
        stmt = delete(SyncItem).where(SyncItem.owner_id == owner_id)
        with _storage_guard("clear"), self._session_factory() as session:
            result = session.exec(stmt)
            session.commit()
            deleted = int(result.rowcount or 0)
        self.logger.info("Cleared %s queued item(s) for owner %s", deleted, owner_id)
        return deleted


__all__ = ["QueuedSync", "SyncQueueStore"]
