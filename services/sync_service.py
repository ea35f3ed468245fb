from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, List, Optional

from core.errors import ValidationError
from core.logs import get_sync_logger
from core.settings import SYNC, SyncSettings
from datetime_utils import Clock, utc_now
from models.sync_item import SyncMethod
from services.dispatcher import DispatchSummary, SyncDispatcher
from services.identity import IdentityResolver, ResolvedIdentity
from services.replayers import ReplayerRegistry
from services.sync_queue import QueuedSync, SyncQueueStore
from storage.db import SessionFactory, get_session


class SyncService:
    """Request-level entry points: validate, resolve the owner, then hit the queue."""

    def __init__(
        self,
        queue: SyncQueueStore,
        dispatcher: SyncDispatcher,
        identity: IdentityResolver,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.queue = queue
        self.dispatcher = dispatcher
        self.identity = identity
        self.logger = logger or get_sync_logger()

    @classmethod
    def build(
        cls,
        session_factory: SessionFactory = get_session,
        *,
        clock: Clock = utc_now,
        settings: SyncSettings = SYNC,
        registry: Optional[ReplayerRegistry] = None,
    ) -> "SyncService":
        logger = get_sync_logger()
        queue = SyncQueueStore(
            session_factory,
            clock,
            default_max_attempts=settings.default_max_attempts,
            logger=logger,
        )
        dispatcher = SyncDispatcher(
            queue,
            registry or ReplayerRegistry.default(session_factory, clock),
            settings=settings,
            clock=clock,
            logger=logger,
        )
        return cls(queue, dispatcher, IdentityResolver(session_factory), logger)

    # ------------------------------------------------------------------
    def resolve(self, principal_id: Any, is_sub_user: bool = False) -> ResolvedIdentity:
        return self.identity.resolve(principal_id, is_sub_user)

    def enqueue(self, who: ResolvedIdentity, body: Any) -> QueuedSync:
        if not isinstance(body, Mapping):
            raise ValidationError("Missing endpoint or method")
        endpoint = body.get("endpoint")
        method = body.get("method")
        if not endpoint or not method:
            raise ValidationError("Missing endpoint or method")
        try:
            parsed = SyncMethod.parse(method)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        data = body.get("data")
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise ValidationError("data must be an object")

        return self.queue.enqueue(
            who.owner_id,
            str(endpoint),
            parsed,
            data,
            device_origin=body.get("deviceId"),
            priority=body.get("priority"),
            max_attempts=body.get("maxAttempts"),
        )

    def enqueue_batch(self, who: ResolvedIdentity, body: Any) -> int:
        items = body.get("items") if isinstance(body, Mapping) else None
        if not isinstance(items, list):
            raise ValidationError("Items must be an array")
        return self.queue.enqueue_batch(who.owner_id, items)

    def list_pending(self, who: ResolvedIdentity) -> List[QueuedSync]:
        return self.queue.list_pending(who.owner_id)

    def dispatch(self, who: ResolvedIdentity, batch_limit: Optional[int] = None) -> DispatchSummary:
        return self.dispatcher.dispatch(who.owner_id, batch_limit)

    def clear_queue(self, who: ResolvedIdentity) -> int:
        self.logger.info("Queue clear requested by principal %s", who.principal_id)
        return self.queue.clear_all(who.owner_id)


__all__ = ["SyncService"]
