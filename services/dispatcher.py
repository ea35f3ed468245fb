from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Callable, Dict, Optional

from core.logs import get_sync_logger
from core.settings import SYNC, SyncSettings
from datetime_utils import Clock, add_millis, ensure_utc, utc_now
from services.replayers import ReplayerRegistry, ReplayResult
from services.sync_queue import QueuedSync, SyncQueueStore


def retry_delay_ms(attempts: int, settings: SyncSettings = SYNC) -> int:
    """Backoff before the next replay, from the attempt count before the failure."""
    exponent = min(max(attempts, 0), settings.backoff_max_exponent)
    return min(2 ** exponent, settings.backoff_max_factor) * settings.backoff_base_ms


@dataclass
class DispatchSummary:
    processed: int = 0
    successful: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class SyncDispatcher:
    """Replays one owner's eligible queue items, strictly one at a time."""

    def __init__(
        self,
        queue: SyncQueueStore,
        registry: ReplayerRegistry,
        *,
        settings: SyncSettings = SYNC,
        clock: Clock = utc_now,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.queue = queue
        self.registry = registry
        self.settings = settings
        self._clock = clock
        self.logger = logger or get_sync_logger()

    def dispatch(
        self,
        owner_id: int,
        batch_limit: Optional[int] = None,
        *,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> DispatchSummary:
        limit = self._batch_limit(batch_limit)
        summary = DispatchSummary()
        self.queue.release_stale(self._lease_cutoff(), owner_id)
        batch = self.queue.select_eligible(owner_id, limit)
        if not batch:
            return summary

        for item in batch:
            if should_stop is not None and should_stop():
                self.logger.info("Dispatch for owner %s stopped early", owner_id)
                break
            if not self.queue.mark_processing(item.id):
                self.logger.info("Sync item %s claimed by another pass, skipping", item.id)
                continue
            summary.processed += 1

            result = self._replay(item)
            if result.success:
                self.queue.mark_completed(item.id, result.data, item.attempts + 1)
                summary.successful += 1
                self.logger.info("Completed %s %s (item %s)", item.method.value, item.endpoint, item.id)
            else:
                self._record_failure(item, result)
                summary.failed += 1

        self.logger.info(
            "Dispatch for owner %s: processed=%s successful=%s failed=%s",
            owner_id,
            summary.processed,
            summary.successful,
            summary.failed,
        )
        return summary

    def dispatch_all(self, batch_limit: Optional[int] = None) -> Dict[int, DispatchSummary]:
        results: Dict[int, DispatchSummary] = {}
        self.queue.release_stale(self._lease_cutoff())
        for owner_id in self.queue.owners_with_eligible():
            results[owner_id] = self.dispatch(owner_id, batch_limit)
        return results

    def _batch_limit(self, batch_limit: Optional[int]) -> int:
        if batch_limit is None:
            return self.settings.batch_limit
        if batch_limit < 1:
            raise ValueError(f"batch_limit must be at least 1, got {batch_limit}")
        return batch_limit

    def _lease_cutoff(self):
        return add_millis(ensure_utc(self._clock()), -self.settings.processing_lease_ms)

    def _replay(self, item: QueuedSync) -> ReplayResult:
        try:
            return self.registry.replay(item.endpoint, item.method, item.payload, item.owner_id)
        except Exception as exc:
            self.logger.error("Replay of item %s crashed: %s", item.id, exc)
            return ReplayResult.fail(str(exc) or exc.__class__.__name__)

    def _record_failure(self, item: QueuedSync, result: ReplayResult) -> None:
        error = result.error or "Unknown error"
        new_attempts = item.attempts + 1
        give_up = new_attempts >= item.max_attempts or (
            result.permanent and self.settings.fail_fast_invalid_method
        )
        if give_up:
            self.queue.mark_failed(item.id, error, new_attempts)
            self.logger.warning(
                "Failed permanently after %s attempt(s): %s %s (%s)",
                new_attempts,
                item.method.value,
                item.endpoint,
                error,
            )
            return

        delay = retry_delay_ms(item.attempts, self.settings)
        next_retry_at = add_millis(ensure_utc(self._clock()), delay)
        self.queue.mark_retry(item.id, error, next_retry_at, new_attempts)
        self.logger.warning(
            "Failed (attempt %s), retry in %sms: %s %s (%s)",
            new_attempts,
            delay,
            item.method.value,
            item.endpoint,
            error,
        )


__all__ = ["DispatchSummary", "SyncDispatcher", "retry_delay_ms"]
