import json
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from core.errors import StorageError
from models.sync_item import SyncMethod, SyncStatus
from services.sync_queue import SyncQueueStore


def test_enqueue_creates_pending_item(queue, owner_id, clock):
    item = queue.enqueue(
        owner_id,
        "/api/expenses",
        "POST",
        {"amount": 50, "category": "Marketing"},
        device_origin="tablet-1",
    )

    assert item.id is not None
    assert item.status is SyncStatus.PENDING
    assert item.method is SyncMethod.CREATE
    assert item.attempts == 0
    assert item.max_attempts == 5
    assert item.payload == {"amount": 50, "category": "Marketing"}
    assert item.device_origin == "tablet-1"
    assert item.next_retry_at is None
    assert item.created_at == clock.now


def test_select_eligible_orders_by_priority_then_age(queue, owner_id, clock):
    low_old = queue.enqueue(owner_id, "/api/orders", "POST", {}, priority=0)
    clock.advance(seconds=1)
    high = queue.enqueue(owner_id, "/api/orders", "POST", {}, priority=5)
    clock.advance(seconds=1)
    low_new = queue.enqueue(owner_id, "/api/orders", "POST", {}, priority=0)
    clock.advance(seconds=1)
    mid = queue.enqueue(owner_id, "/api/orders", "POST", {}, priority=2)

    ids = [item.id for item in queue.select_eligible(owner_id, 10)]
    assert ids == [high.id, mid.id, low_old.id, low_new.id]

    assert [item.id for item in queue.select_eligible(owner_id, 2)] == [high.id, mid.id]


def test_select_eligible_is_scoped_to_owner(queue, owner_id):
    queue.enqueue(owner_id, "/api/orders", "POST", {})
    queue.enqueue(owner_id + 1, "/api/orders", "POST", {})

    selected = queue.select_eligible(owner_id, 10)
    assert len(selected) == 1
    assert selected[0].owner_id == owner_id


def test_future_retry_is_not_eligible_until_clock_passes(queue, owner_id, clock):
    item = queue.enqueue(owner_id, "/api/orders", "PUT", {"_id": 1})
    assert queue.mark_processing(item.id)
    queue.mark_retry(item.id, "Order not found", clock.now.replace(second=30), 1)

    assert queue.select_eligible(owner_id, 10) == []
    clock.advance(seconds=29)
    assert queue.select_eligible(owner_id, 10) == []
    clock.advance(seconds=1)
    eligible = queue.select_eligible(owner_id, 10)
    assert [i.id for i in eligible] == [item.id]
    assert eligible[0].attempts == 1
    assert eligible[0].last_error == "Order not found"


def test_list_pending_includes_processing_but_not_terminal(queue, owner_id, clock):
    done = queue.enqueue(owner_id, "/api/expenses", "POST", {})
    clock.advance(seconds=1)
    running = queue.enqueue(owner_id, "/api/expenses", "POST", {})
    clock.advance(seconds=1)
    waiting = queue.enqueue(owner_id, "/api/expenses", "POST", {}, priority=1)

    queue.mark_processing(done.id)
    queue.mark_completed(done.id, {"ok": True}, 1)
    queue.mark_processing(running.id)

    pending = queue.list_pending(owner_id)
    assert [item.id for item in pending] == [waiting.id, running.id]
    assert pending[1].status is SyncStatus.PROCESSING


def test_claim_is_exclusive(queue, owner_id):
    item = queue.enqueue(owner_id, "/api/expenses", "POST", {})

    assert queue.mark_processing(item.id) is True
    assert queue.mark_processing(item.id) is False
    assert queue.get(item.id).status is SyncStatus.PROCESSING


def test_transitions_do_not_touch_terminal_items(queue, owner_id, clock):
    item = queue.enqueue(owner_id, "/api/expenses", "POST", {})
    queue.mark_processing(item.id)
    assert queue.mark_completed(item.id, {"id": 7}, 1) is True

    assert queue.mark_completed(item.id, {"id": 8}, 2) is False
    assert queue.mark_retry(item.id, "late", clock.now, 2) is False
    assert queue.mark_failed(item.id, "late", 2) is False
    assert queue.mark_processing(item.id) is False

    stored = queue.get(item.id)
    assert stored.status is SyncStatus.COMPLETED
    assert stored.attempts == 1
    assert stored.last_result == {"id": 7}
    assert stored.last_error is None


def test_mark_failed_clears_retry_time(queue, owner_id, clock):
    item = queue.enqueue(owner_id, "/api/widgets", "POST", {}, max_attempts=2)
    queue.mark_processing(item.id)
    queue.mark_retry(item.id, "Unknown endpoint", clock.now, 1)
    queue.mark_processing(item.id)
    queue.mark_failed(item.id, "Unknown endpoint", 2)

    stored = queue.get(item.id)
    assert stored.status is SyncStatus.FAILED
    assert stored.next_retry_at is None
    assert stored.attempts == stored.max_attempts == 2


def test_enqueue_batch_keeps_items_the_store_accepts(queue, owner_id):
    count = queue.enqueue_batch(
        owner_id,
        [
            {"endpoint": "/api/expenses", "method": "POST", "data": {"amount": 10}},
            {"method": "POST", "data": {"amount": 20}},
            {"endpoint": "/api/orders", "method": "DELETE", "data": {"_id": 3}, "deviceId": "pos-2"},
        ],
    )

    assert count == 2
    stored = queue.list_pending(owner_id)
    assert [item.endpoint for item in stored] == ["/api/expenses", "/api/orders"]
    assert stored[1].device_origin == "pos-2"


def test_enqueue_batch_skips_malformed_entries(queue, owner_id):
    count = queue.enqueue_batch(
        owner_id,
        [
            "not-an-object",
            {"endpoint": "/api/orders", "method": "GET"},
            {"endpoint": "/api/orders", "method": "PATCH", "data": {"_id": 1}},
        ],
    )

    assert count == 1
    assert queue.list_pending(owner_id)[0].method is SyncMethod.UPDATE


def test_clear_all_only_removes_owner_items(queue, owner_id):
    queue.enqueue(owner_id, "/api/orders", "POST", {})
    queue.enqueue(owner_id, "/api/orders", "POST", {})
    queue.enqueue(owner_id + 1, "/api/orders", "POST", {})

    assert queue.clear_all(owner_id) == 2
    assert queue.count(owner_id) == 0
    assert queue.count() == 1


def test_owners_with_eligible(queue, owner_id, clock):
    queue.enqueue(owner_id, "/api/orders", "POST", {})
    other = queue.enqueue(owner_id + 1, "/api/orders", "POST", {})
    queue.mark_processing(other.id)
    queue.mark_retry(other.id, "busy", clock.now.replace(hour=23), 1)

    assert queue.owners_with_eligible() == [owner_id]


def test_release_stale_only_touches_old_claims(queue, owner_id, clock):
    old = queue.enqueue(owner_id, "/api/orders", "POST", {})
    other_owner = queue.enqueue(owner_id + 1, "/api/orders", "POST", {})
    queue.mark_processing(old.id)
    queue.mark_processing(other_owner.id)
    clock.advance(minutes=30)
    fresh = queue.enqueue(owner_id, "/api/orders", "POST", {})
    queue.mark_processing(fresh.id)

    released = queue.release_stale(clock.now - timedelta(minutes=10), owner_id)

    assert released == 1
    assert queue.get(old.id).status is SyncStatus.PENDING
    assert queue.get(old.id).attempts == 0
    assert queue.get(fresh.id).status is SyncStatus.PROCESSING
    assert queue.get(other_owner.id).status is SyncStatus.PROCESSING


def test_store_never_uses_a_zero_attempt_ceiling(session_factory, clock, owner_id):
    store = SyncQueueStore(session_factory, clock, default_max_attempts=0)

    assert store.enqueue(owner_id, "/api/orders", "POST", {}).max_attempts == 5


def test_payload_round_trips_as_json(queue, owner_id, session_factory):
    from models.sync_item import SyncItem

    item = queue.enqueue(owner_id, "/api/user", "PUT", {"name": "Zoë"})
    with session_factory() as session:
        row = session.get(SyncItem, item.id)
        assert json.loads(row.payload) == {"name": "Zoë"}


def test_storage_failure_surfaces_as_storage_error(clock):
    class BrokenSession:
        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def add(self, _record):
            pass

        def commit(self):
            raise OperationalError("INSERT", {}, Exception("database is locked"))

    store = SyncQueueStore(lambda: BrokenSession(), clock)

    with pytest.raises(StorageError):
        store.enqueue(1, "/api/orders", "POST", {})
    with pytest.raises(StorageError):
        store.enqueue_batch(1, [{"endpoint": "/api/orders", "method": "POST"}])
