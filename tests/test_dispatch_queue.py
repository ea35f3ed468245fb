import argparse

import pytest

from conftest import create_account
from dispatch_queue import _positive_int, dispatch_queue
from services.sync_service import SyncService


def test_dispatch_queue_covers_every_owner(session_factory, clock, owner_id):
    second_owner = create_account(session_factory, username="branch")
    service = SyncService.build(session_factory, clock=clock)
    service.queue.enqueue(owner_id, "/api/expenses", "POST", {"amount": 12, "category": "Box Vendor"})
    service.queue.enqueue(second_owner, "/api/user", "PUT", {"phone": "+15559999"})

    results = dispatch_queue(service=service)

    assert sorted(results) == [owner_id, second_owner]
    assert all(summary.successful == 1 for summary in results.values())


def test_dispatch_queue_single_owner(session_factory, clock, owner_id):
    service = SyncService.build(session_factory, clock=clock)
    service.queue.enqueue(owner_id, "/api/widgets", "POST", {})
    service.queue.enqueue(owner_id + 1, "/api/widgets", "POST", {})

    results = dispatch_queue(owner_id=owner_id, service=service)

    assert list(results) == [owner_id]
    assert results[owner_id].failed == 1
    assert service.queue.count(owner_id + 1) == 1


@pytest.mark.parametrize("raw", ["0", "-1", "many"])
def test_batch_limit_argument_must_be_positive(raw):
    with pytest.raises(argparse.ArgumentTypeError):
        _positive_int(raw)


def test_batch_limit_argument_accepts_positive():
    assert _positive_int("25") == 25
