import pytest

from core.errors import ValidationError
from models.sync_item import SyncMethod
from services.sync_service import SyncService


@pytest.fixture()
def service(session_factory, clock):
    return SyncService.build(session_factory, clock=clock)


@pytest.fixture()
def who(service, owner_id):
    return service.resolve(owner_id)


@pytest.mark.parametrize(
    "body, message",
    [
        ({"method": "POST"}, "Missing endpoint or method"),
        ({"endpoint": "/api/orders"}, "Missing endpoint or method"),
        (["endpoint", "method"], "Missing endpoint or method"),
        ({"endpoint": "/api/orders", "method": "GET"}, "Unsupported method: GET"),
        ({"endpoint": "/api/orders", "method": "POST", "data": [1, 2]}, "data must be an object"),
    ],
)
def test_enqueue_validation(service, who, body, message):
    with pytest.raises(ValidationError) as excinfo:
        service.enqueue(who, body)
    assert excinfo.value.message == message
    assert service.queue.count() == 0


def test_enqueue_carries_optional_fields(service, who):
    item = service.enqueue(
        who,
        {"endpoint": "/api/orders", "method": "put", "priority": "4", "maxAttempts": 2},
    )

    assert item.method is SyncMethod.UPDATE
    assert item.priority == 4
    assert item.max_attempts == 2
    assert item.payload == {}


def test_enqueue_batch_requires_list(service, who):
    with pytest.raises(ValidationError):
        service.enqueue_batch(who, {"items": "nope"})
    with pytest.raises(ValidationError):
        service.enqueue_batch(who, None)


def test_clear_queue_uses_resolved_owner(service, who, owner_id):
    service.enqueue(who, {"endpoint": "/api/orders", "method": "DELETE", "data": {"_id": 1}})

    assert service.clear_queue(who) == 1
    assert service.list_pending(who) == []
