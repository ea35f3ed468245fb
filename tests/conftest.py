from datetime import datetime, timedelta
from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from datetime_utils import UTC
from models.account import Account, SubUser
from services.dispatcher import SyncDispatcher
from services.replayers import ReplayerRegistry
from services.sync_queue import SyncQueueStore
from storage.db import init_db, make_engine, session_factory_for


class FakeClock:
    """Manually advanced clock shared by the queue, dispatcher and replayers."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 3, 1, 9, 0, tzinfo=UTC)

    def __call__(self):
        return self.now

    def advance(self, **delta):
        self.now = self.now + timedelta(**delta)
        return self.now


@pytest.fixture()
def engine():
    engine = make_engine("sqlite://")
    init_db(engine)
    return engine


@pytest.fixture()
def session_factory(engine):
    return session_factory_for(engine)


@pytest.fixture()
def clock():
    return FakeClock()


def create_account(session_factory, username="optics", **fields):
    with session_factory() as session:
        account = Account(username=username, email=f"{username}@example.com", **fields)
        session.add(account)
        session.commit()
        session.refresh(account)
        return account.id


def create_sub_user(session_factory, main_user_id, email="helper@example.com"):
    with session_factory() as session:
        sub_user = SubUser(
            sub_username="helper",
            email=email,
            phone_number="+15550100",
            main_user_id=main_user_id,
        )
        session.add(sub_user)
        session.commit()
        session.refresh(sub_user)
        return sub_user.id


@pytest.fixture()
def owner_id(session_factory):
    return create_account(session_factory, name="Main Shop", phone="+15550000")


@pytest.fixture()
def queue(session_factory, clock):
    return SyncQueueStore(session_factory, clock)


@pytest.fixture()
def registry(session_factory, clock):
    return ReplayerRegistry.default(session_factory, clock)


@pytest.fixture()
def dispatcher(queue, registry, clock):
    return SyncDispatcher(queue, registry, clock=clock)
