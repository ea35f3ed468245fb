"""Per-resource handlers that apply a queued mutation to the authoritative tables."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Type

from pydantic import ValidationError as PayloadError
from sqlmodel import SQLModel, select

from datetime_utils import Clock, ensure_utc, utc_now
from models.account import PROFILE_FIELDS, Account
from models.expense import Expense, ExpenseCreate, ExpenseUpdate
from models.order import Order, OrderCreate, OrderUpdate
from models.sync_item import SyncMethod
from storage.db import SessionFactory, get_session


UNKNOWN_ENDPOINT = "Unknown endpoint"
INVALID_METHOD = "Invalid method"


class ResourceKind(str, Enum):
    EXPENSES = "expenses"
    ORDERS = "orders"
    USER = "user"

    @classmethod
    def from_endpoint(cls, endpoint: Optional[str]) -> Optional["ResourceKind"]:
        """Match a whole path segment, so ``/api/expensesArchive`` is not ``expenses``."""
        path = str(endpoint or "").split("?", 1)[0].strip().lower()
        for segment in path.split("/"):
            if not segment:
                continue
            try:
                return cls(segment)
            except ValueError:
                continue
        return None


@dataclass(frozen=True)
class ReplayResult:
    success: bool
    data: Any = None
    error: Optional[str] = None
    # Retrying can never change the outcome.
    permanent: bool = False

    @classmethod
    def ok(cls, data: Any) -> "ReplayResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, *, permanent: bool = False) -> "ReplayResult":
        return cls(success=False, error=error, permanent=permanent)


def _record_id(payload: Mapping[str, Any]) -> Optional[int]:
    raw = payload.get("_id", payload.get("id"))
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _serialize(record: SQLModel) -> Dict[str, Any]:
    return record.model_dump(mode="json")


def _describe(exc: PayloadError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return "; ".join(parts)


class Replayer:
    """Maps ``(method, payload, owner_id)`` to a :class:`ReplayResult`.

    Expected domain outcomes (missing record, unsupported method, bad payload)
    are returned as failed results. Anything raised is an infrastructure fault
    and is left for the dispatcher to absorb.
    """

    label = "Resource"

    def __init__(self, session_factory: SessionFactory = get_session, clock: Clock = utc_now):
        self._session_factory = session_factory
        self._clock = clock

    def _now(self) -> datetime:
        return ensure_utc(self._clock())

    def replay(self, method: SyncMethod, payload: Mapping[str, Any], owner_id: int) -> ReplayResult:
        handlers = {
            SyncMethod.CREATE: self.create,
            SyncMethod.UPDATE: self.update,
            SyncMethod.DELETE: self.delete,
        }
        handler = handlers.get(method)
        if handler is None:
            return ReplayResult.fail(INVALID_METHOD, permanent=True)
        return handler(payload or {}, owner_id)

    def create(self, payload: Mapping[str, Any], owner_id: int) -> ReplayResult:
        return ReplayResult.fail(INVALID_METHOD, permanent=True)

    def update(self, payload: Mapping[str, Any], owner_id: int) -> ReplayResult:
        return ReplayResult.fail(INVALID_METHOD, permanent=True)

    def delete(self, payload: Mapping[str, Any], owner_id: int) -> ReplayResult:
        return ReplayResult.fail(INVALID_METHOD, permanent=True)

    def not_found(self) -> ReplayResult:
        return ReplayResult.fail(f"{self.label} not found")


class OwnedRecordReplayer(Replayer):
    """CRUD replay for tables keyed by ``id`` and scoped by ``user_id``."""

    model: Type[SQLModel]
    create_schema: Type[SQLModel]
    update_schema: Type[SQLModel]

    def creation_defaults(self, now: datetime) -> Dict[str, Any]:
        return {}

    def _invalid(self, exc: PayloadError) -> ReplayResult:
        return ReplayResult.fail(f"Invalid {self.label.lower()} payload: {_describe(exc)}")

    def _owned(self, session, record_id: int, owner_id: int):
        stmt = select(self.model).where(self.model.id == record_id, self.model.user_id == owner_id)
        return session.exec(stmt).first()

    def create(self, payload, owner_id):
        try:
            decoded = self.create_schema.model_validate(dict(payload))
        except PayloadError as exc:
            return self._invalid(exc)

        now = self._now()
        fields = self.creation_defaults(now)
        for key, value in decoded.model_dump().items():
            if value is not None:
                fields[key] = _plain(value)

        with self._session_factory() as session:
            record = self.model(**fields, user_id=owner_id, created_at=now, updated_at=now)
            session.add(record)
            session.commit()
            session.refresh(record)
            return ReplayResult.ok(_serialize(record))

    def update(self, payload, owner_id):
        record_id = _record_id(payload)
        if record_id is None:
            return self.not_found()

        with self._session_factory() as session:
            record = self._owned(session, record_id, owner_id)
            if record is None:
                return self.not_found()
            try:
                decoded = self.update_schema.model_validate(dict(payload))
            except PayloadError as exc:
                return self._invalid(exc)

            for key, value in decoded.model_dump(exclude_unset=True).items():
                setattr(record, key, _plain(value))
            record.updated_at = self._now()
            session.add(record)
            session.commit()
            session.refresh(record)
            return ReplayResult.ok(_serialize(record))

    def delete(self, payload, owner_id):
        record_id = _record_id(payload)
        if record_id is None:
            return self.not_found()

        with self._session_factory() as session:
            record = self._owned(session, record_id, owner_id)
            if record is None:
                return self.not_found()
            session.delete(record)
            session.commit()
        return ReplayResult.ok({"deletedId": record_id})


class ExpenseReplayer(OwnedRecordReplayer):
    label = "Expense"
    model = Expense
    create_schema = ExpenseCreate
    update_schema = ExpenseUpdate

    def creation_defaults(self, now):
        return {"date": now}


class OrderReplayer(OwnedRecordReplayer):
    label = "Order"
    model = Order
    create_schema = OrderCreate
    update_schema = OrderUpdate


class ProfileReplayer(Replayer):
    """Owner profile; only the allow-listed fields are ever written."""

    label = "User"

    def update(self, payload, owner_id):
        with self._session_factory() as session:
            account = session.get(Account, owner_id)
            if account is None:
                return self.not_found()
            for field in PROFILE_FIELDS:
                value = payload.get(field)
                if value:
                    setattr(account, field, str(value).strip())
            account.updated_at = self._now()
            session.add(account)
            session.commit()
            session.refresh(account)
            return ReplayResult.ok(_serialize(account))


class ReplayerRegistry:
    def __init__(self, replayers: Optional[Mapping[ResourceKind, Replayer]] = None):
        self._replayers: Dict[ResourceKind, Replayer] = dict(replayers or {})

    @classmethod
    def default(cls, session_factory: SessionFactory = get_session, clock: Clock = utc_now) -> "ReplayerRegistry":
        return cls(
            {
                ResourceKind.EXPENSES: ExpenseReplayer(session_factory, clock),
                ResourceKind.ORDERS: OrderReplayer(session_factory, clock),
                ResourceKind.USER: ProfileReplayer(session_factory, clock),
            }
        )

    def register(self, kind: ResourceKind, replayer: Replayer) -> None:
        self._replayers[kind] = replayer

    def resolve(self, endpoint: Optional[str]) -> Optional[Replayer]:
        kind = ResourceKind.from_endpoint(endpoint)
        if kind is None:
            return None
        return self._replayers.get(kind)

    def replay(self, endpoint: str, method: SyncMethod, payload: Mapping[str, Any], owner_id: int) -> ReplayResult:
        replayer = self.resolve(endpoint)
        if replayer is None:
            return ReplayResult.fail(UNKNOWN_ENDPOINT)
        return replayer.replay(method, payload, owner_id)


__all__ = [
    "ExpenseReplayer",
    "INVALID_METHOD",
    "OrderReplayer",
    "ProfileReplayer",
    "Replayer",
    "ReplayerRegistry",
    "ReplayResult",
    "ResourceKind",
    "UNKNOWN_ENDPOINT",
]
