from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy.exc import OperationalError

from core.errors import OwnershipError, StorageError
from models.account import Account, SubUser
from storage.db import SessionFactory, get_session


@dataclass(frozen=True)
class ResolvedIdentity:
    owner_id: int
    is_sub_identity: bool
    principal_id: int


def _as_int(value: Union[int, str, None]) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class IdentityResolver:
    """Maps an authenticated principal to the root account it acts for."""

    def __init__(self, session_factory: SessionFactory = get_session):
        self._session_factory = session_factory

    def resolve(self, principal_id: Union[int, str, None], is_sub_user: bool = False) -> ResolvedIdentity:
        pid = _as_int(principal_id)
        if pid is None:
            raise OwnershipError("Invalid principal")

        try:
            with self._session_factory() as session:
                if is_sub_user:
                    sub_user = session.get(SubUser, pid)
                    if sub_user is None:
                        raise OwnershipError("Sub-user not found")
                    return ResolvedIdentity(owner_id=sub_user.main_user_id, is_sub_identity=True, principal_id=pid)
                if session.get(Account, pid) is None:
                    raise OwnershipError("User not found")
                return ResolvedIdentity(owner_id=pid, is_sub_identity=False, principal_id=pid)
        except OperationalError as exc:
            raise StorageError(f"Account store unavailable: {exc.orig}") from exc


__all__ = ["IdentityResolver", "ResolvedIdentity"]
