"""Shop owner accounts and their delegated sub-users."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from datetime_utils import utc_now


class Account(SQLModel, table=True):
    """Root tenant. Every queued mutation is applied under an account id."""

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, unique=True)
    email: str = Field(index=True, unique=True)
    name: Optional[str] = None
    phone: Optional[str] = None
    shop_name: Optional[str] = None
    address: Optional[str] = None
    currency: Optional[str] = None
    is_admin: bool = False
    archived: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class SubUser(SQLModel, table=True):
    __tablename__ = "sub_user"

    id: Optional[int] = Field(default=None, primary_key=True)
    sub_username: str
    email: str = Field(index=True, unique=True)
    phone_number: str
    main_user_id: int = Field(foreign_key="account.id", index=True)
    created_at: datetime = Field(default_factory=utc_now)


# Profile fields a queued "user" mutation may touch.
PROFILE_FIELDS = ("name", "email", "phone")


__all__ = ["Account", "SubUser", "PROFILE_FIELDS"]
