from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import field_validator
from sqlmodel import Field, SQLModel

from datetime_utils import ensure_utc, utc_now


class ExpenseCategory(str, Enum):
    SALARY = "Salary"
    FRAME_VENDORS = "Frame Vendors"
    LENS_VENDOR = "Lens Vendor"
    BOX_VENDOR = "Box Vendor"
    MARKETING = "Marketing"
    ACCESSORIES = "Accessories"
    REPAIR_AND_MAINTENANCE = "Repair and Maintenance"
    NEW_ASSET_PURCHASE = "New Asset Purchase"


class Expense(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="account.id", index=True)
    amount: float
    category: str
    date: datetime = Field(default_factory=utc_now)
    description: str = ""
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ExpenseCreate(SQLModel):
    """Payload accepted for a queued expense creation."""

    amount: float = Field(ge=0)
    category: ExpenseCategory
    date: Optional[datetime] = None
    description: str = ""

    @field_validator("date")
    @classmethod
    def _date_utc(cls, value):
        return ensure_utc(value)


class ExpenseUpdate(SQLModel):
    amount: Optional[float] = Field(default=None, ge=0)
    category: Optional[ExpenseCategory] = None
    date: Optional[datetime] = None
    description: Optional[str] = None

    @field_validator("amount", "category", "date", "description")
    @classmethod
    def _not_null(cls, value):
        # Omit a field to keep it; the columns themselves are NOT NULL.
        if value is None:
            raise ValueError("may not be null")
        return value

    @field_validator("date")
    @classmethod
    def _date_utc(cls, value):
        return ensure_utc(value)


__all__ = ["Expense", "ExpenseCategory", "ExpenseCreate", "ExpenseUpdate"]
