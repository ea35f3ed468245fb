from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import field_validator
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from datetime_utils import ensure_utc, utc_now


ORDER_STATUSES = ("pending", "completed")


def _check_status(value: str) -> str:
    if value not in ORDER_STATUSES:
        raise ValueError(f"status must be one of {', '.join(ORDER_STATUSES)}")
    return value


class EyePrescription(SQLModel):
    sph: Optional[float] = None
    cyl: Optional[float] = None
    axis: Optional[float] = None


class Order(SQLModel, table=True):
    __tablename__ = "shop_order"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="account.id", index=True)
    patient_name: str
    whatsapp_number: str
    frame_details: Optional[str] = None
    lens_type: Optional[str] = None
    total_amount: float
    advance: float
    balance: float
    delivery_date: datetime
    right_eye: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    left_eye: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    add_input: Optional[str] = None
    important_note: Optional[str] = None
    status: str = "pending"  # pending / completed
    archived: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class OrderCreate(SQLModel):
    """Payload accepted for a queued order creation.

    Field aliases accept the camelCase names offline clients send.
    """

    patient_name: str = Field(alias="patientName")
    whatsapp_number: str = Field(alias="whatsappNumber")
    frame_details: Optional[str] = Field(default=None, alias="frameDetails")
    lens_type: Optional[str] = Field(default=None, alias="lensType")
    total_amount: float = Field(alias="totalAmount")
    advance: float
    balance: float
    delivery_date: datetime = Field(alias="deliveryDate")
    right_eye: Optional[EyePrescription] = Field(default=None, alias="rightEye")
    left_eye: Optional[EyePrescription] = Field(default=None, alias="leftEye")
    add_input: Optional[str] = Field(default=None, alias="addInput")
    important_note: Optional[str] = Field(default=None, alias="importantNote")
    status: str = "pending"
    archived: bool = False

    model_config = {"populate_by_name": True}

    @field_validator("delivery_date")
    @classmethod
    def _delivery_utc(cls, value):
        return ensure_utc(value)

    @field_validator("status")
    @classmethod
    def _known_status(cls, value):
        return _check_status(value)


class OrderUpdate(SQLModel):
    patient_name: Optional[str] = Field(default=None, alias="patientName")
    whatsapp_number: Optional[str] = Field(default=None, alias="whatsappNumber")
    frame_details: Optional[str] = Field(default=None, alias="frameDetails")
    lens_type: Optional[str] = Field(default=None, alias="lensType")
    total_amount: Optional[float] = Field(default=None, alias="totalAmount")
    advance: Optional[float] = None
    balance: Optional[float] = None
    delivery_date: Optional[datetime] = Field(default=None, alias="deliveryDate")
    right_eye: Optional[EyePrescription] = Field(default=None, alias="rightEye")
    left_eye: Optional[EyePrescription] = Field(default=None, alias="leftEye")
    add_input: Optional[str] = Field(default=None, alias="addInput")
    important_note: Optional[str] = Field(default=None, alias="importantNote")
    status: Optional[str] = None
    archived: Optional[bool] = None

    model_config = {"populate_by_name": True}

    @field_validator(
        "patient_name",
        "whatsapp_number",
        "total_amount",
        "advance",
        "balance",
        "delivery_date",
        "status",
        "archived",
    )
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("may not be null")
        return value

    @field_validator("delivery_date")
    @classmethod
    def _delivery_utc(cls, value):
        return ensure_utc(value)

    @field_validator("status")
    @classmethod
    def _known_status(cls, value):
        if value is None:
            return value
        return _check_status(value)


__all__ = ["Order", "OrderCreate", "OrderUpdate", "EyePrescription"]
