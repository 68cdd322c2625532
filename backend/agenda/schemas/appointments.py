# backend/agenda/schemas/appointments.py

import json
from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from ..services.scheduling.config import normalize_time_str

AppointmentType = Literal["estimation", "vente", "achat", "conseil"]
AppointmentStatus = Literal["pending", "confirmed", "completed", "cancelled", "rejected"]


class ContactDetails(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: str = Field(..., min_length=10, max_length=20)

    @field_validator("name", "phone", mode="before")
    @classmethod
    def strip(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class PropertyDetails(BaseModel):
    address: Optional[str] = Field(None, max_length=200)
    city: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=10)
    property_type: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = Field(None, max_length=1000)


class AppointmentCreate(BaseModel):
    agent_id: int
    appointment_type: AppointmentType
    scheduled_date: date
    scheduled_time: str
    duration: Optional[int] = Field(None, ge=15, le=480, description="Defaults to the agent's default_duration")

    contact_details: ContactDetails
    property_details: Optional[PropertyDetails] = None
    notes: Optional[str] = Field(None, max_length=2000)

    @field_validator("scheduled_time")
    @classmethod
    def check_time(cls, v: str) -> str:
        return normalize_time_str(v)


class AppointmentUpdate(BaseModel):
    status: Optional[Literal["confirmed", "rejected", "completed", "cancelled"]] = None
    agent_notes: Optional[str] = Field(None, max_length=1000)
    cancellation_reason: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def check_not_empty(self):
        if self.status is None and self.agent_notes is None:
            raise ValueError("Nothing to update: provide status or agent_notes")
        if self.cancellation_reason is not None and self.status != "cancelled":
            raise ValueError("cancellation_reason is only allowed when cancelling")
        return self


class AppointmentReschedule(BaseModel):
    scheduled_date: date
    scheduled_time: str
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator("scheduled_time")
    @classmethod
    def check_time(cls, v: str) -> str:
        return normalize_time_str(v)


class AppointmentRead(BaseModel):
    id: int
    agent_id: int
    client_id: Optional[int] = None

    appointment_type: str
    scheduled_date: date
    scheduled_time: str
    duration: int
    status: AppointmentStatus

    contact_name: str
    contact_email: str
    contact_phone: str
    is_guest_booking: bool

    property_details: Optional[dict] = None
    notes: Optional[str] = None
    agent_notes: Optional[str] = None

    is_rescheduled: bool
    reschedule_reason: Optional[str] = None
    original_scheduled_date: Optional[date] = None
    original_scheduled_time: Optional[str] = None

    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[int] = None
    cancelled_at: Optional[str] = None
    responded_at: Optional[str] = None

    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    model_config = {"from_attributes": True}

    @field_validator("property_details", mode="before")
    @classmethod
    def parse_property_details(cls, v):
        if isinstance(v, str):
            return json.loads(v)
        return v


class AppointmentStats(BaseModel):
    total: int
    upcoming: int
    by_status: dict[str, int]
