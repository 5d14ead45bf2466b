"""Slot domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import SlotStatus
from ...shared.validators import validate_price, validate_time_of_day


class SlotCreate(BaseModel):
    """Schema for seeding a slot from schedule generation"""

    performerId: str
    date: date
    startTime: str
    endTime: Optional[str] = None
    price: Optional[int] = None
    status: SlotStatus = SlotStatus.FREE

    @field_validator("startTime", "endTime")
    @classmethod
    def check_time(cls, v):
        return validate_time_of_day(v)

    @field_validator("price")
    @classmethod
    def check_price(cls, v):
        return validate_price(v)

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        # Booked is only reachable through a reservation
        if v == SlotStatus.BOOKED:
            raise ValueError("Slots cannot be created as booked")
        return v


class SlotResponse(BaseModel):
    """Schema for slot response"""

    id: str
    performerId: str
    date: date
    startTime: str
    endTime: str
    status: SlotStatus
    price: Optional[int] = None
    bookingId: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
