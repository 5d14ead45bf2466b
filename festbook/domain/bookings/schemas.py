"""Booking domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...config import MAX_PROPOSALS_PER_BOOKING
from ...models import BookingStatus, CancelledBy, PaymentStatus, ProposalStatus
from ...shared.validators import validate_price, validate_time_of_day


class BookingCreate(BaseModel):
    """Schema for a customer booking request"""

    customerId: str
    slotId: str
    performerId: Optional[str] = None
    price: Optional[int] = None

    @field_validator("price")
    @classmethod
    def check_price(cls, v):
        return validate_price(v)


class ProposalItem(BaseModel):
    """One alternative offered by the performer"""

    proposedDate: date
    proposedTime: str
    proposedPrice: Optional[int] = None
    slotId: Optional[str] = None

    @field_validator("proposedTime")
    @classmethod
    def check_time(cls, v):
        return validate_time_of_day(v)

    @field_validator("proposedPrice")
    @classmethod
    def check_price(cls, v):
        return validate_price(v)


class CounterProposalRequest(BaseModel):
    proposals: list[ProposalItem] = Field(..., min_length=1, max_length=MAX_PROPOSALS_PER_BOOKING)


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class CancelRequest(BaseModel):
    """Manual cancellation by one of the parties"""

    cancelledBy: CancelledBy
    reason: Optional[str] = None

    @field_validator("cancelledBy")
    @classmethod
    def check_actor(cls, v):
        if v == CancelledBy.SYSTEM:
            raise ValueError("System cancellations are not accepted from clients")
        return v


class PaymentUpdate(BaseModel):
    """Payment callback body from the gateway glue"""

    paymentStatus: PaymentStatus


class BookingResponse(BaseModel):
    """Schema for booking response"""

    id: str
    customerId: str
    performerId: str
    slotId: Optional[str] = None
    status: BookingStatus
    paymentStatus: PaymentStatus
    bookingDate: date
    bookingTime: str
    priceTotal: int
    prepaymentAmount: int
    confirmedAt: Optional[datetime] = None
    paymentDeadline: Optional[datetime] = None
    cancellationReason: Optional[str] = None
    cancelledBy: Optional[CancelledBy] = None
    cancelledAt: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProposalResponse(BaseModel):
    id: str
    bookingId: str
    proposedDate: date
    proposedTime: str
    proposedPrice: Optional[int] = None
    slotId: Optional[str] = None
    status: ProposalStatus
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
