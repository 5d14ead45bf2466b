"""Typed outcomes of booking operations"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from fastapi import HTTPException

from ...models import Booking


class BookingError(str, enum.Enum):
    SLOT_UNAVAILABLE = "slot_unavailable"
    INVALID_TRANSITION = "invalid_transition"
    PROPOSAL_NO_LONGER_AVAILABLE = "proposal_no_longer_available"
    NOT_FOUND = "not_found"
    INVALID_REQUEST = "invalid_request"


@dataclass(frozen=True)
class BookingResult:
    """
    Lost races and bad transitions are ordinary outcomes, so operations
    return this instead of raising. `changed` is False for idempotent no-ops.
    """

    ok: bool
    booking: Booking | None = None
    error: BookingError | None = None
    message: str | None = None
    changed: bool = True

    @classmethod
    def success(cls, booking: Booking, changed: bool = True) -> BookingResult:
        return cls(ok=True, booking=booking, changed=changed)

    @classmethod
    def failure(
        cls, error: BookingError, message: str, booking: Booking | None = None
    ) -> BookingResult:
        return cls(ok=False, booking=booking, error=error, message=message, changed=False)


ERROR_STATUS_CODES = {
    BookingError.NOT_FOUND: 404,
    BookingError.SLOT_UNAVAILABLE: 409,
    BookingError.PROPOSAL_NO_LONGER_AVAILABLE: 409,
    BookingError.INVALID_TRANSITION: 400,
    BookingError.INVALID_REQUEST: 422,
}


def raise_for_result(result: BookingResult) -> Booking:
    """Translate a failed result into an HTTPException; return the booking otherwise"""
    if not result.ok:
        raise HTTPException(
            status_code=ERROR_STATUS_CODES.get(result.error, 400),
            detail={"error": result.error.value, "message": result.message},
        )
    return result.booking
