"""Booking router - FastAPI endpoints for the booking lifecycle"""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

from ... import config
from ...database import get_db
from ...models import Booking, BookingProposal, BookingStatus
from .results import raise_for_result
from .schemas import (
    BookingCreate,
    BookingResponse,
    CancelRequest,
    CounterProposalRequest,
    PaymentUpdate,
    ProposalResponse,
    RejectRequest,
)
from .service import BookingService, ProposalInput

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


def booking_response(booking: Booking) -> BookingResponse:
    return BookingResponse(
        id=booking.id,
        customerId=booking.customer_id,
        performerId=booking.performer_id,
        slotId=booking.slot_id,
        status=booking.status,
        paymentStatus=booking.payment_status,
        bookingDate=booking.booking_date,
        bookingTime=booking.booking_time,
        priceTotal=booking.price_total,
        prepaymentAmount=booking.prepayment_amount,
        confirmedAt=booking.confirmed_at,
        paymentDeadline=booking.payment_deadline,
        cancellationReason=booking.cancellation_reason,
        cancelledBy=booking.cancelled_by,
        cancelledAt=booking.cancelled_at,
        created_at=booking.created_at,
    )


def proposal_response(proposal: BookingProposal) -> ProposalResponse:
    return ProposalResponse(
        id=proposal.id,
        bookingId=proposal.booking_id,
        proposedDate=proposal.proposed_date,
        proposedTime=proposal.proposed_time,
        proposedPrice=proposal.proposed_price,
        slotId=proposal.slot_id,
        status=proposal.status,
        created_at=proposal.created_at,
    )


def verify_payment_secret(x_payment_secret: Optional[str] = Header(None)):
    """Shared-secret check for the payment callback"""
    expected = config.PAYMENT_WEBHOOK_SECRET
    if not expected or not x_payment_secret:
        raise HTTPException(status_code=401, detail="Missing payment callback secret")
    if not hmac.compare_digest(x_payment_secret, expected):
        logger.warning("⚠️ Payment callback rejected: invalid secret")
        raise HTTPException(status_code=401, detail="Invalid payment callback secret")


# ============================================================================
# QUERIES
# ============================================================================


@router.get("", response_model=list[BookingResponse])
async def list_bookings(
    customer_id: Optional[str] = Query(None, alias="customerId"),
    performer_id: Optional[str] = Query(None, alias="performerId"),
    status: Optional[BookingStatus] = Query(None),
    service: BookingService = Depends(get_booking_service),
):
    """List bookings for a customer and/or performer"""
    if not customer_id and not performer_id:
        raise HTTPException(status_code=400, detail="customerId or performerId is required")
    bookings = service.list_bookings(customer_id, performer_id, status)
    return [booking_response(b) for b in bookings]


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(booking_id: str, service: BookingService = Depends(get_booking_service)):
    return booking_response(raise_for_result(service.get_booking(booking_id)))


@router.get("/{booking_id}/proposals", response_model=list[ProposalResponse])
async def list_proposals(booking_id: str, service: BookingService = Depends(get_booking_service)):
    """Every proposal ever made for the booking, oldest first"""
    raise_for_result(service.get_booking(booking_id))
    return [proposal_response(p) for p in service.list_proposals(booking_id)]


# ============================================================================
# CUSTOMER ACTIONS
# ============================================================================


@router.post("", response_model=BookingResponse, status_code=201)
async def create_booking(
    data: BookingCreate, service: BookingService = Depends(get_booking_service)
):
    """Book a free slot"""
    result = service.create_booking(data.customerId, data.performerId, data.slotId, data.price)
    return booking_response(raise_for_result(result))


@router.post("/{booking_id}/proposals/{proposal_id}/accept", response_model=BookingResponse)
async def accept_proposal(
    booking_id: str,
    proposal_id: str,
    service: BookingService = Depends(get_booking_service),
):
    result = service.customer_accept_proposal(booking_id, proposal_id)
    return booking_response(raise_for_result(result))


@router.post("/{booking_id}/proposals/reject-all", response_model=BookingResponse)
async def reject_all_proposals(
    booking_id: str, service: BookingService = Depends(get_booking_service)
):
    """Decline every alternative; cancels the booking"""
    return booking_response(raise_for_result(service.customer_reject_all(booking_id)))


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: str,
    data: CancelRequest,
    service: BookingService = Depends(get_booking_service),
):
    result = service.cancel_booking(booking_id, data.cancelledBy, data.reason)
    return booking_response(raise_for_result(result))


# ============================================================================
# PERFORMER ACTIONS
# ============================================================================


@router.post("/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking(booking_id: str, service: BookingService = Depends(get_booking_service)):
    """Confirm and start the payment deadline"""
    return booking_response(raise_for_result(service.performer_confirm(booking_id)))


@router.post("/{booking_id}/counter-proposals", response_model=BookingResponse)
async def counter_propose(
    booking_id: str,
    data: CounterProposalRequest,
    service: BookingService = Depends(get_booking_service),
):
    proposals = [
        ProposalInput(
            proposed_date=p.proposedDate,
            proposed_time=p.proposedTime,
            proposed_price=p.proposedPrice,
            slot_id=p.slotId,
        )
        for p in data.proposals
    ]
    result = service.performer_counter_propose(booking_id, proposals)
    return booking_response(raise_for_result(result))


@router.post("/{booking_id}/reject", response_model=BookingResponse)
async def reject_booking(
    booking_id: str,
    data: Optional[RejectRequest] = None,
    service: BookingService = Depends(get_booking_service),
):
    reason = data.reason if data else None
    return booking_response(raise_for_result(service.performer_reject(booking_id, reason)))


@router.post("/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(booking_id: str, service: BookingService = Depends(get_booking_service)):
    return booking_response(raise_for_result(service.mark_completed(booking_id)))


@router.post("/{booking_id}/no-show", response_model=BookingResponse)
async def mark_no_show(booking_id: str, service: BookingService = Depends(get_booking_service)):
    return booking_response(raise_for_result(service.mark_no_show(booking_id)))


# ============================================================================
# PAYMENT CALLBACK
# ============================================================================


@router.post(
    "/{booking_id}/payment",
    response_model=BookingResponse,
    dependencies=[Depends(verify_payment_secret)],
)
async def record_payment(
    booking_id: str,
    data: PaymentUpdate,
    service: BookingService = Depends(get_booking_service),
):
    """Inbound payment signal; repeated callbacks are no-ops"""
    result = service.record_payment(booking_id, data.paymentStatus)
    return booking_response(raise_for_result(result))


__all__ = ["router"]
