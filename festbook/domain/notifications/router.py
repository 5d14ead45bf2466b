"""Notification queue router - inspection and manual processing trigger"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import ScheduledNotification
from ...services.notification_service import get_delivery
from ..bookings.repository import BookingRepository
from .processor import NotificationQueueProcessor
from .repository import NotificationRepository
from .schemas import ProcessResult, ScheduledNotificationResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


def notification_response(row: ScheduledNotification) -> ScheduledNotificationResponse:
    return ScheduledNotificationResponse(
        id=row.id,
        userId=row.user_id,
        bookingId=row.booking_id,
        kind=row.kind,
        scheduledFor=row.scheduled_for,
        claimedAt=row.claimed_at,
        sentAt=row.sent_at,
        attempts=row.attempts or 0,
        delivered=row.delivered,
        lastError=row.last_error,
    )


def get_queue_processor(db: Session = Depends(get_db)) -> NotificationQueueProcessor:
    """Dependency injection for the queue processor"""
    return NotificationQueueProcessor(db, get_delivery())


@router.get("", response_model=list[ScheduledNotificationResponse])
async def list_booking_notifications(
    booking_id: str = Query(..., alias="bookingId"),
    db: Session = Depends(get_db),
):
    """Scheduled notifications of one booking, earliest first"""
    if not BookingRepository.get(db, booking_id):
        raise HTTPException(status_code=404, detail="Booking not found")
    return [notification_response(row) for row in NotificationRepository.get_for_booking(db, booking_id)]


@router.post("/process", response_model=ProcessResult)
async def run_queue_processor(
    processor: NotificationQueueProcessor = Depends(get_queue_processor),
):
    """Process one batch now instead of waiting for the worker's next tick"""
    logger.info("🔧 Manual notification queue run requested")
    summary = await processor.process_due()
    return ProcessResult(**summary)


__all__ = ["router"]
