"""
Notification queue processor
Claims due scheduled notifications, acts on them, and closes them exactly once.
Safe to run concurrently: every row is claimed with a compare-and-set first.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ... import notification_templates
from ...config import NOTIFICATION_BATCH_SIZE, NOTIFICATION_CLAIM_TIMEOUT_SECONDS
from ...models import (
    PAID_STATUSES,
    Booking,
    BookingStatus,
    NotificationKind,
    PaymentStatus,
    ScheduledNotification,
)
from ...services.notification_service import NotificationDelivery, NotificationMessage
from ...shared.clock import Clock, system_clock
from ..bookings.repository import BookingRepository
from ..bookings.service import BookingService
from .repository import NotificationRepository

logger = logging.getLogger(__name__)

PAYMENT_REMINDER_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.CUSTOMER_ACCEPTED)


@dataclass
class DispatchOutcome:
    delivered: bool = False
    skipped: bool = False
    cancelled: bool = False
    failed_deliveries: int = 0
    error: Optional[str] = None


class NotificationQueueProcessor:
    """Recurring batch worker over notification_queue"""

    def __init__(
        self,
        db: Session,
        delivery: NotificationDelivery,
        clock: Clock = system_clock,
        batch_size: int = NOTIFICATION_BATCH_SIZE,
        claim_timeout_seconds: int = NOTIFICATION_CLAIM_TIMEOUT_SECONDS,
        booking_service: Optional[BookingService] = None,
    ):
        self.db = db
        self.delivery = delivery
        self.clock = clock
        self.batch_size = batch_size
        self.claim_timeout = timedelta(seconds=claim_timeout_seconds)
        self.repo = NotificationRepository()
        self.bookings = booking_service or BookingService(db, clock=clock)

    def fetch_due(self) -> list[tuple[str, Optional[datetime]]]:
        """
        Snapshot of due rows as (id, observed claimed_at). The observed claim
        value is what the later compare-and-set checks against.
        """
        now = self.clock.now()
        rows = self.repo.get_due(self.db, now, now - self.claim_timeout, self.batch_size)
        snapshot = [(row.id, row.claimed_at) for row in rows]
        # End the read so claims start from a fresh transaction
        self.db.rollback()
        return snapshot

    async def process_due(self) -> dict:
        """Process one batch of due notifications. Returns a summary dict."""
        due = self.fetch_due()
        summary = {
            "selected": len(due),
            "claimed": 0,
            "lost_claims": 0,
            "delivered": 0,
            "skipped": 0,
            "cancelled": 0,
            "failed_deliveries": 0,
            "errors": 0,
        }

        if not due:
            logger.debug("ℹ️ No due notifications")
            return summary

        logger.info(f"📬 Processing {len(due)} due notification(s)")

        for notification_id, observed_claimed_at in due:
            try:
                outcome = await self.process_one(notification_id, observed_claimed_at)
            except Exception as e:
                # The claim lease brings the row back on a later run
                logger.error(f"❌ Notification {notification_id} failed, moving on: {e}")
                summary["errors"] += 1
                continue

            if outcome is None:
                summary["lost_claims"] += 1
                continue

            summary["claimed"] += 1
            summary["delivered"] += int(outcome.delivered)
            summary["skipped"] += int(outcome.skipped)
            summary["cancelled"] += int(outcome.cancelled)
            summary["failed_deliveries"] += outcome.failed_deliveries

        logger.info(f"📊 Notification queue summary: {summary}")
        return summary

    async def process_one(
        self, notification_id: str, observed_claimed_at: Optional[datetime] = None
    ) -> Optional[DispatchOutcome]:
        """
        Claim, dispatch and close one row. Returns None if another worker
        holds the claim. Any failure after the claim attempt is raised; the
        claim lease makes the row eligible again later.
        """
        try:
            claimed = self.repo.claim(
                self.db, notification_id, observed_claimed_at, self.clock.now()
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to claim notification {notification_id}: {e}")
            raise

        if not claimed:
            logger.debug(f"ℹ️ Notification {notification_id} already claimed by another run")
            return None

        row = self.repo.get(self.db, notification_id)
        try:
            outcome = await self._dispatch(row)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to dispatch notification {notification_id}: {e}")
            raise

        try:
            closed = self.repo.mark_sent(
                self.db,
                notification_id,
                self.clock.now(),
                delivered=outcome.delivered,
                error=outcome.error,
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to mark notification {notification_id} sent: {e}")
            raise

        if not closed:
            logger.warning(f"⚠️ Notification {notification_id} was already closed by another run")
        return outcome

    async def _dispatch(self, row: ScheduledNotification) -> DispatchOutcome:
        booking = BookingRepository.get(self.db, row.booking_id)
        if not booking:
            logger.warning(f"⚠️ Notification {row.id} references missing booking {row.booking_id}")
            return DispatchOutcome(skipped=True, error="booking not found")

        kind = row.kind
        if kind == NotificationKind.PAYMENT_DEADLINE_EXPIRED:
            return await self._expire_payment_deadline(booking)

        if kind.is_payment_reminder:
            if (
                booking.status not in PAYMENT_REMINDER_STATUSES
                or booking.payment_status != PaymentStatus.NOT_PAID
            ):
                return self._skip(row, booking)
            message = notification_templates.payment_reminder(booking, kind)
        elif kind.is_visit_reminder:
            if booking.status != BookingStatus.CONFIRMED or booking.payment_status not in PAID_STATUSES:
                return self._skip(row, booking)
            message = notification_templates.visit_reminder(
                booking, kind, for_performer=row.user_id == booking.performer_id
            )
        elif kind.is_booking_event:
            # The transition already happened; the notice goes out regardless of later changes
            message = notification_templates.booking_event(
                booking, kind, for_performer=row.user_id == booking.performer_id
            )
        else:
            return DispatchOutcome(skipped=True, error=f"unhandled kind {kind.value}")

        delivered, error = await self._deliver(row.user_id, message)
        return DispatchOutcome(
            delivered=delivered, failed_deliveries=0 if delivered else 1, error=error
        )

    async def _expire_payment_deadline(self, booking: Booking) -> DispatchOutcome:
        if booking.payment_status != PaymentStatus.NOT_PAID:
            logger.info(f"ℹ️ Booking {booking.id} paid before its deadline, nothing to cancel")
            return DispatchOutcome(skipped=True)

        result = self.bookings.auto_cancel(booking.id, reason="Payment deadline expired")
        if not result.ok or not result.changed:
            return DispatchOutcome(skipped=True, error=result.message)

        outcome = DispatchOutcome(cancelled=True, delivered=True)
        for user_id, for_performer in ((booking.customer_id, False), (booking.performer_id, True)):
            message = notification_templates.booking_auto_cancelled(booking, for_performer)
            delivered, error = await self._deliver(user_id, message)
            if not delivered:
                outcome.delivered = False
                outcome.failed_deliveries += 1
                outcome.error = error
        return outcome

    async def _deliver(self, user_id: str, message: NotificationMessage) -> tuple[bool, Optional[str]]:
        """Delivery failures are logged and reported, never raised"""
        try:
            return await self.delivery.deliver(user_id, message)
        except Exception as e:
            logger.error(f"❌ Delivery of {message.kind} to {user_id} raised: {e}")
            return False, str(e)

    @staticmethod
    def _skip(row: ScheduledNotification, booking: Booking) -> DispatchOutcome:
        logger.info(
            f"⏭️ Skipping {row.kind.value} for booking {booking.id} "
            f"(status={booking.status.value}, payment={booking.payment_status.value})"
        )
        return DispatchOutcome(skipped=True)
