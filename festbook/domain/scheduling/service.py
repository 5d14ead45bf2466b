"""
Deadline scheduler - turns booking transitions into scheduled notification rows
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...config import MARKETPLACE_TIMEZONE
from ...models import Booking, NotificationKind, ScheduledNotification
from ...shared.clock import Clock, system_clock
from ...shared.validators import local_to_utc
from ..notifications.repository import NotificationRepository

logger = logging.getLogger(__name__)

# Offsets before the payment deadline
PAYMENT_REMINDER_OFFSETS = {
    NotificationKind.PAYMENT_REMINDER_1H: timedelta(hours=1),
    NotificationKind.PAYMENT_REMINDER_10M: timedelta(minutes=10),
}

# Offsets before the visit start
VISIT_REMINDER_OFFSETS = {
    NotificationKind.VISIT_REMINDER_3D: timedelta(days=3),
    NotificationKind.VISIT_REMINDER_1D: timedelta(days=1),
    NotificationKind.VISIT_REMINDER_5H: timedelta(hours=5),
}


class DeadlineScheduler:
    """
    Stateless: derives the notification rows a booking transition implies and
    inserts them in the caller's transaction. The booking service calls
    on_confirmed exactly once per transition into confirmed; the unique
    (booking, user, kind) constraint rejects any accidental second pass.
    """

    def __init__(self, clock: Clock = system_clock, timezone_name: str = MARKETPLACE_TIMEZONE):
        self.clock = clock
        self.timezone_name = timezone_name

    def visit_start(self, booking: Booking) -> datetime:
        """Visit start as naive UTC"""
        return local_to_utc(booking.booking_date, booking.booking_time, self.timezone_name)

    def plan_for_confirmed(
        self, booking: Booking, now: Optional[datetime] = None
    ) -> list[ScheduledNotification]:
        """Compute (without inserting) the rows for a freshly confirmed booking"""
        now = now or self.clock.now()
        rows = []

        if booking.payment_deadline:
            deadline = booking.payment_deadline
            for kind, offset in PAYMENT_REMINDER_OFFSETS.items():
                fire_at = deadline - offset
                if fire_at > now:
                    rows.append(self._row(booking.customer_id, booking, kind, fire_at))

            # Expiry is scheduled even if already due so the processor cancels promptly
            rows.append(
                self._row(
                    booking.customer_id, booking, NotificationKind.PAYMENT_DEADLINE_EXPIRED, deadline
                )
            )

        # One row per distinct user
        recipients = list(dict.fromkeys([booking.customer_id, booking.performer_id]))
        visit_start = self.visit_start(booking)
        for kind, offset in VISIT_REMINDER_OFFSETS.items():
            fire_at = visit_start - offset
            if fire_at <= now:
                continue
            for user_id in recipients:
                rows.append(self._row(user_id, booking, kind, fire_at))

        return rows

    def on_confirmed(self, db: Session, booking: Booking) -> list[ScheduledNotification]:
        """Insert the rows for a freshly confirmed booking. Does not commit."""
        rows = self.plan_for_confirmed(booking)
        NotificationRepository.add_many(db, rows)

        kinds = ", ".join(sorted({row.kind.value for row in rows})) or "none"
        logger.info(f"⏰ Scheduled {len(rows)} notification(s) for booking {booking.id}: {kinds}")
        return rows

    def on_event(
        self,
        db: Session,
        booking: Booking,
        kind: NotificationKind,
        user_id: str,
        dedupe_key: str = "",
    ) -> ScheduledNotification:
        """
        Queue an immediate notice about a transition, in the caller's
        transaction. The processor delivers it on its next run.
        """
        row = self._row(user_id, booking, kind, self.clock.now(), dedupe_key)
        NotificationRepository.add_many(db, [row])
        logger.info(f"🔔 Queued {kind.value} for booking {booking.id} to {user_id}")
        return row

    @staticmethod
    def _row(
        user_id: str,
        booking: Booking,
        kind: NotificationKind,
        fire_at: datetime,
        dedupe_key: str = "",
    ) -> ScheduledNotification:
        return ScheduledNotification(
            user_id=user_id,
            booking_id=booking.id,
            kind=kind,
            scheduled_for=fire_at,
            dedupe_key=dedupe_key,
        )
