"""Notification queue repository - Database operations for scheduled notifications"""

from datetime import datetime
from typing import Optional

from sqlalchemy import and_, or_, update
from sqlalchemy.orm import Session

from ...models import ScheduledNotification


class NotificationRepository:
    """Repository for notification_queue rows"""

    @staticmethod
    def add_many(db: Session, rows: list[ScheduledNotification]) -> list[ScheduledNotification]:
        """Insert rows in the caller's transaction"""
        db.add_all(rows)
        db.flush()
        return rows

    @staticmethod
    def get(db: Session, notification_id: str) -> Optional[ScheduledNotification]:
        return (
            db.query(ScheduledNotification)
            .filter(ScheduledNotification.id == notification_id)
            .first()
        )

    @staticmethod
    def get_for_booking(db: Session, booking_id: str) -> list[ScheduledNotification]:
        """All rows for a booking, earliest first"""
        return (
            db.query(ScheduledNotification)
            .filter(ScheduledNotification.booking_id == booking_id)
            .order_by(ScheduledNotification.scheduled_for, ScheduledNotification.kind)
            .all()
        )

    @staticmethod
    def get_due(
        db: Session, now: datetime, claim_expired_before: datetime, limit: int
    ) -> list[ScheduledNotification]:
        """
        Due rows that are not sent and either unclaimed or whose claim lease
        ran out (the claiming worker died before marking them sent).
        """
        return (
            db.query(ScheduledNotification)
            .filter(
                ScheduledNotification.sent_at.is_(None),
                ScheduledNotification.scheduled_for <= now,
                or_(
                    ScheduledNotification.claimed_at.is_(None),
                    ScheduledNotification.claimed_at < claim_expired_before,
                ),
            )
            .order_by(ScheduledNotification.scheduled_for)
            .limit(limit)
            .all()
        )

    @staticmethod
    def claim(
        db: Session, notification_id: str, observed_claimed_at: Optional[datetime], now: datetime
    ) -> bool:
        """
        Compare-and-set the claim: succeeds only if claimed_at still holds the
        value this worker observed and the row is not sent. Does not commit.
        """
        if observed_claimed_at is None:
            claim_condition = ScheduledNotification.claimed_at.is_(None)
        else:
            claim_condition = ScheduledNotification.claimed_at == observed_claimed_at

        result = db.execute(
            update(ScheduledNotification)
            .where(
                and_(
                    ScheduledNotification.id == notification_id,
                    ScheduledNotification.sent_at.is_(None),
                    claim_condition,
                )
            )
            .values(claimed_at=now, attempts=ScheduledNotification.attempts + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def mark_sent(
        db: Session,
        notification_id: str,
        now: datetime,
        delivered: bool,
        error: Optional[str] = None,
    ) -> bool:
        """Set sent_at once. Returns False if the row was already closed. Does not commit."""
        result = db.execute(
            update(ScheduledNotification)
            .where(
                ScheduledNotification.id == notification_id,
                ScheduledNotification.sent_at.is_(None),
            )
            .values(sent_at=now, delivered=delivered, last_error=error)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
