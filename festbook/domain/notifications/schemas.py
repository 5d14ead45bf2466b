"""Notification queue schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from ...models import NotificationKind


class ScheduledNotificationResponse(BaseModel):
    id: str
    userId: str
    bookingId: str
    kind: NotificationKind
    scheduledFor: datetime
    claimedAt: Optional[datetime] = None
    sentAt: Optional[datetime] = None
    attempts: int = 0
    delivered: Optional[bool] = None
    lastError: Optional[str] = None

    class Config:
        from_attributes = True


class ProcessResult(BaseModel):
    """Summary of one queue processing run"""

    selected: int
    claimed: int
    lost_claims: int
    delivered: int
    skipped: int
    cancelled: int
    failed_deliveries: int
    errors: int = 0
