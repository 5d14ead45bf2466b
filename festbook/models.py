"""
Booking engine models: availability slots, bookings, proposals and the
scheduled notification queue
"""

import enum
import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from .database import Base


def generate_id():
    """Generate a UUID string primary key"""
    return str(uuid.uuid4())


def enum_column(enum_cls):
    """Store enum values (not member names) as plain strings"""
    return Enum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class SlotStatus(str, enum.Enum):
    FREE = "free"
    BOOKED = "booked"
    BLOCKED = "blocked"


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    COUNTER_PROPOSED = "counter_proposed"
    CUSTOMER_ACCEPTED = "customer_accepted"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


TERMINAL_BOOKING_STATUSES = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW}
)


class PaymentStatus(str, enum.Enum):
    NOT_PAID = "not_paid"
    PREPAYMENT_PAID = "prepayment_paid"
    FULLY_PAID = "fully_paid"
    REFUNDED = "refunded"


PAID_STATUSES = frozenset({PaymentStatus.PREPAYMENT_PAID, PaymentStatus.FULLY_PAID})


class CancelledBy(str, enum.Enum):
    CUSTOMER = "customer"
    PERFORMER = "performer"
    SYSTEM = "system"


class ProposalStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class NotificationKind(str, enum.Enum):
    PAYMENT_REMINDER_1H = "payment_reminder_1h"
    PAYMENT_REMINDER_10M = "payment_reminder_10m"
    PAYMENT_DEADLINE_EXPIRED = "payment_deadline_expired"
    VISIT_REMINDER_3D = "visit_reminder_3d"
    VISIT_REMINDER_1D = "visit_reminder_1d"
    VISIT_REMINDER_5H = "visit_reminder_5h"

    # Immediate notices to the other party when a booking changes hands
    BOOKING_REQUESTED = "booking_requested"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_COUNTER_PROPOSED = "booking_counter_proposed"
    BOOKING_REJECTED = "booking_rejected"
    PROPOSAL_ACCEPTED = "proposal_accepted"
    BOOKING_CANCELLED = "booking_cancelled"

    @property
    def is_booking_event(self) -> bool:
        return self in BOOKING_EVENT_KINDS

    @property
    def is_payment_reminder(self) -> bool:
        return self in (NotificationKind.PAYMENT_REMINDER_1H, NotificationKind.PAYMENT_REMINDER_10M)

    @property
    def is_visit_reminder(self) -> bool:
        return self in (
            NotificationKind.VISIT_REMINDER_3D,
            NotificationKind.VISIT_REMINDER_1D,
            NotificationKind.VISIT_REMINDER_5H,
        )


BOOKING_EVENT_KINDS = frozenset(
    {
        NotificationKind.BOOKING_REQUESTED,
        NotificationKind.BOOKING_CONFIRMED,
        NotificationKind.BOOKING_COUNTER_PROPOSED,
        NotificationKind.BOOKING_REJECTED,
        NotificationKind.PROPOSAL_ACCEPTED,
        NotificationKind.BOOKING_CANCELLED,
    }
)


class AvailabilitySlot(Base):
    """A performer's bookable one-hour window. Rows come from schedule generation."""

    __tablename__ = "availability_slots"
    __table_args__ = (
        UniqueConstraint("performer_id", "date", "start_time", name="uq_slot_performer_day_hour"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    performer_id = Column(String(36), nullable=False, index=True)

    date = Column(Date, nullable=False, index=True)
    start_time = Column(String(5), nullable=False)  # HH:MM, marketplace local time
    end_time = Column(String(5), nullable=False)

    # free → booked only through SlotStore.reserve; booked → free through release
    status = Column(enum_column(SlotStatus), default=SlotStatus.FREE, nullable=False, index=True)
    price = Column(Integer, nullable=True)

    # Set while booked; cleared on release
    booking_id = Column(String(36), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<AvailabilitySlot(id={self.id}, performer={self.performer_id}, {self.date} {self.start_time}, {self.status})>"


class Booking(Base):
    """
    Customer booking of a performer visit.

    Status workflow:
    pending → counter_proposed → customer_accepted → confirmed → completed
    Any non-terminal status may end in cancelled; confirmed may end in no_show.
    Bookings are never deleted.
    """

    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=generate_id)
    customer_id = Column(String(36), nullable=False, index=True)
    performer_id = Column(String(36), nullable=False, index=True)
    slot_id = Column(String(36), ForeignKey("availability_slots.id"), nullable=True, index=True)

    status = Column(
        enum_column(BookingStatus), default=BookingStatus.PENDING, nullable=False, index=True
    )
    payment_status = Column(
        enum_column(PaymentStatus), default=PaymentStatus.NOT_PAID, nullable=False
    )

    # Visit date and time in marketplace local time
    booking_date = Column(Date, nullable=False)
    booking_time = Column(String(5), nullable=False)

    # Whole currency units
    price_total = Column(Integer, nullable=False)
    prepayment_amount = Column(Integer, nullable=False, default=0)

    confirmed_at = Column(DateTime, nullable=True)
    payment_deadline = Column(DateTime, nullable=True)

    cancellation_reason = Column(Text, nullable=True)
    cancelled_by = Column(enum_column(CancelledBy), nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_BOOKING_STATUSES

    def __repr__(self):
        return f"<Booking(id={self.id}, status={self.status}, payment={self.payment_status})>"


class BookingProposal(Base):
    """Alternative date/time/price offered by the performer for a booking"""

    __tablename__ = "booking_proposals"

    id = Column(String(36), primary_key=True, default=generate_id)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False, index=True)

    proposed_date = Column(Date, nullable=False)
    proposed_time = Column(String(5), nullable=False)
    proposed_price = Column(Integer, nullable=True)
    slot_id = Column(String(36), ForeignKey("availability_slots.id"), nullable=True)

    status = Column(
        enum_column(ProposalStatus), default=ProposalStatus.PENDING, nullable=False, index=True
    )

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<BookingProposal(id={self.id}, booking={self.booking_id}, {self.proposed_date} {self.proposed_time}, {self.status})>"


class ScheduledNotification(Base):
    """
    One future obligation for a booking. Written by the deadline scheduler,
    claimed and closed by the queue processor, kept forever as audit trail.
    """

    __tablename__ = "notification_queue"
    __table_args__ = (
        UniqueConstraint(
            "booking_id", "user_id", "kind", "dedupe_key", name="uq_notification_booking_user_kind"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), nullable=False, index=True)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False, index=True)
    kind = Column(enum_column(NotificationKind), nullable=False)
    # Empty for one-off kinds; set for events that may repeat (e.g. the proposal set id)
    dedupe_key = Column(String(36), default="", server_default="", nullable=False)

    scheduled_for = Column(DateTime, nullable=False, index=True)
    claimed_at = Column(DateTime, nullable=True)
    sent_at = Column(DateTime, nullable=True, index=True)

    # Processing audit
    attempts = Column(Integer, default=0, nullable=False)
    delivered = Column(Boolean, nullable=True)  # None until processed
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<ScheduledNotification(id={self.id}, kind={self.kind}, for={self.scheduled_for}, sent={self.sent_at})>"
