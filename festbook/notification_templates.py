"""
Notification copy for queued reminders, booking events and automatic cancellations
"""

from .config import FRONTEND_URL
from .models import Booking, NotificationKind
from .services.notification_service import NotificationMessage

CUSTOMER_BOOKINGS_URL = f"{FRONTEND_URL}/customer/bookings"
PERFORMER_BOOKINGS_URL = f"{FRONTEND_URL}/performer/bookings"


def _visit_when(booking: Booking) -> str:
    return f"{booking.booking_date.strftime('%d %B %Y')} at {booking.booking_time}"


def payment_reminder(booking: Booking, kind: NotificationKind) -> NotificationMessage:
    """Sent to the customer before the prepayment deadline"""
    time_left = "1 hour" if kind == NotificationKind.PAYMENT_REMINDER_1H else "10 minutes"
    return NotificationMessage(
        kind=kind.value,
        title="💳 Prepayment due soon",
        body=(
            f"Your booking for {_visit_when(booking)} will be cancelled in {time_left} "
            f"unless the prepayment of {booking.prepayment_amount} is made."
        ),
        url=f"{CUSTOMER_BOOKINGS_URL}?pay={booking.id}",
        tag=f"payment-{booking.id}",
    )


VISIT_REMINDER_COPY = {
    NotificationKind.VISIT_REMINDER_3D: ("🎄 Visit in 3 days", "in 3 days"),
    NotificationKind.VISIT_REMINDER_1D: ("🎅 Visit tomorrow", "tomorrow"),
    NotificationKind.VISIT_REMINDER_5H: ("⏰ Visit in 5 hours", "in 5 hours"),
}


def visit_reminder(booking: Booking, kind: NotificationKind, for_performer: bool) -> NotificationMessage:
    """Sent to both parties ahead of the visit"""
    title, when = VISIT_REMINDER_COPY[kind]
    if for_performer:
        body = f"You have a visit {when}: {_visit_when(booking)}. Anything changed? Contact support."
        url = PERFORMER_BOOKINGS_URL
    else:
        body = f"Your performer arrives {when}: {_visit_when(booking)}. Everything on track?"
        url = CUSTOMER_BOOKINGS_URL

    return NotificationMessage(
        kind=kind.value, title=title, body=body, url=url, tag=f"reminder-{booking.id}"
    )


def booking_auto_cancelled(booking: Booking, for_performer: bool) -> NotificationMessage:
    """Cancellation notice after the payment deadline passed unpaid"""
    if for_performer:
        body = (
            f"The booking for {_visit_when(booking)} was cancelled because the customer "
            f"did not pay in time. The slot is free again."
        )
        url = PERFORMER_BOOKINGS_URL
    else:
        body = (
            f"Your booking for {_visit_when(booking)} was cancelled because the prepayment "
            f"was not received before the deadline."
        )
        url = CUSTOMER_BOOKINGS_URL

    return NotificationMessage(
        kind="booking_auto_cancelled",
        title="Booking cancelled",
        body=body,
        url=url,
        tag=f"cancelled-{booking.id}",
    )


# kind → (title, body); body is formatted with the visit time
BOOKING_EVENT_COPY = {
    NotificationKind.BOOKING_REQUESTED: (
        "📥 New booking request",
        "A customer asked to book your visit on {when}. Confirm it or offer another time.",
    ),
    NotificationKind.BOOKING_CONFIRMED: (
        "✅ Booking confirmed",
        "Your visit on {when} is confirmed. Pay the prepayment of {prepayment} to keep it.",
    ),
    NotificationKind.BOOKING_COUNTER_PROPOSED: (
        "📝 New times offered",
        "The performer cannot make {when} and offered other options. Pick one or decline.",
    ),
    NotificationKind.BOOKING_REJECTED: (
        "Booking declined",
        "The performer declined your request for {when}. Try another slot.",
    ),
    NotificationKind.PROPOSAL_ACCEPTED: (
        "🤝 Proposal accepted",
        "The customer accepted your offer for {when}. Confirm the booking to finish.",
    ),
    NotificationKind.BOOKING_CANCELLED: (
        "Booking cancelled",
        "The booking for {when} was cancelled by the {cancelled_by}.",
    ),
}


def booking_event(booking: Booking, kind: NotificationKind, for_performer: bool) -> NotificationMessage:
    title, body = BOOKING_EVENT_COPY[kind]
    cancelled_by = booking.cancelled_by.value if booking.cancelled_by else "other party"
    return NotificationMessage(
        kind=kind.value,
        title=title,
        body=body.format(
            when=_visit_when(booking),
            prepayment=booking.prepayment_amount,
            cancelled_by=cancelled_by,
        ),
        url=PERFORMER_BOOKINGS_URL if for_performer else CUSTOMER_BOOKINGS_URL,
        tag=f"booking-{booking.id}",
    )
