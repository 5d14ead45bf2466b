"""Booking service - Booking lifecycle state machine"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...config import COMMISSION_RATE_PERCENT, MAX_PROPOSALS_PER_BOOKING, PAYMENT_DEADLINE_HOURS
from ...models import (
    PAID_STATUSES,
    Booking,
    BookingProposal,
    BookingStatus,
    CancelledBy,
    NotificationKind,
    PaymentStatus,
    ProposalStatus,
    generate_id,
)
from ...shared.clock import Clock, system_clock
from ...shared.validators import validate_price, validate_time_of_day
from ..scheduling.service import DeadlineScheduler
from ..slots.repository import SlotOutcome, SlotStore
from .repository import BookingRepository
from .results import BookingError, BookingResult

logger = logging.getLogger(__name__)

# Valid transitions: current status → statuses it may move to
VALID_TRANSITIONS = {
    BookingStatus.PENDING: {
        BookingStatus.COUNTER_PROPOSED,
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.COUNTER_PROPOSED: {
        BookingStatus.COUNTER_PROPOSED,  # re-proposal replaces the offer set
        BookingStatus.CUSTOMER_ACCEPTED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.CUSTOMER_ACCEPTED: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
        BookingStatus.NO_SHOW,
    },
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
    BookingStatus.NO_SHOW: set(),
}

# Forward-only payment progress accepted from the payment callback
PAYMENT_PROGRESS = {
    PaymentStatus.PREPAYMENT_PAID: {PaymentStatus.NOT_PAID},
    PaymentStatus.FULLY_PAID: {PaymentStatus.NOT_PAID, PaymentStatus.PREPAYMENT_PAID},
}

SLOT_TAKEN_MESSAGE = "This time slot was just taken"
PROPOSAL_GONE_MESSAGE = "This proposal is no longer available"


def validate_status_transition(current_status: BookingStatus, new_status: BookingStatus) -> bool:
    """Check a transition against the booking state machine"""
    return new_status in VALID_TRANSITIONS.get(current_status, set())


def sources_for(new_status: BookingStatus) -> list[BookingStatus]:
    """Every status from which new_status is reachable"""
    return [status for status, targets in VALID_TRANSITIONS.items() if new_status in targets]


def calculate_prepayment(price_total: int, commission_rate: int = COMMISSION_RATE_PERCENT) -> int:
    """Prepayment equals the platform commission, rounded half up to whole units"""
    return (price_total * commission_rate + 50) // 100


@dataclass(frozen=True)
class ProposalInput:
    """One alternative offered by the performer"""

    proposed_date: date
    proposed_time: str
    proposed_price: Optional[int] = None
    slot_id: Optional[str] = None


class BookingService:
    """
    Validates and applies booking transitions.

    Each public operation runs in a single transaction: state is checked,
    every status write is a compare-and-set, and the session is either
    committed once or rolled back. Expected failures come back as a
    BookingResult; unexpected database errors roll back and propagate.
    """

    def __init__(
        self,
        db: Session,
        clock: Clock = system_clock,
        scheduler: Optional[DeadlineScheduler] = None,
        payment_deadline_hours: int = PAYMENT_DEADLINE_HOURS,
        commission_rate: int = COMMISSION_RATE_PERCENT,
    ):
        self.db = db
        self.clock = clock
        self.scheduler = scheduler or DeadlineScheduler(clock=clock)
        self.payment_deadline_hours = payment_deadline_hours
        self.commission_rate = commission_rate
        self.repo = BookingRepository()
        self.slots = SlotStore()

    # ============================================================================
    # QUERIES
    # ============================================================================

    def get_booking(self, booking_id: str) -> BookingResult:
        booking = self.repo.get(self.db, booking_id)
        if not booking:
            return BookingResult.failure(BookingError.NOT_FOUND, "Booking not found")
        return BookingResult.success(booking, changed=False)

    def list_bookings(
        self,
        customer_id: Optional[str] = None,
        performer_id: Optional[str] = None,
        status: Optional[BookingStatus] = None,
    ) -> list[Booking]:
        return self.repo.list_bookings(self.db, customer_id, performer_id, status)

    def list_proposals(self, booking_id: str) -> list[BookingProposal]:
        return self.repo.get_proposals(self.db, booking_id)

    # ============================================================================
    # CUSTOMER ACTIONS
    # ============================================================================

    def create_booking(
        self,
        customer_id: str,
        performer_id: Optional[str],
        slot_id: str,
        price: Optional[int] = None,
    ) -> BookingResult:
        """Reserve a free slot and open a pending booking on it"""
        try:
            validate_price(price)
        except ValueError as e:
            return BookingResult.failure(BookingError.INVALID_REQUEST, str(e))

        booking_id = generate_id()
        try:
            if self.slots.reserve(self.db, slot_id, booking_id) == SlotOutcome.CONFLICT:
                self.db.rollback()
                if not self.slots.get(self.db, slot_id):
                    return BookingResult.failure(BookingError.NOT_FOUND, "Slot not found")
                return BookingResult.failure(BookingError.SLOT_UNAVAILABLE, SLOT_TAKEN_MESSAGE)

            slot = self.slots.get(self.db, slot_id)
            if performer_id and slot.performer_id != performer_id:
                return self._abort(
                    BookingError.INVALID_REQUEST, "Slot does not belong to this performer"
                )

            if slot.performer_id == customer_id:
                return self._abort(
                    BookingError.INVALID_REQUEST, "Performers cannot book their own slots"
                )

            price_total = price if price is not None else slot.price
            if price_total is None:
                return self._abort(BookingError.INVALID_REQUEST, "Price is required for this slot")

            booking = self.repo.create(
                self.db,
                id=booking_id,
                customer_id=customer_id,
                performer_id=slot.performer_id,
                slot_id=slot.id,
                status=BookingStatus.PENDING,
                payment_status=PaymentStatus.NOT_PAID,
                booking_date=slot.date,
                booking_time=slot.start_time,
                price_total=price_total,
                prepayment_amount=calculate_prepayment(price_total, self.commission_rate),
            )
            self.scheduler.on_event(
                self.db, booking, NotificationKind.BOOKING_REQUESTED, booking.performer_id
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"📥 Booking {booking.id} created: customer={customer_id}, slot={slot_id}, price={price_total}"
        )
        return BookingResult.success(booking)

    def customer_accept_proposal(self, booking_id: str, proposal_id: str) -> BookingResult:
        """Take one of the performer's alternatives; reserves its slot"""
        booking = self.repo.get(self.db, booking_id)
        if not booking:
            return BookingResult.failure(BookingError.NOT_FOUND, "Booking not found")

        proposal = self.repo.get_proposal(self.db, proposal_id)
        if not proposal or proposal.booking_id != booking.id:
            return BookingResult.failure(BookingError.NOT_FOUND, "Proposal not found")

        if booking.status != BookingStatus.COUNTER_PROPOSED:
            return self._invalid(booking, BookingStatus.CUSTOMER_ACCEPTED)

        if proposal.status != ProposalStatus.PENDING:
            return BookingResult.failure(
                BookingError.PROPOSAL_NO_LONGER_AVAILABLE, PROPOSAL_GONE_MESSAGE, booking
            )

        held_slot_id = booking.slot_id
        target_slot_id = proposal.slot_id
        try:
            if target_slot_id is None:
                self.slots.release(self.db, held_slot_id, booking.id)
                outcome = SlotOutcome.OK
            elif target_slot_id == held_slot_id:
                outcome = SlotOutcome.OK
            elif held_slot_id is None:
                outcome = self.slots.reserve(self.db, target_slot_id, booking.id)
            else:
                outcome = self.slots.reassign(self.db, held_slot_id, target_slot_id, booking.id)

            if outcome == SlotOutcome.CONFLICT:
                logger.info(
                    f"⚠️ Proposal {proposal_id} for booking {booking_id} lost its slot {target_slot_id}"
                )
                return self._abort(
                    BookingError.PROPOSAL_NO_LONGER_AVAILABLE, PROPOSAL_GONE_MESSAGE
                )

            price_total = (
                proposal.proposed_price
                if proposal.proposed_price is not None
                else booking.price_total
            )
            moved = self.repo.transition(
                self.db,
                booking.id,
                [BookingStatus.COUNTER_PROPOSED],
                status=BookingStatus.CUSTOMER_ACCEPTED,
                booking_date=proposal.proposed_date,
                booking_time=proposal.proposed_time,
                price_total=price_total,
                prepayment_amount=calculate_prepayment(price_total, self.commission_rate),
                slot_id=target_slot_id,
            )
            if not moved:
                return self._abort(
                    BookingError.INVALID_TRANSITION, "Booking changed while accepting the proposal"
                )

            if not self.repo.accept_proposal(self.db, proposal.id):
                return self._abort(
                    BookingError.PROPOSAL_NO_LONGER_AVAILABLE, PROPOSAL_GONE_MESSAGE
                )
            rejected = self.repo.reject_pending_proposals(self.db, booking.id, except_id=proposal.id)
            self.scheduler.on_event(
                self.db, booking, NotificationKind.PROPOSAL_ACCEPTED, booking.performer_id
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"✅ Booking {booking_id} accepted proposal {proposal_id} ({rejected} sibling(s) rejected)"
        )
        return BookingResult.success(booking)

    def customer_reject_all(self, booking_id: str) -> BookingResult:
        """Decline every alternative; the booking is cancelled by the customer"""
        booking = self.repo.get(self.db, booking_id)
        if not booking:
            return BookingResult.failure(BookingError.NOT_FOUND, "Booking not found")
        if booking.status != BookingStatus.COUNTER_PROPOSED:
            return self._invalid(booking, BookingStatus.CANCELLED)

        return self._cancel(
            booking,
            from_statuses=[BookingStatus.COUNTER_PROPOSED],
            cancelled_by=CancelledBy.CUSTOMER,
            reason="Customer rejected all proposed alternatives",
            notice=(NotificationKind.BOOKING_CANCELLED, booking.performer_id),
        )

    def cancel_booking(
        self, booking_id: str, cancelled_by: CancelledBy, reason: Optional[str] = None
    ) -> BookingResult:
        """Manual cancellation of any non-terminal booking by either party"""
        if cancelled_by == CancelledBy.SYSTEM:
            return BookingResult.failure(
                BookingError.INVALID_REQUEST, "System cancellations go through auto_cancel"
            )

        booking = self.repo.get(self.db, booking_id)
        if not booking:
            return BookingResult.failure(BookingError.NOT_FOUND, "Booking not found")
        if not validate_status_transition(booking.status, BookingStatus.CANCELLED):
            return self._invalid(booking, BookingStatus.CANCELLED)

        other_party = (
            booking.performer_id if cancelled_by == CancelledBy.CUSTOMER else booking.customer_id
        )

        return self._cancel(
            booking,
            from_statuses=sources_for(BookingStatus.CANCELLED),
            cancelled_by=cancelled_by,
            reason=reason,
            notice=(NotificationKind.BOOKING_CANCELLED, other_party),
        )

    # ============================================================================
    # PERFORMER ACTIONS
    # ============================================================================

    def performer_confirm(self, booking_id: str) -> BookingResult:
        """Confirm a pending (or customer-accepted) booking and start the payment clock"""
        booking = self.repo.get(self.db, booking_id)
        if not booking:
            return BookingResult.failure(BookingError.NOT_FOUND, "Booking not found")

        from_statuses = [BookingStatus.PENDING, BookingStatus.CUSTOMER_ACCEPTED]
        if booking.status not in from_statuses:
            return self._invalid(booking, BookingStatus.CONFIRMED)

        now = self.clock.now()
        deadline = self._payment_deadline(booking, now)
        try:
            moved = self.repo.transition(
                self.db,
                booking.id,
                from_statuses,
                status=BookingStatus.CONFIRMED,
                confirmed_at=now,
                payment_deadline=deadline,
            )
            if not moved:
                return self._abort(
                    BookingError.INVALID_TRANSITION, "Booking changed while confirming"
                )

            # Runs once per transition into confirmed; the CAS above guarantees it
            self.scheduler.on_confirmed(self.db, booking)
            self.scheduler.on_event(
                self.db, booking, NotificationKind.BOOKING_CONFIRMED, booking.customer_id
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"✅ Booking {booking_id} confirmed, payment deadline {deadline}")
        return BookingResult.success(booking)

    def performer_counter_propose(
        self, booking_id: str, proposals: list[ProposalInput]
    ) -> BookingResult:
        """
        Offer 1..5 alternatives. Replaces any pending set. Proposed slots are
        not reserved until the customer accepts one.
        """
        if not proposals or len(proposals) > MAX_PROPOSALS_PER_BOOKING:
            return BookingResult.failure(
                BookingError.INVALID_REQUEST,
                f"Between 1 and {MAX_PROPOSALS_PER_BOOKING} proposals are required",
            )

        booking = self.repo.get(self.db, booking_id)
        if not booking:
            return BookingResult.failure(BookingError.NOT_FOUND, "Booking not found")

        from_statuses = [BookingStatus.PENDING, BookingStatus.COUNTER_PROPOSED]
        if booking.status not in from_statuses:
            return self._invalid(booking, BookingStatus.COUNTER_PROPOSED)

        rows = []
        for item in proposals:
            try:
                proposed_time = validate_time_of_day(item.proposed_time)
                validate_price(item.proposed_price)
            except ValueError as e:
                return BookingResult.failure(BookingError.INVALID_REQUEST, str(e), booking)

            if item.slot_id:
                slot = self.slots.get(self.db, item.slot_id)
                if not slot or slot.performer_id != booking.performer_id:
                    return BookingResult.failure(
                        BookingError.INVALID_REQUEST,
                        f"Slot {item.slot_id} is not one of this performer's slots",
                        booking,
                    )
                # Accepting moves the booking onto this slot, so both must name the same hour
                if slot.date != item.proposed_date or slot.start_time != proposed_time:
                    return BookingResult.failure(
                        BookingError.INVALID_REQUEST,
                        f"Slot {item.slot_id} is at {slot.date} {slot.start_time}, "
                        f"not {item.proposed_date} {proposed_time}",
                        booking,
                    )

            rows.append(
                BookingProposal(
                    booking_id=booking.id,
                    proposed_date=item.proposed_date,
                    proposed_time=proposed_time,
                    proposed_price=item.proposed_price,
                    slot_id=item.slot_id,
                    status=ProposalStatus.PENDING,
                )
            )

        try:
            moved = self.repo.transition(
                self.db, booking.id, from_statuses, status=BookingStatus.COUNTER_PROPOSED
            )
            if not moved:
                return self._abort(
                    BookingError.INVALID_TRANSITION, "Booking changed while proposing"
                )

            discarded = self.repo.reject_pending_proposals(self.db, booking.id)
            self.repo.add_proposals(self.db, rows)
            # Each offer set is a new event for the customer
            self.scheduler.on_event(
                self.db,
                booking,
                NotificationKind.BOOKING_COUNTER_PROPOSED,
                booking.customer_id,
                dedupe_key=rows[0].id,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"📝 Booking {booking_id} counter-proposed with {len(rows)} option(s), {discarded} discarded"
        )
        return BookingResult.success(booking)

    def performer_reject(self, booking_id: str, reason: Optional[str] = None) -> BookingResult:
        """Decline a pending request outright"""
        booking = self.repo.get(self.db, booking_id)
        if not booking:
            return BookingResult.failure(BookingError.NOT_FOUND, "Booking not found")
        if booking.status != BookingStatus.PENDING:
            return self._invalid(booking, BookingStatus.CANCELLED)

        return self._cancel(
            booking,
            from_statuses=[BookingStatus.PENDING],
            cancelled_by=CancelledBy.PERFORMER,
            reason=reason or "Performer declined the request",
            notice=(NotificationKind.BOOKING_REJECTED, booking.customer_id),
        )

    def mark_completed(self, booking_id: str) -> BookingResult:
        return self._finish(booking_id, BookingStatus.COMPLETED)

    def mark_no_show(self, booking_id: str) -> BookingResult:
        return self._finish(booking_id, BookingStatus.NO_SHOW)

    # ============================================================================
    # SYSTEM ACTIONS
    # ============================================================================

    def auto_cancel(self, booking_id: str, reason: str = "Payment deadline expired") -> BookingResult:
        """
        Cancel an unpaid booking whose payment deadline passed. Idempotent: if
        the booking already left the cancellable state (paid, cancelled,
        completed) this is a successful no-op with changed=False.
        """
        booking = self.repo.get(self.db, booking_id)
        if not booking:
            return BookingResult.failure(BookingError.NOT_FOUND, "Booking not found")

        now = self.clock.now()
        try:
            moved = self.repo.transition(
                self.db,
                booking.id,
                [BookingStatus.CONFIRMED, BookingStatus.CUSTOMER_ACCEPTED],
                require_payment_status=PaymentStatus.NOT_PAID,
                status=BookingStatus.CANCELLED,
                cancelled_by=CancelledBy.SYSTEM,
                cancellation_reason=reason,
                cancelled_at=now,
            )
            if not moved:
                self.db.rollback()
                logger.info(
                    f"ℹ️ Auto-cancel skipped for booking {booking_id}: "
                    f"status={booking.status.value}, payment={booking.payment_status.value}"
                )
                return BookingResult.success(booking, changed=False)

            self.slots.release(self.db, booking.slot_id, booking.id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"🚫 Booking {booking_id} auto-cancelled: {reason}")
        return BookingResult.success(booking)

    def record_payment(self, booking_id: str, payment_status: PaymentStatus) -> BookingResult:
        """
        Inbound signal from the payment gateway glue. Payment only moves
        forward; a repeated callback is a no-op.
        """
        booking = self.repo.get(self.db, booking_id)
        if not booking:
            return BookingResult.failure(BookingError.NOT_FOUND, "Booking not found")

        allowed_from = PAYMENT_PROGRESS.get(payment_status)
        if allowed_from is None:
            return BookingResult.failure(
                BookingError.INVALID_REQUEST,
                f"Unsupported payment status: {payment_status.value}",
                booking,
            )

        if booking.payment_status == payment_status:
            return BookingResult.success(booking, changed=False)

        if booking.payment_status not in allowed_from:
            return BookingResult.failure(
                BookingError.INVALID_TRANSITION,
                f"Cannot move payment from {booking.payment_status.value} to {payment_status.value}",
                booking,
            )

        try:
            moved = self.repo.update_payment_status(
                self.db, booking.id, allowed_from, payment_status
            )
            if not moved:
                self.db.rollback()
                return BookingResult.success(booking, changed=False)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if booking.is_terminal:
            logger.warning(
                f"⚠️ Payment {payment_status.value} recorded for {booking.status.value} booking {booking_id}"
            )
        else:
            logger.info(f"💰 Booking {booking_id} payment status → {payment_status.value}")
        return BookingResult.success(booking)

    # ============================================================================
    # HELPERS
    # ============================================================================

    def _payment_deadline(self, booking: Booking, now: datetime) -> Optional[datetime]:
        """
        Fixed offset from confirmation, never later than the visit itself.
        Already-paid bookings get no deadline.
        """
        if booking.payment_status in PAID_STATUSES:
            return None

        deadline = now + timedelta(hours=self.payment_deadline_hours)
        visit_start = self.scheduler.visit_start(booking)
        if now < visit_start < deadline:
            deadline = visit_start
        return deadline

    def _finish(self, booking_id: str, new_status: BookingStatus) -> BookingResult:
        """Terminal transition after the visit; the slot stays consumed"""
        booking = self.repo.get(self.db, booking_id)
        if not booking:
            return BookingResult.failure(BookingError.NOT_FOUND, "Booking not found")
        if booking.status != BookingStatus.CONFIRMED:
            return self._invalid(booking, new_status)

        try:
            moved = self.repo.transition(
                self.db, booking.id, [BookingStatus.CONFIRMED], status=new_status
            )
            if not moved:
                return self._abort(BookingError.INVALID_TRANSITION, "Booking changed concurrently")
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"🏁 Booking {booking_id} marked {new_status.value}")
        return BookingResult.success(booking)

    def _cancel(
        self,
        booking: Booking,
        from_statuses: list[BookingStatus],
        cancelled_by: CancelledBy,
        reason: Optional[str],
        notice: Optional[tuple[NotificationKind, str]] = None,
    ) -> BookingResult:
        try:
            moved = self.repo.transition(
                self.db,
                booking.id,
                from_statuses,
                status=BookingStatus.CANCELLED,
                cancelled_by=cancelled_by,
                cancellation_reason=reason,
                cancelled_at=self.clock.now(),
            )
            if not moved:
                return self._abort(BookingError.INVALID_TRANSITION, "Booking changed concurrently")

            self.repo.reject_pending_proposals(self.db, booking.id)
            self.slots.release(self.db, booking.slot_id, booking.id)
            if notice:
                kind, user_id = notice
                self.scheduler.on_event(self.db, booking, kind, user_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"❌ Booking {booking.id} cancelled by {cancelled_by.value}: {reason}")
        return BookingResult.success(booking)

    def _abort(self, error: BookingError, message: str) -> BookingResult:
        """Roll back the current transaction and report an expected failure"""
        self.db.rollback()
        return BookingResult.failure(error, message)

    @staticmethod
    def _invalid(booking: Booking, target: BookingStatus) -> BookingResult:
        return BookingResult.failure(
            BookingError.INVALID_TRANSITION,
            f"Cannot move booking from {booking.status.value} to {target.value}",
            booking,
        )
