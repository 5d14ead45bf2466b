"""Booking repository - Database operations for bookings and proposals"""

from typing import Iterable, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ...models import Booking, BookingProposal, BookingStatus, PaymentStatus, ProposalStatus


class BookingRepository:
    """Repository for booking database operations. Nothing here commits."""

    @staticmethod
    def get(db: Session, booking_id: str) -> Optional[Booking]:
        """Get a booking by ID"""
        return db.query(Booking).filter(Booking.id == booking_id).first()

    @staticmethod
    def list_bookings(
        db: Session,
        customer_id: Optional[str] = None,
        performer_id: Optional[str] = None,
        status: Optional[BookingStatus] = None,
    ) -> list[Booking]:
        """List bookings with optional filters, newest visit first"""
        query = db.query(Booking)

        if customer_id:
            query = query.filter(Booking.customer_id == customer_id)
        if performer_id:
            query = query.filter(Booking.performer_id == performer_id)
        if status:
            query = query.filter(Booking.status == status)

        return query.order_by(Booking.booking_date.desc(), Booking.booking_time.desc()).all()

    @staticmethod
    def create(db: Session, **booking_data) -> Booking:
        booking = Booking(**booking_data)
        db.add(booking)
        db.flush()
        return booking

    @staticmethod
    def transition(
        db: Session,
        booking_id: str,
        from_statuses: Iterable[BookingStatus],
        require_payment_status: Optional[PaymentStatus] = None,
        **values,
    ) -> bool:
        """
        Compare-and-set on booking status: apply `values` only if the booking
        is still in one of `from_statuses` (and, optionally, still has the
        given payment status). Returns whether the row changed.
        """
        criteria = [Booking.id == booking_id, Booking.status.in_(list(from_statuses))]
        if require_payment_status is not None:
            criteria.append(Booking.payment_status == require_payment_status)

        result = db.execute(
            update(Booking)
            .where(*criteria)
            .values(**values)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1

    @staticmethod
    def update_payment_status(
        db: Session, booking_id: str, from_statuses: Iterable[PaymentStatus], to_status: PaymentStatus
    ) -> bool:
        result = db.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.payment_status.in_(list(from_statuses)))
            .values(payment_status=to_status)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1

    # Proposal Methods
    @staticmethod
    def get_proposal(db: Session, proposal_id: str) -> Optional[BookingProposal]:
        return db.query(BookingProposal).filter(BookingProposal.id == proposal_id).first()

    @staticmethod
    def get_proposals(
        db: Session, booking_id: str, status: Optional[ProposalStatus] = None
    ) -> list[BookingProposal]:
        query = db.query(BookingProposal).filter(BookingProposal.booking_id == booking_id)
        if status:
            query = query.filter(BookingProposal.status == status)
        return query.order_by(BookingProposal.created_at, BookingProposal.proposed_date).all()

    @staticmethod
    def add_proposals(db: Session, proposals: list[BookingProposal]) -> list[BookingProposal]:
        db.add_all(proposals)
        db.flush()
        return proposals

    @staticmethod
    def reject_pending_proposals(
        db: Session, booking_id: str, except_id: Optional[str] = None
    ) -> int:
        """Mark every pending proposal of the booking rejected (optionally sparing one)"""
        criteria = [
            BookingProposal.booking_id == booking_id,
            BookingProposal.status == ProposalStatus.PENDING,
        ]
        if except_id:
            criteria.append(BookingProposal.id != except_id)

        result = db.execute(
            update(BookingProposal)
            .where(*criteria)
            .values(status=ProposalStatus.REJECTED)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount

    @staticmethod
    def accept_proposal(db: Session, proposal_id: str) -> bool:
        """Compare-and-set pending → accepted"""
        result = db.execute(
            update(BookingProposal)
            .where(
                BookingProposal.id == proposal_id,
                BookingProposal.status == ProposalStatus.PENDING,
            )
            .values(status=ProposalStatus.ACCEPTED)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1
