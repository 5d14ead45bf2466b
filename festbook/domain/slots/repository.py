"""Slot repository - Reservation protocol for availability slots"""

import enum
import logging
from datetime import date
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ...models import AvailabilitySlot, SlotStatus

logger = logging.getLogger(__name__)


class SlotOutcome(str, enum.Enum):
    OK = "ok"
    CONFLICT = "conflict"


class SlotStore:
    """
    Owns availability slot status.

    Every status change is a single conditional UPDATE so that two concurrent
    reservations of the same slot cannot both succeed. None of these methods
    commit; they run inside the caller's transaction.
    """

    @staticmethod
    def get(db: Session, slot_id: str) -> Optional[AvailabilitySlot]:
        """Get a slot by ID"""
        return db.query(AvailabilitySlot).filter(AvailabilitySlot.id == slot_id).first()

    @staticmethod
    def list_slots(
        db: Session,
        performer_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        status: Optional[SlotStatus] = None,
    ) -> list[AvailabilitySlot]:
        """List a performer's slots in date order with optional filters"""
        query = db.query(AvailabilitySlot).filter(AvailabilitySlot.performer_id == performer_id)

        if date_from:
            query = query.filter(AvailabilitySlot.date >= date_from)
        if date_to:
            query = query.filter(AvailabilitySlot.date <= date_to)
        if status:
            query = query.filter(AvailabilitySlot.status == status)

        return query.order_by(AvailabilitySlot.date, AvailabilitySlot.start_time).all()

    @staticmethod
    def create_slot(db: Session, **slot_data) -> AvailabilitySlot:
        """Insert a slot produced by schedule generation"""
        slot = AvailabilitySlot(**slot_data)
        db.add(slot)
        db.flush()
        return slot

    @staticmethod
    def reserve(db: Session, slot_id: str, booking_id: str) -> SlotOutcome:
        """Atomically move a slot from free to booked and attach the booking"""
        result = db.execute(
            update(AvailabilitySlot)
            .where(
                AvailabilitySlot.id == slot_id,
                AvailabilitySlot.status == SlotStatus.FREE,
            )
            .values(status=SlotStatus.BOOKED, booking_id=booking_id)
            .execution_options(synchronize_session="evaluate")
        )

        if result.rowcount != 1:
            logger.info(f"⚠️ Slot {slot_id} reservation conflict for booking {booking_id}")
            return SlotOutcome.CONFLICT

        logger.info(f"✅ Slot {slot_id} reserved for booking {booking_id}")
        return SlotOutcome.OK

    @staticmethod
    def release(
        db: Session, slot_id: Optional[str], booking_id: Optional[str] = None
    ) -> SlotOutcome:
        """
        Return a booked slot to free. Releasing a free slot (or no slot) is a
        no-op; blocked slots stay blocked.

        When booking_id is given the slot is only released if it is still
        attached to that booking, so a late release cannot free a slot that
        has since been reserved by someone else.
        """
        if not slot_id:
            return SlotOutcome.OK

        criteria = [
            AvailabilitySlot.id == slot_id,
            AvailabilitySlot.status == SlotStatus.BOOKED,
        ]
        if booking_id:
            criteria.append(AvailabilitySlot.booking_id == booking_id)

        result = db.execute(
            update(AvailabilitySlot)
            .where(*criteria)
            .values(status=SlotStatus.FREE, booking_id=None)
            .execution_options(synchronize_session="evaluate")
        )

        if result.rowcount:
            logger.info(f"🔓 Slot {slot_id} released")
        else:
            logger.debug(f"ℹ️ Slot {slot_id} was not booked, nothing to release")
        return SlotOutcome.OK

    @staticmethod
    def reassign(
        db: Session, old_slot_id: Optional[str], new_slot_id: str, booking_id: str
    ) -> SlotOutcome:
        """
        Move a booking from one slot to another: release the old slot, then
        reserve the new one. If the new slot is taken the old slot is
        reserved again for the same booking and CONFLICT is returned.
        """
        SlotStore.release(db, old_slot_id, booking_id)

        outcome = SlotStore.reserve(db, new_slot_id, booking_id)
        if outcome == SlotOutcome.CONFLICT and old_slot_id:
            restored = SlotStore.reserve(db, old_slot_id, booking_id)
            if restored == SlotOutcome.CONFLICT:
                # Only possible if another writer grabbed the old slot in between;
                # the caller's transaction rollback restores it.
                logger.warning(
                    f"⚠️ Could not restore slot {old_slot_id} for booking {booking_id} after conflict"
                )
        return outcome
