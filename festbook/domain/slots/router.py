"""Slot router - FastAPI endpoints for availability slots"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import AvailabilitySlot, SlotStatus
from .repository import SlotStore
from .schemas import SlotCreate, SlotResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/slots", tags=["Slots"])


def slot_response(slot: AvailabilitySlot) -> SlotResponse:
    return SlotResponse(
        id=slot.id,
        performerId=slot.performer_id,
        date=slot.date,
        startTime=slot.start_time,
        endTime=slot.end_time,
        status=slot.status,
        price=slot.price,
        bookingId=slot.booking_id,
        created_at=slot.created_at,
    )


def one_hour_after(start_time: str) -> str:
    start = datetime.strptime(start_time, "%H:%M")
    return (start + timedelta(hours=1)).strftime("%H:%M")


@router.get("", response_model=list[SlotResponse])
async def list_slots(
    performer_id: str = Query(..., alias="performerId"),
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
    status: Optional[SlotStatus] = Query(None),
    db: Session = Depends(get_db),
):
    """List a performer's slots, optionally by date range and status"""
    slots = SlotStore.list_slots(db, performer_id, date_from, date_to, status)
    return [slot_response(s) for s in slots]


@router.get("/{slot_id}", response_model=SlotResponse)
async def get_slot(slot_id: str, db: Session = Depends(get_db)):
    slot = SlotStore.get(db, slot_id)
    if not slot:
        raise HTTPException(status_code=404, detail="Slot not found")
    return slot_response(slot)


@router.post("", response_model=SlotResponse, status_code=201)
async def create_slot(data: SlotCreate, db: Session = Depends(get_db)):
    """Seed a slot. Schedule generation normally owns this."""
    try:
        slot = SlotStore.create_slot(
            db,
            performer_id=data.performerId,
            date=data.date,
            start_time=data.startTime,
            end_time=data.endTime or one_hour_after(data.startTime),
            price=data.price,
            status=data.status,
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=409, detail="Performer already has a slot at this date and time"
        )
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to create slot: {e}")
        raise

    logger.info(f"🗓️ Slot {slot.id} created for performer {slot.performer_id} on {slot.date} {slot.start_time}")
    return slot_response(slot)


__all__ = ["router"]
