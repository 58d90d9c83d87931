import json
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session
from ticketshub.db.session import get_db
from ticketshub.models.booking import Booking
from ticketshub.schemas.booking import BookingOut
from ticketshub.schemas.checkout import PriceLineOut
from ticketshub.api.v1.routes.checkout import pricing_out

router = APIRouter(tags=["bookings"])

def booking_out(b: Booking) -> BookingOut:
    return BookingOut(
        bookingId=b.id,
        bookingNumber=b.booking_number,
        eventId=b.event_id,
        status=b.status,
        paymentId=b.payment_id,
        userId=b.user_id,
        guestName=b.guest_name,
        guestEmail=b.guest_email,
        tickets=[PriceLineOut(**t) for t in json.loads(b.tickets_json or "[]")],
        pricing=pricing_out(b, b.currency),
        couponCode=b.coupon_code,
        createdAt=b.created_at.isoformat() if b.created_at else None,
    )

@router.get("/public/bookings/{booking_number}", response_model=BookingOut)
def get_booking(booking_number: str, db: Session = Depends(get_db)):
    b = db.execute(select(Booking).where(Booking.booking_number == booking_number.upper())).scalar_one_or_none()
    if not b:
        raise HTTPException(status_code=404, detail="Not found")
    return booking_out(b)
