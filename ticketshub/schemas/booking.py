from pydantic import BaseModel
from typing import List, Optional

from ticketshub.schemas.checkout import PriceBreakdownOut, PriceLineOut

class BookingOut(BaseModel):
    bookingId: str
    bookingNumber: str
    eventId: str
    status: str
    paymentId: str
    userId: Optional[str] = None
    guestName: Optional[str] = None
    guestEmail: Optional[str] = None
    tickets: List[PriceLineOut]
    pricing: PriceBreakdownOut
    couponCode: Optional[str] = None
    createdAt: Optional[str] = None
