from fastapi import APIRouter
from ticketshub.api.v1.routes.checkout import router as checkout_router
from ticketshub.api.v1.routes.payments import router as payments_router
from ticketshub.api.v1.routes.bookings import router as bookings_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(checkout_router)
api_router.include_router(payments_router)
api_router.include_router(bookings_router)
