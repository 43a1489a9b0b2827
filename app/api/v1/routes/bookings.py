from fastapi import APIRouter, Depends

from app.api.deps import get_booking_service, require_roles
from app.models.user import User
from app.schemas.booking import BookingCreate, BookingOut, CancelIn
from app.services.booking_service import BookingService

router = APIRouter(tags=["bookings"])


@router.post("/bookings", response_model=BookingOut, status_code=201)
def create_booking(body: BookingCreate,
                   svc: BookingService = Depends(get_booking_service),
                   me: User = Depends(require_roles("customer", "admin"))):
    b = svc.create_booking(
        customer_id=me.id,
        item_id=body.catalogItemId,
        on_date=body.startDate,
        travelers=body.traveler_inputs(),
        emergency_contact=body.emergency_contact(),
        special_requests=body.specialRequests,
    )
    return BookingOut.from_booking(svc.get_booking(b.id, me))


@router.get("/bookings", response_model=list[BookingOut])
def my_bookings(status: str | None = None,
                svc: BookingService = Depends(get_booking_service),
                me: User = Depends(require_roles("customer", "admin"))):
    return [BookingOut.from_booking(b) for b in svc.list_bookings(customer_id=me.id, status=status)]


@router.get("/bookings/{booking_id}", response_model=BookingOut)
def get_booking(booking_id: str,
                svc: BookingService = Depends(get_booking_service),
                me: User = Depends(require_roles("customer", "admin"))):
    return BookingOut.from_booking(svc.get_booking(booking_id, me))


@router.post("/bookings/{booking_id}/cancel", response_model=BookingOut)
def cancel_booking(booking_id: str, body: CancelIn | None = None,
                   svc: BookingService = Depends(get_booking_service),
                   me: User = Depends(require_roles("customer", "admin"))):
    b = svc.cancel_booking(booking_id, me, reason=body.reason if body else "")
    return BookingOut.from_booking(svc.get_booking(b.id, me))
