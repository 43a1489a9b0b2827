from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_booking_service, get_reconciler, get_stripe_gateway, require_roles
from app.models.user import User
from app.schemas.booking import BookingOut, CancelIn, ManualPaymentIn, NoteIn, NoteOut, RefundIn, StatusUpdateIn
from app.schemas.catalog import (
    CatalogItemIn,
    CatalogItemOut,
    CatalogItemPatch,
    GroupDiscountIn,
    SeasonalPriceIn,
    SlotIn,
)
from app.services import catalog_service
from app.services.booking_service import BookingService
from app.services.payment_service import PaymentReconciler, PaymentSucceeded
from app.services.stripe_gateway import StripeGateway

router = APIRouter(tags=["admin"])

admin_only = require_roles("admin")


# -------------------------
# catalog
# -------------------------
@router.get("/admin/catalog/items", response_model=list[CatalogItemOut])
def list_items(kind: str | None = None, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    """Drafts and published items; archived ones are hidden."""
    return [CatalogItemOut.from_item(i) for i in catalog_service.list_items(db, published_only=False, kind=kind)]


@router.post("/admin/catalog/items", response_model=CatalogItemOut, status_code=201)
def create_item(body: CatalogItemIn, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    return CatalogItemOut.from_item(catalog_service.create_item(db, me, **body.to_fields()))


@router.get("/admin/catalog/items/{item_id}", response_model=CatalogItemOut)
def get_item(item_id: str, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    return CatalogItemOut.from_item(catalog_service.get_item(db, item_id))


@router.patch("/admin/catalog/items/{item_id}", response_model=CatalogItemOut)
def update_item(item_id: str, body: CatalogItemPatch, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    return CatalogItemOut.from_item(catalog_service.update_item(db, item_id, me, **body.to_fields()))


@router.delete("/admin/catalog/items/{item_id}")
def delete_item(item_id: str, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    item = catalog_service.archive_item(db, item_id, me)
    return {"ok": True, "id": item.id, "status": item.status}


@router.post("/admin/catalog/items/{item_id}/slots", response_model=CatalogItemOut, status_code=201)
def add_slot(item_id: str, body: SlotIn, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    catalog_service.add_slot(db, item_id, me, body.startDate, body.endDate)
    return CatalogItemOut.from_item(catalog_service.get_item(db, item_id))


@router.delete("/admin/catalog/items/{item_id}/slots/{slot_id}")
def delete_slot(item_id: str, slot_id: str, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    catalog_service.delete_slot(db, item_id, slot_id, me)
    return {"ok": True}


@router.post("/admin/catalog/items/{item_id}/seasonal-prices", response_model=CatalogItemOut, status_code=201)
def add_seasonal_price(item_id: str, body: SeasonalPriceIn, db: Session = Depends(get_db),
                       me: User = Depends(admin_only)):
    catalog_service.add_seasonal_price(db, item_id, me, body.season, body.startDate, body.endDate, body.multiplier)
    return CatalogItemOut.from_item(catalog_service.get_item(db, item_id))


@router.delete("/admin/catalog/items/{item_id}/seasonal-prices/{tier_id}")
def delete_seasonal_price(item_id: str, tier_id: str, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    catalog_service.delete_seasonal_price(db, item_id, tier_id, me)
    return {"ok": True}


@router.post("/admin/catalog/items/{item_id}/group-discounts", response_model=CatalogItemOut, status_code=201)
def add_group_discount(item_id: str, body: GroupDiscountIn, db: Session = Depends(get_db),
                       me: User = Depends(admin_only)):
    catalog_service.add_group_discount(db, item_id, me, body.minPeople, body.discountPercent)
    return CatalogItemOut.from_item(catalog_service.get_item(db, item_id))


@router.delete("/admin/catalog/items/{item_id}/group-discounts/{discount_id}")
def delete_group_discount(item_id: str, discount_id: str, db: Session = Depends(get_db),
                          me: User = Depends(admin_only)):
    catalog_service.delete_group_discount(db, item_id, discount_id, me)
    return {"ok": True}


# -------------------------
# bookings
# -------------------------
@router.get("/admin/bookings", response_model=list[BookingOut])
def list_bookings(status: str | None = None, paymentStatus: str | None = None, customerId: str | None = None,
                  limit: int = 200,
                  svc: BookingService = Depends(get_booking_service),
                  me: User = Depends(admin_only)):
    bookings = svc.list_bookings(customer_id=customerId, status=status, payment_status=paymentStatus, limit=limit)
    return [BookingOut.from_booking(b) for b in bookings]


@router.get("/admin/bookings/{booking_id}", response_model=BookingOut)
def get_booking(booking_id: str, svc: BookingService = Depends(get_booking_service), me: User = Depends(admin_only)):
    return BookingOut.from_booking(svc.get_booking(booking_id, me))


@router.patch("/admin/bookings/{booking_id}/status", response_model=BookingOut)
def update_status(booking_id: str, body: StatusUpdateIn,
                  svc: BookingService = Depends(get_booking_service),
                  me: User = Depends(admin_only)):
    svc.update_status(booking_id, body.status, me)
    return BookingOut.from_booking(svc.get_booking(booking_id, me))


@router.post("/admin/bookings/{booking_id}/notes", response_model=NoteOut, status_code=201)
def add_note(booking_id: str, body: NoteIn,
             svc: BookingService = Depends(get_booking_service),
             me: User = Depends(admin_only)):
    note = svc.add_note(booking_id, me, body.content)
    return NoteOut(content=note.content, author=note.author, createdAt=note.created_at)


@router.post("/admin/bookings/{booking_id}/cancel", response_model=BookingOut)
def cancel_booking(booking_id: str, body: CancelIn | None = None,
                   svc: BookingService = Depends(get_booking_service),
                   me: User = Depends(admin_only)):
    svc.cancel_booking(booking_id, me, reason=body.reason if body else "")
    return BookingOut.from_booking(svc.get_booking(booking_id, me))


@router.post("/admin/bookings/{booking_id}/payments/manual", response_model=BookingOut)
def record_manual_payment(booking_id: str, body: ManualPaymentIn,
                          svc: BookingService = Depends(get_booking_service),
                          reconciler: PaymentReconciler = Depends(get_reconciler),
                          me: User = Depends(admin_only)):
    """Bank transfers and other payments settled outside the gateways."""
    svc.get_booking(booking_id, me)
    outcome = PaymentSucceeded(transaction_id=body.reference, amount=body.amount, method=body.method)
    reconciler.apply_payment_result(booking_id, outcome, provider="manual", actor=me)
    return BookingOut.from_booking(svc.get_booking(booking_id, me))


@router.post("/admin/bookings/{booking_id}/refund", response_model=BookingOut)
def refund(booking_id: str, body: RefundIn | None = None,
           svc: BookingService = Depends(get_booking_service),
           reconciler: PaymentReconciler = Depends(get_reconciler),
           gateway: StripeGateway = Depends(get_stripe_gateway),
           me: User = Depends(admin_only)):
    reconciler.refund(booking_id, me, gateway=gateway, amount=body.amount if body else None)
    return BookingOut.from_booking(svc.get_booking(booking_id, me))
