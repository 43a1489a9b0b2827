import logging
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import (
    get_booking_service,
    get_reconciler,
    get_stripe_gateway,
    get_vnpay_client,
    require_roles,
)
from app.core.errors import InvalidStateError, NotFoundError, ValidationError
from app.models.booking import Booking, BOOKING_CANCELLED, PAYMENT_PAID, PAYMENT_REFUNDED
from app.models.user import User
from app.schemas.booking import BookingOut
from app.schemas.payments import (
    StripeConfirmRequest,
    StripeIntentOut,
    StripeIntentRequest,
    VNPayOut,
    VNPayRequest,
)
from app.services.booking_service import BookingService
from app.services.payment_service import PaymentReconciler, PaymentSucceeded
from app.services.stripe_gateway import StripeGateway
from app.services.vnpay_client import VNPayClient

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])


def _payable(svc: BookingService, booking_id: str, me: User):
    b = svc.get_booking(booking_id, me)
    if b.payment_status in (PAYMENT_PAID, PAYMENT_REFUNDED):
        raise InvalidStateError("booking is already paid")
    if b.status == BOOKING_CANCELLED:
        raise InvalidStateError("booking is cancelled")
    return b


@router.post("/payments/stripe/intent", response_model=StripeIntentOut)
def create_stripe_intent(body: StripeIntentRequest,
                         svc: BookingService = Depends(get_booking_service),
                         gateway: StripeGateway = Depends(get_stripe_gateway),
                         me: User = Depends(require_roles("customer", "admin"))):
    """Create a PaymentIntent for the booking total. The booking is not touched."""
    b = _payable(svc, body.bookingId, me)
    intent = gateway.create_charge_intent(
        b.total_amount,
        b.currency,
        metadata={"booking_id": b.id, "booking_number": b.booking_number, "customer_id": b.customer_id},
        idempotency_key=f"intent-{b.id}-{b.total_amount}",
    )
    logger.info("stripe intent %s created for booking %s", intent.id, b.booking_number)
    return StripeIntentOut(clientSecret=intent.client_secret, paymentIntentId=intent.id,
                           amount=b.total_amount, currency=b.currency)


@router.post("/payments/stripe/confirm", response_model=BookingOut)
def confirm_stripe_payment(body: StripeConfirmRequest,
                           svc: BookingService = Depends(get_booking_service),
                           reconciler: PaymentReconciler = Depends(get_reconciler),
                           gateway: StripeGateway = Depends(get_stripe_gateway),
                           me: User = Depends(require_roles("customer", "admin"))):
    """Client-side confirmation; the webhook remains authoritative and both are idempotent."""
    b = svc.get_booking(body.bookingId, me)
    booking_id, outcome = gateway.retrieve_outcome(body.paymentIntentId)
    if booking_id != b.id:
        raise ValidationError("payment intent does not belong to this booking")
    if not isinstance(outcome, PaymentSucceeded):
        raise ValidationError("payment not successful")
    reconciler.apply_payment_result(b.id, outcome, provider="stripe")
    return BookingOut.from_booking(svc.get_booking(b.id, me))


@router.post("/webhooks/stripe")
async def stripe_webhook(request: Request,
                         reconciler: PaymentReconciler = Depends(get_reconciler),
                         gateway: StripeGateway = Depends(get_stripe_gateway)):
    payload = await request.body()
    event = gateway.verify_and_parse_webhook(payload, request.headers.get("stripe-signature"))
    if event is None:
        return {"received": True}
    if not event.booking_id:
        logger.warning("stripe event %s (%s) has no booking_id metadata", event.event_id, event.event_type)
        return {"received": True}
    try:
        result = reconciler.apply_payment_result(event.booking_id, event.outcome, provider="stripe")
    except NotFoundError:
        # redelivery cannot fix an unknown booking; acknowledge it
        logger.warning("stripe event %s references unknown booking %s", event.event_id, event.booking_id)
        return {"received": True}
    return {"received": True, "applied": result.applied}


@router.post("/payments/vnpay", response_model=VNPayOut)
def create_vnpay_payment(body: VNPayRequest, request: Request,
                         svc: BookingService = Depends(get_booking_service),
                         client: VNPayClient = Depends(get_vnpay_client),
                         me: User = Depends(require_roles("customer", "admin"))):
    b = _payable(svc, body.bookingId, me)
    client_ip = request.client.host if request.client else "127.0.0.1"
    return VNPayOut(paymentUrl=client.build_payment_url(b, client_ip))


@router.get("/webhooks/vnpay/ipn")
def vnpay_ipn(request: Request,
              db: Session = Depends(get_db),
              reconciler: PaymentReconciler = Depends(get_reconciler),
              client: VNPayClient = Depends(get_vnpay_client)):
    booking_number, outcome = client.verify_and_parse_callback(dict(request.query_params))
    booking_id = reconciler.booking_id_for_number(booking_number)
    if isinstance(outcome, PaymentSucceeded):
        total = db.get(Booking, booking_id).total_amount
        if outcome.amount != total:
            raise ValidationError("amount does not match booking total")
    result = reconciler.apply_payment_result(booking_id, outcome, provider="vnpay")
    return {"RspCode": "00", "Message": "Confirm Success", "applied": result.applied}
