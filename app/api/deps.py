from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from app.db.session import get_db
from app.core.security import decode_token
from app.models.user import User
from app.services.booking_service import BookingService, utcnow
from app.services.notifier import Notifier, build_notifier
from app.services.payment_service import PaymentReconciler
from app.services.stripe_gateway import StripeGateway
from app.services.vnpay_client import VNPayClient

bearer = HTTPBearer(auto_error=False)

def get_current_user(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    if not creds:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = decode_token(creds.credentials)
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid token")
    user_id = payload.get("sub")
    user = db.get(User, user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user

def require_roles(*roles: str):
    def _guard(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return user
    return _guard

# Collaborators are resolved here so tests can swap them with dependency_overrides.
def get_notifier() -> Notifier:
    return build_notifier()

def get_clock():
    return utcnow

def get_booking_service(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    clock=Depends(get_clock),
) -> BookingService:
    return BookingService(db, notifier, clock)

def get_reconciler(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    clock=Depends(get_clock),
) -> PaymentReconciler:
    return PaymentReconciler(db, notifier, clock)

def get_stripe_gateway() -> StripeGateway:
    return StripeGateway.from_settings()

def get_vnpay_client() -> VNPayClient:
    return VNPayClient.from_settings()
