import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["NOTIFIER_BACKEND"] = "disabled"
os.environ["BUSINESS_TIMEZONE"] = "UTC"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["VNPAY_TMN_CODE"] = "TESTTMN1"
os.environ["VNPAY_HASH_SECRET"] = "vnpay-test-secret"

import hashlib
import hmac
import time
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.main import app
from app.api import deps
from app.db.session import Base, get_db
from app.core.security import create_access_token, hash_password
from app.models.availability_slot import AvailabilitySlot
from app.models.catalog_item import CatalogItem
from app.models.pricing_rule import GroupDiscount, SeasonalPrice
from app.models.user import User, ROLE_ADMIN, ROLE_CUSTOMER
from app.models.payment import Payment  # noqa: F401
from app.models.email_log import EmailLog  # noqa: F401
from app.models.audit_log import AuditLog  # noqa: F401
from app.services.booking_service import BookingService, TravelerInput
from app.services.notifier import Notifier
from app.services.payment_service import PaymentReconciler, PaymentSucceeded
from app.services.stripe_gateway import ChargeIntent, StripeGateway
from app.services.vnpay_client import VNPayClient, VNPayConfig

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)
WEBHOOK_SECRET = "whsec_test_secret"


def fixed_clock():
    return NOW


class FakeNotifier(Notifier):
    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    def send(self, kind, booking, customer, item):
        if self.fail:
            raise RuntimeError("smtp down")
        self.sent.append((kind, booking.booking_number))

    def kinds(self):
        return [k for k, _ in self.sent]


class FakeStripeGateway(StripeGateway):
    """Real webhook verification; no network for intents and refunds."""

    def __init__(self):
        super().__init__("sk_test_dummy", WEBHOOK_SECRET, 300)
        self.intents = {}
        self.refunds = []

    def create_charge_intent(self, amount, currency, metadata, idempotency_key=None):
        intent_id = f"pi_{uuid.uuid4().hex[:12]}"
        self.intents[intent_id] = {"metadata": metadata, "amount": amount, "outcome": None}
        return ChargeIntent(id=intent_id, client_secret=f"{intent_id}_secret", amount=amount, currency=currency)

    def succeed(self, intent_id):
        intent = self.intents[intent_id]
        intent["outcome"] = PaymentSucceeded(transaction_id=intent_id, amount=intent["amount"], method="credit_card")

    def retrieve_outcome(self, intent_id):
        intent = self.intents[intent_id]
        return intent["metadata"].get("booking_id"), intent["outcome"]

    def refund(self, transaction_id, amount, currency):
        self.refunds.append((transaction_id, amount, currency))
        return f"re_{len(self.refunds)}"


def stripe_signature(payload: str, secret: str = WEBHOOK_SECRET, ts: int | None = None) -> str:
    ts = ts or int(time.time())
    sig = hmac.new(secret.encode("utf-8"), f"{ts}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={ts},v1={sig}"


def vnpay(hash_secret="vnpay-test-secret"):
    return VNPayClient(VNPayConfig(tmn_code="TESTTMN1", hash_secret=hash_secret,
                                   payment_url="https://sandbox.vnpayment.vn/paymentv2/vpcpay.html",
                                   return_url="https://tourbook.example/payment/vnpay/return"))


def ipn_params(vnpay_client, booking_number, amount, code="00", txn="14000001"):
    """Callback query parameters as VNPay sends them, signed by ``vnpay_client``."""
    params = {
        "vnp_TmnCode": "TESTTMN1",
        "vnp_Amount": str(int(amount * 100)),
        "vnp_TxnRef": booking_number,
        "vnp_ResponseCode": code,
        "vnp_TransactionStatus": code,
        "vnp_TransactionNo": txn,
        "vnp_OrderInfo": f"Payment for booking {booking_number}",
    }
    params["vnp_SecureHashType"] = "HmacSHA512"
    params["vnp_SecureHash"] = vnpay_client.sign({k: v for k, v in params.items() if k != "vnp_SecureHashType"})
    return params


@pytest.fixture
def engine(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


def make_user(db, email, role=ROLE_CUSTOMER, name="Test User"):
    u = User(id=str(uuid.uuid4()), email=email, full_name=name, role=role,
             password_hash=hash_password("password123"), is_active=True)
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def customer(db):
    return make_user(db, "alice@example.com", name="Alice")


@pytest.fixture
def other_customer(db):
    return make_user(db, "bob@example.com", name="Bob")


@pytest.fixture
def admin(db):
    return make_user(db, "admin@example.com", role=ROLE_ADMIN, name="Admin")


def make_item(db, base_price="100.00", capacity=2, start=None, slot_days=1, duration_days=1,
              status="published", currency="USD", seasons=(), discounts=()):
    """Published item with one slot starting ``start`` (default ten days after NOW)."""
    start = start or (NOW.date() + timedelta(days=10))
    item = CatalogItem(
        id=str(uuid.uuid4()), kind="tour", title="Bay Cruise", slug=f"bay-cruise-{uuid.uuid4().hex[:6]}",
        description="", destination="Ha Long", base_price=Decimal(base_price), currency=currency,
        capacity_per_slot=capacity, duration_days=duration_days, status=status,
    )
    db.add(item)
    db.add(AvailabilitySlot(id=str(uuid.uuid4()), catalog_item_id=item.id, start_date=start,
                            end_date=start + timedelta(days=slot_days - 1), booked_count=0))
    for season, s_start, s_end, multiplier in seasons:
        db.add(SeasonalPrice(id=str(uuid.uuid4()), catalog_item_id=item.id, season=season,
                             start_date=s_start, end_date=s_end, multiplier=Decimal(multiplier)))
    for min_people, percent in discounts:
        db.add(GroupDiscount(id=str(uuid.uuid4()), catalog_item_id=item.id, min_people=min_people,
                             discount_percent=Decimal(percent)))
    db.commit()
    return item


def adults(n):
    return [TravelerInput(name=f"Traveler {i + 1}") for i in range(n)]


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def service(db, notifier):
    return BookingService(db, notifier, fixed_clock)


@pytest.fixture
def reconciler(db, notifier):
    return PaymentReconciler(db, notifier, fixed_clock)


@pytest.fixture
def stripe_gateway():
    return FakeStripeGateway()


@pytest.fixture
def client(session_factory, notifier, stripe_gateway):
    def _get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[deps.get_notifier] = lambda: notifier
    app.dependency_overrides[deps.get_clock] = lambda: fixed_clock
    app.dependency_overrides[deps.get_stripe_gateway] = lambda: stripe_gateway
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def auth(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, role=user.role)}"}

